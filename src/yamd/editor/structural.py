"""Structural edits on the flat node map.

Every operation is pure: it inspects ``nodes`` and returns an :class:`EditResult`
describing the field updates to make, without touching the map. A failed
result carries no changes. :func:`apply_edit` commits a successful result.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import Any, Callable

from yamd.errors import StructureError
from yamd.parser.base import NodeRecord

logger = logging.getLogger(__name__)

Nodes = Mapping[str, NodeRecord]

# Fields an edit may rewrite on a node.
EDITABLE_FIELDS = frozenset({"parent_id", "children", "attr"})


class EditCode(IntEnum):
    OK = 0
    NOT_FOUND = -1
    IS_ROOT = -2
    NO_PREVIOUS_SIBLING = -3
    NO_NEXT_SIBLING = -4
    PARENT_IS_ROOT = -5
    DANGLING_REFERENCE = -6
    EDIT_IN_PROGRESS = -7


@dataclass(slots=True)
class NodeChange:
    node_id: str
    updates: dict[str, Any]


@dataclass(slots=True)
class EditResult:
    code: EditCode
    message: str
    changes: list[NodeChange] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    data: dict[str, Any] | None = None

    @property
    def success(self) -> bool:
        return self.code is EditCode.OK

    @classmethod
    def failure(cls, code: EditCode, message: str) -> EditResult:
        return cls(code=code, message=message)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"code": int(self.code), "message": self.message}
        if self.success:
            data["changes"] = [{"nodeId": change.node_id, "updates": change.updates} for change in self.changes]
            data["removed"] = list(self.removed)
        if self.data is not None:
            data["data"] = self.data
        return data


EditOperation = Callable[[Nodes, str], EditResult]


def _reports_failures(func: EditOperation) -> EditOperation:
    @functools.wraps(func)
    def wrapper(nodes: Nodes, node_id: str) -> EditResult:
        try:
            return func(nodes, node_id)
        except StructureError as exc:
            logger.debug("%s(%s) refused: %s", func.__name__, node_id, exc)
            return EditResult.failure(EditCode(exc.code), str(exc))

    return wrapper


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def _get(nodes: Nodes, node_id: str, role: str = "Node") -> NodeRecord:
    node = nodes.get(node_id)
    if node is None:
        code = EditCode.NOT_FOUND if role == "Node" else EditCode.DANGLING_REFERENCE
        raise StructureError(code, f"{role} {node_id} not found")
    return node


def _locate(nodes: Nodes, node_id: str, verb: str) -> tuple[NodeRecord, NodeRecord, int]:
    """Return the node, its parent and its index among the parent's children."""
    if not node_id:
        raise StructureError(EditCode.NOT_FOUND, "Invalid input: node id required")
    node = _get(nodes, node_id)
    if node.parent_id is None:
        raise StructureError(EditCode.IS_ROOT, f"Cannot {verb} root node")
    parent = _get(nodes, node.parent_id, "Parent node")
    try:
        index = parent.children.index(node_id)
    except ValueError:
        raise StructureError(
            EditCode.DANGLING_REFERENCE, f"Node {node_id} missing from children of {parent.id}"
        ) from None
    return node, parent, index


def _descendants(nodes: Nodes, node_id: str) -> list[str]:
    found: list[str] = []
    seen = {node_id}
    stack = list(reversed(nodes[node_id].children))
    while stack:
        child_id = stack.pop()
        if child_id in seen:
            continue
        seen.add(child_id)
        child = _get(nodes, child_id, "Child node")
        found.append(child_id)
        stack.extend(reversed(child.children))
    return found


def _reparent(child_ids: list[str], parent_id: str) -> list[NodeChange]:
    return [NodeChange(child_id, {"parent_id": parent_id}) for child_id in child_ids]


def _ok(message: str, changes: list[NodeChange], removed: list[str] | None = None) -> EditResult:
    return EditResult(code=EditCode.OK, message=message, changes=changes, removed=removed or [])


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

@_reports_failures
def indent(nodes: Nodes, node_id: str) -> EditResult:
    """Make the node the last child of its previous sibling.

    The node's own children follow it into the new parent, in order.
    """
    node, parent, index = _locate(nodes, node_id, "indent")
    if index == 0:
        raise StructureError(EditCode.NO_PREVIOUS_SIBLING, f"Cannot indent {node_id}: it is the first child")
    new_parent = _get(nodes, parent.children[index - 1], "Previous sibling")
    lifted = list(node.children)

    new_parent_updates: dict[str, Any] = {"children": [*new_parent.children, node_id, *lifted]}
    if not new_parent.attr.get("child"):
        new_parent_updates["attr"] = {**new_parent.attr, "child": "unordered-list"}

    changes = [
        NodeChange(parent.id, {"children": parent.children[:index] + parent.children[index + 1 :]}),
        NodeChange(new_parent.id, new_parent_updates),
        NodeChange(node_id, {"parent_id": new_parent.id, "children": []}),
        *_reparent(lifted, new_parent.id),
    ]
    return _ok(f"Node {node_id} indented under {new_parent.id}", changes)


@_reports_failures
def outdent(nodes: Nodes, node_id: str) -> EditResult:
    """Move the node right after its parent; it adopts the siblings that followed it."""
    node, parent, index = _locate(nodes, node_id, "outdent")
    if parent.parent_id is None:
        raise StructureError(EditCode.PARENT_IS_ROOT, f"Cannot outdent {node_id}: parent is the root")
    grandparent = _get(nodes, parent.parent_id, "Grandparent node")
    try:
        parent_index = grandparent.children.index(parent.id)
    except ValueError:
        raise StructureError(
            EditCode.DANGLING_REFERENCE, f"Parent {parent.id} missing from children of {grandparent.id}"
        ) from None

    following = parent.children[index + 1 :]
    node_updates: dict[str, Any] = {"parent_id": grandparent.id, "children": [*node.children, *following]}
    if "child" in parent.attr:
        node_updates["attr"] = {**node.attr, "child": parent.attr["child"]}

    grandparent_children = list(grandparent.children)
    grandparent_children.insert(parent_index + 1, node_id)
    changes = [
        NodeChange(parent.id, {"children": parent.children[:index]}),
        NodeChange(grandparent.id, {"children": grandparent_children}),
        NodeChange(node_id, node_updates),
        *_reparent(following, node_id),
    ]
    return _ok(f"Node {node_id} outdented under {grandparent.id}", changes)


def _swap(nodes: Nodes, node_id: str, offset: int) -> EditResult:
    verb = "move up" if offset < 0 else "move down"
    _, parent, index = _locate(nodes, node_id, verb)
    other = index + offset
    if other < 0:
        raise StructureError(EditCode.NO_PREVIOUS_SIBLING, f"Node {node_id} is already at the top of its siblings")
    if other >= len(parent.children):
        raise StructureError(EditCode.NO_NEXT_SIBLING, f"Node {node_id} is already at the bottom of its siblings")
    children = list(parent.children)
    children[index], children[other] = children[other], children[index]
    return _ok(f"Node {node_id} moved {'up' if offset < 0 else 'down'}", [NodeChange(parent.id, {"children": children})])


@_reports_failures
def move_up(nodes: Nodes, node_id: str) -> EditResult:
    return _swap(nodes, node_id, -1)


@_reports_failures
def move_down(nodes: Nodes, node_id: str) -> EditResult:
    return _swap(nodes, node_id, 1)


@_reports_failures
def delete(nodes: Nodes, node_id: str) -> EditResult:
    """Remove the node and its whole subtree.

    Asset, ref and bib entries pointing at removed nodes are left in place.
    """
    _, parent, index = _locate(nodes, node_id, "delete")
    removed = [node_id, *_descendants(nodes, node_id)]
    changes = [NodeChange(parent.id, {"children": parent.children[:index] + parent.children[index + 1 :]})]
    return _ok(f"Node {node_id} deleted", changes, removed)


@_reports_failures
def edit_info(nodes: Nodes, node_id: str) -> EditResult:
    node = _get(nodes, node_id)
    sibling_index, total_siblings = -1, 0
    can_outdent = False
    parent = nodes.get(node.parent_id) if node.parent_id is not None else None
    if parent is not None and node_id in parent.children:
        sibling_index = parent.children.index(node_id)
        total_siblings = len(parent.children)
        can_outdent = parent.parent_id is not None
    placed = sibling_index != -1
    return EditResult(
        code=EditCode.OK,
        message=f"Edit info for {node_id}",
        data={
            "nodeId": node_id,
            "isRoot": node.parent_id is None,
            "parentId": node.parent_id,
            "siblingIndex": sibling_index,
            "totalSiblings": total_siblings,
            "operations": {
                "canIndent": placed and sibling_index > 0,
                "canOutdent": placed and can_outdent,
                "canMoveUp": placed and sibling_index > 0,
                "canMoveDown": placed and sibling_index < total_siblings - 1,
                "canDelete": placed,
            },
        },
    )


OPERATIONS: dict[str, EditOperation] = {
    "indent": indent,
    "outdent": outdent,
    "move-up": move_up,
    "move-down": move_down,
    "delete": delete,
}


def apply_edit(nodes: MutableMapping[str, NodeRecord], result: EditResult) -> None:
    """Commit *result* to *nodes*; nothing is written unless every change stages cleanly.

    Raises :class:`StructureError` for a failed result or one that no longer
    matches *nodes*.
    """
    if not result.success:
        raise StructureError(result.code, f"Cannot apply failed edit: {result.message}")

    staged: dict[str, NodeRecord] = {}
    for change in result.changes:
        unknown = set(change.updates) - EDITABLE_FIELDS
        if unknown:
            raise StructureError(EditCode.DANGLING_REFERENCE, f"Unsupported fields {sorted(unknown)}")
        current = staged.get(change.node_id) or nodes.get(change.node_id)
        if current is None:
            raise StructureError(EditCode.DANGLING_REFERENCE, f"Node {change.node_id} not found")
        updates = {key: (list(value) if key == "children" else value) for key, value in change.updates.items()}
        staged[change.node_id] = replace(current, **updates)
    missing = [node_id for node_id in result.removed if node_id not in nodes]
    if missing:
        raise StructureError(EditCode.DANGLING_REFERENCE, f"Nodes {missing} not found")

    nodes.update(staged)
    for node_id in result.removed:
        del nodes[node_id]
    logger.debug("Applied edit: %s", result.message)
