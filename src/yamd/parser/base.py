"""Core document graph representation produced by the parse pipeline."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Mapping


class NodeType(str, Enum):
    SECTION = "section"
    ARRAY = "array"
    TEXT = "text"
    SEGMENT_CONTAINER = "segment-container"
    UNORDERED_LIST = "unordered-list"
    ORDERED_LIST = "ordered-list"
    PLAIN_LIST = "plain-list"
    PARAGRAPH_LIST = "paragraph-list"
    IMAGE = "image"
    VIDEO = "video"
    LATEX = "latex"
    PDF = "pdf"
    PANEL = "panel"
    DIVIDER = "divider"
    KEY = "key"
    CUSTOM = "custom"
    OBJECT = "object"

    def __str__(self) -> str:
        return self.value


LIST_TYPES = frozenset(
    {NodeType.UNORDERED_LIST, NodeType.ORDERED_LIST, NodeType.PLAIN_LIST, NodeType.PARAGRAPH_LIST}
)
MEDIA_TYPES = frozenset({NodeType.IMAGE, NodeType.VIDEO, NodeType.PDF})
# Nodes whose text is a source (url or LaTeX) rather than prose.
BLOCK_TYPES = MEDIA_TYPES | {NodeType.LATEX}


# ---------------------------------------------------------------------------
# Segments
# ---------------------------------------------------------------------------

def escape_text(text: str) -> str:
    """Re-escape literal dollar signs the way they are written in source."""
    return text.replace("$", "\\$")


@dataclass(slots=True)
class TextSegment:
    type: ClassVar[str] = "text"

    text: str
    raw: str | None = None

    def to_source(self) -> str:
        return self.raw if self.raw is not None else escape_text(self.text)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "text": self.text}


@dataclass(slots=True)
class LatexInlineSegment:
    type: ClassVar[str] = "latex-inline"

    asset_id: str
    latex: str
    raw: str | None = None

    def to_source(self) -> str:
        return self.raw if self.raw is not None else f"${self.latex}$"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "assetId": self.asset_id, "latex": self.latex}


@dataclass(slots=True)
class RefSegment:
    type: ClassVar[str] = "ref"

    ref_id: str
    target_id: str
    link_text: str | None = None
    raw: str | None = None

    def to_source(self) -> str:
        if self.raw is not None:
            return self.raw
        if self.link_text is None:
            return f"\\ref{{{self.target_id}}}"
        return f"\\ref{{{self.link_text}}}{{{self.target_id}}}"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type, "refId": self.ref_id, "targetId": self.target_id}
        if self.link_text is not None:
            data["linkText"] = self.link_text
        return data


@dataclass(slots=True)
class RefBibSegment:
    type: ClassVar[str] = "ref-bib"

    bib_key: str
    bib_keys: tuple[str, ...] = ()
    raw: str | None = None

    def __post_init__(self) -> None:
        if not self.bib_keys:
            self.bib_keys = (self.bib_key,)

    def to_source(self) -> str:
        return self.raw if self.raw is not None else f"\\bib{{{','.join(self.bib_keys)}}}"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "bibKey": self.bib_key, "bibKeys": list(self.bib_keys)}


Segment = TextSegment | LatexInlineSegment | RefSegment | RefBibSegment


def segments_to_source(segments: list[Segment]) -> str:
    return "".join(segment.to_source() for segment in segments)


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class NodeRecord:
    id: str
    type: NodeType
    parent_id: str | None = None
    children: list[str] = field(default_factory=list)
    attr: dict[str, Any] = field(default_factory=dict)
    text_raw: str | None = None
    text_original: str | None = None
    caption: str | None = None
    height: str | None = None
    html_id: str | None = None
    src: str | None = None
    payload: Any = None
    asset_id: str | None = None
    segments: list[Segment] | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "parentId": self.parent_id,
            "children": list(self.children),
            "attr": dict(self.attr),
        }
        optional = {
            "textRaw": self.text_raw,
            "textOriginal": self.text_original,
            "caption": self.caption,
            "height": self.height,
            "htmlId": self.html_id,
            "src": self.src,
            "payload": self.payload,
            "assetId": self.asset_id,
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        if self.segments is not None:
            data["segments"] = [segment.to_dict() for segment in self.segments]
        return data


# ---------------------------------------------------------------------------
# Side tables
# ---------------------------------------------------------------------------

class AssetStatus(str, Enum):
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


@dataclass(slots=True)
class Asset:
    """Content produced out of band, e.g. a LaTeX render.

    The status only ever moves from pending to ready or failed; a renderer may
    perform that transition from another thread while readers hold the graph.
    """

    id: str
    kind: str
    text_raw: str
    node_id: str | None = None
    status: AssetStatus = AssetStatus.PENDING
    content: Any = None
    error: str | None = None
    caption: str | None = None
    index_of_same_type: int | None = None
    subindex: str | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def resolve(self, content: Any) -> bool:
        with self._lock:
            if self.status is not AssetStatus.PENDING:
                return False
            self.content = content
            self.status = AssetStatus.READY
            return True

    def fail(self, error: str) -> bool:
        with self._lock:
            if self.status is not AssetStatus.PENDING:
                return False
            self.error = error
            self.status = AssetStatus.FAILED
            return True

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "type": self.kind,
            "textRaw": self.text_raw,
            "status": self.status.value,
            "content": self.content,
        }
        if self.node_id is not None:
            data["nodeId"] = self.node_id
        if self.error is not None:
            data["error"] = self.error
        if self.caption is not None:
            data["caption"] = self.caption
        if self.index_of_same_type is not None:
            data["indexOfSameType"] = self.index_of_same_type
            if self.subindex is not None:
                data["subindex"] = self.subindex
            data["indexStr"] = f"{self.index_of_same_type}{self.subindex or ''}"
        return data


@dataclass(slots=True)
class Ref:
    id: str
    node_id: str
    target_id: str
    link_text: str | None = None
    referenced_by: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "nodeId": self.node_id,
            "targetId": self.target_id,
            "linkText": self.link_text,
            "referencedBy": list(self.referenced_by),
        }


@dataclass(slots=True)
class Bib:
    bib_key: str
    index: int
    referenced_by: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"bibKey": self.bib_key, "firstSeenIndex": self.index, "referencedBy": list(self.referenced_by)}


# ---------------------------------------------------------------------------
# Graph
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class DocumentGraph:
    nodes: dict[str, NodeRecord]
    root_node_id: str
    assets: dict[str, Asset] = field(default_factory=dict)
    refs: dict[str, Ref] = field(default_factory=dict)
    bibs: dict[str, Bib] = field(default_factory=dict)
    bibs_lookup: dict[str, int] = field(default_factory=dict)

    @property
    def root(self) -> NodeRecord:
        return self.nodes[self.root_node_id]

    def children_of(self, node_id: str) -> list[NodeRecord]:
        return [self.nodes[child_id] for child_id in self.nodes[node_id].children]

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": {node_id: node.to_dict() for node_id, node in self.nodes.items()},
            "rootNodeId": self.root_node_id,
            "assets": {asset_id: asset.to_dict() for asset_id, asset in self.assets.items()},
            "refs": {ref_id: ref.to_dict() for ref_id, ref in self.refs.items()},
            "bibs": {key: bib.to_dict() for key, bib in self.bibs.items()},
            "bibsLookup": dict(self.bibs_lookup),
        }


@dataclass(slots=True)
class ParseResult:
    success: bool
    data: DocumentGraph | None = None
    error: str | None = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        if not self.success:
            return {"success": False, "error": self.error}
        assert self.data is not None
        return {"success": True, "data": self.data.to_dict(), "warnings": list(self.warnings)}


def check_integrity(nodes: Mapping[str, NodeRecord], root_id: str) -> list[str]:
    """Return every tree invariant violation found in *nodes* (empty when sound)."""
    problems: list[str] = []
    if root_id not in nodes:
        return [f"root {root_id} missing"]
    if nodes[root_id].parent_id is not None:
        problems.append(f"root {root_id} has parent {nodes[root_id].parent_id}")

    owner: dict[str, str] = {}
    for node_id, node in nodes.items():
        for child_id in node.children:
            if child_id not in nodes:
                problems.append(f"{node_id} lists missing child {child_id}")
                continue
            if child_id in owner:
                problems.append(f"{child_id} listed by both {owner[child_id]} and {node_id}")
            owner[child_id] = node_id
            if nodes[child_id].parent_id != node_id:
                problems.append(f"{child_id} has parent {nodes[child_id].parent_id}, expected {node_id}")

    limit = len(nodes)
    for node_id in nodes:
        current = node_id
        steps = 0
        while current != root_id:
            parent_id = nodes[current].parent_id
            if parent_id is None or parent_id not in nodes:
                problems.append(f"{node_id} does not reach the root")
                break
            current = parent_id
            steps += 1
            if steps > limit:
                problems.append(f"cycle through {node_id}")
                break
    return problems
