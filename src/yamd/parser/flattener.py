"""Flatten the nested tree into an id-addressed node map."""

from __future__ import annotations

import logging

from .base import DocumentGraph, NodeRecord
from .tree_builder import TreeNode

logger = logging.getLogger(__name__)


class TreeFlattener:
    """Assign pre-order ids (``doc_001``, ``doc_002``, ...) and link parents and children.

    Purely structural: text is copied as-is and segmented by a later pass.
    """

    def __init__(self, id_prefix: str = "doc", id_width: int = 3) -> None:
        self.id_prefix = id_prefix
        self.id_width = id_width
        self._counter = 0

    def _next_id(self) -> str:
        self._counter += 1
        return f"{self.id_prefix}_{self._counter:0{self.id_width}d}"

    def flatten(self, tree: TreeNode) -> DocumentGraph:
        self._counter = 0
        nodes: dict[str, NodeRecord] = {}
        root_id = self._flatten_node(tree, None, nodes)
        logger.debug("Flattened %d nodes under %s", len(nodes), root_id)
        return DocumentGraph(nodes=nodes, root_node_id=root_id)

    def _flatten_node(self, node: TreeNode, parent_id: str | None, nodes: dict[str, NodeRecord]) -> str:
        node_id = self._next_id()
        record = NodeRecord(
            id=node_id,
            type=node.type,
            parent_id=parent_id,
            attr=dict(node.attr),
            text_raw=node.text_raw,
            text_original=node.text_original,
            caption=node.caption,
            height=node.height,
            html_id=node.html_id,
            src=node.src,
            payload=node.payload,
        )
        # Register before descending so ids stay in pre-order.
        nodes[node_id] = record
        for child in node.children:
            record.children.append(self._flatten_node(child, node_id, nodes))
        return node_id
