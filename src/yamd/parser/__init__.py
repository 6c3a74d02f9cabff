"""Parser package."""

from .attr_parser import Declaration, parse_declaration, parse_key
from .base import (
    Asset,
    AssetStatus,
    Bib,
    DocumentGraph,
    LatexInlineSegment,
    NodeRecord,
    NodeType,
    ParseResult,
    Ref,
    RefBibSegment,
    RefSegment,
    TextSegment,
    check_integrity,
    segments_to_source,
)
from .flattener import TreeFlattener
from .node_types import NodeShape, NodeTypeResolver
from .segmenter import TextSegmenter
from .tree_builder import TreeBuilder, TreeNode
from .yamd_parser import YamdParser, process_yamd

__all__ = [
    "Asset",
    "AssetStatus",
    "Bib",
    "Declaration",
    "DocumentGraph",
    "LatexInlineSegment",
    "NodeRecord",
    "NodeShape",
    "NodeType",
    "NodeTypeResolver",
    "ParseResult",
    "Ref",
    "RefBibSegment",
    "RefSegment",
    "TextSegment",
    "TextSegmenter",
    "TreeBuilder",
    "TreeFlattener",
    "TreeNode",
    "YamdParser",
    "check_integrity",
    "parse_declaration",
    "parse_key",
    "process_yamd",
    "segments_to_source",
]
