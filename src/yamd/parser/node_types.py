"""Node type resolution as an explicit, ordered rule table.

=====  ===============  ===========================================================
Order  Rule             Match
=====  ===============  ===========================================================
1      self_attribute   ``self`` (or a bare flag) names a node type; authoritative
2      media_key        sole key is image / img / video / pdf / latex
3      list_key         sole key is a list alias (ul, ol, pl, p, paragraphs, ...)
4      content_field    mapping body carries ``content``
5      embedded_list    titled mapping body carries a list alias field
6      fallback         bare scalar -> text, anything else -> section
=====  ===============  ===========================================================

The first rule returning a :class:`Resolution` wins.  The resolved type is
final: nothing downstream re-infers it from attributes.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable

from .attr_parser import LIST_DISPLAYS, normalize_display
from .base import BLOCK_TYPES, NodeType

logger = logging.getLogger(__name__)

YAML_MARKDOWN = "yaml-markdown"

MEDIA_KEYS = {
    "image": NodeType.IMAGE,
    "img": NodeType.IMAGE,
    "video": NodeType.VIDEO,
    "pdf": NodeType.PDF,
    "latex": NodeType.LATEX,
}

# Keys that turn a mapping into a structured node body.
STRUCTURE_FIELDS = frozenset({"content", "title"})

_FLAG_TYPES = frozenset(
    {
        NodeType.SECTION,
        NodeType.PANEL,
        NodeType.DIVIDER,
        NodeType.KEY,
        NodeType.LATEX,
        NodeType.IMAGE,
        NodeType.VIDEO,
        NodeType.PDF,
        NodeType.CUSTOM,
        NodeType.SEGMENT_CONTAINER,
    }
)


@dataclass(slots=True)
class NodeShape:
    """What the resolver sees of one YAML element."""

    name: str | None
    attr: dict[str, Any] = field(default_factory=dict)
    value: Any = None
    sole_key: bool = False


@dataclass(slots=True)
class Resolution:
    type: NodeType
    rule: str
    attr: dict[str, Any] = field(default_factory=dict)
    children_source: Any = None
    implicit_lists: list[tuple[NodeType, Any]] = field(default_factory=list)
    fields: dict[str, Any] = field(default_factory=dict)
    opaque: bool = False


def display_type(value: Any) -> NodeType | None:
    if not isinstance(value, str):
        return None
    try:
        return NodeType(normalize_display(value))
    except ValueError:
        return None


def list_alias_type(key: Any) -> NodeType | None:
    if not isinstance(key, str) or not key or key != key.strip().lower():
        return None
    display = normalize_display(key)
    return NodeType(display) if display in LIST_DISPLAYS else None


def promote_display_flags(attr: dict[str, Any]) -> dict[str, Any]:
    """Turn bare flags such as ``[panel]`` or ``[ul]`` into ``self`` / ``child``."""
    promoted = dict(attr)
    for key, value in attr.items():
        if value is not True:
            continue
        if key in LIST_DISPLAYS:
            if "child" not in promoted:
                promoted["child"] = key
                del promoted[key]
        elif key == YAML_MARKDOWN or display_type(key) in _FLAG_TYPES:
            if "self" not in promoted:
                promoted["self"] = key
                del promoted[key]
    return promoted


def is_structured(value: Any) -> bool:
    return isinstance(value, Mapping) and any(key in STRUCTURE_FIELDS for key in value)


def split_body(value: Any) -> tuple[Any, list[tuple[NodeType, Any]], dict[str, Any]]:
    """Separate a structured mapping body into content, embedded lists and fields."""
    if not is_structured(value):
        return value, [], {}
    implicit: list[tuple[NodeType, Any]] = []
    fields: dict[str, Any] = {}
    for key, item in value.items():
        if key == "content":
            continue
        list_type = list_alias_type(key)
        if list_type is not None:
            implicit.append((list_type, item))
        else:
            fields[str(key)] = item
    return value.get("content"), implicit, fields


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

def _self_attribute(shape: NodeShape, attr: dict[str, Any]) -> Resolution | None:
    declared = attr.get("self")
    if declared == YAML_MARKDOWN:
        attr["customType"] = YAML_MARKDOWN
        return Resolution(NodeType.CUSTOM, "self_attribute", attr, opaque=True)
    node_type = display_type(declared)
    if node_type is None:
        return None
    if node_type in BLOCK_TYPES:
        return Resolution(node_type, "self_attribute", attr)
    children, implicit, fields = split_body(shape.value)
    return Resolution(node_type, "self_attribute", attr, children, implicit, fields)


def _media_key(shape: NodeShape, attr: dict[str, Any]) -> Resolution | None:
    if not shape.sole_key or shape.name not in MEDIA_KEYS:
        return None
    return Resolution(MEDIA_KEYS[shape.name], "media_key", attr)


def _list_key(shape: NodeShape, attr: dict[str, Any]) -> Resolution | None:
    if not shape.sole_key:
        return None
    list_type = list_alias_type(shape.name)
    if list_type is None:
        return None
    return Resolution(list_type, "list_key", attr, children_source=shape.value)


def _content_field(shape: NodeShape, attr: dict[str, Any]) -> Resolution | None:
    if not isinstance(shape.value, Mapping) or "content" not in shape.value:
        return None
    children, implicit, fields = split_body(shape.value)
    return Resolution(NodeType.SECTION, "content_field", attr, children, implicit, fields)


def _embedded_list(shape: NodeShape, attr: dict[str, Any]) -> Resolution | None:
    if not is_structured(shape.value):
        return None
    children, implicit, fields = split_body(shape.value)
    if not implicit:
        return None
    return Resolution(NodeType.SECTION, "embedded_list", attr, children, implicit, fields)


def _fallback(shape: NodeShape, attr: dict[str, Any]) -> Resolution:
    if shape.name is None and not isinstance(shape.value, (Mapping, list)):
        return Resolution(NodeType.TEXT, "fallback", attr)
    children, implicit, fields = split_body(shape.value)
    return Resolution(NodeType.SECTION, "fallback", attr, children, implicit, fields)


Rule = Callable[[NodeShape, dict[str, Any]], "Resolution | None"]

RULES: tuple[tuple[str, Rule], ...] = (
    ("self_attribute", _self_attribute),
    ("media_key", _media_key),
    ("list_key", _list_key),
    ("content_field", _content_field),
    ("embedded_list", _embedded_list),
    ("fallback", _fallback),
)


class NodeTypeResolver:
    """Evaluate :data:`RULES` top to bottom with early exit."""

    def __init__(self, rules: tuple[tuple[str, Rule], ...] = RULES) -> None:
        self.rules = rules

    def resolve(self, shape: NodeShape) -> Resolution:
        attr = promote_display_flags(shape.attr)
        for name, rule in self.rules:
            resolution = rule(shape, attr)
            if resolution is not None:
                logger.debug("Resolved %r as %s via %s", shape.name, resolution.type.value, name)
                return resolution
        raise AssertionError("fallback rule must always match")
