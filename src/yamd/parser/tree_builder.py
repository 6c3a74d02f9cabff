"""Walk decoded YAML into a nested, typed (still unflattened) node tree."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from yamd.errors import DocumentParseError, GrammarError

from .attr_parser import RECOGNIZED_KEYS, normalize_attr_key, normalize_attr_value, parse_declaration, parse_key
from .base import BLOCK_TYPES, NodeType
from .node_types import (
    NodeShape,
    NodeTypeResolver,
    Resolution,
    display_type,
    is_structured,
    promote_display_flags,
)

logger = logging.getLogger(__name__)

ARRAY_ATTR = {"self": "none", "child": "plain-list"}


@dataclass(slots=True)
class TreeNode:
    type: NodeType
    attr: dict[str, Any] = field(default_factory=dict)
    text_raw: str | None = None
    text_original: str | None = None
    children: list[TreeNode] = field(default_factory=list)
    caption: str | None = None
    height: str | None = None
    html_id: str | None = None
    src: str | None = None
    payload: Any = None

    def set_text(self, text: str) -> None:
        self.text_raw = text
        self.text_original = text


def scalar_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _is_attr_key(key: Any) -> bool:
    return isinstance(key, str) and normalize_attr_key(key) in RECOGNIZED_KEYS


def reject_recursive_aliases(value: Any, path: set[int] | None = None) -> None:
    """Raise :class:`DocumentParseError` if an alias makes *value* contain itself.

    A shared alias used twice side by side is fine; only a container that
    is reachable from inside itself is rejected.
    """
    if not isinstance(value, (list, Mapping)):
        return
    path = set() if path is None else path
    if id(value) in path:
        raise DocumentParseError("recursive alias in YAML document")
    path.add(id(value))
    for child in value.values() if isinstance(value, Mapping) else value:
        reject_recursive_aliases(child, path)
    path.discard(id(value))


class TreeBuilder:
    """Build a :class:`TreeNode` tree from the value returned by ``yaml.safe_load``."""

    def __init__(self, resolver: NodeTypeResolver | None = None, *, strict: bool = False) -> None:
        self.resolver = resolver or NodeTypeResolver()
        self.strict = strict
        self.warnings: list[str] = []

    def build(self, value: Any) -> TreeNode:
        self.warnings = []
        reject_recursive_aliases(value)
        if isinstance(value, list):
            return self._build_array(value)
        if isinstance(value, Mapping) and not is_structured(value):
            return TreeNode(NodeType.ARRAY, dict(ARRAY_ATTR), children=self._build_entries(value))
        if value is None:
            return TreeNode(NodeType.ARRAY, dict(ARRAY_ATTR))
        return self._build_array([value])

    # ------------------------------------------------------------------
    # YAML shapes
    # ------------------------------------------------------------------

    def _build_array(self, items: list[Any]) -> TreeNode:
        return TreeNode(NodeType.ARRAY, dict(ARRAY_ATTR), children=[self._build_item(item) for item in items])

    def _build_item(self, value: Any) -> TreeNode:
        if isinstance(value, list):
            return self._build_array(value)
        if isinstance(value, Mapping):
            if is_structured(value) and self._find_leaf_key(value) is None:
                return self._build_node(NodeShape(name=None, attr=self._body_attr(value), value=value))
            entries = self._build_entries(value)
            if len(entries) == 1:
                return entries[0]
            return TreeNode(NodeType.OBJECT, children=entries)
        return self._build_node(NodeShape(name=None, value=value))

    def _build_entries(self, mapping: Mapping[Any, Any]) -> list[TreeNode]:
        if len(mapping) > 1:
            leaf_key = self._find_leaf_key(mapping)
            if leaf_key is not None:
                fields = {key: value for key, value in mapping.items() if key != leaf_key}
                return [self._build_declaration(leaf_key, fields, sole_key=False)]
        sole_key = len(mapping) == 1
        return [self._build_declaration(key, value, sole_key=sole_key) for key, value in mapping.items()]

    def _find_leaf_key(self, mapping: Mapping[Any, Any]) -> Any:
        """Find ``[latex]name:`` with a null value whose fields were written as siblings."""
        for key, value in mapping.items():
            if value is not None or not isinstance(key, str) or "[" not in key:
                continue
            try:
                declaration = parse_declaration(key)
            except GrammarError:
                continue
            if display_type(promote_display_flags(declaration.attr).get("self")) in BLOCK_TYPES:
                logger.debug("Leaf key %r absorbs its sibling keys as fields", key)
                return key
        return None

    def _build_declaration(self, key: Any, value: Any, *, sole_key: bool) -> TreeNode:
        declaration = parse_key(key, strict=self.strict)
        if declaration.error is not None:
            self.warnings.append(str(declaration.error))
        attr = declaration.attr
        if is_structured(value):
            attr = {**self._body_attr(value), **attr}
        return self._build_node(NodeShape(name=declaration.name, attr=attr, value=value, sole_key=sole_key))

    def _build_children(self, source: Any) -> list[TreeNode]:
        if source is None:
            return []
        if isinstance(source, list):
            return [self._build_item(item) for item in source]
        if isinstance(source, Mapping):
            if is_structured(source):
                return [self._build_item(source)]
            return self._build_entries(source)
        return [self._text_node(source)]

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    def _build_node(self, shape: NodeShape) -> TreeNode:
        resolution = self.resolver.resolve(shape)
        node = TreeNode(resolution.type, resolution.attr)

        if resolution.opaque:
            # yaml-markdown content is handed to its renderer untouched.
            node.payload = shape.value
            if shape.name:
                node.set_text(shape.name)
            return node

        if resolution.type in BLOCK_TYPES:
            self._fill_block(node, shape, resolution)
            return node

        if resolution.type is NodeType.TEXT:
            if shape.value is None and shape.name:
                node.set_text(shape.name)
            else:
                node.set_text(scalar_text(shape.value))
            return node

        title = shape.name if resolution.rule != "list_key" else None
        extra: dict[Any, Any] = {}
        for key, value in resolution.fields.items():
            if key == "title":
                title = title or scalar_text(value)
            elif key == "caption":
                node.caption = scalar_text(value)
            elif key == "id":
                node.html_id = scalar_text(value)
            elif key == "src":
                node.src = scalar_text(value)
            elif key == "attr" or _is_attr_key(key):
                continue
            else:
                extra[key] = value
        if title:
            node.set_text(title)

        node.children = self._build_children(resolution.children_source)
        for list_type, source in resolution.implicit_lists:
            node.children.append(TreeNode(list_type, children=self._build_children(source)))
        if extra:
            node.children.extend(self._build_entries(extra))
        return node

    def _fill_block(self, node: TreeNode, shape: NodeShape, resolution: Resolution) -> None:
        primary = "content" if node.type is NodeType.LATEX else "src"
        fields: dict[str, Any] = {}
        value = shape.value
        if isinstance(value, Mapping):
            fields = {str(key): item for key, item in value.items()}
        elif isinstance(value, list):
            for item in value:
                if isinstance(item, Mapping):
                    fields.update({str(key): entry for key, entry in item.items()})
                elif item is not None and primary not in fields:
                    fields[primary] = item
        elif value is not None:
            fields[primary] = value

        source = fields.pop(primary, None)
        if source is None and resolution.rule != "media_key":
            source = shape.name or None

        for key, item in fields.items():
            if key == "caption":
                node.caption = scalar_text(item)
            elif key == "height":
                node.height = scalar_text(item)
            elif key == "id":
                node.html_id = scalar_text(item)
            elif key == "title":
                continue
            elif key == "attr" and isinstance(item, Mapping):
                node.attr.update(self._body_attr({"attr": item}))
            else:
                name = normalize_attr_key(key)
                node.attr[name] = normalize_attr_value(name, item)
        if node.height is None and "height" in node.attr:
            node.height = scalar_text(node.attr["height"])

        if node.type is NodeType.LATEX:
            node.set_text(scalar_text(source))
        else:
            node.src = None if source is None else scalar_text(source)

    def _text_node(self, value: Any) -> TreeNode:
        return self._build_node(NodeShape(name=None, value=value))

    @staticmethod
    def _body_attr(body: Mapping[Any, Any]) -> dict[str, Any]:
        attr: dict[str, Any] = {}
        for key, value in body.items():
            if key == "attr" and isinstance(value, Mapping):
                pairs = value.items()
            elif _is_attr_key(key):
                pairs = [(key, value)]
            else:
                continue
            for raw_key, raw_value in pairs:
                name = normalize_attr_key(str(raw_key))
                attr[name] = normalize_attr_value(name, raw_value)
        return attr
