"""Tests for building and flattening the node tree.

Covers:
- Root shapes (list, mapping, scalar, empty)
- Sections, lists, structured bodies and embedded lists
- Media and LaTeX blocks, including sibling-field leaf keys
- Multi-key mappings as object nodes
- Opaque yaml-markdown payloads
- Pre-order id assignment and configurable id formats
"""

from __future__ import annotations

import yaml

from yamd.parser.base import NodeType, check_integrity
from yamd.parser.flattener import TreeFlattener
from yamd.parser.tree_builder import TreeBuilder


def _build(text: str):
    return TreeBuilder().build(yaml.safe_load(text))


def _graph(text: str):
    return TreeFlattener().flatten(_build(text))


# ---------------------------------------------------------------------------
# Roots
# ---------------------------------------------------------------------------

def test_list_root_is_array() -> None:
    tree = _build("- one\n- two\n")
    assert tree.type is NodeType.ARRAY
    assert tree.attr == {"self": "none", "child": "plain-list"}
    assert [child.text_raw for child in tree.children] == ["one", "two"]
    assert all(child.type is NodeType.TEXT for child in tree.children)


def test_mapping_root_gives_one_child_per_key() -> None:
    tree = _build("Intro: hello\nOutro: bye\n")
    assert tree.type is NodeType.ARRAY
    assert [child.text_raw for child in tree.children] == ["Intro", "Outro"]
    assert tree.children[0].type is NodeType.SECTION
    assert tree.children[0].children[0].text_raw == "hello"


def test_scalar_and_empty_roots() -> None:
    scalar = TreeBuilder().build("just text")
    assert scalar.type is NodeType.ARRAY
    assert scalar.children[0].text_raw == "just text"

    empty = TreeBuilder().build(None)
    assert empty.type is NodeType.ARRAY
    assert empty.children == []


def test_scalars_are_stringified() -> None:
    tree = _build("- 3\n- true\n- null\n")
    assert [child.text_raw for child in tree.children] == ["3", "true", ""]


# ---------------------------------------------------------------------------
# Containers
# ---------------------------------------------------------------------------

def test_section_with_attributes_and_children() -> None:
    tree = _build("- 'Features[child=ul]':\n  - fast\n  - small\n")
    section = tree.children[0]
    assert section.type is NodeType.SECTION
    assert section.text_raw == "Features"
    assert section.attr == {"child": "unordered-list"}
    assert [child.text_raw for child in section.children] == ["fast", "small"]


def test_list_key_has_no_title() -> None:
    tree = _build("- ol:\n  - first\n  - second\n")
    node = tree.children[0]
    assert node.type is NodeType.ORDERED_LIST
    assert node.text_raw is None
    assert len(node.children) == 2


def test_structured_body() -> None:
    text = """\
- Intro:
    content: Hello
    caption: Opening words
    id: intro
"""
    node = _build(text).children[0]
    assert node.type is NodeType.SECTION
    assert node.text_raw == "Intro"
    assert node.caption == "Opening words"
    assert node.html_id == "intro"
    assert node.children[0].text_raw == "Hello"


def test_body_attr_mapping_merges_into_attributes() -> None:
    text = """\
- Box:
    content: [a]
    attr:
      self: panel
      panel-default: Collapse
"""
    node = _build(text).children[0]
    assert node.type is NodeType.PANEL
    assert node.attr == {"self": "panel", "panelDefault": "collapse"}


def test_embedded_list_becomes_child_list() -> None:
    text = """\
- Tools:
    title: Toolbox
    ol: [hammer, saw]
"""
    node = _build(text).children[0]
    assert node.type is NodeType.SECTION
    assert node.children[0].type is NodeType.ORDERED_LIST
    assert [child.text_raw for child in node.children[0].children] == ["hammer", "saw"]


def test_multi_key_mapping_is_object() -> None:
    tree = _build("- {a: 1, b: 2}\n")
    node = tree.children[0]
    assert node.type is NodeType.OBJECT
    assert [child.text_raw for child in node.children] == ["a", "b"]


# ---------------------------------------------------------------------------
# Blocks
# ---------------------------------------------------------------------------

def test_media_keys() -> None:
    tree = _build("- image: cat.png\n- video:\n    src: clip.mp4\n    caption: A clip\n    height: 300px\n")
    image, video = tree.children
    assert image.type is NodeType.IMAGE
    assert image.src == "cat.png"
    assert image.text_raw is None
    assert video.type is NodeType.VIDEO
    assert video.src == "clip.mp4"
    assert video.caption == "A clip"
    assert video.height == "300px"


def test_latex_block_from_flag() -> None:
    tree = _build("- '[latex]Euler': 'e^{i\\pi}+1=0'\n")
    node = tree.children[0]
    assert node.type is NodeType.LATEX
    assert node.text_raw == "e^{i\\pi}+1=0"
    assert node.attr == {"self": "latex"}


def test_leaf_key_absorbs_sibling_fields() -> None:
    text = """\
- '[latex]Euler':
  content: x^2
  caption: Squares
"""
    tree = _build(text)
    assert len(tree.children) == 1
    node = tree.children[0]
    assert node.type is NodeType.LATEX
    assert node.text_original == "x^2"
    assert node.caption == "Squares"


def test_yaml_markdown_payload_is_untouched() -> None:
    text = """\
- '[yaml-markdown]Notes':
    a: 1
    b: [x, y]
"""
    node = _build(text).children[0]
    assert node.type is NodeType.CUSTOM
    assert node.attr["customType"] == "yaml-markdown"
    assert node.payload == {"a": 1, "b": ["x", "y"]}
    assert node.children == []


def test_malformed_key_is_recovered_with_warning() -> None:
    builder = TreeBuilder()
    tree = builder.build(yaml.safe_load("- 'bad[key': value\n"))
    assert tree.children[0].text_raw == "bad[key"
    assert len(builder.warnings) == 1
    assert "unclosed bracket" in builder.warnings[0]


# ---------------------------------------------------------------------------
# Flattening
# ---------------------------------------------------------------------------

def test_ids_are_pre_order() -> None:
    text = """\
- A:
  - B:
    - C
  - D
- E
"""
    graph = _graph(text)
    assert graph.root_node_id == "doc_001"
    titles = {node.text_raw: node_id for node_id, node in graph.nodes.items()}
    assert titles == {None: "doc_001", "A": "doc_002", "B": "doc_003", "C": "doc_004", "D": "doc_005", "E": "doc_006"}
    assert graph.nodes["doc_002"].children == ["doc_003", "doc_005"]
    assert graph.nodes["doc_004"].parent_id == "doc_003"
    assert check_integrity(graph.nodes, graph.root_node_id) == []


def test_custom_id_format() -> None:
    graph = TreeFlattener(id_prefix="n", id_width=2).flatten(_build("- a\n- b\n"))
    assert list(graph.nodes) == ["n_01", "n_02", "n_03"]


def test_flatten_is_repeatable() -> None:
    flattener = TreeFlattener()
    tree = _build("- a\n- b\n")
    assert list(flattener.flatten(tree).nodes) == list(flattener.flatten(tree).nodes)
