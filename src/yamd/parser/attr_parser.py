"""Square-bracket attribute grammar for declaration keys.

Examples::

    Features[child=ul,selfClass=wide]   -> name "Features", attr {child: unordered-list, selfClass: wide}
    [panel,panelDefault=Expand]Details  -> name "Details", attr {panel: True, panelDefault: expand}
    child=ol                            -> name "", attr {child: ordered-list}
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from yamd.errors import GrammarError

logger = logging.getLogger(__name__)

# Folded spelling (lower case, no dashes, underscores or spaces) -> canonical key.
_KEY_ALIASES = {
    "self": "self",
    "selfdisplay": "self",
    "display": "self",
    "style": "self",
    "selfstyle": "self",
    "child": "child",
    "childdisplay": "child",
    "childstyle": "child",
    "class": "selfClass",
    "selfclass": "selfClass",
    "childclass": "childClass",
    "width": "width",
    "height": "height",
    "valuenum": "valueNum",
    "paneldefault": "panelDefault",
    "customtype": "customType",
    "alt": "alt",
    "alignx": "alignX",
    "aligny": "alignY",
    "noindex": "noIndex",
    "captiontitle": "captionTitle",
    "subindex": "subindex",
}

RECOGNIZED_KEYS = frozenset(_KEY_ALIASES.values())

# Closed vocabulary shared by ``self`` and ``child`` values.
_DISPLAY_ALIASES = {
    "ul": "unordered-list",
    "unorderedlist": "unordered-list",
    "bulletlist": "unordered-list",
    "bullets": "unordered-list",
    "ol": "ordered-list",
    "orderedlist": "ordered-list",
    "numberedlist": "ordered-list",
    "pl": "plain-list",
    "plainlist": "plain-list",
    "p": "paragraph-list",
    "paragraph": "paragraph-list",
    "paragraphs": "paragraph-list",
    "paragraphlist": "paragraph-list",
    "img": "image",
    "image": "image",
    "vid": "video",
    "video": "video",
    "tex": "latex",
    "latex": "latex",
    "yamlmarkdown": "yaml-markdown",
    "segmentcontainer": "segment-container",
}

LIST_DISPLAYS = frozenset({"unordered-list", "ordered-list", "plain-list", "paragraph-list"})

_SHORTHAND_RE = re.compile(r"^([A-Za-z][\w-]*)\s*=\s*(\S.*)$")


@dataclass(slots=True)
class Declaration:
    name: str
    attr: dict[str, Any] = field(default_factory=dict)
    source: str = ""
    error: GrammarError | None = None


def fold(text: str) -> str:
    return re.sub(r"[\s_-]", "", text.lower())


def normalize_attr_key(key: str) -> str:
    key = key.strip()
    return _KEY_ALIASES.get(fold(key), key)


def normalize_display(value: str) -> str:
    lowered = value.strip().lower()
    return _DISPLAY_ALIASES.get(fold(lowered), lowered)


def normalize_attr_value(key: str, value: Any) -> Any:
    if not isinstance(value, str):
        return value
    value = _strip_quotes(value.strip())
    if key in ("self", "child"):
        return normalize_display(value)
    if key == "panelDefault":
        return value.lower()
    if key == "valueNum" and re.fullmatch(r"-?\d+", value):
        return int(value)
    return value


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] in ('"', "'") and value[-1] == value[0]:
        return value[1:-1]
    return value


def _bare_flag(token: str) -> str:
    key = normalize_attr_key(token)
    if key in RECOGNIZED_KEYS:
        return key
    folded = fold(token)
    if folded in _DISPLAY_ALIASES:
        return _DISPLAY_ALIASES[folded]
    return token


def parse_attr_list(content: str, key: str = "") -> dict[str, Any]:
    """Parse the inside of a bracket group into an attribute mapping."""
    attr: dict[str, Any] = {}
    for token in content.split(","):
        token = token.strip()
        if not token:
            continue
        if "=" in token:
            raw_key, _, raw_value = token.partition("=")
            if not raw_key.strip():
                raise GrammarError(key or content, token, "missing attribute name")
            name = normalize_attr_key(raw_key)
            attr[name] = normalize_attr_value(name, raw_value)
        else:
            attr[_bare_flag(token)] = True
    return attr


def _find_groups(key: str) -> list[tuple[int, int, str]]:
    groups: list[tuple[int, int, str]] = []
    start = -1
    for i, ch in enumerate(key):
        if ch == "[":
            if start != -1:
                raise GrammarError(key, key[start:], "nested brackets")
            start = i
        elif ch == "]":
            if start == -1:
                raise GrammarError(key, key[: i + 1], "unbalanced bracket")
            groups.append((start, i + 1, key[start + 1 : i]))
            start = -1
    if start != -1:
        raise GrammarError(key, key[start:], "unclosed bracket")
    return groups


def _select_group(groups: list[tuple[int, int, str]], length: int) -> tuple[int, int, str] | None:
    first, last = groups[0], groups[-1]
    if first[0] == 0 and first[2].strip():
        return first
    if last[1] == length and last[2].strip():
        return last
    for group in groups:
        if group[2].strip():
            return group
    return None


def parse_declaration(key: Any) -> Declaration:
    """Split a declaration key into its name and attributes.

    Raises :class:`GrammarError` on malformed bracket content.
    """
    source = "" if key is None else str(key)
    trimmed = source.strip()
    if not trimmed:
        return Declaration(name="", source=source)

    groups = _find_groups(trimmed)
    if not groups:
        shorthand = _SHORTHAND_RE.match(trimmed)
        if shorthand and normalize_attr_key(shorthand.group(1)) in RECOGNIZED_KEYS:
            name = normalize_attr_key(shorthand.group(1))
            return Declaration(name="", attr={name: normalize_attr_value(name, shorthand.group(2))}, source=source)
        return Declaration(name=trimmed, source=source)

    selected = _select_group(groups, len(trimmed))
    if selected is None:
        # Only empty brackets: drop one pair and keep the rest as the name.
        start, end, _ = groups[-1]
        return Declaration(name=(trimmed[:start] + trimmed[end:]).strip(), source=source)

    start, end, content = selected
    name = (trimmed[:start] + trimmed[end:]).strip()
    return Declaration(name=name, attr=parse_attr_list(content, trimmed), source=source)


def parse_key(key: Any, *, strict: bool = False) -> Declaration:
    """Parse *key*, falling back to a literal name when the grammar is malformed."""
    try:
        return parse_declaration(key)
    except GrammarError as exc:
        if strict:
            raise
        logger.warning("Treating key %r as a literal name: %s", key, exc)
        literal = str(key).strip()
        return Declaration(name=literal, source=str(key), error=exc)
