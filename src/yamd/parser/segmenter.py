"""Split node text into typed segments and fill the asset / ref / bib tables.

Recognised inline tokens::

    $x^2$                     inline math (``\\$`` is a literal dollar)
    \\ref{target}             cross reference
    \\ref{link text}{target}  cross reference with its own link text
    \\bib{key1,key2}          bibliography citation (``\\cite{...}`` also works)
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass
from typing import Any

from yamd.errors import SegmentationError

from .base import (
    BLOCK_TYPES,
    Asset,
    Bib,
    DocumentGraph,
    LatexInlineSegment,
    NodeRecord,
    NodeType,
    Ref,
    RefBibSegment,
    RefSegment,
    Segment,
    TextSegment,
)

logger = logging.getLogger(__name__)

_REF_TOKEN = "\\ref{"
_BIB_TOKENS = ("\\bib{", "\\cite{")
_BIB_KEY_RE = re.compile(r"[\w.:-]+")


@dataclass(slots=True)
class _Match:
    start: int
    end: int
    kind: str
    data: dict[str, Any]


def _read_balanced_braces(text: str, brace_start: int) -> tuple[str, int] | None:
    """Return the content of the brace group at *brace_start* and the offset after it."""
    if brace_start >= len(text) or text[brace_start] != "{":
        return None
    depth = 0
    i = brace_start
    while i < len(text):
        ch = text[i]
        if ch == "{" and text[i - 1] != "\\":
            depth += 1
        elif ch == "}" and text[i - 1] != "\\":
            depth -= 1
            if depth == 0:
                return text[brace_start + 1 : i], i + 1
        i += 1
    return None


def _is_escaped(text: str, pos: int) -> bool:
    return pos > 0 and text[pos - 1] == "\\"


def _find_dollar(text: str, pos: int) -> int:
    while True:
        pos = text.find("$", pos)
        if pos == -1 or not _is_escaped(text, pos):
            return pos
        pos += 1


def unescape_text(raw: str) -> str:
    return raw.replace("\\$", "$")


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in ("", "false", "no", "0")
    return bool(value)


DEFAULT_SUBINDEX = "abc"
GROUPED_MEDIA = frozenset({NodeType.IMAGE, NodeType.VIDEO})


def subindex_label(strategy: str, position: int, total: int) -> str:
    """Label of the *position*-th member of a media group.

    ``abc`` / ``ABC`` / ``123`` count up, ``LR`` labels a pair, and any
    other string is used character by character.
    """
    if strategy == "LR" and total == 2:
        return "LR"[position]
    if strategy == "abc":
        return chr(ord("a") + position)
    if strategy == "ABC":
        return chr(ord("A") + position)
    if strategy == "123":
        return str(position + 1)
    return strategy[position] if position < len(strategy) else str(position + 1)


def _is_indexed(node: NodeRecord) -> bool:
    return not _truthy(node.attr.get("noIndex", False))


def _media_group(graph: DocumentGraph, node: NodeRecord) -> tuple[NodeRecord, list[str]] | None:
    """Return the parent and indexed same-type siblings when the parent sets ``subindex``."""
    if node.type not in GROUPED_MEDIA or node.parent_id is None:
        return None
    parent = graph.nodes.get(node.parent_id)
    if parent is None or not parent.attr.get("subindex"):
        return None
    members = [
        child_id
        for child_id in parent.children
        if graph.nodes[child_id].type is node.type and _is_indexed(graph.nodes[child_id])
    ]
    return parent, members


class _Scanner:
    """Left-to-right scan of one text; each token family keeps its next candidate.

    Malformed tokens are collected in ``problems`` by offset. Only those left
    in literal text are worth reporting, since a winning match may swallow them.
    """

    def __init__(self, text: str) -> None:
        self.text = text
        self.problems: dict[int, SegmentationError] = {}
        self._cache: dict[str, _Match | None] = {}
        self._exhausted: set[str] = set()

    def next_match(self, pos: int) -> _Match | None:
        candidates = []
        for kind, finder in (("math", self._find_math), ("ref", self._find_ref), ("bib", self._find_bib)):
            if kind in self._exhausted:
                continue
            cached = self._cache.get(kind)
            if cached is None or cached.start < pos:
                try:
                    cached = finder(pos)
                except SegmentationError as exc:
                    self._note(exc)
                    cached = None
                if cached is None:
                    self._exhausted.add(kind)
                    continue
                self._cache[kind] = cached
            candidates.append(cached)
        if not candidates:
            return None
        # Leftmost wins; on a tie the longer match wins.
        return min(candidates, key=lambda match: (match.start, -(match.end - match.start)))

    def _note(self, error: SegmentationError) -> None:
        self.problems.setdefault(error.position, error)

    def _find_math(self, pos: int) -> _Match | None:
        text = self.text
        while True:
            start = _find_dollar(text, pos)
            if start == -1:
                return None
            close = _find_dollar(text, start + 1)
            if close == -1:
                raise SegmentationError(text, start, "unterminated inline math")
            latex = text[start + 1 : close]
            if latex.strip():
                return _Match(start, close + 1, "math", {"latex": latex})
            # Empty ``$$`` stays literal text.
            pos = close + 1

    def _find_ref(self, pos: int) -> _Match | None:
        text = self.text
        while True:
            start = text.find(_REF_TOKEN, pos)
            if start == -1:
                return None
            pos = start + 1
            first = _read_balanced_braces(text, start + len(_REF_TOKEN) - 1)
            if first is None:
                self._note(SegmentationError(text, start, "unclosed reference"))
                continue
            content, end = first
            second = _read_balanced_braces(text, end)
            if second is not None:
                link_text, target = content, second[0]
                end = second[1]
            else:
                link_text, target = None, content
            if target.strip():
                return _Match(start, end, "ref", {"target": target.strip(), "link_text": link_text})

    def _find_bib(self, pos: int) -> _Match | None:
        text = self.text
        while True:
            hits = [(text.find(token, pos), token) for token in _BIB_TOKENS]
            hits = [hit for hit in hits if hit[0] != -1]
            if not hits:
                return None
            start, token = min(hits)
            pos = start + 1
            group = _read_balanced_braces(text, start + len(token) - 1)
            if group is None:
                self._note(SegmentationError(text, start, "unclosed citation"))
                continue
            content, end = group
            keys = [key.strip().removeprefix("bib.") for key in content.split(",")]
            keys = [key for key in keys if key and _BIB_KEY_RE.fullmatch(key)]
            if keys:
                return _Match(start, end, "bib", {"keys": tuple(keys)})


class TextSegmenter:
    """Replace ``text_raw`` on text-bearing nodes with typed segments."""

    def __init__(self, register_blocks: bool = True) -> None:
        self.register_blocks = register_blocks
        self.warnings: list[str] = []
        self._counters: Counter[str] = Counter()
        self._block_indexes: Counter[str] = Counter()
        self._group_indexes: dict[tuple[str, str], int] = {}
        self._ref_by_target: dict[str, str] = {}

    def segment_graph(self, graph: DocumentGraph) -> DocumentGraph:
        self.warnings = []
        self._counters = Counter(self._prefix_of(asset_id) for asset_id in graph.assets)
        self._counters.update(self._prefix_of(ref_id) for ref_id in graph.refs)
        self._block_indexes = Counter()
        self._group_indexes = {}
        self._ref_by_target = {ref.target_id: ref.id for ref in graph.refs.values()}

        # Node ids are pre-order, so citation numbering follows the document.
        for node_id, node in graph.nodes.items():
            if node.type in BLOCK_TYPES:
                if self.register_blocks:
                    self._register_block(graph, node)
            elif node.text_raw is not None and node.type not in (NodeType.ARRAY, NodeType.OBJECT):
                node.segments = self.segment_text(node.text_raw, graph, node_id)
                node.text_raw = None
        logger.debug(
            "Segmented graph: %d assets, %d refs, %d bibs", len(graph.assets), len(graph.refs), len(graph.bibs)
        )
        return graph

    def segment_text(self, text: str, graph: DocumentGraph, node_id: str | None = None) -> list[Segment]:
        if not text:
            return [TextSegment(text="", raw="")]

        scanner = _Scanner(text)
        segments: list[Segment] = []
        consumed: list[tuple[int, int]] = []
        run_start = 0
        while True:
            match = scanner.next_match(run_start)
            if match is None:
                break
            if match.start > run_start:
                raw = text[run_start : match.start]
                segments.append(TextSegment(text=unescape_text(raw), raw=raw))
            segments.append(self._emit(match, text[match.start : match.end], graph, node_id))
            consumed.append((match.start, match.end))
            run_start = match.end
        if run_start < len(text):
            raw = text[run_start:]
            segments.append(TextSegment(text=unescape_text(raw), raw=raw))

        for position, error in sorted(scanner.problems.items()):
            if any(start <= position < end for start, end in consumed):
                continue
            logger.warning("Keeping token as literal text: %s in %r", error, text)
            self.warnings.append(str(error))
        return segments

    # ------------------------------------------------------------------
    # Side tables
    # ------------------------------------------------------------------

    @staticmethod
    def _prefix_of(identifier: str) -> str:
        return identifier.rsplit("_", 1)[0]

    def _new_id(self, prefix: str) -> str:
        self._counters[prefix] += 1
        return f"{prefix}_{self._counters[prefix]:03d}"

    def _emit(self, match: _Match, raw: str, graph: DocumentGraph, node_id: str | None) -> Segment:
        if match.kind == "math":
            latex = match.data["latex"]
            asset_id = self._new_id("latex")
            graph.assets[asset_id] = Asset(id=asset_id, kind="latex-inline", text_raw=latex, node_id=node_id)
            return LatexInlineSegment(asset_id=asset_id, latex=latex, raw=raw)

        if match.kind == "ref":
            target = match.data["target"]
            ref_id = self._ref_by_target.get(target)
            if ref_id is None:
                ref_id = self._new_id("ref")
                graph.refs[ref_id] = Ref(
                    id=ref_id, node_id=node_id or "", target_id=target, link_text=match.data["link_text"]
                )
                self._ref_by_target[target] = ref_id
            ref = graph.refs[ref_id]
            if node_id and node_id not in ref.referenced_by:
                ref.referenced_by.append(node_id)
            return RefSegment(ref_id=ref_id, target_id=target, link_text=match.data["link_text"], raw=raw)

        keys = match.data["keys"]
        for key in keys:
            if key not in graph.bibs_lookup:
                graph.bibs_lookup[key] = len(graph.bibs_lookup) + 1
                graph.bibs[key] = Bib(bib_key=key, index=graph.bibs_lookup[key])
            bib = graph.bibs[key]
            if node_id and node_id not in bib.referenced_by:
                bib.referenced_by.append(node_id)
        return RefBibSegment(bib_key=keys[0], bib_keys=keys, raw=raw)

    def _register_block(self, graph: DocumentGraph, node: NodeRecord) -> None:
        if node.type is NodeType.LATEX:
            prefix, kind, source = "latex", "latex-block", node.text_original or ""
        else:
            prefix, kind, source = node.type.value, node.type.value, node.src or ""
        index = subindex = None
        if _is_indexed(node):
            group = _media_group(graph, node)
            if group is None:
                self._block_indexes[kind] += 1
                index = self._block_indexes[kind]
            else:
                # The whole group shares one number; members get "3a", "3b", ...
                parent, members = group
                key = (parent.id, kind)
                if key not in self._group_indexes:
                    self._block_indexes[kind] += 1
                    self._group_indexes[key] = self._block_indexes[kind]
                index = self._group_indexes[key]
                strategy = parent.attr["subindex"]
                subindex = subindex_label(
                    strategy if isinstance(strategy, str) else DEFAULT_SUBINDEX,
                    members.index(node.id),
                    len(members),
                )
        asset_id = self._new_id(prefix)
        graph.assets[asset_id] = Asset(
            id=asset_id,
            kind=kind,
            text_raw=source,
            node_id=node.id,
            caption=node.caption,
            index_of_same_type=index,
            subindex=subindex,
        )
        node.asset_id = asset_id
