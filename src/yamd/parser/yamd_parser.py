"""YAML text -> document graph, running every pipeline stage in order."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml

from yamd.errors import DocumentParseError, YamdError

from .base import ParseResult
from .flattener import TreeFlattener
from .segmenter import TextSegmenter
from .tree_builder import TreeBuilder

logger = logging.getLogger(__name__)


def load_yaml(text: Any) -> Any:
    if not isinstance(text, str) or not text.strip():
        raise DocumentParseError("Invalid input: YAML string is required")
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise DocumentParseError(f"YAML parsing error: {exc}") from exc


class YamdParser:
    def __init__(
        self,
        *,
        segment_text: bool = True,
        strict: bool = False,
        id_prefix: str = "doc",
        id_width: int = 3,
    ) -> None:
        self.segment_text = segment_text
        self.strict = strict
        self.id_prefix = id_prefix
        self.id_width = id_width

    def parse(self, text: Any) -> ParseResult:
        """Parse *text* into a :class:`ParseResult`.

        Malformed keys and inline tokens are recovered and reported in
        ``warnings``; YAML decode failures (and grammar errors in strict
        mode) fail the whole parse with no partial graph.
        """
        try:
            value = load_yaml(text)
            builder = TreeBuilder(strict=self.strict)
            tree = builder.build(value)
            graph = TreeFlattener(self.id_prefix, self.id_width).flatten(tree)
            warnings = list(builder.warnings)
            if self.segment_text:
                segmenter = TextSegmenter()
                segmenter.segment_graph(graph)
                warnings.extend(segmenter.warnings)
        except YamdError as exc:
            logger.error("Parse failed: %s", exc)
            return ParseResult(success=False, error=str(exc))
        except RecursionError:
            logger.error("Parse failed: document nesting too deep")
            return ParseResult(success=False, error="document nesting too deep")

        logger.info(
            "Parsed %d nodes, %d assets, %d warnings", len(graph.nodes), len(graph.assets), len(warnings)
        )
        return ParseResult(success=True, data=graph, warnings=warnings)

    def parse_file(self, path: Path) -> ParseResult:
        return self.parse(Path(path).read_text(encoding="utf-8"))


def process_yamd(text: Any, segment_text: bool = True) -> ParseResult:
    return YamdParser(segment_text=segment_text).parse(text)
