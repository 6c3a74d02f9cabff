"""A document graph shared by an editing UI and background asset renderers."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from yamd.parser.base import DocumentGraph, ParseResult
from yamd.parser.yamd_parser import YamdParser

from .structural import OPERATIONS, EditCode, EditResult, apply_edit

logger = logging.getLogger(__name__)

Listener = Callable[[EditResult], None]


class DocumentStore:
    """Owns one graph and serializes every structural edit made to it.

    Edits run one at a time. An edit requested while another is still being
    applied on the same thread (for example from a listener) is refused with
    ``EDIT_IN_PROGRESS`` instead of interleaving with it.
    """

    def __init__(self, graph: DocumentGraph | None = None, parser: YamdParser | None = None) -> None:
        self._graph = graph
        self._parser = parser or YamdParser()
        self._lock = threading.RLock()
        self._editing = False
        self._listeners: list[Listener] = []

    @classmethod
    def from_text(cls, text: str, parser: YamdParser | None = None) -> DocumentStore:
        store = cls(parser=parser)
        result = store.reparse(text)
        if not result.success:
            raise ValueError(result.error)
        return store

    @property
    def graph(self) -> DocumentGraph | None:
        return self._graph

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def apply(self, operation: str, node_id: str) -> EditResult:
        try:
            func = OPERATIONS[operation.replace("_", "-")]
        except KeyError:
            raise ValueError(f"Unknown edit operation: {operation}") from None

        with self._lock:
            if self._editing:
                logger.warning("Refusing %s on %s: another edit is in progress", operation, node_id)
                return EditResult.failure(EditCode.EDIT_IN_PROGRESS, "Another edit is in progress")
            if self._graph is None:
                return EditResult.failure(EditCode.NOT_FOUND, "No document loaded")
            self._editing = True
            try:
                result = func(self._graph.nodes, node_id)
                if result.success:
                    apply_edit(self._graph.nodes, result)
                    for listener in list(self._listeners):
                        listener(result)
            finally:
                self._editing = False
        logger.info("%s %s: %s", operation, node_id, result.message)
        return result

    def reparse(self, text: Any) -> ParseResult:
        """Parse *text* and swap it in; the current graph survives a failed parse."""
        result = self._parser.parse(text)
        if result.success:
            with self._lock:
                self._graph = result.data
        return result

    def resolve_asset(self, asset_id: str, content: Any) -> bool:
        asset = self._asset(asset_id)
        return asset is not None and asset.resolve(content)

    def fail_asset(self, asset_id: str, error: str) -> bool:
        asset = self._asset(asset_id)
        return asset is not None and asset.fail(error)

    def _asset(self, asset_id: str):
        graph = self._graph
        if graph is None:
            return None
        asset = graph.assets.get(asset_id)
        if asset is None:
            logger.warning("Unknown asset %s", asset_id)
        return asset
