"""Tests for the shared document store: serialized edits and asset resolution."""

from __future__ import annotations

import threading

import pytest

from yamd.editor.store import DocumentStore
from yamd.editor.structural import EditCode, EditResult
from yamd.parser.base import AssetStatus, check_integrity


DOC = """\
- A:
  - B
  - C
- 'x $y$'
"""


def test_apply_edits_the_owned_graph() -> None:
    store = DocumentStore.from_text(DOC)
    result = store.apply("indent", "doc_004")
    assert result.success
    assert store.graph.nodes["doc_004"].parent_id == "doc_003"

    result = store.apply("move_up", "doc_005")
    assert result.success
    assert store.graph.nodes["doc_001"].children == ["doc_005", "doc_002"]


def test_failed_edit_leaves_graph_alone() -> None:
    store = DocumentStore.from_text(DOC)
    result = store.apply("outdent", "doc_002")
    assert result.code is EditCode.PARENT_IS_ROOT
    assert store.graph.nodes["doc_001"].children == ["doc_002", "doc_005"]


def test_unknown_operation_raises() -> None:
    store = DocumentStore.from_text(DOC)
    with pytest.raises(ValueError):
        store.apply("rotate", "doc_002")


def test_nested_edit_is_refused() -> None:
    store = DocumentStore.from_text(DOC)
    nested: list[EditResult] = []
    store.subscribe(lambda result: nested.append(store.apply("move-down", "doc_003")))

    result = store.apply("move-up", "doc_004")
    assert result.success
    assert len(nested) == 1
    assert nested[0].code is EditCode.EDIT_IN_PROGRESS
    assert store.graph.nodes["doc_002"].children == ["doc_004", "doc_003"]


def test_edits_from_many_threads_keep_the_tree_sound() -> None:
    store = DocumentStore.from_text("- a\n- b\n- c\n- d\n")

    def worker(operation: str) -> None:
        for _ in range(50):
            store.apply(operation, "doc_003")

    threads = [threading.Thread(target=worker, args=(op,)) for op in ("move-up", "move-down") * 4]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    nodes = store.graph.nodes
    assert check_integrity(nodes, "doc_001") == []
    assert sorted(nodes["doc_001"].children) == ["doc_002", "doc_003", "doc_004", "doc_005"]


def test_reparse_keeps_old_graph_on_failure() -> None:
    store = DocumentStore.from_text(DOC)
    old = store.graph
    result = store.reparse("a: [unclosed")
    assert not result.success
    assert store.graph is old

    assert store.reparse("- only\n").success
    assert len(store.graph.nodes) == 2


def test_from_text_rejects_bad_yaml() -> None:
    with pytest.raises(ValueError):
        DocumentStore.from_text("")


def test_asset_resolves_once() -> None:
    store = DocumentStore.from_text(DOC)
    assert store.resolve_asset("latex_001", "<svg/>")
    assert not store.resolve_asset("latex_001", "<svg>again</svg>")
    assert not store.fail_asset("latex_001", "late error")

    asset = store.graph.assets["latex_001"]
    assert asset.status is AssetStatus.READY
    assert asset.content == "<svg/>"
    assert not store.resolve_asset("latex_999", "x")


def test_asset_failure() -> None:
    store = DocumentStore.from_text(DOC)
    assert store.fail_asset("latex_001", "bad TeX")
    asset = store.graph.assets["latex_001"]
    assert asset.status is AssetStatus.FAILED
    assert asset.error == "bad TeX"
    assert asset.to_dict()["status"] == "failed"


def test_concurrent_resolution_has_one_winner() -> None:
    store = DocumentStore.from_text(DOC)
    wins: list[bool] = []
    lock = threading.Lock()

    def render(n: int) -> None:
        won = store.resolve_asset("latex_001", f"render-{n}")
        with lock:
            wins.append(won)

    threads = [threading.Thread(target=render, args=(n,)) for n in range(16)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert wins.count(True) == 1
    assert store.graph.assets["latex_001"].status is AssetStatus.READY
