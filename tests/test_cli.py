"""CLI tests for ``yamd parse`` and ``yamd edit``."""

from __future__ import annotations

import json
from pathlib import Path

from click.testing import CliRunner

from yamd.cli import main


DOC = """\
- A:
  - B
  - 'C $x$'
"""


def _write(tmp_path: Path, text: str = DOC) -> Path:
    path = tmp_path / "doc.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_parse_prints_json(tmp_path: Path) -> None:
    result = CliRunner().invoke(main, ["parse", str(_write(tmp_path))])
    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["success"] is True
    assert payload["data"]["rootNodeId"] == "doc_001"
    assert payload["data"]["nodes"]["doc_004"]["segments"][1]["type"] == "latex-inline"
    assert payload["data"]["assets"]["latex_001"]["status"] == "pending"


def test_parse_writes_output_file(tmp_path: Path) -> None:
    out = tmp_path / "out" / "doc.json"
    result = CliRunner().invoke(
        main, ["-v", "parse", str(_write(tmp_path)), "-o", str(out), "--no-segments", "--id-prefix", "n"]
    )
    assert result.exit_code == 0, result.output
    assert "Wrote:" in result.output
    payload = json.loads(out.read_text(encoding="utf-8"))
    node = payload["data"]["nodes"]["n_004"]
    assert node["textRaw"] == "C $x$"
    assert "segments" not in node


def test_parse_reports_yaml_errors(tmp_path: Path) -> None:
    result = CliRunner().invoke(main, ["parse", str(_write(tmp_path, "a: [unclosed"))])
    assert result.exit_code == 1
    assert "YAML parsing error" in result.output


def test_parse_strict(tmp_path: Path) -> None:
    path = _write(tmp_path, "- 'bad[key': value\n")
    assert CliRunner().invoke(main, ["parse", str(path)]).exit_code == 0
    result = CliRunner().invoke(main, ["parse", str(path), "--strict"])
    assert result.exit_code == 1
    assert "unclosed bracket" in result.output


def test_edit_applies_operation(tmp_path: Path) -> None:
    out = tmp_path / "edited.json"
    result = CliRunner().invoke(
        main, ["edit", str(_write(tmp_path)), "--op", "indent", "--node", "doc_004", "-o", str(out)]
    )
    assert result.exit_code == 0, result.output
    payload = json.loads(out.read_text(encoding="utf-8"))
    nodes = payload["data"]["nodes"]
    assert nodes["doc_004"]["parentId"] == "doc_003"
    assert nodes["doc_003"]["children"] == ["doc_004"]
    assert nodes["doc_003"]["attr"] == {"child": "unordered-list"}


def test_edit_delete_to_stdout(tmp_path: Path) -> None:
    result = CliRunner().invoke(main, ["edit", str(_write(tmp_path)), "--op", "delete", "--node", "doc_003"])
    assert result.exit_code == 0, result.output
    nodes = json.loads(result.stdout)["data"]["nodes"]
    assert "doc_003" not in nodes
    assert nodes["doc_002"]["children"] == ["doc_004"]


def test_edit_failure_exits_nonzero(tmp_path: Path) -> None:
    result = CliRunner().invoke(main, ["edit", str(_write(tmp_path)), "--op", "outdent", "--node", "doc_002"])
    assert result.exit_code == 1
    assert "PARENT_IS_ROOT" in result.output


def test_edit_rejects_unknown_operation(tmp_path: Path) -> None:
    result = CliRunner().invoke(main, ["edit", str(_write(tmp_path)), "--op", "rotate", "--node", "doc_002"])
    assert result.exit_code == 2
