"""yamd CLI entrypoint."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import click

from yamd.editor.store import DocumentStore
from yamd.editor.structural import OPERATIONS
from yamd.parser.yamd_parser import YamdParser


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--verbose", "-v", count=True, help="Log pipeline progress (-vv for debug output)")
def main(verbose: int) -> None:
    """Parse YAML documents written in the yamd attribute grammar."""
    level = logging.WARNING if verbose == 0 else logging.INFO if verbose == 1 else logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s", force=True)


@main.command("parse")
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--output", "-o", type=click.Path(path_type=Path), default=None, help="Output JSON path")
@click.option("--no-segments", is_flag=True, help="Keep raw text instead of splitting it into segments")
@click.option("--strict", is_flag=True, help="Fail on malformed attribute syntax instead of recovering")
@click.option("--id-prefix", type=str, default="doc", show_default=True, help="Prefix for generated node ids")
def parse_command(input_path: Path, output: Path | None, no_segments: bool, strict: bool, id_prefix: str) -> None:
    """Parse INPUT_PATH and emit the document graph as JSON."""
    parser = YamdParser(segment_text=not no_segments, strict=strict, id_prefix=id_prefix)
    result = parser.parse_file(input_path)
    if not result.success:
        raise click.ClickException(result.error or "parse failed")
    for warning in result.warnings:
        click.echo(f"warning: {warning}", err=True)
    _emit(result.to_dict(), output)


@main.command("edit")
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--op", "operation", type=click.Choice(sorted(OPERATIONS)), required=True, help="Edit to apply")
@click.option("--node", "node_id", type=str, required=True, help="Id of the node to edit")
@click.option("--output", "-o", type=click.Path(path_type=Path), default=None, help="Output JSON path")
def edit_command(input_path: Path, operation: str, node_id: str, output: Path | None) -> None:
    """Parse INPUT_PATH, apply one structural edit and emit the edited graph."""
    store = DocumentStore()
    parsed = store.reparse(input_path.read_text(encoding="utf-8"))
    if not parsed.success:
        raise click.ClickException(parsed.error or "parse failed")

    result = store.apply(operation, node_id)
    if not result.success:
        raise click.ClickException(f"{operation} failed ({result.code.name}): {result.message}")
    assert store.graph is not None
    _emit({"success": True, "message": result.message, "data": store.graph.to_dict()}, output)


def _emit(payload: dict[str, Any], output: Path | None) -> None:
    text = json.dumps(payload, indent=2, ensure_ascii=False, default=str)
    if output is None:
        click.echo(text)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text + "\n", encoding="utf-8")
    click.echo(f"Wrote: {output}")


if __name__ == "__main__":  # pragma: no cover
    main()
