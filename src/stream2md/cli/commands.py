"""CLI command implementations"""

import json
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Annotated, Optional

import typer

from stream2md.config import Settings, load_config
from stream2md.core.diff import summarize
from stream2md.core.engine import StreamEngine
from stream2md.core.errors import Stream2mdError
from stream2md.core.models import PatchBatch
from stream2md.core.render import render_html


def _fail(msg: str, cause: Exception = None) -> None:
    """Print a user-friendly error to stderr and exit 1."""
    typer.echo(f"Error: {msg}", err=True)
    if cause:
        typer.echo(f"  {cause}", err=True)
    raise typer.Exit(1)


def _settings(overrides: dict = None) -> Settings:
    """Load config with standard CLI error handling, then configure logging from it."""
    try:
        settings = load_config(overrides=overrides)
    except ValueError as e:
        _fail(str(e))
    logging.basicConfig(level=settings.log_level, format="%(levelname)s %(name)s: %(message)s")
    return settings


def _read(path: str, as_bytes: bool) -> str | bytes:
    p = Path(path)
    if not p.is_file():
        _fail(f"File not found: {path}")
    try:
        return p.read_bytes() if as_bytes else p.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        _fail(f"Could not read {path}", e)


def _chunks(data: str | bytes, size: int) -> Iterator[str | bytes]:
    """Fixed-size slices of data; byte slices may split a UTF-8 sequence."""
    for start in range(0, len(data), size):
        yield data[start:start + size]


def render_cmd(
    path: Annotated[str, typer.Argument(help="Markdown file to replay")],
    chunk_size: Annotated[Optional[int], typer.Option("--chunk-size", help="Characters (or bytes) per chunk")] = None,
    final_only: Annotated[bool, typer.Option("--final-only", help="Print only the finalized HTML")] = False,
    as_bytes: Annotated[bool, typer.Option("--bytes", help="Feed raw UTF-8 bytes instead of text")] = False,
    ):
    """Stream a file through the engine and print the HTML after each step that changed it."""
    settings = _settings(overrides={"chunk_size": chunk_size})
    data = _read(path, as_bytes)
    engine = StreamEngine(settings)
    try:
        for step, ops in enumerate(engine.stream(_chunks(data, settings.chunk_size)), start=1):
            if final_only or not ops:
                continue
            typer.echo(f"--- step {step} (boundary {engine.boundary}) ---")
            typer.echo(render_html(engine.tree), nl=False)
    except Stream2mdError as e:
        _fail("Streaming failed", e)
    if final_only:
        typer.echo(render_html(engine.tree), nl=False)


def patches_cmd(
    path: Annotated[str, typer.Argument(help="Markdown file to replay")],
    chunk_size: Annotated[Optional[int], typer.Option("--chunk-size", help="Characters (or bytes) per chunk")] = None,
    as_bytes: Annotated[bool, typer.Option("--bytes", help="Feed raw UTF-8 bytes instead of text")] = False,
    ):
    """Stream a file through the engine and print each step's patch ops as JSON lines."""
    settings = _settings(overrides={"chunk_size": chunk_size})
    data = _read(path, as_bytes)
    engine = StreamEngine(settings)
    totals = {"steps": 0}
    try:
        for step, ops in enumerate(engine.stream(_chunks(data, settings.chunk_size)), start=1):
            totals["steps"] = step
            for name, count in summarize(ops).items():
                totals[name] = totals.get(name, 0) + count
            if not ops and not engine.finalized:
                continue
            batch = PatchBatch(step=step, boundary=engine.boundary, final=engine.finalized, ops=ops)
            typer.echo(batch.model_dump_json())
    except Stream2mdError as e:
        _fail("Streaming failed", e)
    typer.echo(json.dumps({"summary": totals}))
