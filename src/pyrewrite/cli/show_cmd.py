"""CLI show command: parse a file and print its canonical rendering."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape

from pyrewrite.errors import ParseFailure, StructureError
from pyrewrite.tree.builder import parse_file
from pyrewrite.tree.nodes import Module
from pyrewrite.tree.unparse import RenderMode, Unparser

console = Console(stderr=True)


def load_module(file: Path, encoding: str = "utf-8") -> Module:
    """Parse ``file`` or exit with code 1 after reporting the failure."""
    try:
        return parse_file(file, encoding)
    except ParseFailure as exc:
        console.print(f"[red]Parse failure:[/red] {escape(str(exc))}", highlight=False)
        raise typer.Exit(code=1) from exc


def show_cmd(
    file: Annotated[Path, typer.Argument(help="Python file to render.")],
    mode: Annotated[
        RenderMode, typer.Option("--mode", "-m", help="How to render unsupported constructs.")
    ] = RenderMode.LENIENT,
) -> None:
    """Print the canonical re-rendering of FILE."""
    module = load_module(file)
    try:
        text = Unparser(mode).render_module(module)
    except StructureError as exc:
        console.print(f"[red]Cannot render:[/red] {escape(str(exc))}", highlight=False)
        raise typer.Exit(code=1) from exc
    typer.echo(text, nl=False)
