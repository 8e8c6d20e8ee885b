"""CLI query commands: structural searches over one file."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from pyrewrite.cli.show_cmd import load_module
from pyrewrite.tree.query import (
    find_assignments,
    find_function_calls,
    find_imports,
    find_nodes,
    find_try_except_blocks,
)
from pyrewrite.tree.types import NodeKind, SourceLocation
from pyrewrite.tree.unparse import unparse

query_app = typer.Typer(help="Search a file's syntax tree.", no_args_is_help=True)
console = Console()

FileArg = Annotated[Path, typer.Argument(help="Python file to search.")]
JsonOpt = Annotated[bool, typer.Option("--json", help="Print JSON instead of a table.")]


def _line(location: SourceLocation | None) -> int | None:
    return location.line if location is not None else None


def _emit(rows: list[dict], title: str, columns: list[str], as_json: bool) -> None:
    if as_json:
        typer.echo(json.dumps(rows, indent=2))
        return
    if not rows:
        console.print(f"[dim]No {title.lower()} found.[/dim]")
        return
    table = Table(title=title)
    for column in columns:
        table.add_column(column)
    for row in rows:
        values = (row[c.lower()] for c in columns)
        table.add_row(*(escape(str(v)) if v is not None else "-" for v in values))
    console.print(table)


@query_app.command("nodes")
def nodes_cmd(
    file: FileArg,
    kind: Annotated[NodeKind | None, typer.Option("--kind", "-k", help="Only this kind.")] = None,
    as_json: JsonOpt = False,
) -> None:
    """List statements, depth-first."""
    module = load_module(file)
    rows = [
        {
            "path": ".".join(str(i) for i in ref.path),
            "kind": ref.kind.value,
            "name": ref.name,
            "line": _line(ref.location),
        }
        for ref in find_nodes(module, kind)
    ]
    _emit(rows, "Nodes", ["Path", "Kind", "Name", "Line"], as_json)


@query_app.command("imports")
def imports_cmd(
    file: FileArg,
    module_filter: Annotated[
        str | None, typer.Option("--filter", "-f", help="Module path substring.")
    ] = None,
    as_json: JsonOpt = False,
) -> None:
    """List imported names, one row per alias."""
    module = load_module(file)
    rows = [
        {
            "statement": str(info),
            "module": info.module,
            "alias": info.alias,
            "from": info.module_path if info.is_from_import else None,
            "line": _line(info.location),
        }
        for info in find_imports(module, module_filter)
    ]
    _emit(rows, "Imports", ["Module", "Alias", "From", "Line"], as_json)


@query_app.command("calls")
def calls_cmd(
    file: FileArg,
    name: Annotated[str, typer.Argument(help="Function or method name.")],
    as_json: JsonOpt = False,
) -> None:
    """List calls to NAME (plain or method form)."""
    module = load_module(file)
    rows = [
        {
            "call": site.raw_name,
            "arguments": site.argument_count,
            "method": site.is_method,
            "line": _line(site.statement.location),
        }
        for site in find_function_calls(module, name)
    ]
    _emit(rows, "Calls", ["Call", "Arguments", "Method", "Line"], as_json)


@query_app.command("try")
def try_cmd(
    file: FileArg,
    exception_type: Annotated[
        str | None, typer.Option("--type", "-t", help="Only blocks handling this type.")
    ] = None,
    as_json: JsonOpt = False,
) -> None:
    """List try/except blocks and the exception types they handle."""
    module = load_module(file)
    rows = [
        {
            "types": ", ".join(info.exception_types),
            "handlers": info.handler_count,
            "else": info.has_else,
            "finally": info.has_finally,
            "line": _line(info.statement.location),
        }
        for info in find_try_except_blocks(module, exception_type)
    ]
    _emit(rows, "Try blocks", ["Types", "Handlers", "Else", "Finally", "Line"], as_json)


@query_app.command("assign")
def assign_cmd(
    file: FileArg,
    target_filter: Annotated[
        str | None, typer.Option("--filter", "-f", help="Target name substring.")
    ] = None,
    as_json: JsonOpt = False,
) -> None:
    """List simple-identifier assignments."""
    module = load_module(file)
    rows = [
        {
            "target": info.target,
            "value": unparse(info.value, "passthrough"),
            "line": _line(info.statement.location),
        }
        for info in find_assignments(module, target_filter)
    ]
    _emit(rows, "Assignments", ["Target", "Value", "Line"], as_json)
