"""CLI rewrite command: apply refactor operations to files and directories."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from pyrewrite.batch.models import BatchReport, FileStatus, RefactorPlan
from pyrewrite.batch.processor import BatchProcessor
from pyrewrite.tree.unparse import RenderMode

console = Console()

_STATUS_STYLES: dict[FileStatus, str] = {
    FileStatus.CHANGED: "green",
    FileStatus.UNCHANGED: "dim",
    FileStatus.FAILED: "red",
}


def parse_pairs(values: list[str] | None, option: str) -> list[tuple[str, str]]:
    """Split ``old:new`` option values."""
    pairs = []
    for value in values or []:
        old, sep, new = value.partition(":")
        if not sep or not old or not new:
            raise typer.BadParameter(f"expected OLD:NEW, got {value!r}", param_hint=option)
        pairs.append((old, new))
    return pairs


def _print_report(report: BatchReport, write: bool) -> None:
    table = Table(title="pyrewrite")
    table.add_column("File")
    table.add_column("Status")
    table.add_column("Details")
    for result in report.results:
        style = _STATUS_STYLES[result.status]
        if result.status is FileStatus.FAILED:
            details = result.error or ""
        else:
            details = "\n".join(c.description for c in result.changes)
        table.add_row(
            escape(result.path),
            f"[{style}]{result.status.value}[/{style}]",
            escape(details),
        )
    console.print(table)
    verb = "rewritten" if write else "would change"
    console.print(
        f"{report.changed} file(s) {verb}, {report.unchanged} unchanged, {report.failed} failed"
    )


def rewrite_cmd(
    paths: Annotated[list[Path], typer.Argument(help="Files or directories to rewrite.")],
    rename_function: Annotated[
        list[str] | None, typer.Option("--rename-function", help="OLD:NEW, repeatable.")
    ] = None,
    rename_class: Annotated[
        list[str] | None, typer.Option("--rename-class", help="OLD:NEW, repeatable.")
    ] = None,
    replace_import: Annotated[
        list[str] | None, typer.Option("--replace-import", help="OLD:NEW, repeatable.")
    ] = None,
    modernize_imports: Annotated[
        bool, typer.Option("--modernize-imports", help="Map Python 2 module names.")
    ] = False,
    pkg_resources: Annotated[
        bool, typer.Option("--pkg-resources", help="Replace pkg_resources version lookups.")
    ] = False,
    remove_unused_imports: Annotated[
        bool, typer.Option("--remove-unused-imports", help="Drop unused top-level imports.")
    ] = False,
    modernize_strings: Annotated[
        bool, typer.Option("--modernize-strings", help="Convert % and .format() to f-strings.")
    ] = False,
    sort_imports: Annotated[
        bool, typer.Option("--sort-imports", help="Group and sort top-level imports.")
    ] = False,
    write: Annotated[bool, typer.Option("--write", help="Write changed files back.")] = False,
    mode: Annotated[
        RenderMode | None, typer.Option("--mode", help="Render mode for written files.")
    ] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print the report as JSON.")] = False,
) -> None:
    """Apply refactor operations to PATHS (dry run unless --write)."""
    from pyrewrite.config import Config
    from pyrewrite.logging.logger import RewriteLogger

    try:
        plan = RefactorPlan(
            rename_functions=parse_pairs(rename_function, "--rename-function"),
            rename_classes=parse_pairs(rename_class, "--rename-class"),
            replace_imports=parse_pairs(replace_import, "--replace-import"),
            modernize_imports=modernize_imports,
            pkg_resources=pkg_resources,
            modernize_strings=modernize_strings,
            remove_unused_imports=remove_unused_imports,
            sort_imports=sort_imports,
        )
    except ValidationError as exc:
        messages = "; ".join(e["msg"] for e in exc.errors())
        raise typer.BadParameter(messages) from exc

    if plan.is_empty():
        console.print("[yellow]No operations selected.[/yellow]")
        raise typer.Exit(code=2)

    config = Config()
    if mode is not None:
        config.render_mode = mode.value
    config.ensure_dirs()
    journal = RewriteLogger(config.log_dir)

    processor = BatchProcessor(config, plan, journal=journal, write=write)
    with journal.run("rewrite", paths=[str(p) for p in paths], write=write) as record:
        report = processor.run(paths)
        record.update(changed=report.changed, unchanged=report.unchanged, failed=report.failed)

    if as_json:
        typer.echo(report.model_dump_json(indent=2))
    else:
        _print_report(report, write)

    if not report.ok:
        raise typer.Exit(code=1)
