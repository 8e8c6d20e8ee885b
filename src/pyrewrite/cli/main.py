"""Root Typer app for the pyrewrite CLI."""

from __future__ import annotations

import typer

app = typer.Typer(
    name="pyrewrite",
    help="pyrewrite: query, refactor and re-render Python source.",
    no_args_is_help=True,
)


def _register_commands() -> None:
    """Register all CLI commands and sub-apps."""
    from pyrewrite.cli.query_cmd import query_app
    from pyrewrite.cli.rewrite_cmd import rewrite_cmd
    from pyrewrite.cli.show_cmd import show_cmd

    app.command(name="show")(show_cmd)
    app.command(name="rewrite")(rewrite_cmd)
    app.add_typer(query_app, name="query")


_register_commands()
