"""Bottom-level code generation: small statements built from caller text.

Caller fragments (values, argument lists, try/except bodies) are carried
verbatim as opaque nodes and rendered in passthrough mode, so a fragment is
never reinterpreted. Returned text has no trailing newline.
"""

from __future__ import annotations

import textwrap

from pyrewrite.tree.nodes import (
    Assign,
    Call,
    ExceptHandler,
    Expression,
    Import,
    ImportAlias,
    ImportFrom,
    OpaqueExpression,
    OpaqueStatement,
    Pass,
    Statement,
    Try,
)
from pyrewrite.tree.unparse import RenderMode, Unparser

FRAGMENT = "Fragment"


def fragment_expression(text: str) -> Expression:
    return OpaqueExpression(kind=FRAGMENT, source=text.strip())


def fragment_block(text: str) -> list[Statement]:
    """A statement block holding ``text`` verbatim, or ``pass`` when blank."""
    source = textwrap.dedent(text).strip("\n")
    if not source.strip():
        return [Pass()]
    return [OpaqueStatement(kind=FRAGMENT, source=source)]


def import_node(module: str, names: list[str] | None = None, alias: str | None = None) -> Statement:
    """``import module [as alias]`` or ``from module import n1, n2``.

    With ``names``, ``alias`` is only accepted for a single name.
    """
    if not names:
        return Import(names=[ImportAlias(module, alias)])
    if alias is not None and len(names) != 1:
        raise ValueError("alias needs exactly one imported name")
    level = len(module) - len(module.lstrip("."))
    source = module[level:] or None
    aliases = [ImportAlias(name) for name in names]
    if alias is not None:
        aliases[0].asname = alias
    return ImportFrom(module=source, names=aliases, level=level)


class SnippetGenerator:
    """Create source snippets for insertion into a tree or a file.

    Usage:
        gen = SnippetGenerator()
        gen.create_import("typing", ["List", "Dict"])  # "from typing import List, Dict"
    """

    def __init__(self) -> None:
        self._unparser = Unparser(RenderMode.PASSTHROUGH)

    def __repr__(self) -> str:
        return "SnippetGenerator()"

    def create_import(
        self, module: str, names: list[str] | None = None, alias: str | None = None
    ) -> str:
        return self._unparser.render_statement(import_node(module, names, alias))

    def create_assignment(self, target: str, value: str) -> str:
        stmt = Assign(targets=[fragment_expression(target)], value=fragment_expression(value))
        return self._unparser.render_statement(stmt)

    def create_function_call(self, name: str, args: list[str] | None = None) -> str:
        call = Call(
            func=fragment_expression(name),
            args=[fragment_expression(a) for a in args or []],
        )
        return self._unparser.render_expression(call)

    def create_try_except(self, try_body: str, exception_type: str, except_body: str) -> str:
        stmt = Try(
            body=fragment_block(try_body),
            handlers=[
                ExceptHandler(
                    type=fragment_expression(exception_type) if exception_type.strip() else None,
                    body=fragment_block(except_body),
                )
            ],
        )
        return self._unparser.render_statement(stmt)
