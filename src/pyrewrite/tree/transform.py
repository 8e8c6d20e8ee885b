"""In-place rewriting helpers used by the refactor engine.

Rewriters are callables returning a replacement, or None to keep the node.
Expressions are visited children-first so a rewriter always sees already
rewritten sub-expressions.
"""

from __future__ import annotations

from collections.abc import Callable

from pyrewrite.errors import StructureError
from pyrewrite.tree.nodes import (
    Assign,
    Attribute,
    BinaryOp,
    BooleanLiteral,
    BoolOp,
    Call,
    ClassDef,
    Compare,
    DictExpr,
    Expression,
    ExprStatement,
    FormattedString,
    FormattedValue,
    FunctionDef,
    Import,
    ImportFrom,
    ListExpr,
    Module,
    Name,
    NoneLiteral,
    NumberLiteral,
    OpaqueExpression,
    OpaqueStatement,
    Pass,
    Return,
    Starred,
    Statement,
    StringLiteral,
    Subscript,
    Try,
    TupleExpr,
    UnaryOp,
    child_blocks,
)

ExpressionRewriter = Callable[[Expression], Expression | None]
StatementRewriter = Callable[[Statement], list[Statement] | None]


class _Counter:
    __slots__ = ("count",)

    def __init__(self) -> None:
        self.count = 0


def rewrite_expressions(module: Module, rewriter: ExpressionRewriter) -> int:
    """Apply ``rewriter`` to every expression in the tree. Returns replacements made."""
    counter = _Counter()
    _rewrite_block_expressions(module.body, rewriter, counter)
    return counter.count


def rewrite_statements(module: Module, rewriter: StatementRewriter) -> int:
    """Replace statements (pre-order) by the list ``rewriter`` returns.

    Replacement statements are not visited again.
    """
    counter = _Counter()
    _rewrite_block_statements(module.body, rewriter, counter)
    return counter.count


def _rewrite_block_statements(
    block: list[Statement], rewriter: StatementRewriter, counter: _Counter
) -> None:
    index = 0
    while index < len(block):
        replacement = rewriter(block[index])
        if replacement is not None:
            block[index : index + 1] = replacement
            counter.count += 1
            index += len(replacement)
            continue
        for child in child_blocks(block[index]):
            _rewrite_block_statements(child, rewriter, counter)
        index += 1


def _rewrite_block_expressions(
    block: list[Statement], rewriter: ExpressionRewriter, counter: _Counter
) -> None:
    for stmt in block:
        _rewrite_statement(stmt, rewriter, counter)
        for child in child_blocks(stmt):
            _rewrite_block_expressions(child, rewriter, counter)


def _rewrite_statement(stmt: Statement, rewriter: ExpressionRewriter, counter: _Counter) -> None:
    def visit(expr: Expression) -> Expression:
        return _rewrite(expr, rewriter, counter)

    if isinstance(stmt, FunctionDef):
        stmt.decorators = [visit(d) for d in stmt.decorators]
        for param in stmt.params:
            if param.annotation is not None:
                param.annotation = visit(param.annotation)
            if param.default is not None:
                param.default = visit(param.default)
        if stmt.returns is not None:
            stmt.returns = visit(stmt.returns)
    elif isinstance(stmt, ClassDef):
        stmt.decorators = [visit(d) for d in stmt.decorators]
        stmt.bases = [visit(b) for b in stmt.bases]
        for keyword in stmt.keywords:
            keyword.value = visit(keyword.value)
    elif isinstance(stmt, Assign):
        stmt.targets = [visit(t) for t in stmt.targets]
        stmt.value = visit(stmt.value)
    elif isinstance(stmt, Return):
        if stmt.value is not None:
            stmt.value = visit(stmt.value)
    elif isinstance(stmt, ExprStatement):
        stmt.value = visit(stmt.value)
    elif isinstance(stmt, Try):
        for handler in stmt.handlers:
            if handler.type is not None:
                handler.type = visit(handler.type)
    elif not isinstance(stmt, (Import, ImportFrom, Pass, OpaqueStatement)):
        kind = type(stmt).__name__
        raise StructureError(f"Not a node model variant: {kind}", kind=kind)


def _rewrite(expr: Expression, rewriter: ExpressionRewriter, counter: _Counter) -> Expression:
    def visit(child: Expression) -> Expression:
        return _rewrite(child, rewriter, counter)

    if isinstance(expr, Call):
        expr.func = visit(expr.func)
        expr.args = [visit(a) for a in expr.args]
        for keyword in expr.keywords:
            keyword.value = visit(keyword.value)
    elif isinstance(expr, BinaryOp):
        expr.left = visit(expr.left)
        expr.right = visit(expr.right)
    elif isinstance(expr, UnaryOp):
        expr.operand = visit(expr.operand)
    elif isinstance(expr, BoolOp):
        expr.values = [visit(v) for v in expr.values]
    elif isinstance(expr, Compare):
        expr.left = visit(expr.left)
        expr.comparators = [visit(c) for c in expr.comparators]
    elif isinstance(expr, (Attribute, Starred)):
        expr.value = visit(expr.value)
    elif isinstance(expr, Subscript):
        expr.value = visit(expr.value)
        expr.index = visit(expr.index)
    elif isinstance(expr, (TupleExpr, ListExpr)):
        expr.elements = [visit(e) for e in expr.elements]
    elif isinstance(expr, DictExpr):
        expr.keys = [None if k is None else visit(k) for k in expr.keys]
        expr.values = [visit(v) for v in expr.values]
    elif isinstance(expr, FormattedString):
        for part in expr.parts:
            if isinstance(part, FormattedValue):
                part.value = visit(part.value)
    elif not isinstance(
        expr,
        (Name, StringLiteral, NumberLiteral, BooleanLiteral, NoneLiteral, OpaqueExpression),
    ):
        kind = type(expr).__name__
        raise StructureError(f"Not a node model variant: {kind}", kind=kind)

    replacement = rewriter(expr)
    if replacement is None:
        return expr
    counter.count += 1
    return replacement
