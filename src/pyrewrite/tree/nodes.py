"""Node Model: closed statement/expression variants and the Module root.

Every consumer (query, transform, unparse, refactor) dispatches over the
classes defined here with an explicit arm for ``OpaqueStatement`` /
``OpaqueExpression``; anything else is a foreign object and raises
``StructureError``.

Nodes are plain mutable dataclasses. Nothing is copied implicitly: callers
that need an independent tree ask for ``Module.clone()``.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import StrEnum

from pyrewrite.errors import StructureError
from pyrewrite.tree.types import SourceLocation

# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------


class BinaryOperator(StrEnum):
    ADD = "+"
    SUB = "-"
    MULT = "*"
    DIV = "/"
    MOD = "%"
    POW = "**"
    LSHIFT = "<<"
    RSHIFT = ">>"
    BIT_OR = "|"
    BIT_XOR = "^"
    BIT_AND = "&"
    FLOOR_DIV = "//"
    MAT_MULT = "@"


class UnaryOperator(StrEnum):
    NOT = "not"
    INVERT = "~"
    UADD = "+"
    USUB = "-"


class BooleanOperator(StrEnum):
    AND = "and"
    OR = "or"


class CompareOperator(StrEnum):
    EQ = "=="
    NOT_EQ = "!="
    LT = "<"
    LT_E = "<="
    GT = ">"
    GT_E = ">="
    IS = "is"
    IS_NOT = "is not"
    IN = "in"
    NOT_IN = "not in"


# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------


class Expression:
    """Base of the expression variants."""

    __slots__ = ()


@dataclass(slots=True)
class Name(Expression):
    id: str


@dataclass(slots=True)
class StringLiteral(Expression):
    value: str


@dataclass(slots=True)
class NumberLiteral(Expression):
    value: int | float | complex


@dataclass(slots=True)
class BooleanLiteral(Expression):
    value: bool


@dataclass(slots=True)
class NoneLiteral(Expression):
    pass


@dataclass(slots=True)
class Keyword:
    """Keyword argument of a call or class header; ``arg=None`` is ``**value``."""

    arg: str | None
    value: Expression


@dataclass(slots=True)
class Call(Expression):
    func: Expression
    args: list[Expression] = field(default_factory=list)
    keywords: list[Keyword] = field(default_factory=list)


@dataclass(slots=True)
class BinaryOp(Expression):
    left: Expression
    op: BinaryOperator
    right: Expression


@dataclass(slots=True)
class UnaryOp(Expression):
    op: UnaryOperator
    operand: Expression


@dataclass(slots=True)
class BoolOp(Expression):
    op: BooleanOperator
    values: list[Expression]


@dataclass(slots=True)
class Compare(Expression):
    left: Expression
    ops: list[CompareOperator]
    comparators: list[Expression]


@dataclass(slots=True)
class Attribute(Expression):
    value: Expression
    attr: str


@dataclass(slots=True)
class Subscript(Expression):
    value: Expression
    index: Expression


@dataclass(slots=True)
class Starred(Expression):
    value: Expression


@dataclass(slots=True)
class TupleExpr(Expression):
    elements: list[Expression] = field(default_factory=list)


@dataclass(slots=True)
class ListExpr(Expression):
    elements: list[Expression] = field(default_factory=list)


@dataclass(slots=True)
class DictExpr(Expression):
    keys: list[Expression | None] = field(default_factory=list)  # None -> **value
    values: list[Expression] = field(default_factory=list)


@dataclass(slots=True)
class FormattedValue:
    """Replacement field of an f-string."""

    value: Expression
    conversion: str | None = None  # "s", "r" or "a"
    format_spec: str | None = None


@dataclass(slots=True)
class FormattedString(Expression):
    parts: list[str | FormattedValue] = field(default_factory=list)


@dataclass(slots=True)
class OpaqueExpression(Expression):
    """Any expression outside the supported variants."""

    kind: str
    source: str | None = None


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------


class Statement:
    """Base of the statement variants."""

    __slots__ = ()


class ParamKind(StrEnum):
    POSITIONAL_ONLY = "positional_only"
    POSITIONAL = "positional"
    VAR_POSITIONAL = "var_positional"
    KEYWORD_ONLY = "keyword_only"
    VAR_KEYWORD = "var_keyword"


@dataclass(slots=True)
class Parameter:
    name: str
    kind: ParamKind = ParamKind.POSITIONAL
    annotation: Expression | None = None
    default: Expression | None = None


@dataclass(slots=True)
class FunctionDef(Statement):
    name: str
    params: list[Parameter] = field(default_factory=list)
    body: list[Statement] = field(default_factory=list)
    returns: Expression | None = None
    decorators: list[Expression] = field(default_factory=list)
    is_async: bool = False
    location: SourceLocation | None = field(default=None, compare=False, repr=False)

    @property
    def param_names(self) -> list[str]:
        return [p.name for p in self.params]


@dataclass(slots=True)
class ClassDef(Statement):
    name: str
    bases: list[Expression] = field(default_factory=list)
    body: list[Statement] = field(default_factory=list)
    keywords: list[Keyword] = field(default_factory=list)
    decorators: list[Expression] = field(default_factory=list)
    location: SourceLocation | None = field(default=None, compare=False, repr=False)


@dataclass(slots=True)
class ImportAlias:
    name: str
    asname: str | None = None


@dataclass(slots=True)
class Import(Statement):
    names: list[ImportAlias] = field(default_factory=list)
    location: SourceLocation | None = field(default=None, compare=False, repr=False)


@dataclass(slots=True)
class ImportFrom(Statement):
    module: str | None
    names: list[ImportAlias] = field(default_factory=list)
    level: int = 0
    location: SourceLocation | None = field(default=None, compare=False, repr=False)


@dataclass(slots=True)
class Assign(Statement):
    """``t1, t2 = value``: the comma-separated targets of a single ``=``."""

    targets: list[Expression]
    value: Expression
    location: SourceLocation | None = field(default=None, compare=False, repr=False)


@dataclass(slots=True)
class Return(Statement):
    value: Expression | None = None
    location: SourceLocation | None = field(default=None, compare=False, repr=False)


@dataclass(slots=True)
class Pass(Statement):
    location: SourceLocation | None = field(default=None, compare=False, repr=False)


@dataclass(slots=True)
class ExprStatement(Statement):
    value: Expression
    location: SourceLocation | None = field(default=None, compare=False, repr=False)


@dataclass(slots=True)
class ExceptHandler:
    type: Expression | None = None
    name: str | None = None
    body: list[Statement] = field(default_factory=list)


@dataclass(slots=True)
class Try(Statement):
    body: list[Statement] = field(default_factory=list)
    handlers: list[ExceptHandler] = field(default_factory=list)
    orelse: list[Statement] = field(default_factory=list)
    finalbody: list[Statement] = field(default_factory=list)
    location: SourceLocation | None = field(default=None, compare=False, repr=False)


@dataclass(slots=True)
class OpaqueStatement(Statement):
    """Any statement outside the supported variants."""

    kind: str
    source: str | None = None
    location: SourceLocation | None = field(default=None, compare=False, repr=False)


STATEMENT_TYPES: tuple[type[Statement], ...] = (
    FunctionDef,
    ClassDef,
    Import,
    ImportFrom,
    Assign,
    Return,
    Pass,
    ExprStatement,
    Try,
    OpaqueStatement,
)

EXPRESSION_TYPES: tuple[type[Expression], ...] = (
    Name,
    StringLiteral,
    NumberLiteral,
    BooleanLiteral,
    NoneLiteral,
    Call,
    BinaryOp,
    UnaryOp,
    BoolOp,
    Compare,
    Attribute,
    Subscript,
    Starred,
    TupleExpr,
    ListExpr,
    DictExpr,
    FormattedString,
    OpaqueExpression,
)


def _foreign(node: object) -> StructureError:
    kind = type(node).__name__
    return StructureError(f"Not a node model variant: {kind}", kind=kind)


# ---------------------------------------------------------------------------
# Structural helpers
# ---------------------------------------------------------------------------


def child_blocks(stmt: Statement) -> list[list[Statement]]:
    """Statement blocks directly owned by ``stmt``, in path order.

    try -> body, each handler body, else-body, finally-body.
    """
    if isinstance(stmt, (FunctionDef, ClassDef)):
        return [stmt.body]
    if isinstance(stmt, Try):
        return [stmt.body, *(h.body for h in stmt.handlers), stmt.orelse, stmt.finalbody]
    if isinstance(
        stmt, (Import, ImportFrom, Assign, Return, Pass, ExprStatement, OpaqueStatement)
    ):
        return []
    raise _foreign(stmt)


def statement_expressions(stmt: Statement) -> list[Expression]:
    """Expressions held directly by ``stmt`` (not by nested statements)."""
    if isinstance(stmt, FunctionDef):
        exprs = list(stmt.decorators)
        for param in stmt.params:
            if param.annotation is not None:
                exprs.append(param.annotation)
            if param.default is not None:
                exprs.append(param.default)
        if stmt.returns is not None:
            exprs.append(stmt.returns)
        return exprs
    if isinstance(stmt, ClassDef):
        return [*stmt.decorators, *stmt.bases, *(kw.value for kw in stmt.keywords)]
    if isinstance(stmt, Assign):
        return [*stmt.targets, stmt.value]
    if isinstance(stmt, Return):
        return [stmt.value] if stmt.value is not None else []
    if isinstance(stmt, ExprStatement):
        return [stmt.value]
    if isinstance(stmt, Try):
        return [h.type for h in stmt.handlers if h.type is not None]
    if isinstance(stmt, (Import, ImportFrom, Pass, OpaqueStatement)):
        return []
    raise _foreign(stmt)


def expression_children(expr: Expression) -> list[Expression]:
    """Direct sub-expressions of ``expr`` in source order."""
    if isinstance(expr, (Name, StringLiteral, NumberLiteral, BooleanLiteral, NoneLiteral)):
        return []
    if isinstance(expr, Call):
        return [expr.func, *expr.args, *(kw.value for kw in expr.keywords)]
    if isinstance(expr, BinaryOp):
        return [expr.left, expr.right]
    if isinstance(expr, UnaryOp):
        return [expr.operand]
    if isinstance(expr, BoolOp):
        return list(expr.values)
    if isinstance(expr, Compare):
        return [expr.left, *expr.comparators]
    if isinstance(expr, (Attribute, Starred)):
        return [expr.value]
    if isinstance(expr, Subscript):
        return [expr.value, expr.index]
    if isinstance(expr, (TupleExpr, ListExpr)):
        return list(expr.elements)
    if isinstance(expr, DictExpr):
        children: list[Expression] = []
        for key, value in zip(expr.keys, expr.values, strict=True):
            if key is not None:
                children.append(key)
            children.append(value)
        return children
    if isinstance(expr, FormattedString):
        return [part.value for part in expr.parts if isinstance(part, FormattedValue)]
    if isinstance(expr, OpaqueExpression):
        return []
    raise _foreign(expr)


# ---------------------------------------------------------------------------
# Module
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class Module:
    """Root of the tree: an ordered sequence of statements."""

    body: list[Statement] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.body

    def statement_count(self) -> int:
        return len(self.body)

    def clone(self) -> Module:
        return copy.deepcopy(self)

    def function_names(self, *, nested: bool = True) -> list[str]:
        """Function names, depth-first; ``nested`` descends into class bodies."""
        names: list[str] = []
        _collect_names(self.body, FunctionDef, names, nested=nested)
        return names

    def class_names(self, *, nested: bool = False) -> list[str]:
        """Class names; top level only unless ``nested``."""
        names: list[str] = []
        _collect_names(self.body, ClassDef, names, nested=nested)
        return names

    def locate(self, path: tuple[int, ...]) -> tuple[list[Statement], int]:
        """Resolve ``path`` to (containing block, index). Raises LookupError."""
        if not path:
            raise LookupError("Empty node path")
        block, index = self.body, path[0]
        for depth, step in enumerate(path[1:], start=1):
            if not 0 <= index < len(block):
                raise LookupError(f"Node path {path} is stale at depth {depth - 1}")
            block, index = _descend(block[index], step)
        if not 0 <= index < len(block):
            raise LookupError(f"Node path {path} is stale at depth {len(path) - 1}")
        return block, index

    def resolve(self, path: tuple[int, ...]) -> Statement:
        block, index = self.locate(path)
        return block[index]

    def validate(self, *, allow_empty: bool = False) -> None:
        """Raise StructureError unless the tree only holds model variants."""
        if not allow_empty and not self.body:
            raise StructureError("Empty module")
        _validate_block(self.body)


def _descend(stmt: Statement, flat_index: int) -> tuple[list[Statement], int]:
    """Map an index into the flattened child blocks to (block, local index)."""
    offset = flat_index
    if offset >= 0:
        for block in child_blocks(stmt):
            if offset < len(block):
                return block, offset
            offset -= len(block)
    raise LookupError(f"{type(stmt).__name__} has no child statement {flat_index}")


def _collect_names(
    block: list[Statement],
    wanted: type[Statement],
    names: list[str],
    *,
    nested: bool,
) -> None:
    for stmt in block:
        if isinstance(stmt, wanted):
            names.append(stmt.name)
        if nested and isinstance(stmt, ClassDef):
            _collect_names(stmt.body, wanted, names, nested=nested)


def _validate_block(block: list[Statement]) -> None:
    for stmt in block:
        if not isinstance(stmt, STATEMENT_TYPES):
            raise _foreign(stmt)
        for expr in statement_expressions(stmt):
            _validate_expression(expr)
        for child in child_blocks(stmt):
            _validate_block(child)


def _validate_expression(expr: Expression) -> None:
    if not isinstance(expr, EXPRESSION_TYPES):
        raise _foreign(expr)
    for child in expression_children(expr):
        _validate_expression(child)
