"""TreeBuilder: parse Python source with ``ast`` and convert it to the Node Model."""

from __future__ import annotations

import ast
import logging
import textwrap
from dataclasses import dataclass
from pathlib import Path

from pyrewrite.errors import ParseFailure
from pyrewrite.tree.nodes import (
    Assign,
    Attribute,
    BinaryOp,
    BinaryOperator,
    BooleanLiteral,
    BooleanOperator,
    BoolOp,
    Call,
    ClassDef,
    Compare,
    CompareOperator,
    DictExpr,
    ExceptHandler,
    Expression,
    ExprStatement,
    FormattedString,
    FormattedValue,
    FunctionDef,
    Import,
    ImportAlias,
    ImportFrom,
    Keyword,
    ListExpr,
    Module,
    Name,
    NoneLiteral,
    NumberLiteral,
    OpaqueExpression,
    OpaqueStatement,
    Parameter,
    ParamKind,
    Pass,
    Return,
    Starred,
    Statement,
    StringLiteral,
    Subscript,
    Try,
    TupleExpr,
    UnaryOp,
    UnaryOperator,
)
from pyrewrite.tree.source import dedent_lines, string_continuation_rows
from pyrewrite.tree.types import SourceLocation

logger = logging.getLogger(__name__)

_BINARY_OPERATORS: dict[type[ast.operator], BinaryOperator] = {
    ast.Add: BinaryOperator.ADD,
    ast.Sub: BinaryOperator.SUB,
    ast.Mult: BinaryOperator.MULT,
    ast.Div: BinaryOperator.DIV,
    ast.Mod: BinaryOperator.MOD,
    ast.Pow: BinaryOperator.POW,
    ast.LShift: BinaryOperator.LSHIFT,
    ast.RShift: BinaryOperator.RSHIFT,
    ast.BitOr: BinaryOperator.BIT_OR,
    ast.BitXor: BinaryOperator.BIT_XOR,
    ast.BitAnd: BinaryOperator.BIT_AND,
    ast.FloorDiv: BinaryOperator.FLOOR_DIV,
    ast.MatMult: BinaryOperator.MAT_MULT,
}

_UNARY_OPERATORS: dict[type[ast.unaryop], UnaryOperator] = {
    ast.Not: UnaryOperator.NOT,
    ast.Invert: UnaryOperator.INVERT,
    ast.UAdd: UnaryOperator.UADD,
    ast.USub: UnaryOperator.USUB,
}

_COMPARE_OPERATORS: dict[type[ast.cmpop], CompareOperator] = {
    ast.Eq: CompareOperator.EQ,
    ast.NotEq: CompareOperator.NOT_EQ,
    ast.Lt: CompareOperator.LT,
    ast.LtE: CompareOperator.LT_E,
    ast.Gt: CompareOperator.GT,
    ast.GtE: CompareOperator.GT_E,
    ast.Is: CompareOperator.IS,
    ast.IsNot: CompareOperator.IS_NOT,
    ast.In: CompareOperator.IN,
    ast.NotIn: CompareOperator.NOT_IN,
}

# ast.FormattedValue.conversion codes
_CONVERSIONS: dict[int, str | None] = {-1: None, 115: "s", 114: "r", 97: "a"}


@dataclass(frozen=True, slots=True)
class ParsedSource:
    """Result of building a tree: exactly one of ``module``/``failure`` is set."""

    file_path: str
    module: Module | None
    failure: ParseFailure | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None


class TreeBuilder:
    """Convert Python source into a Node Model Module.

    Usage:
        parsed = TreeBuilder(source, file_path).build()
        if parsed.ok:
            module = parsed.module
    """

    def __init__(self, source: str, file_path: str = "<string>") -> None:
        self.source = source
        self.file_path = file_path
        self.opaque_count = 0
        self._continuation_rows: set[int] | None = None
        self._lines: list[str] = []

    def build(self) -> ParsedSource:
        """Parse source and convert it. Parse errors come back as a value."""
        try:
            tree = ast.parse(self.source, filename=self.file_path)
        except SyntaxError as exc:
            return ParsedSource(
                file_path=self.file_path,
                module=None,
                failure=ParseFailure(
                    exc.msg or "invalid syntax",
                    line=exc.lineno,
                    column=exc.offset,
                    path=self.file_path,
                ),
            )
        except ValueError as exc:
            # Null bytes in the source on older interpreters
            return ParsedSource(
                file_path=self.file_path,
                module=None,
                failure=ParseFailure(str(exc), path=self.file_path),
            )

        module = Module(body=self.convert_block(tree.body))
        if self.opaque_count:
            logger.debug(
                "%s: %d construct(s) kept as opaque nodes", self.file_path, self.opaque_count
            )
        return ParsedSource(file_path=self.file_path, module=module)

    # -- statements ---------------------------------------------------------

    def convert_block(self, nodes: list[ast.stmt]) -> list[Statement]:
        return [self.convert_statement(node) for node in nodes]

    def convert_statement(self, node: ast.stmt) -> Statement:
        location = SourceLocation(node.lineno, node.col_offset)

        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            if getattr(node, "type_params", None):
                return self._opaque_statement(node)
            return FunctionDef(
                name=node.name,
                params=self._parameters(node.args),
                body=self.convert_block(node.body),
                returns=self._optional(node.returns),
                decorators=[self.convert_expression(d) for d in node.decorator_list],
                is_async=isinstance(node, ast.AsyncFunctionDef),
                location=location,
            )

        if isinstance(node, ast.ClassDef):
            if getattr(node, "type_params", None):
                return self._opaque_statement(node)
            return ClassDef(
                name=node.name,
                bases=[self.convert_expression(b) for b in node.bases],
                body=self.convert_block(node.body),
                keywords=[self._keyword(k) for k in node.keywords],
                decorators=[self.convert_expression(d) for d in node.decorator_list],
                location=location,
            )

        if isinstance(node, ast.Import):
            return Import(
                names=[ImportAlias(a.name, a.asname) for a in node.names],
                location=location,
            )

        if isinstance(node, ast.ImportFrom):
            return ImportFrom(
                module=node.module,
                names=[ImportAlias(a.name, a.asname) for a in node.names],
                level=node.level or 0,
                location=location,
            )

        if isinstance(node, ast.Assign):
            # a = b = v has no variant; a, b = v is one target list
            if len(node.targets) != 1:
                return self._opaque_statement(node, kind="ChainedAssign")
            target = node.targets[0]
            if isinstance(target, ast.Tuple) and len(target.elts) > 1:
                targets = [self.convert_expression(e) for e in target.elts]
            else:
                targets = [self.convert_expression(target)]
            return Assign(
                targets=targets,
                value=self.convert_expression(node.value),
                location=location,
            )

        if isinstance(node, ast.Return):
            return Return(value=self._optional(node.value), location=location)

        if isinstance(node, ast.Pass):
            return Pass(location=location)

        if isinstance(node, ast.Expr):
            return ExprStatement(value=self.convert_expression(node.value), location=location)

        if isinstance(node, ast.Try):
            return Try(
                body=self.convert_block(node.body),
                handlers=[
                    ExceptHandler(
                        type=self._optional(h.type),
                        name=h.name,
                        body=self.convert_block(h.body),
                    )
                    for h in node.handlers
                ],
                orelse=self.convert_block(node.orelse),
                finalbody=self.convert_block(node.finalbody),
                location=location,
            )

        return self._opaque_statement(node)

    def _parameters(self, args: ast.arguments) -> list[Parameter]:
        params: list[Parameter] = []
        positional = [
            *((a, ParamKind.POSITIONAL_ONLY) for a in args.posonlyargs),
            *((a, ParamKind.POSITIONAL) for a in args.args),
        ]
        # Defaults are right-aligned: last N positional args get defaults
        first_default = len(positional) - len(args.defaults)
        for i, (arg, kind) in enumerate(positional):
            default = args.defaults[i - first_default] if i >= first_default else None
            params.append(self._parameter(arg, kind, default))

        if args.vararg:
            params.append(self._parameter(args.vararg, ParamKind.VAR_POSITIONAL))
        for arg, kw_default in zip(args.kwonlyargs, args.kw_defaults, strict=True):
            params.append(self._parameter(arg, ParamKind.KEYWORD_ONLY, kw_default))
        if args.kwarg:
            params.append(self._parameter(args.kwarg, ParamKind.VAR_KEYWORD))
        return params

    def _parameter(
        self, arg: ast.arg, kind: ParamKind, default: ast.expr | None = None
    ) -> Parameter:
        return Parameter(
            name=arg.arg,
            kind=kind,
            annotation=self._optional(arg.annotation),
            default=self._optional(default),
        )

    def _opaque_statement(self, node: ast.stmt, kind: str | None = None) -> OpaqueStatement:
        self.opaque_count += 1
        return OpaqueStatement(
            kind=kind or type(node).__name__,
            source=self._statement_source(node),
            location=SourceLocation(node.lineno, node.col_offset),
        )

    def _statement_source(self, node: ast.stmt) -> str:
        """Original text of a statement, dedented to column zero.

        Only the statement's own indentation is removed; lines inside
        multi-line strings are kept as written.
        """
        segment = ast.get_source_segment(self.source, node)
        if segment is None:
            return ast.unparse(node)
        if self._continuation_rows is None:
            self._continuation_rows = string_continuation_rows(self.source)
            self._lines = self.source.split("\n")
        first_line = self._lines[node.lineno - 1]
        prefix = first_line[: len(first_line) - len(first_line.lstrip())]
        lines = [line.rstrip("\r") for line in segment.split("\n")]
        return dedent_lines(lines, prefix, self._continuation_rows, first_row=node.lineno)

    # -- expressions --------------------------------------------------------

    def convert_expression(self, node: ast.expr) -> Expression:
        if isinstance(node, ast.Name):
            return Name(node.id)

        if isinstance(node, ast.Constant):
            value = node.value
            if isinstance(value, bool):
                return BooleanLiteral(value)
            if value is None:
                return NoneLiteral()
            if isinstance(value, str):
                return StringLiteral(value)
            if isinstance(value, (int, float, complex)):
                return NumberLiteral(value)
            # bytes, Ellipsis
            return self._opaque_expression(node, kind=type(value).__name__)

        if isinstance(node, ast.Call):
            return Call(
                func=self.convert_expression(node.func),
                args=[self.convert_expression(a) for a in node.args],
                keywords=[self._keyword(k) for k in node.keywords],
            )

        if isinstance(node, ast.BinOp):
            return BinaryOp(
                left=self.convert_expression(node.left),
                op=_BINARY_OPERATORS[type(node.op)],
                right=self.convert_expression(node.right),
            )

        if isinstance(node, ast.UnaryOp):
            return UnaryOp(
                op=_UNARY_OPERATORS[type(node.op)],
                operand=self.convert_expression(node.operand),
            )

        if isinstance(node, ast.BoolOp):
            op = BooleanOperator.AND if isinstance(node.op, ast.And) else BooleanOperator.OR
            return BoolOp(op=op, values=[self.convert_expression(v) for v in node.values])

        if isinstance(node, ast.Compare):
            return Compare(
                left=self.convert_expression(node.left),
                ops=[_COMPARE_OPERATORS[type(op)] for op in node.ops],
                comparators=[self.convert_expression(c) for c in node.comparators],
            )

        if isinstance(node, ast.Attribute):
            return Attribute(value=self.convert_expression(node.value), attr=node.attr)

        if isinstance(node, ast.Subscript):
            if isinstance(node.slice, ast.Slice):
                return self._opaque_expression(node, kind="Slice")
            return Subscript(
                value=self.convert_expression(node.value),
                index=self.convert_expression(node.slice),
            )

        if isinstance(node, ast.Starred):
            return Starred(value=self.convert_expression(node.value))

        if isinstance(node, ast.Tuple):
            return TupleExpr(elements=[self.convert_expression(e) for e in node.elts])

        if isinstance(node, ast.List):
            return ListExpr(elements=[self.convert_expression(e) for e in node.elts])

        if isinstance(node, ast.Dict):
            return DictExpr(
                keys=[self._optional(k) for k in node.keys],
                values=[self.convert_expression(v) for v in node.values],
            )

        if isinstance(node, ast.JoinedStr):
            formatted = self._formatted_string(node)
            if formatted is not None:
                return formatted

        return self._opaque_expression(node)

    def _formatted_string(self, node: ast.JoinedStr) -> FormattedString | None:
        """Convert an f-string, or None when a format spec is itself templated."""
        parts: list[str | FormattedValue] = []
        for value in node.values:
            if isinstance(value, ast.Constant) and isinstance(value.value, str):
                parts.append(value.value)
                continue
            if not isinstance(value, ast.FormattedValue):
                return None
            spec: str | None = None
            if value.format_spec is not None:
                pieces = value.format_spec.values
                if not all(isinstance(p, ast.Constant) for p in pieces):
                    return None
                spec = "".join(p.value for p in pieces)
            parts.append(
                FormattedValue(
                    value=self.convert_expression(value.value),
                    conversion=_CONVERSIONS.get(value.conversion),
                    format_spec=spec,
                )
            )
        return FormattedString(parts=parts)

    def _keyword(self, node: ast.keyword) -> Keyword:
        return Keyword(arg=node.arg, value=self.convert_expression(node.value))

    def _optional(self, node: ast.expr | None) -> Expression | None:
        return None if node is None else self.convert_expression(node)

    def _opaque_expression(self, node: ast.expr, kind: str | None = None) -> OpaqueExpression:
        self.opaque_count += 1
        segment = ast.get_source_segment(self.source, node)
        return OpaqueExpression(
            kind=kind or type(node).__name__,
            source=segment if segment is not None and "\n" not in segment else ast.unparse(node),
        )


# ---------------------------------------------------------------------------
# Convenience entry points
# ---------------------------------------------------------------------------


def parse_source(source: str, file_path: str = "<string>") -> Module:
    """Parse source into a Module. Raises ParseFailure."""
    parsed = TreeBuilder(source, file_path).build()
    if parsed.failure is not None:
        raise parsed.failure
    return parsed.module


def parse_file(file_path: str | Path, encoding: str = "utf-8") -> Module:
    """Read and parse a file. Raises ParseFailure (also for unreadable files)."""
    path = Path(file_path)
    try:
        source = path.read_text(encoding=encoding)
    except (OSError, UnicodeDecodeError) as exc:
        raise ParseFailure(f"cannot read file: {exc}", path=str(path)) from exc
    return parse_source(source, str(path))


def parse_statements(source: str) -> list[Statement]:
    """Parse a code fragment into a statement list. Raises ParseFailure."""
    return parse_source(textwrap.dedent(source)).body


def parse_expression(source: str) -> Expression:
    """Parse a single expression. Raises ParseFailure."""
    text = source.strip()
    try:
        node = ast.parse(text, mode="eval")
    except SyntaxError as exc:
        raise ParseFailure(
            exc.msg or "invalid syntax", line=exc.lineno, column=exc.offset
        ) from exc
    return TreeBuilder(text).convert_expression(node.body)
