"""Code Generator: render a Node Model back to canonical Python source.

Only the tree is consulted, never the original tokens, so formatting and
comments are not reproduced. Indentation is four spaces per level.

Sub-expressions are parenthesized only where operator precedence requires
it, so ``(a + b) * c`` keeps its parentheses and ``a + b * c`` stays bare.
"""

from __future__ import annotations

import math
from enum import IntEnum, StrEnum

from pyrewrite.errors import StructureError
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
    DictExpr,
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
from pyrewrite.tree.source import indent_source

INDENT = "    "


class RenderMode(StrEnum):
    LENIENT = "lenient"  # placeholder comment for unsupported constructs
    STRICT = "strict"  # StructureError naming the construct
    PASSTHROUGH = "passthrough"  # re-emit captured source text


class Precedence(IntEnum):
    """Binding strength, loosest first."""

    NAMED = 1
    TUPLE = 2
    YIELD = 3
    TEST = 4
    OR = 5
    AND = 6
    NOT = 7
    CMP = 8
    BOR = 9
    BXOR = 10
    BAND = 11
    SHIFT = 12
    ARITH = 13
    TERM = 14
    FACTOR = 15
    POWER = 16
    AWAIT = 17
    ATOM = 18


_BINARY_PRECEDENCE: dict[BinaryOperator, Precedence] = {
    BinaryOperator.BIT_OR: Precedence.BOR,
    BinaryOperator.BIT_XOR: Precedence.BXOR,
    BinaryOperator.BIT_AND: Precedence.BAND,
    BinaryOperator.LSHIFT: Precedence.SHIFT,
    BinaryOperator.RSHIFT: Precedence.SHIFT,
    BinaryOperator.ADD: Precedence.ARITH,
    BinaryOperator.SUB: Precedence.ARITH,
    BinaryOperator.MULT: Precedence.TERM,
    BinaryOperator.DIV: Precedence.TERM,
    BinaryOperator.MOD: Precedence.TERM,
    BinaryOperator.FLOOR_DIV: Precedence.TERM,
    BinaryOperator.MAT_MULT: Precedence.TERM,
    BinaryOperator.POW: Precedence.POWER,
}

# Opaque expression kinds that bind looser than an atom
_OPAQUE_PRECEDENCE: dict[str, Precedence] = {
    "NamedExpr": Precedence.NAMED,
    "Yield": Precedence.YIELD,
    "YieldFrom": Precedence.YIELD,
    "Lambda": Precedence.TEST,
    "IfExp": Precedence.TEST,
    "Await": Precedence.AWAIT,
}

# Escapes applied in this order; the backslash must come first.
_STRING_ESCAPES: tuple[tuple[str, str], ...] = (
    ("\\", "\\\\"),
    ('"', '\\"'),
    ("\n", "\\n"),
    ("\r", "\\r"),
    ("\t", "\\t"),
)


def _escape_remaining(text: str) -> str:
    """Escape control characters and lone surrogates left after the fixed escapes."""
    out: list[str] = []
    for ch in text:
        code = ord(ch)
        if code < 0x20 or 0x7F <= code <= 0x9F:
            out.append(f"\\x{code:02x}")
        elif 0xD800 <= code <= 0xDFFF:
            out.append(f"\\u{code:04x}")
        else:
            out.append(ch)
    return "".join(out)


def escape_string(value: str, quote: str = '"') -> str:
    """Body of a string literal delimited by ``quote`` (no surrounding quotes)."""
    escaped = value
    for raw, replacement in _STRING_ESCAPES:
        if raw == '"' and quote != '"':
            continue
        escaped = escaped.replace(raw, replacement)
    if quote == "'":
        escaped = escaped.replace("'", "\\'")
    return _escape_remaining(escaped)


def render_number(value: int | float | complex) -> str:
    if isinstance(value, bool):
        # bool is an int subclass; BooleanLiteral should be used instead
        return "True" if value else "False"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return _render_float(value)
    imag = f"{_render_float(value.imag)}j"
    if value.real == 0 and math.copysign(1.0, value.real) > 0:
        return imag
    real = _render_float(value.real)
    if math.copysign(1.0, value.imag) < 0:
        return f"({real}-{_render_float(-value.imag)}j)"
    return f"({real}+{imag})"


def _render_float(value: float) -> str:
    if math.isinf(value):
        return "1e309" if value > 0 else "-1e309"
    return repr(value)


def _number_precedence(value: int | float | complex) -> Precedence:
    text = render_number(value)
    return Precedence.FACTOR if text.startswith("-") else Precedence.ATOM


class _UnsupportedConstruct(Exception):
    """Internal signal: an expression cannot be rendered in the current mode."""

    def __init__(self, kind: str) -> None:
        self.kind = kind
        super().__init__(kind)


class Unparser:
    """Render Modules, statements and expressions to source text.

    Usage:
        text = Unparser(RenderMode.STRICT).render_module(module)
    """

    def __init__(self, mode: RenderMode | str = RenderMode.LENIENT) -> None:
        self.mode = RenderMode(mode)
        self._quote = '"'

    def __repr__(self) -> str:
        return f"Unparser(mode={self.mode.value!r})"

    # -- public API ---------------------------------------------------------

    def render_module(self, module: Module) -> str:
        """Whole module; every line ends with a newline, empty module gives ""."""
        return "".join(line + "\n" for line in self._block_lines(module.body, 0, top=True))

    def render_statement(self, stmt: Statement, level: int = 0) -> str:
        """One statement (and its nested blocks) without a trailing newline."""
        return "\n".join(self._statement_lines(stmt, level))

    def render_expression(self, expr: Expression) -> str:
        try:
            return self._expr(expr)
        except _UnsupportedConstruct as exc:
            return self._placeholder(exc.kind)

    # -- unsupported constructs ---------------------------------------------

    def _unsupported(self, kind: str) -> _UnsupportedConstruct:
        if self.mode is RenderMode.STRICT:
            raise StructureError(f"Unsupported construct: {kind}", kind=kind)
        return _UnsupportedConstruct(kind)

    @staticmethod
    def _placeholder(kind: str) -> str:
        return f"# Unsupported {kind}"

    # -- statements ---------------------------------------------------------

    def _block_lines(self, block: list[Statement], level: int, *, top: bool = False) -> list[str]:
        lines: list[str] = []
        has_code = False
        for stmt in block:
            rendered = self._statement_lines(stmt, level)
            has_code = has_code or any(not line.lstrip().startswith("#") for line in rendered)
            lines.extend(rendered)
        if not has_code and not top:
            lines.append(INDENT * level + "pass")
        return lines

    def _statement_lines(self, stmt: Statement, level: int) -> list[str]:
        pad = INDENT * level
        try:
            return self._statement(stmt, level, pad)
        except _UnsupportedConstruct as exc:
            return [pad + self._placeholder(exc.kind)]

    def _statement(self, stmt: Statement, level: int, pad: str) -> list[str]:
        if isinstance(stmt, FunctionDef):
            lines = [pad + "@" + self._expr(d, Precedence.NAMED) for d in stmt.decorators]
            prefix = "async def" if stmt.is_async else "def"
            header = f"{prefix} {stmt.name}({self._params(stmt.params)})"
            if stmt.returns is not None:
                header += " -> " + self._expr(stmt.returns, Precedence.TEST)
            lines.append(pad + header + ":")
            lines.extend(self._block_lines(stmt.body, level + 1))
            return lines

        if isinstance(stmt, ClassDef):
            lines = [pad + "@" + self._expr(d, Precedence.NAMED) for d in stmt.decorators]
            header = f"class {stmt.name}"
            arguments = [self._expr(b, Precedence.TEST) for b in stmt.bases]
            arguments.extend(self._keyword(k) for k in stmt.keywords)
            if arguments:
                header += "(" + ", ".join(arguments) + ")"
            lines.append(pad + header + ":")
            lines.extend(self._block_lines(stmt.body, level + 1))
            return lines

        if isinstance(stmt, Import):
            return [pad + "import " + ", ".join(self._alias(a) for a in stmt.names)]

        if isinstance(stmt, ImportFrom):
            source = "." * stmt.level + (stmt.module or "")
            names = ", ".join(self._alias(a) for a in stmt.names)
            return [pad + f"from {source or '.'} import {names}"]

        if isinstance(stmt, Assign):
            targets = ", ".join(self._expr(t, Precedence.TEST) for t in stmt.targets)
            return [pad + f"{targets} = {self._expr(stmt.value, Precedence.YIELD)}"]

        if isinstance(stmt, Return):
            if stmt.value is None:
                return [pad + "return"]
            return [pad + "return " + self._expr(stmt.value, Precedence.TEST)]

        if isinstance(stmt, Pass):
            return [pad + "pass"]

        if isinstance(stmt, ExprStatement):
            return [pad + self._expr(stmt.value, Precedence.YIELD)]

        if isinstance(stmt, Try):
            return self._try(stmt, level, pad)

        if isinstance(stmt, OpaqueStatement):
            error = self._unsupported(stmt.kind)
            if self.mode is RenderMode.PASSTHROUGH and stmt.source:
                return indent_source(stmt.source, pad)
            raise error

        raise self._unsupported(type(stmt).__name__)

    def _try(self, stmt: Try, level: int, pad: str) -> list[str]:
        handler_headers = []
        for handler in stmt.handlers:
            header = "except"
            if handler.type is not None:
                header += " " + self._expr(handler.type, Precedence.TEST)
                if handler.name:
                    header += f" as {handler.name}"
            handler_headers.append(pad + header + ":")

        lines = [pad + "try:"]
        lines.extend(self._block_lines(stmt.body, level + 1))
        for header, handler in zip(handler_headers, stmt.handlers, strict=True):
            lines.append(header)
            lines.extend(self._block_lines(handler.body, level + 1))
        if stmt.orelse:
            lines.append(pad + "else:")
            lines.extend(self._block_lines(stmt.orelse, level + 1))
        if stmt.finalbody:
            lines.append(pad + "finally:")
            lines.extend(self._block_lines(stmt.finalbody, level + 1))
        return lines

    def _params(self, params: list[Parameter]) -> str:
        parts: list[str] = []
        saw_star = False
        for index, param in enumerate(params):
            if param.kind is ParamKind.VAR_POSITIONAL:
                parts.append("*" + self._param(param))
                saw_star = True
            elif param.kind is ParamKind.VAR_KEYWORD:
                parts.append("**" + self._param(param))
            elif param.kind is ParamKind.KEYWORD_ONLY:
                if not saw_star:
                    parts.append("*")
                    saw_star = True
                parts.append(self._param(param))
            else:
                parts.append(self._param(param))
            if param.kind is ParamKind.POSITIONAL_ONLY and (
                index + 1 == len(params) or params[index + 1].kind is not ParamKind.POSITIONAL_ONLY
            ):
                parts.append("/")
        return ", ".join(parts)

    def _param(self, param: Parameter) -> str:
        text = param.name
        if param.annotation is not None:
            text += ": " + self._expr(param.annotation, Precedence.TEST)
        if param.default is not None:
            glue = " = " if param.annotation is not None else "="
            text += glue + self._expr(param.default, Precedence.TEST)
        return text

    @staticmethod
    def _alias(alias: ImportAlias) -> str:
        return f"{alias.name} as {alias.asname}" if alias.asname else alias.name

    def _keyword(self, keyword: Keyword) -> str:
        if keyword.arg is None:
            return "**" + self._expr(keyword.value, Precedence.BOR)
        return f"{keyword.arg}={self._expr(keyword.value, Precedence.TEST)}"

    # -- expressions --------------------------------------------------------

    def _expr(self, expr: Expression, minimum: Precedence = Precedence.NAMED) -> str:
        text, precedence = self._expr_with_precedence(expr)
        if precedence < minimum:
            return f"({text})"
        return text

    def _expr_with_precedence(self, expr: Expression) -> tuple[str, Precedence]:
        if isinstance(expr, Name):
            return expr.id, Precedence.ATOM

        if isinstance(expr, StringLiteral):
            quote = self._quote
            return f"{quote}{escape_string(expr.value, quote)}{quote}", Precedence.ATOM

        if isinstance(expr, NumberLiteral):
            return render_number(expr.value), _number_precedence(expr.value)

        if isinstance(expr, BooleanLiteral):
            return ("True" if expr.value else "False"), Precedence.ATOM

        if isinstance(expr, NoneLiteral):
            return "None", Precedence.ATOM

        if isinstance(expr, Call):
            arguments = [self._expr(a, Precedence.TEST) for a in expr.args]
            arguments.extend(self._keyword(k) for k in expr.keywords)
            func = self._expr(expr.func, Precedence.ATOM)
            return f"{func}({', '.join(arguments)})", Precedence.ATOM

        if isinstance(expr, BinaryOp):
            precedence = _BINARY_PRECEDENCE[expr.op]
            if expr.op is BinaryOperator.POW:
                # Right-associative; the right operand may be a unary expression
                left = self._expr(expr.left, Precedence.AWAIT)
                right = self._expr(expr.right, Precedence.FACTOR)
            else:
                left = self._expr(expr.left, precedence)
                right = self._expr(expr.right, Precedence(precedence + 1))
            return f"{left} {expr.op.value} {right}", precedence

        if isinstance(expr, UnaryOp):
            if expr.op is UnaryOperator.NOT:
                return "not " + self._expr(expr.operand, Precedence.NOT), Precedence.NOT
            return expr.op.value + self._expr(expr.operand, Precedence.FACTOR), Precedence.FACTOR

        if isinstance(expr, BoolOp):
            precedence = Precedence.AND if expr.op is BooleanOperator.AND else Precedence.OR
            values = [self._expr(v, Precedence(precedence + 1)) for v in expr.values]
            return f" {expr.op.value} ".join(values), precedence

        if isinstance(expr, Compare):
            parts = [self._expr(expr.left, Precedence.BOR)]
            for op, comparator in zip(expr.ops, expr.comparators, strict=True):
                parts.append(op.value)
                parts.append(self._expr(comparator, Precedence.BOR))
            return " ".join(parts), Precedence.CMP

        if isinstance(expr, Attribute):
            value = self._expr(expr.value, Precedence.ATOM)
            if isinstance(expr.value, NumberLiteral) and not value.startswith("("):
                value = f"({value})"
            return f"{value}.{expr.attr}", Precedence.ATOM

        if isinstance(expr, Subscript):
            value = self._expr(expr.value, Precedence.ATOM)
            return f"{value}[{self._expr(expr.index, Precedence.TEST)}]", Precedence.ATOM

        if isinstance(expr, Starred):
            return "*" + self._expr(expr.value, Precedence.BOR), Precedence.TEST

        if isinstance(expr, TupleExpr):
            elements = [self._expr(e, Precedence.TEST) for e in expr.elements]
            if len(elements) == 1:
                return f"({elements[0]},)", Precedence.ATOM
            return f"({', '.join(elements)})", Precedence.ATOM

        if isinstance(expr, ListExpr):
            elements = [self._expr(e, Precedence.TEST) for e in expr.elements]
            return f"[{', '.join(elements)}]", Precedence.ATOM

        if isinstance(expr, DictExpr):
            items = []
            for key, value in zip(expr.keys, expr.values, strict=True):
                if key is None:
                    items.append("**" + self._expr(value, Precedence.BOR))
                else:
                    items.append(
                        f"{self._expr(key, Precedence.TEST)}: {self._expr(value, Precedence.TEST)}"
                    )
            return "{" + ", ".join(items) + "}", Precedence.ATOM

        if isinstance(expr, FormattedString):
            return self._formatted_string(expr), Precedence.ATOM

        if isinstance(expr, OpaqueExpression):
            error = self._unsupported(expr.kind)
            if self.mode is RenderMode.PASSTHROUGH and expr.source:
                return expr.source, _OPAQUE_PRECEDENCE.get(expr.kind, Precedence.ATOM)
            raise error

        raise self._unsupported(type(expr).__name__)

    def _formatted_string(self, expr: FormattedString) -> str:
        pieces: list[str] = []
        for part in expr.parts:
            if isinstance(part, str):
                pieces.append(_escape_braces(escape_string(part, '"')))
            else:
                pieces.append(self._replacement_field(part))
        return 'f"' + "".join(pieces) + '"'

    def _replacement_field(self, field: FormattedValue) -> str:
        outer, self._quote = self._quote, "'"
        try:
            text = self._expr(field.value, Precedence.OR)
        finally:
            self._quote = outer
        if text.startswith("{"):
            text = " " + text
        if field.conversion:
            text += "!" + field.conversion
        if field.format_spec:
            text += ":" + _escape_braces(escape_string(field.format_spec, '"'))
        return "{" + text + "}"


def _escape_braces(text: str) -> str:
    return text.replace("{", "{{").replace("}", "}}")


def unparse(
    node: Module | Statement | Expression, mode: RenderMode | str = RenderMode.LENIENT
) -> str:
    """Render any tree node with a one-off Unparser."""
    unparser = Unparser(mode)
    if isinstance(node, Module):
        return unparser.render_module(node)
    if isinstance(node, Statement):
        return unparser.render_statement(node)
    return unparser.render_expression(node)
