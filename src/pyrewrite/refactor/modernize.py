"""Tree rewrites behind the engine's modernization operations.

Every function mutates the Module it is given and reports what it did; none
of them records Changes or takes snapshots. The engine wraps each call in
its own all-or-nothing transaction.
"""

from __future__ import annotations

import copy
import re
import string
import sys
from dataclasses import dataclass, field

from pyrewrite.tree.nodes import (
    Assign,
    Attribute,
    BinaryOp,
    BinaryOperator,
    Call,
    Expression,
    FormattedString,
    FormattedValue,
    FunctionDef,
    Import,
    ImportAlias,
    ImportFrom,
    Module,
    Name,
    NumberLiteral,
    Statement,
    StringLiteral,
    Subscript,
    Try,
    TupleExpr,
    child_blocks,
)
from pyrewrite.tree.query import (
    attribute_chain,
    collect_bound_names,
    collect_used_names,
    iter_statements,
)
from pyrewrite.tree.transform import rewrite_expressions, rewrite_statements

# Python 2 module names and their Python 3 homes
LEGACY_MODULES: dict[str, str] = {
    "imp": "importlib",
    "optparse": "argparse",
    "ConfigParser": "configparser",
    "StringIO": "io",
    "cStringIO": "io",
    "cPickle": "pickle",
    "urllib2": "urllib.request",
    "urlparse": "urllib.parse",
    "Queue": "queue",
    "httplib": "http.client",
    "cookielib": "http.cookiejar",
    "HTMLParser": "html.parser",
    "SocketServer": "socketserver",
    "Tkinter": "tkinter",
    "__builtin__": "builtins",
    "copy_reg": "copyreg",
}

LEGACY_VERSION_MODULE = "pkg_resources"
LEGACY_VERSION_FUNCTION = "get_distribution"
LEGACY_NOT_FOUND = "DistributionNotFound"


# ---------------------------------------------------------------------------
# Import sources
# ---------------------------------------------------------------------------


def rewrite_import_source(module: Module, old_module: str, new_module: str) -> int:
    """Point ``import old`` and ``from old import ...`` at ``new_module``.

    Returns the number of aliases/statements rewritten. Usages of the old
    bound name are not touched.
    """
    rewritten = 0
    for _, stmt in iter_statements(module):
        if isinstance(stmt, Import):
            for alias in stmt.names:
                if alias.name == old_module:
                    alias.name = new_module
                    rewritten += 1
        elif isinstance(stmt, ImportFrom):
            if stmt.level == 0 and stmt.module == old_module:
                stmt.module = new_module
                rewritten += 1
    return rewritten


def modernize_legacy_modules(
    module: Module, table: dict[str, str] | None = None
) -> list[tuple[str, str]]:
    """Apply the legacy module table; returns the (old, new) pairs that matched."""
    applied = []
    for old, new in (table or LEGACY_MODULES).items():
        if rewrite_import_source(module, old, new):
            applied.append((old, new))
    return applied


# ---------------------------------------------------------------------------
# pkg_resources version detection
# ---------------------------------------------------------------------------


@dataclass
class VersionModernization:
    """What ``modernize_version_detection`` changed."""

    collapsed_blocks: int = 0
    rewritten_calls: int = 0
    removed_names: list[str] = field(default_factory=list)
    inserted_import: bool = False


def _legacy_imports(module: Module) -> list[ImportFrom]:
    return [
        stmt
        for _, stmt in iter_statements(module)
        if isinstance(stmt, ImportFrom)
        and stmt.level == 0
        and stmt.module == LEGACY_VERSION_MODULE
    ]


def _bound_names(imports: list[ImportFrom], name: str) -> set[str]:
    return {a.asname or a.name for stmt in imports for a in stmt.names if a.name == name}


def _version_argument(expr: Expression, callers: set[str]) -> Expression | None:
    """``X`` when ``expr`` is ``get_distribution(X).version``."""
    if not (isinstance(expr, Attribute) and expr.attr == "version"):
        return None
    call = expr.value
    if (
        isinstance(call, Call)
        and isinstance(call.func, Name)
        and call.func.id in callers
        and len(call.args) == 1
        and not call.keywords
    ):
        return call.args[0]
    return None


def _handles_not_found(stmt: Try, not_found: set[str]) -> bool:
    for handler in stmt.handlers:
        candidates = (
            handler.type.elements if isinstance(handler.type, TupleExpr) else [handler.type]
        )
        for candidate in candidates:
            if candidate is None:
                continue
            chain = attribute_chain(candidate)
            if chain and (chain[-1] == LEGACY_NOT_FOUND or chain[-1] in not_found):
                return True
    return False


def _find_block(block: list[Statement], target: Statement) -> tuple[list[Statement], int] | None:
    for index, stmt in enumerate(block):
        if stmt is target:
            return block, index
        for child in child_blocks(stmt):
            found = _find_block(child, target)
            if found is not None:
                return found
    return None


def _target_aliases(module: Module, target_module: str, target_function: str) -> list[ImportAlias]:
    return [
        alias
        for _, stmt in iter_statements(module)
        if isinstance(stmt, ImportFrom) and stmt.level == 0 and stmt.module == target_module
        for alias in stmt.names
        if alias.name == target_function
    ]


def _reusable_binding(module: Module, target_module: str, target_function: str) -> str | None:
    """Bound name of an existing ``from target_module import target_function``
    that nothing else in the module rebinds."""
    for alias in _target_aliases(module, target_module, target_function):
        bound = alias.asname or alias.name
        if bound not in collect_bound_names(module, skip=alias):
            return bound
    return None


def _free_name(preferred: str, taken: set[str]) -> str:
    if preferred not in taken:
        return preferred
    candidate = f"_pkg_{preferred}"
    suffix = 2
    while candidate in taken:
        candidate = f"_pkg_{preferred}{suffix}"
        suffix += 1
    return candidate


def modernize_version_detection(
    module: Module, target_module: str, target_function: str
) -> VersionModernization | None:
    """Replace ``pkg_resources.get_distribution(X).version`` with ``target_function(X)``.

    Returns None (and leaves the tree alone) unless the module imports
    ``get_distribution`` from ``pkg_resources`` and there is something left
    to rewrite or remove. A try/except whose body is a single
    ``v = get_distribution(X).version`` guarded by ``DistributionNotFound``
    collapses into the assignment alone. When ``target_function`` is already
    bound to something else, the new import gets a fresh alias.
    """
    legacy = _legacy_imports(module)
    callers = _bound_names(legacy, LEGACY_VERSION_FUNCTION)
    if not callers:
        return None

    result = VersionModernization()
    not_found = _bound_names(legacy, LEGACY_NOT_FOUND)
    existing = _reusable_binding(module, target_module, target_function)
    if existing is None:
        taken = collect_bound_names(module) | collect_used_names(module)
        function_name = _free_name(target_function, taken)
    else:
        function_name = existing

    def replacement_call(argument: Expression) -> Call:
        return Call(func=Name(function_name), args=[argument])

    def collapse(stmt: Statement) -> list[Statement] | None:
        if not (
            isinstance(stmt, Try)
            and len(stmt.body) == 1
            and isinstance(stmt.body[0], Assign)
            and not stmt.orelse
            and not stmt.finalbody
            and _handles_not_found(stmt, not_found)
        ):
            return None
        assign = stmt.body[0]
        argument = _version_argument(assign.value, callers)
        if argument is None:
            return None
        return [
            Assign(
                targets=assign.targets,
                value=replacement_call(argument),
                location=stmt.location,
            )
        ]

    def rewrite_call(expr: Expression) -> Expression | None:
        argument = _version_argument(expr, callers)
        return None if argument is None else replacement_call(argument)

    result.collapsed_blocks = rewrite_statements(module, collapse)
    result.rewritten_calls = rewrite_expressions(module, rewrite_call)

    if existing is None and (result.collapsed_blocks or result.rewritten_calls):
        anchor = legacy[0]
        block, index = _find_block(module.body, anchor)
        alias = None if function_name == target_function else function_name
        block.insert(
            index,
            ImportFrom(
                module=target_module,
                names=[ImportAlias(target_function, alias)],
                location=anchor.location,
            ),
        )
        result.inserted_import = True

    used = collect_used_names(module)
    for stmt in legacy:
        kept = []
        for alias in stmt.names:
            bound = alias.asname or alias.name
            if bound in used or alias.name == "*":
                kept.append(alias)
            else:
                result.removed_names.append(bound)
        stmt.names = kept
        if not kept:
            block, index = _find_block(module.body, stmt)
            del block[index]

    if not (
        result.collapsed_blocks
        or result.rewritten_calls
        or result.inserted_import
        or result.removed_names
    ):
        return None
    return result


# ---------------------------------------------------------------------------
# Unused imports
# ---------------------------------------------------------------------------


def remove_unused_imports(module: Module) -> list[str]:
    """Drop top-level import aliases whose bound name is never used.

    ``__future__`` imports and star imports are always kept. Statements left
    without aliases are removed. Returns the removed bound names.
    """
    used = collect_used_names(module)
    removed: list[str] = []
    body: list[Statement] = []
    for stmt in module.body:
        if isinstance(stmt, Import):
            stmt.names = _keep_used(stmt.names, used, removed, from_import=False)
        elif isinstance(stmt, ImportFrom) and stmt.module != "__future__":
            stmt.names = _keep_used(stmt.names, used, removed, from_import=True)
        if isinstance(stmt, (Import, ImportFrom)) and not stmt.names:
            continue
        body.append(stmt)
    module.body[:] = body
    return removed


def _keep_used(
    aliases: list[ImportAlias], used: set[str], removed: list[str], *, from_import: bool
) -> list[ImportAlias]:
    kept = []
    for alias in aliases:
        if alias.asname:
            bound = alias.asname
        elif from_import:
            bound = alias.name
        else:
            bound = alias.name.split(".")[0]
        if alias.name == "*" or bound in used:
            kept.append(alias)
        else:
            removed.append(bound)
    return kept


# ---------------------------------------------------------------------------
# String formatting
# ---------------------------------------------------------------------------

_PERCENT_SPECIFIER = re.compile(r"%(.)", re.DOTALL)
_PERCENT_CONVERSIONS = {"s": None, "r": "r", "a": "a"}


def _is_simple(expr: Expression) -> bool:
    """Side-effect free and cheap to inline: names, attribute chains, subscripts, numbers."""
    if isinstance(expr, NumberLiteral):
        return True
    if isinstance(expr, Subscript):
        return _is_simple(expr.value) and isinstance(expr.index, (Name, NumberLiteral))
    return attribute_chain(expr) is not None


def _merge_text(parts: list[str | FormattedValue]) -> list[str | FormattedValue]:
    merged: list[str | FormattedValue] = []
    for part in parts:
        if isinstance(part, str):
            if not part:
                continue
            if merged and isinstance(merged[-1], str):
                merged[-1] += part
                continue
        merged.append(part)
    return merged


def _percent_to_fstring(template: str, args: list[Expression]) -> FormattedString | None:
    parts: list[str | FormattedValue] = []
    position = 0
    remaining = iter(args)
    consumed = 0
    for match in _PERCENT_SPECIFIER.finditer(template):
        parts.append(template[position : match.start()])
        position = match.end()
        specifier = match.group(1)
        if specifier == "%":
            parts.append("%")
            continue
        if specifier not in _PERCENT_CONVERSIONS:
            return None
        argument = next(remaining, None)
        if argument is None:
            return None
        consumed += 1
        parts.append(FormattedValue(argument, conversion=_PERCENT_CONVERSIONS[specifier]))
    tail = template[position:]
    if "%" in tail or consumed != len(args):
        return None
    parts.append(tail)
    return FormattedString(parts=_merge_text(parts))


def _format_to_fstring(template: str, args: list[Expression]) -> FormattedString | None:
    try:
        fields = list(string.Formatter().parse(template))
    except ValueError:
        return None
    parts: list[str | FormattedValue] = []
    auto_index = 0
    numbering: set[str] = set()
    referenced: set[int] = set()
    for literal, field_name, format_spec, conversion in fields:
        parts.append(literal)
        if field_name is None:
            continue
        if field_name == "":
            numbering.add("auto")
            index = auto_index
            auto_index += 1
        elif field_name.isdigit():
            numbering.add("manual")
            index = int(field_name)
        else:
            return None
        if len(numbering) > 1 or index >= len(args):
            return None
        if format_spec and ("{" in format_spec or "}" in format_spec):
            return None
        if conversion not in (None, "s", "r", "a"):
            return None
        referenced.add(index)
        parts.append(
            FormattedValue(
                copy.deepcopy(args[index]),
                conversion=conversion,
                format_spec=format_spec or None,
            )
        )
    if referenced != set(range(len(args))):
        return None
    return FormattedString(parts=_merge_text(parts))


def _modernize_format_expression(expr: Expression) -> Expression | None:
    if (
        isinstance(expr, BinaryOp)
        and expr.op is BinaryOperator.MOD
        and isinstance(expr.left, StringLiteral)
        and isinstance(expr.right, TupleExpr)
        and all(_is_simple(e) for e in expr.right.elements)
    ):
        return _percent_to_fstring(expr.left.value, list(expr.right.elements))
    if (
        isinstance(expr, Call)
        and isinstance(expr.func, Attribute)
        and expr.func.attr == "format"
        and isinstance(expr.func.value, StringLiteral)
        and not expr.keywords
        and all(_is_simple(a) for a in expr.args)
    ):
        return _format_to_fstring(expr.func.value.value, list(expr.args))
    return None


def modernize_string_formatting(module: Module) -> int:
    """Rewrite ``"%s" % (a,)`` and ``"{}".format(a)`` into f-strings.

    Only ``%s``/``%r``/``%a``/``%%`` templates with a tuple of simple
    arguments, and ``{}``/``{0}`` fields over simple positional arguments,
    are rewritten. Returns the number of expressions replaced.
    """
    return rewrite_expressions(module, _modernize_format_expression)


# ---------------------------------------------------------------------------
# Import ordering
# ---------------------------------------------------------------------------

_FUTURE, _STDLIB, _THIRD_PARTY, _RELATIVE = range(4)


def import_group(stmt: Import | ImportFrom) -> int:
    if isinstance(stmt, ImportFrom) and stmt.level:
        return _RELATIVE
    name = stmt.module if isinstance(stmt, ImportFrom) else stmt.names[0].name
    top = (name or "").split(".")[0]
    if top == "__future__":
        return _FUTURE
    if top in sys.stdlib_module_names:
        return _STDLIB
    return _THIRD_PARTY


def _import_sort_key(stmt: Import | ImportFrom) -> tuple[int, str]:
    if isinstance(stmt, ImportFrom):
        name = "." * stmt.level + (stmt.module or "")
    else:
        name = stmt.names[0].name if stmt.names else ""
    return import_group(stmt), name.lower()


def sort_imports(module: Module) -> int:
    """Stable-sort each contiguous run of top-level imports by group then name.

    Returns the number of runs whose order changed.
    """
    changed_runs = 0
    body = module.body
    start = 0
    while start < len(body):
        if not isinstance(body[start], (Import, ImportFrom)):
            start += 1
            continue
        end = start
        while end < len(body) and isinstance(body[end], (Import, ImportFrom)):
            end += 1
        run = body[start:end]
        ordered = sorted(run, key=_import_sort_key)
        if any(a is not b for a, b in zip(run, ordered, strict=True)):
            body[start:end] = ordered
            changed_runs += 1
        start = end
    return changed_runs


# ---------------------------------------------------------------------------
# Return annotations
# ---------------------------------------------------------------------------


def annotate_returns(module: Module, hints: dict[str, Expression]) -> list[str]:
    """Set the return annotation of top-level functions that have none."""
    annotated = []
    for stmt in module.body:
        if isinstance(stmt, FunctionDef) and stmt.returns is None and stmt.name in hints:
            stmt.returns = copy.deepcopy(hints[stmt.name])
            annotated.append(stmt.name)
    return annotated
