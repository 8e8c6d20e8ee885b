"""Read-only pattern search over a Module.

Every function re-walks the tree (depth-first, pre-order) and returns fresh
records; nothing is cached and nothing is mutated. Walks descend into
function/class bodies and all four try/except regions.
"""

from __future__ import annotations

import re
from collections.abc import Iterator

from pyrewrite.errors import StructureError
from pyrewrite.tree.nodes import (
    Assign,
    Attribute,
    Call,
    ClassDef,
    Expression,
    ExprStatement,
    FunctionDef,
    Import,
    ImportAlias,
    ImportFrom,
    ListExpr,
    Module,
    Name,
    OpaqueExpression,
    OpaqueStatement,
    Pass,
    Return,
    Statement,
    StringLiteral,
    Try,
    TupleExpr,
    child_blocks,
    expression_children,
    statement_expressions,
)
from pyrewrite.tree.types import (
    AssignmentInfo,
    AstNodeRef,
    CallSite,
    ImportInfo,
    NodeKind,
    TryExceptInfo,
)

_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


# ---------------------------------------------------------------------------
# Walking
# ---------------------------------------------------------------------------


def node_kind(stmt: Statement) -> NodeKind:
    """Coarse kind tag of a statement."""
    if isinstance(stmt, FunctionDef):
        return NodeKind.FUNCTION_DEF
    if isinstance(stmt, ClassDef):
        return NodeKind.CLASS_DEF
    if isinstance(stmt, Import):
        return NodeKind.IMPORT
    if isinstance(stmt, ImportFrom):
        return NodeKind.IMPORT_FROM
    if isinstance(stmt, Try):
        return NodeKind.TRY_EXCEPT
    if isinstance(stmt, Assign):
        return NodeKind.ASSIGN
    if isinstance(stmt, (Return, Pass, ExprStatement, OpaqueStatement)):
        return NodeKind.OTHER
    kind = type(stmt).__name__
    raise StructureError(f"Not a node model variant: {kind}", kind=kind)


def iter_statements(module: Module) -> Iterator[tuple[tuple[int, ...], Statement]]:
    """Yield (path, statement) for every statement, pre-order."""
    yield from _iter_block(module.body, ())


def _iter_block(
    block: list[Statement], prefix: tuple[int, ...]
) -> Iterator[tuple[tuple[int, ...], Statement]]:
    for index, stmt in enumerate(block):
        path = (*prefix, index)
        yield path, stmt
        flat = 0
        for child in child_blocks(stmt):
            for offset, item in _iter_block(child, ()):
                # Re-base the first step onto the flattened child index space.
                yield (*path, offset[0] + flat, *offset[1:]), item
            flat += len(child)


def walk_expression(expr: Expression) -> Iterator[Expression]:
    """Yield ``expr`` and all of its sub-expressions, pre-order."""
    yield expr
    for child in expression_children(expr):
        yield from walk_expression(child)


def make_ref(path: tuple[int, ...], stmt: Statement) -> AstNodeRef:
    name = stmt.name if isinstance(stmt, (FunctionDef, ClassDef)) else None
    return AstNodeRef(path=path, kind=node_kind(stmt), name=name, location=stmt.location)


def attribute_chain(expr: Expression) -> list[str] | None:
    """Unpack a chain of attribute accesses into name parts.

    Examples:
        self.validate -> ["self", "validate"]
        a.b.c -> ["a", "b", "c"]
        foo -> ["foo"]

    Returns None if the chain is not rooted in a Name.
    """
    parts: list[str] = []
    current = expr
    while isinstance(current, Attribute):
        parts.append(current.attr)
        current = current.value
    if isinstance(current, Name):
        parts.append(current.id)
        parts.reverse()
        return parts
    return None


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def find_nodes(module: Module, kind: NodeKind | str | None = None) -> list[AstNodeRef]:
    """One reference per statement, optionally filtered to one kind."""
    wanted = NodeKind(kind) if kind is not None else None
    refs = []
    for path, stmt in iter_statements(module):
        ref = make_ref(path, stmt)
        if wanted is None or ref.kind is wanted:
            refs.append(ref)
    return refs


def find_imports(module: Module, module_filter: str | None = None) -> list[ImportInfo]:
    """One record per imported name, in source order.

    ``module_filter`` keeps records whose module path contains the substring
    (the imported module for ``import``, the source module for ``from``).
    """
    records: list[ImportInfo] = []
    for _, stmt in iter_statements(module):
        if isinstance(stmt, Import):
            for alias in stmt.names:
                records.append(
                    ImportInfo(
                        module=alias.name,
                        alias=alias.asname,
                        is_from_import=False,
                        location=stmt.location,
                    )
                )
        elif isinstance(stmt, ImportFrom):
            for alias in stmt.names:
                records.append(
                    ImportInfo(
                        module=alias.name,
                        alias=alias.asname,
                        is_from_import=True,
                        from_module=stmt.module,
                        level=stmt.level,
                        location=stmt.location,
                    )
                )
    if module_filter is not None:
        records = [r for r in records if module_filter in r.module_path]
    return records


def find_function_calls(module: Module, name: str) -> list[CallSite]:
    """Calls to ``name(...)`` or ``<expr>.name(...)`` anywhere in the tree."""
    sites: list[CallSite] = []
    for path, stmt in iter_statements(module):
        ref = None
        for top in statement_expressions(stmt):
            for expr in walk_expression(top):
                if not isinstance(expr, Call):
                    continue
                func = expr.func
                if isinstance(func, Name) and func.id == name:
                    raw_name, is_method = func.id, False
                elif isinstance(func, Attribute) and func.attr == name:
                    chain = attribute_chain(func)
                    raw_name = ".".join(chain) if chain else f"<expr>.{name}"
                    is_method = True
                else:
                    continue
                if ref is None:
                    ref = make_ref(path, stmt)
                sites.append(
                    CallSite(
                        name=name,
                        raw_name=raw_name,
                        is_method=is_method,
                        argument_count=len(expr.args) + len(expr.keywords),
                        statement=ref,
                    )
                )
    return sites


def handler_type_names(stmt: Try) -> tuple[str, ...]:
    """Identifier-form exception types named by the handlers, in order.

    ``except (A, B)`` contributes both names; dotted or computed types are
    skipped.
    """
    names: list[str] = []
    for handler in stmt.handlers:
        if handler.type is None:
            continue
        candidates = handler.type.elements if isinstance(handler.type, TupleExpr) else [
            handler.type
        ]
        names.extend(c.id for c in candidates if isinstance(c, Name))
    return tuple(names)


def find_try_except_blocks(
    module: Module, exception_type: str | None = None
) -> list[TryExceptInfo]:
    """One record per try statement, optionally only those naming a type."""
    blocks: list[TryExceptInfo] = []
    for path, stmt in iter_statements(module):
        if not isinstance(stmt, Try):
            continue
        types = handler_type_names(stmt)
        if exception_type is not None and exception_type not in types:
            continue
        blocks.append(
            TryExceptInfo(
                statement=make_ref(path, stmt),
                exception_types=types,
                handler_count=len(stmt.handlers),
                has_else=bool(stmt.orelse),
                has_finally=bool(stmt.finalbody),
            )
        )
    return blocks


def find_assignments(module: Module, target_filter: str | None = None) -> list[AssignmentInfo]:
    """Simple-identifier assignments whose target contains ``target_filter``.

    Tuple unpacking and attribute/subscript targets are never matched.
    Chained assignment (``a = b = v``) is an opaque statement, so neither
    ``a`` nor ``b`` is reported.
    """
    found: list[AssignmentInfo] = []
    for path, stmt in iter_statements(module):
        if not isinstance(stmt, Assign) or len(stmt.targets) != 1:
            continue
        target = stmt.targets[0]
        if not isinstance(target, Name):
            continue
        if target_filter is not None and target_filter not in target.id:
            continue
        found.append(
            AssignmentInfo(target=target.id, value=stmt.value, statement=make_ref(path, stmt))
        )
    return found


# ---------------------------------------------------------------------------
# Name usage
# ---------------------------------------------------------------------------


def collect_used_names(module: Module) -> set[str]:
    """Names the tree refers to, excluding what import statements bind.

    Covers identifiers (including attribute-chain roots and definition
    headers), identifiers appearing in opaque source text, and strings listed
    in ``__all__``.
    """
    used: set[str] = set()
    for _, stmt in iter_statements(module):
        if isinstance(stmt, OpaqueStatement):
            used.update(_IDENTIFIER.findall(stmt.source or ""))
            continue
        for top in statement_expressions(stmt):
            for expr in walk_expression(top):
                if isinstance(expr, Name):
                    used.add(expr.id)
                elif isinstance(expr, OpaqueExpression):
                    used.update(_IDENTIFIER.findall(expr.source or ""))
        if isinstance(stmt, Assign) and _assigns_dunder_all(stmt):
            used.update(_string_elements(stmt.value))
        elif isinstance(stmt, FunctionDef):
            used.update(_string_annotation_names(stmt))
    return used


def collect_bound_names(module: Module, skip: ImportAlias | None = None) -> set[str]:
    """Names the tree binds anywhere: imports, definitions, parameters,
    assignment targets and exception names.

    ``skip`` leaves one import alias out, so callers can ask whether a name
    is bound by anything other than that import.
    """
    bound: set[str] = set()
    for _, stmt in iter_statements(module):
        if isinstance(stmt, Import):
            bound.update(
                a.asname or a.name.split(".")[0] for a in stmt.names if a is not skip
            )
        elif isinstance(stmt, ImportFrom):
            bound.update(a.asname or a.name for a in stmt.names if a is not skip)
        elif isinstance(stmt, FunctionDef):
            bound.add(stmt.name)
            bound.update(p.name for p in stmt.params)
        elif isinstance(stmt, ClassDef):
            bound.add(stmt.name)
        elif isinstance(stmt, Assign):
            for target in stmt.targets:
                bound.update(
                    e.id for e in walk_expression(target) if isinstance(e, Name)
                )
        elif isinstance(stmt, Try):
            bound.update(h.name for h in stmt.handlers if h.name)
    return bound


def _assigns_dunder_all(stmt: Assign) -> bool:
    return len(stmt.targets) == 1 and stmt.targets[0] == Name("__all__")


def _string_elements(expr: Expression) -> list[str]:
    if isinstance(expr, (ListExpr, TupleExpr)):
        return [e.value for e in expr.elements if isinstance(e, StringLiteral)]
    return []


def _string_annotation_names(stmt: FunctionDef) -> set[str]:
    """Identifiers inside quoted (forward reference) annotations."""
    annotations = [p.annotation for p in stmt.params] + [stmt.returns]
    names: set[str] = set()
    for annotation in annotations:
        if isinstance(annotation, StringLiteral):
            names.update(_IDENTIFIER.findall(annotation.value))
    return names
