"""Record types produced by the query layer.

Frozen dataclasses describing where things are (SourceLocation, AstNodeRef)
and flattened summaries of what was found (imports, calls, try/except
blocks, assignments). Records are snapshots: they are never updated when
the tree they were computed from changes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pyrewrite.tree.nodes import Expression


class NodeKind(StrEnum):
    FUNCTION_DEF = "function_def"
    CLASS_DEF = "class_def"
    IMPORT = "import"
    IMPORT_FROM = "import_from"
    TRY_EXCEPT = "try_except"
    ASSIGN = "assign"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class SourceLocation:
    """Position in the parsed source: 1-based line, 0-based column."""

    line: int
    column: int = 0

    def __str__(self) -> str:
        return f"{self.line}:{self.column}"


@dataclass(frozen=True, slots=True)
class AstNodeRef:
    """Index path locating a statement inside one Module snapshot.

    Only valid until the tree is mutated; recompute after any edit.
    """

    path: tuple[int, ...]
    kind: NodeKind
    name: str | None = None  # def/class name, when the statement has one
    location: SourceLocation | None = None

    @property
    def depth(self) -> int:
        return len(self.path) - 1


@dataclass(frozen=True, slots=True)
class ImportInfo:
    """One imported name. ``import a, b as c`` yields two records."""

    module: str  # "os.path" for plain imports, the imported name for from-imports
    alias: str | None
    is_from_import: bool
    from_module: str | None = None
    level: int = 0  # leading dots of a relative from-import
    location: SourceLocation | None = field(default=None, compare=False)

    @property
    def module_path(self) -> str:
        """The dotted path the import is resolved against."""
        if self.is_from_import:
            return "." * self.level + (self.from_module or "")
        return self.module

    @property
    def bound_name(self) -> str:
        """Name the import introduces into the namespace."""
        if self.alias:
            return self.alias
        if self.is_from_import:
            return self.module
        return self.module.split(".")[0]

    def __str__(self) -> str:
        if self.is_from_import:
            source = self.module_path or "."
            text = f"from {source} import {self.module}"
        else:
            text = f"import {self.module}"
        if self.alias:
            text += f" as {self.alias}"
        return text


@dataclass(frozen=True, slots=True)
class CallSite:
    """A call matched by name, either ``name(...)`` or ``obj.name(...)``."""

    name: str
    raw_name: str  # As written: "get_distribution", "self.client.fetch"
    is_method: bool
    argument_count: int
    statement: AstNodeRef


@dataclass(frozen=True, slots=True)
class TryExceptInfo:
    """One try statement, tagged with the identifier-form handler types."""

    statement: AstNodeRef
    exception_types: tuple[str, ...]
    handler_count: int
    has_else: bool
    has_finally: bool


@dataclass(frozen=True, slots=True)
class AssignmentInfo:
    """One simple-identifier assignment target."""

    target: str
    value: Expression
    statement: AstNodeRef
