"""Change log entries recorded by the refactor engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from pyrewrite.tree.types import SourceLocation


class ChangeKind(StrEnum):
    FUNCTION_RENAMED = "function_renamed"
    CLASS_RENAMED = "class_renamed"
    VARIABLE_RENAMED = "variable_renamed"
    IMPORT_MODIFIED = "import_modified"
    SYNTAX_MODERNIZED = "syntax_modernized"
    CUSTOM = "custom"


@dataclass(frozen=True, slots=True)
class Change:
    """One applied edit. Entries are never modified after being appended."""

    kind: ChangeKind
    description: str
    location: SourceLocation | None = None
    old_value: str | None = None
    new_value: str | None = None

    def __str__(self) -> str:
        return self.description


NO_CHANGES = "No changes made"


def summarize(changes: list[Change]) -> str:
    """Numbered description list, or the fixed sentinel for an empty log."""
    if not changes:
        return NO_CHANGES
    return "\n".join(f"{i}. {change.description}" for i, change in enumerate(changes, start=1))
