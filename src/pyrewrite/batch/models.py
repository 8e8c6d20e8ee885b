"""Pydantic models for multi-file rewriting."""

from __future__ import annotations

import keyword
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator

from pyrewrite.refactor.changes import Change


class FileStatus(StrEnum):
    CHANGED = "changed"
    UNCHANGED = "unchanged"
    FAILED = "failed"


class RefactorPlan(BaseModel):
    """Operations applied, in this order, to every file of a batch."""

    rename_functions: list[tuple[str, str]] = Field(default_factory=list)
    rename_classes: list[tuple[str, str]] = Field(default_factory=list)
    replace_imports: list[tuple[str, str]] = Field(default_factory=list)
    modernize_imports: bool = False
    pkg_resources: bool = False
    modernize_strings: bool = False
    remove_unused_imports: bool = False
    sort_imports: bool = False

    @field_validator("rename_functions", "rename_classes")
    @classmethod
    def new_names_are_identifiers(cls, pairs: list[tuple[str, str]]) -> list[tuple[str, str]]:
        for _, new in pairs:
            if not new.isidentifier() or keyword.iskeyword(new):
                raise ValueError(f"'{new}' is not a valid identifier")
        return pairs

    def is_empty(self) -> bool:
        return not (
            self.rename_functions
            or self.rename_classes
            or self.replace_imports
            or self.modernize_imports
            or self.pkg_resources
            or self.modernize_strings
            or self.remove_unused_imports
            or self.sort_imports
        )


class ChangeRecord(BaseModel):
    kind: str
    description: str
    line: int | None = None

    @classmethod
    def from_change(cls, change: Change) -> ChangeRecord:
        return cls(
            kind=change.kind.value,
            description=change.description,
            line=change.location.line if change.location else None,
        )


class FileResult(BaseModel):
    """Outcome for one file. ``error`` is set only when ``status`` is failed."""

    path: str
    status: FileStatus
    changes: list[ChangeRecord] = Field(default_factory=list)
    error: str | None = None
    written: bool = False


class BatchReport(BaseModel):
    results: list[FileResult] = Field(default_factory=list)

    def _count(self, status: FileStatus) -> int:
        return sum(1 for r in self.results if r.status == status)

    @property
    def changed(self) -> int:
        return self._count(FileStatus.CHANGED)

    @property
    def unchanged(self) -> int:
        return self._count(FileStatus.UNCHANGED)

    @property
    def failed(self) -> int:
        return self._count(FileStatus.FAILED)

    @property
    def ok(self) -> bool:
        return self.failed == 0
