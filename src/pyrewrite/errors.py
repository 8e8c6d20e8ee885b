"""Error taxonomy shared by the tree, refactor and batch layers."""

from __future__ import annotations


class RewriteError(Exception):
    """Base class for every error raised by pyrewrite."""


class ParseFailure(RewriteError):
    """Source text could not be turned into a Module.

    Produced by the parser collaborator, never synthesized by the core.
    """

    def __init__(
        self,
        message: str,
        *,
        line: int | None = None,
        column: int | None = None,
        path: str | None = None,
    ) -> None:
        self.message = message
        self.line = line
        self.column = column
        self.path = path
        super().__init__(str(self))

    def __str__(self) -> str:
        where = self.path or "<string>"
        if self.line is not None:
            where += f":{self.line}"
            if self.column is not None:
                where += f":{self.column}"
        return f"{where}: {self.message}"


class StructureError(RewriteError):
    """Tree invariant violated: empty module, foreign node, or a strict-mode
    encounter with an unsupported construct (``kind`` names it)."""

    def __init__(self, message: str, *, kind: str | None = None) -> None:
        self.kind = kind
        super().__init__(message)


class OperationError(RewriteError):
    """A refactor precondition failed (missing rename target, empty undo log,
    stale node reference)."""
