"""Refactor session: tracked, atomic edits over one owned Module.

Each mutating call either applies its whole edit and appends exactly one
Change, or leaves the tree untouched. Every Change is paired with a
snapshot of the tree taken before the edit, so ``undo_last_change`` restores
the tree as well as the log.
"""

from __future__ import annotations

import keyword
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from pyrewrite.errors import OperationError
from pyrewrite.refactor import modernize
from pyrewrite.refactor.changes import Change, ChangeKind, summarize
from pyrewrite.tree.builder import parse_expression, parse_file, parse_source, parse_statements
from pyrewrite.tree.nodes import (
    Assign,
    ClassDef,
    FunctionDef,
    Module,
    Name,
    Statement,
)
from pyrewrite.tree.query import (
    find_assignments,
    find_function_calls,
    find_imports,
    find_nodes,
    find_try_except_blocks,
    node_kind,
)
from pyrewrite.tree.snippets import SnippetGenerator
from pyrewrite.tree.types import (
    AssignmentInfo,
    AstNodeRef,
    CallSite,
    ImportInfo,
    NodeKind,
    SourceLocation,
    TryExceptInfo,
)
from pyrewrite.tree.unparse import RenderMode, Unparser

logger = logging.getLogger(__name__)

DEFAULT_TARGET_MODULE = "importlib.metadata"
DEFAULT_TARGET_FUNCTION = "version"


def _check_identifier(name: str) -> None:
    if not name.isidentifier() or keyword.iskeyword(name):
        raise OperationError(f"'{name}' is not a valid identifier")


def _describe(ref: AstNodeRef) -> str:
    text = ref.kind.value
    if ref.name:
        text += f" '{ref.name}'"
    if ref.location is not None:
        text += f" at line {ref.location.line}"
    return text


class Refactor:
    """Own one Module and its change log.

    Usage:
        refactor = Refactor.from_source(source)
        refactor.rename_function("old_name", "new_name")
        refactor.modernize_imports()
        print(refactor.change_summary())
        new_source = refactor.to_text()
    """

    def __init__(
        self,
        module: Module,
        *,
        file_path: str | None = None,
        render_mode: RenderMode | str = RenderMode.LENIENT,
        target_module: str = DEFAULT_TARGET_MODULE,
        target_function: str = DEFAULT_TARGET_FUNCTION,
    ) -> None:
        self._module = module
        self._history: list[tuple[Change, Module]] = []
        self.file_path = file_path
        self.render_mode = RenderMode(render_mode)
        self.target_module = target_module
        self.target_function = target_function

    @classmethod
    def from_source(cls, source: str, file_path: str = "<string>", **options: Any) -> Refactor:
        """Parse ``source`` and open a session. Raises ParseFailure."""
        return cls(parse_source(source, file_path), file_path=file_path, **options)

    @classmethod
    def from_file(cls, path: str | Path, encoding: str = "utf-8", **options: Any) -> Refactor:
        return cls(parse_file(path, encoding), file_path=str(path), **options)

    def __repr__(self) -> str:
        return (
            f"Refactor(file_path={self.file_path!r}, statements={self._module.statement_count()}, "
            f"changes={len(self._history)})"
        )

    @property
    def module(self) -> Module:
        """The owned tree. Mutating it directly bypasses the change log."""
        return self._module

    @property
    def changes(self) -> list[Change]:
        return [change for change, _ in self._history]

    # -- bookkeeping --------------------------------------------------------

    @contextmanager
    def _transaction(self) -> Iterator[Module]:
        """Yield a snapshot of the tree; restore it if the edit raises."""
        snapshot = self._module.clone()
        try:
            yield snapshot
        except BaseException:
            self._module.body = snapshot.body
            raise

    def _record(
        self,
        snapshot: Module,
        kind: ChangeKind,
        description: str,
        *,
        location: SourceLocation | None = None,
        old_value: str | None = None,
        new_value: str | None = None,
    ) -> Change:
        change = Change(
            kind=kind,
            description=description,
            location=location,
            old_value=old_value,
            new_value=new_value,
        )
        self._history.append((change, snapshot))
        logger.debug("%s: %s", self.file_path or "<tree>", description)
        return change

    # -- renames ------------------------------------------------------------

    def _rename_definitions(
        self, kind: type[FunctionDef] | type[ClassDef], old_name: str, new_name: str
    ) -> list[Statement]:
        _check_identifier(new_name)
        matches = [s for s in self._module.body if isinstance(s, kind) and s.name == old_name]
        for stmt in matches:
            stmt.name = new_name
        return matches

    def rename_function(self, old_name: str, new_name: str) -> Change:
        """Rename every top-level ``def old_name``. Call sites are not updated."""
        with self._transaction() as snapshot:
            matches = self._rename_definitions(FunctionDef, old_name, new_name)
            if not matches:
                raise OperationError(f"Function '{old_name}' not found")
            return self._record(
                snapshot,
                ChangeKind.FUNCTION_RENAMED,
                f"Renamed function '{old_name}' to '{new_name}'",
                location=matches[0].location,
                old_value=old_name,
                new_value=new_name,
            )

    def rename_class(self, old_name: str, new_name: str) -> Change:
        """Rename every top-level ``class old_name``. References are not updated."""
        with self._transaction() as snapshot:
            matches = self._rename_definitions(ClassDef, old_name, new_name)
            if not matches:
                raise OperationError(f"Class '{old_name}' not found")
            return self._record(
                snapshot,
                ChangeKind.CLASS_RENAMED,
                f"Renamed class '{old_name}' to '{new_name}'",
                location=matches[0].location,
                old_value=old_name,
                new_value=new_name,
            )

    def rename_variable(self, old_name: str, new_name: str) -> Change:
        """Rename top-level simple-identifier assignment targets."""
        with self._transaction() as snapshot:
            _check_identifier(new_name)
            matches: list[Assign] = []
            for stmt in self._module.body:
                if not isinstance(stmt, Assign):
                    continue
                for target in stmt.targets:
                    if isinstance(target, Name) and target.id == old_name:
                        target.id = new_name
                        if not matches or matches[-1] is not stmt:
                            matches.append(stmt)
            if not matches:
                raise OperationError(f"Variable '{old_name}' not found")
            return self._record(
                snapshot,
                ChangeKind.VARIABLE_RENAMED,
                f"Renamed variable '{old_name}' to '{new_name}'",
                location=matches[0].location,
                old_value=old_name,
                new_value=new_name,
            )

    # -- imports ------------------------------------------------------------

    def replace_import(self, old_module: str, new_module: str) -> bool:
        """Point imports of ``old_module`` at ``new_module``.

        Returns False (and records nothing) when no import matched or the
        two names are the same.
        """
        if old_module == new_module:
            return False
        with self._transaction() as snapshot:
            if not modernize.rewrite_import_source(self._module, old_module, new_module):
                return False
            self._record(
                snapshot,
                ChangeKind.IMPORT_MODIFIED,
                f"Replaced import '{old_module}' with '{new_module}'",
                old_value=old_module,
                new_value=new_module,
            )
            return True

    def modernize_imports(self) -> list[tuple[str, str]]:
        """Apply the legacy module table; one summary Change when anything matched."""
        with self._transaction() as snapshot:
            applied = modernize.modernize_legacy_modules(self._module)
            if applied:
                pairs = ", ".join(f"{old} -> {new}" for old, new in applied)
                self._record(
                    snapshot,
                    ChangeKind.IMPORT_MODIFIED,
                    f"Modernized legacy imports: {pairs}",
                )
            return applied

    def modernize_pkg_resources_version(
        self, target_module: str | None = None, target_function: str | None = None
    ) -> bool:
        """Replace ``pkg_resources`` version detection with ``target_module.target_function``.

        No-op (False, zero Changes) unless ``get_distribution`` is imported
        from ``pkg_resources``.
        """
        target_module = target_module or self.target_module
        target_function = target_function or self.target_function
        with self._transaction() as snapshot:
            result = modernize.modernize_version_detection(
                self._module, target_module, target_function
            )
            if result is None:
                return False
            details = [f"{result.collapsed_blocks} try/except block(s) collapsed"]
            details.append(f"{result.rewritten_calls} call(s) rewritten")
            if result.removed_names:
                details.append("removed " + ", ".join(result.removed_names))
            self._record(
                snapshot,
                ChangeKind.SYNTAX_MODERNIZED,
                f"Replaced pkg_resources version detection with "
                f"{target_module}.{target_function} ({'; '.join(details)})",
                old_value=f"{modernize.LEGACY_VERSION_MODULE}.{modernize.LEGACY_VERSION_FUNCTION}",
                new_value=f"{target_module}.{target_function}",
            )
            return True

    def remove_unused_imports(self) -> list[str]:
        """Drop top-level imports whose bound name is never used. Returns removed names."""
        with self._transaction() as snapshot:
            removed = modernize.remove_unused_imports(self._module)
            if removed:
                self._record(
                    snapshot,
                    ChangeKind.CUSTOM,
                    f"Removed unused imports: {', '.join(removed)}",
                )
            return removed

    def sort_imports(self) -> bool:
        with self._transaction() as snapshot:
            if not modernize.sort_imports(self._module):
                return False
            self._record(snapshot, ChangeKind.CUSTOM, "Sorted import statements")
            return True

    # -- syntax -------------------------------------------------------------

    def modernize_string_formatting(self) -> int:
        """Rewrite simple ``%`` and ``str.format`` expressions into f-strings."""
        with self._transaction() as snapshot:
            count = modernize.modernize_string_formatting(self._module)
            if count:
                self._record(
                    snapshot,
                    ChangeKind.SYNTAX_MODERNIZED,
                    f"Converted {count} string formatting expression(s) to f-strings",
                )
            return count

    def add_type_hints(self, hints: dict[str, str]) -> list[str]:
        """Add return annotations (given as source text) to top-level functions lacking one."""
        parsed = {name: parse_expression(text) for name, text in hints.items()}
        with self._transaction() as snapshot:
            annotated = modernize.annotate_returns(self._module, parsed)
            if annotated:
                self._record(
                    snapshot,
                    ChangeKind.SYNTAX_MODERNIZED,
                    f"Added return annotations to: {', '.join(annotated)}",
                )
            return annotated

    # -- path-addressed edits -----------------------------------------------

    def _locate(self, ref: AstNodeRef) -> tuple[list[Statement], int]:
        try:
            block, index = self._module.locate(ref.path)
        except LookupError as exc:
            raise OperationError(f"Stale node reference {ref.path}: {exc}") from exc
        stmt = block[index]
        name = stmt.name if isinstance(stmt, (FunctionDef, ClassDef)) else None
        if node_kind(stmt) is not ref.kind or name != ref.name:
            raise OperationError(
                f"Stale node reference {ref.path}: expected {_describe(ref)}, "
                f"found {node_kind(stmt).value}"
            )
        return block, index

    @staticmethod
    def _statements(code: str | Statement | list[Statement]) -> list[Statement]:
        if isinstance(code, str):
            statements = parse_statements(code)
        elif isinstance(code, Statement):
            statements = [code]
        else:
            statements = list(code)
        if not statements:
            raise OperationError("No statements given")
        return statements

    def replace_node(
        self, ref: AstNodeRef, replacement: str | Statement | list[Statement]
    ) -> Change:
        statements = self._statements(replacement)
        with self._transaction() as snapshot:
            block, index = self._locate(ref)
            block[index : index + 1] = statements
            return self._record(
                snapshot, ChangeKind.CUSTOM, f"Replaced {_describe(ref)}", location=ref.location
            )

    def insert_before(self, ref: AstNodeRef, code: str | Statement | list[Statement]) -> Change:
        statements = self._statements(code)
        with self._transaction() as snapshot:
            block, index = self._locate(ref)
            block[index:index] = statements
            return self._record(
                snapshot,
                ChangeKind.CUSTOM,
                f"Inserted {len(statements)} statement(s) before {_describe(ref)}",
                location=ref.location,
            )

    def insert_after(self, ref: AstNodeRef, code: str | Statement | list[Statement]) -> Change:
        statements = self._statements(code)
        with self._transaction() as snapshot:
            block, index = self._locate(ref)
            block[index + 1 : index + 1] = statements
            return self._record(
                snapshot,
                ChangeKind.CUSTOM,
                f"Inserted {len(statements)} statement(s) after {_describe(ref)}",
                location=ref.location,
            )

    def remove_node(self, ref: AstNodeRef) -> Change:
        with self._transaction() as snapshot:
            block, index = self._locate(ref)
            del block[index]
            return self._record(
                snapshot, ChangeKind.CUSTOM, f"Removed {_describe(ref)}", location=ref.location
            )

    def apply_custom_transform(self, description: str, mutator: Callable[[Module], Any]) -> Any:
        """Run ``mutator`` on a copy of the tree and adopt it if it validates.

        Always records one Change on success. If the mutator raises or leaves
        a foreign node behind, the owned tree is untouched and the error
        propagates.
        """
        candidate = self._module.clone()
        result = mutator(candidate)
        candidate.validate(allow_empty=True)
        snapshot = self._module.clone()
        self._module.body = candidate.body
        self._record(snapshot, ChangeKind.CUSTOM, description)
        return result

    # -- queries ------------------------------------------------------------

    def find_nodes(self, kind: NodeKind | str | None = None) -> list[AstNodeRef]:
        return find_nodes(self._module, kind)

    def find_imports(self, module_filter: str | None = None) -> list[ImportInfo]:
        return find_imports(self._module, module_filter)

    def find_function_calls(self, name: str) -> list[CallSite]:
        return find_function_calls(self._module, name)

    def find_try_except_blocks(self, exception_type: str | None = None) -> list[TryExceptInfo]:
        return find_try_except_blocks(self._module, exception_type)

    def find_assignments(self, target_filter: str | None = None) -> list[AssignmentInfo]:
        return find_assignments(self._module, target_filter)

    def code_generator(self) -> SnippetGenerator:
        return SnippetGenerator()

    # -- log ----------------------------------------------------------------

    def change_summary(self) -> str:
        return summarize(self.changes)

    def undo_last_change(self) -> Change:
        """Pop the most recent Change and restore the tree it was applied to."""
        if not self._history:
            raise OperationError("No changes to undo")
        change, snapshot = self._history.pop()
        self._module.body = snapshot.body
        logger.debug("%s: undid '%s'", self.file_path or "<tree>", change.description)
        return change

    # -- output -------------------------------------------------------------

    def to_text(self, mode: RenderMode | str | None = None) -> str:
        return Unparser(mode or self.render_mode).render_module(self._module)

    def save(
        self,
        path: str | Path | None = None,
        *,
        encoding: str = "utf-8",
        mode: RenderMode | str | None = None,
    ) -> Path:
        """Write the rendered tree to ``path`` (default: the file it was read from)."""
        target = path or self.file_path
        if target is None or target == "<string>":
            raise OperationError("No output path given")
        text = self.to_text(mode)
        out = Path(target)
        out.write_text(text, encoding=encoding)
        return out
