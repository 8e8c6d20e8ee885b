"""Batch processor: one Refactor session per file, failures accumulated per file."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from pyrewrite.batch.models import BatchReport, ChangeRecord, FileResult, FileStatus
from pyrewrite.errors import OperationError, RewriteError
from pyrewrite.refactor.engine import Refactor
from pyrewrite.tree.builder import TreeBuilder

if TYPE_CHECKING:
    from pyrewrite.batch.models import RefactorPlan
    from pyrewrite.config import Config
    from pyrewrite.logging.logger import RewriteLogger

logger = logging.getLogger(__name__)


class BatchProcessor:
    """Apply a RefactorPlan to files and directories.

    A failing file (unreadable, unparsable, unrenderable) becomes a failed
    FileResult; the remaining files are still processed.
    """

    def __init__(
        self,
        config: Config,
        plan: RefactorPlan,
        journal: RewriteLogger | None = None,
        write: bool = False,
    ) -> None:
        self.config = config
        self.plan = plan
        self.journal = journal
        self.write = write

    def discover(self, paths: list[Path]) -> tuple[list[Path], list[Path]]:
        """Expand paths into Python files. Returns (files, missing paths)."""
        files: list[Path] = []
        missing: list[Path] = []
        excluded = set(self.config.exclude_dirs)
        for path in paths:
            if path.is_dir():
                for candidate in sorted(path.rglob("*.py")):
                    relative = candidate.relative_to(path).parts[:-1]
                    if excluded.intersection(relative) or not candidate.is_file():
                        continue
                    files.append(candidate)
            elif path.is_file():
                files.append(path)
            else:
                missing.append(path)
        # De-duplicate while keeping discovery order
        seen: set[Path] = set()
        unique = []
        for f in files:
            key = f.resolve()
            if key not in seen:
                seen.add(key)
                unique.append(f)
        return unique, missing

    def run(self, paths: list[Path]) -> BatchReport:
        files, missing = self.discover(paths)
        report = BatchReport()
        for path in missing:
            logger.warning("%s: path does not exist", path)
            report.results.append(
                FileResult(path=str(path), status=FileStatus.FAILED, error="path does not exist")
            )
        for path in files:
            report.results.append(self.process_file(path))
        if self.journal is not None:
            self.journal.log(
                "batch_finished",
                {
                    "files": len(report.results),
                    "changed": report.changed,
                    "unchanged": report.unchanged,
                    "failed": report.failed,
                    "write": self.write,
                },
            )
        return report

    def process_file(self, path: Path) -> FileResult:
        try:
            result = self._process(path)
        except (RewriteError, OSError, UnicodeDecodeError) as exc:
            logger.warning("%s: %s", path, exc)
            result = FileResult(path=str(path), status=FileStatus.FAILED, error=str(exc))
        if self.journal is not None:
            self.journal.log("file_processed", result.model_dump(mode="json"), file_path=str(path))
        return result

    def _process(self, path: Path) -> FileResult:
        source = path.read_text(encoding=self.config.encoding)
        parsed = TreeBuilder(source, str(path)).build()
        if parsed.failure is not None:
            raise parsed.failure

        refactor = Refactor(
            parsed.module,
            file_path=str(path),
            render_mode=self.config.render_mode,
            target_module=self.config.target_module,
            target_function=self.config.target_function,
        )
        self.apply_plan(refactor)

        changes = [ChangeRecord.from_change(c) for c in refactor.changes]
        if not changes:
            return FileResult(path=str(path), status=FileStatus.UNCHANGED)

        written = False
        if self.write:
            text = refactor.to_text()
            path.write_text(text, encoding=self.config.encoding)
            written = True
        return FileResult(
            path=str(path), status=FileStatus.CHANGED, changes=changes, written=written
        )

    def apply_plan(self, refactor: Refactor) -> None:
        """Run the plan's operations in order against one session."""
        plan = self.plan
        for old, new in plan.rename_functions:
            try:
                refactor.rename_function(old, new)
            except OperationError:
                logger.debug("%s: no function '%s' to rename", refactor.file_path, old)
        for old, new in plan.rename_classes:
            try:
                refactor.rename_class(old, new)
            except OperationError:
                logger.debug("%s: no class '%s' to rename", refactor.file_path, old)
        for old, new in plan.replace_imports:
            refactor.replace_import(old, new)
        if plan.modernize_imports:
            refactor.modernize_imports()
        if plan.pkg_resources:
            refactor.modernize_pkg_resources_version()
        if plan.modernize_strings:
            refactor.modernize_string_formatting()
        if plan.remove_unused_imports:
            refactor.remove_unused_imports()
        if plan.sort_imports:
            refactor.sort_imports()
