"""Tests for the batch processor and its pydantic models."""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from pyrewrite.batch.models import BatchReport, FileResult, FileStatus, RefactorPlan
from pyrewrite.batch.processor import BatchProcessor
from pyrewrite.config import Config


@pytest.fixture
def modernize_plan():
    return RefactorPlan(modernize_imports=True, pkg_resources=True)


def _by_name(report: BatchReport) -> dict[str, FileResult]:
    return {result.path.rsplit("/", 1)[-1]: result for result in report.results}


# ---------------------------------------------------------------------------
# Plan
# ---------------------------------------------------------------------------
class TestRefactorPlan:
    def test_empty_plan(self):
        assert RefactorPlan().is_empty()
        assert not RefactorPlan(sort_imports=True).is_empty()
        assert not RefactorPlan(replace_imports=[("a", "b")]).is_empty()

    def test_rename_target_must_be_identifier(self):
        with pytest.raises(ValidationError):
            RefactorPlan(rename_functions=[("old", "not valid")])
        with pytest.raises(ValidationError):
            RefactorPlan(rename_classes=[("Old", "class")])

    def test_report_counts(self):
        report = BatchReport(
            results=[
                FileResult(path="a.py", status=FileStatus.CHANGED),
                FileResult(path="b.py", status=FileStatus.UNCHANGED),
                FileResult(path="c.py", status=FileStatus.FAILED, error="boom"),
            ]
        )
        assert (report.changed, report.unchanged, report.failed) == (1, 1, 1)
        assert not report.ok

    def test_report_serializes(self):
        report = BatchReport(results=[FileResult(path="a.py", status=FileStatus.UNCHANGED)])
        data = json.loads(report.model_dump_json())
        assert data["results"][0]["status"] == "unchanged"


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------
class TestDiscover:
    def test_directory_walk_skips_excluded(self, tmp_config, legacy_project, modernize_plan):
        processor = BatchProcessor(tmp_config, modernize_plan)
        files, missing = processor.discover([legacy_project])
        assert [f.name for f in files] == ["__init__.py", "broken.py", "clean.py", "compat.py"]
        assert missing == []

    def test_duplicates_removed(self, tmp_config, legacy_project, modernize_plan):
        processor = BatchProcessor(tmp_config, modernize_plan)
        compat = legacy_project / "pkg" / "compat.py"
        files, _ = processor.discover([compat, legacy_project / "pkg"])
        assert files.count(compat) == 1
        assert len(files) == 4

    def test_missing_path_reported(self, tmp_config, tmp_path, modernize_plan):
        processor = BatchProcessor(tmp_config, modernize_plan)
        files, missing = processor.discover([tmp_path / "nope.py"])
        assert files == []
        assert missing == [tmp_path / "nope.py"]


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------
class TestRun:
    def test_dry_run_report(self, tmp_config, legacy_project, modernize_plan):
        compat = legacy_project / "pkg" / "compat.py"
        before = compat.read_text()

        report = BatchProcessor(tmp_config, modernize_plan).run([legacy_project])

        assert (report.changed, report.unchanged, report.failed) == (2, 1, 1)
        results = _by_name(report)
        assert results["compat.py"].status is FileStatus.CHANGED
        assert not results["compat.py"].written
        assert results["clean.py"].status is FileStatus.UNCHANGED
        assert results["broken.py"].status is FileStatus.FAILED
        assert results["broken.py"].error.startswith(str(legacy_project / "pkg" / "broken.py"))
        assert compat.read_text() == before

    def test_change_records(self, tmp_config, legacy_project, modernize_plan):
        report = BatchProcessor(tmp_config, modernize_plan).run([legacy_project])
        (record,) = _by_name(report)["compat.py"].changes
        assert record.kind == "import_modified"
        assert record.description == (
            "Modernized legacy imports: StringIO -> io, urllib2 -> urllib.request"
        )

    def test_write(self, tmp_config, legacy_project, modernize_plan):
        report = BatchProcessor(tmp_config, modernize_plan, write=True).run([legacy_project])
        pkg = legacy_project / "pkg"
        assert (pkg / "compat.py").read_text() == "import io\nimport urllib.request\n"
        assert (pkg / "__init__.py").read_text() == (
            "from importlib.metadata import version\n__version__ = version(__name__)\n"
        )
        assert (pkg / "clean.py").read_text() == "import os\n\nprint(os.sep)\n"
        assert (legacy_project / ".venv" / "lib" / "vendored.py").read_text() == "import urllib2\n"
        assert _by_name(report)["compat.py"].written

    def test_missing_path_is_a_failure(self, tmp_config, tmp_path, modernize_plan):
        report = BatchProcessor(tmp_config, modernize_plan).run([tmp_path / "gone"])
        (result,) = report.results
        assert result.status is FileStatus.FAILED
        assert result.error == "path does not exist"

    def test_absent_rename_target_is_not_a_failure(self, tmp_config, tmp_path):
        path = tmp_path / "mod.py"
        path.write_text("def keep():\n    pass\n")
        plan = RefactorPlan(rename_functions=[("missing", "other")])
        report = BatchProcessor(tmp_config, plan).run([path])
        assert report.results[0].status is FileStatus.UNCHANGED
        assert report.ok

    def test_rename_applied(self, tmp_config, tmp_path):
        path = tmp_path / "mod.py"
        path.write_text("def old():\n    pass\n\n\nclass Legacy:\n    pass\n")
        plan = RefactorPlan(
            rename_functions=[("old", "new")], rename_classes=[("Legacy", "Modern")]
        )
        BatchProcessor(tmp_config, plan, write=True).run([path])
        assert path.read_text() == "def new():\n    pass\nclass Modern:\n    pass\n"

    def test_passthrough_keeps_unsupported_code(self, tmp_config, tmp_path):
        path = tmp_path / "loop.py"
        path.write_text("import StringIO\nfor line in StringIO.StringIO(data):\n    print(line)\n")
        plan = RefactorPlan(modernize_imports=True)
        BatchProcessor(tmp_config, plan, write=True).run([path])
        assert path.read_text() == (
            "import io\nfor line in StringIO.StringIO(data):\n    print(line)\n"
        )

    def test_strict_render_failure_leaves_file(self, tmp_path):
        config = Config(base_dir=tmp_path / ".pyrewrite", render_mode="strict")
        path = tmp_path / "loop.py"
        source = "import StringIO\nwhile True:\n    pass\n"
        path.write_text(source)
        plan = RefactorPlan(modernize_imports=True)
        report = BatchProcessor(config, plan, write=True).run([path])
        (result,) = report.results
        assert result.status is FileStatus.FAILED
        assert "While" in result.error
        assert path.read_text() == source

    def test_journal_entries(self, tmp_config, journal, legacy_project, modernize_plan):
        BatchProcessor(tmp_config, modernize_plan, journal=journal).run([legacy_project])
        (log_file,) = tmp_config.log_dir.glob("*.jsonl")
        entries = [json.loads(line) for line in log_file.read_text().splitlines()]
        assert [e["event_type"] for e in entries] == ["file_processed"] * 4 + ["batch_finished"]
        assert entries[-1]["data"] == {
            "files": 4,
            "changed": 2,
            "unchanged": 1,
            "failed": 1,
            "write": False,
        }
        assert entries[0]["file_path"].endswith("__init__.py")
