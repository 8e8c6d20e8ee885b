"""Tests for RewriteLogger."""

import json

import pytest

from pyrewrite.logging.logger import RewriteLogger


def _entries(tmp_config) -> list[dict]:
    log_files = list(tmp_config.log_dir.glob("pyrewrite-*.jsonl"))
    assert len(log_files) == 1
    return [json.loads(line) for line in log_files[0].read_text().splitlines()]


class TestRewriteLogger:
    def test_log_writes_valid_jsonl(self, journal, tmp_config):
        """Log entry produces valid JSONL in log file."""
        journal.log("test.event", {"key": "value"}, file_path="mod.py")
        (entry,) = _entries(tmp_config)
        assert entry["event_type"] == "test.event"
        assert entry["data"]["key"] == "value"
        assert entry["file_path"] == "mod.py"
        assert entry["duration_ms"] is None
        assert "timestamp" in entry

    def test_entries_are_appended(self, journal, tmp_config):
        journal.log("first", {})
        journal.log("second", {})
        assert [e["event_type"] for e in _entries(tmp_config)] == ["first", "second"]

    def test_run_records_duration_and_counts(self, journal, tmp_config):
        """run() writes one entry with duration, the caller's fields and status."""
        with journal.run("rewrite", paths=["src"], write=False) as record:
            record.update(changed=2, failed=0)
        (entry,) = _entries(tmp_config)
        assert entry["duration_ms"] >= 0
        assert entry["data"] == {
            "paths": ["src"],
            "write": False,
            "changed": 2,
            "failed": 0,
            "status": "success",
        }

    def test_run_with_failed_files(self, journal, tmp_config):
        with journal.run("rewrite") as record:
            record["failed"] = 1
        (entry,) = _entries(tmp_config)
        assert entry["data"]["status"] == "failed"

    def test_run_captures_error_status(self, journal, tmp_config):
        """run() records error status on exception and re-raises."""
        with pytest.raises(ValueError, match="test error"), journal.run("test.error"):
            raise ValueError("test error")  # noqa: EM101
        (entry,) = _entries(tmp_config)
        assert entry["data"]["status"] == "error"
        assert entry["data"]["error"] == "ValueError: test error"

    def test_creates_log_dir(self, tmp_path):
        """Logger creates its directory on construction."""
        log_dir = tmp_path / "nested" / "logs"
        RewriteLogger(log_dir).log("test.mkdir", {"ok": True})
        assert len(list(log_dir.glob("*.jsonl"))) == 1
