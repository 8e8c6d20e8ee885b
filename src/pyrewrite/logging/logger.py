"""JSONL run journal."""

import json
import time
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path


class RewriteLogger:
    """Append-only JSONL journal, one file per day. Write failures propagate."""

    def __init__(self, log_dir: Path) -> None:
        self.log_dir = log_dir
        self.log_dir.mkdir(parents=True, exist_ok=True)

    @property
    def _log_file(self) -> Path:
        """Current log file (one per day)."""
        today = datetime.now(UTC).strftime("%Y-%m-%d")
        return self.log_dir / f"pyrewrite-{today}.jsonl"

    def log(
        self,
        event_type: str,
        data: dict,
        *,
        file_path: str | None = None,
        duration_ms: int | None = None,
    ) -> None:
        entry = {
            "event_type": event_type,
            "data": data,
            "file_path": file_path,
            "duration_ms": duration_ms,
            "timestamp": datetime.now(UTC).isoformat(),
        }
        with self._log_file.open("a", encoding="utf-8") as f:
            f.write(json.dumps(entry) + "\n")

    @contextmanager
    def run(self, event_type: str, **data):
        """Journal one rewrite run as a single entry written when the block exits.

        The caller fills the yielded dict with per-file counts. The entry's
        status is "failed" when it reports failed files, "error" when the
        block raises (the exception propagates) and "success" otherwise.
        """
        record = dict(data)
        start = time.monotonic()
        try:
            yield record
        except Exception as exc:
            record["status"] = "error"
            record["error"] = f"{type(exc).__name__}: {exc}"
            raise
        else:
            record["status"] = "failed" if record.get("failed") else "success"
        finally:
            duration_ms = int((time.monotonic() - start) * 1000)
            self.log(event_type, record, duration_ms=duration_ms)
