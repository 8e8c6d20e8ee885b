"""Tests for the CLI: show, query and rewrite."""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from pyrewrite.cli.main import app
from pyrewrite.cli.rewrite_cmd import parse_pairs

runner = CliRunner()


# -----------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------


@pytest.fixture
def sample_file(tmp_path, sample_source):
    path = tmp_path / "sample.py"
    path.write_text(sample_source)
    return path


@pytest.fixture
def legacy_file(tmp_path):
    path = tmp_path / "compat.py"
    path.write_text("import StringIO\nimport os\n\nprint(os.sep)\n")
    return path


# -----------------------------------------------------------------------
# show
# -----------------------------------------------------------------------


class TestShow:
    def test_renders_file(self, tmp_path):
        path = tmp_path / "mod.py"
        path.write_text("import os\n\n\nx = 'a'\n")
        result = runner.invoke(app, ["show", str(path)])
        assert result.exit_code == 0
        assert result.stdout == 'import os\nx = "a"\n'

    def test_lenient_placeholder(self, tmp_path):
        path = tmp_path / "loop.py"
        path.write_text("while x:\n    pass\n")
        result = runner.invoke(app, ["show", str(path)])
        assert result.exit_code == 0
        assert "# Unsupported While" in result.stdout

    def test_passthrough_mode(self, tmp_path):
        path = tmp_path / "loop.py"
        path.write_text("while x:\n    pass\n")
        result = runner.invoke(app, ["show", str(path), "--mode", "passthrough"])
        assert result.exit_code == 0
        assert "while x:" in result.stdout

    def test_strict_mode_fails(self, tmp_path):
        path = tmp_path / "loop.py"
        path.write_text("while x:\n    pass\n")
        result = runner.invoke(app, ["show", str(path), "-m", "strict"])
        assert result.exit_code == 1

    def test_parse_failure(self, tmp_path):
        path = tmp_path / "broken.py"
        path.write_text("def broken(:\n")
        result = runner.invoke(app, ["show", str(path)])
        assert result.exit_code == 1

    def test_missing_file(self, tmp_path):
        result = runner.invoke(app, ["show", str(tmp_path / "missing.py")])
        assert result.exit_code == 1


# -----------------------------------------------------------------------
# query
# -----------------------------------------------------------------------


class TestQuery:
    def test_nodes_json(self, sample_file):
        result = runner.invoke(
            app, ["query", "nodes", str(sample_file), "--kind", "function_def", "--json"]
        )
        assert result.exit_code == 0
        rows = json.loads(result.stdout)
        assert [r["path"] for r in rows] == ["3.0", "3.1", "4", "5"]
        assert rows[2] == {"path": "4", "kind": "function_def", "name": "f", "line": 14}

    def test_imports_json(self, sample_file):
        result = runner.invoke(app, ["query", "imports", str(sample_file), "-f", "a.b", "--json"])
        assert result.exit_code == 0
        rows = json.loads(result.stdout)
        assert [r["statement"] for r in rows] == ["from a.b import c as d", "from a.b import e"]
        assert rows[0]["from"] == "a.b"

    def test_calls_json(self, sample_file):
        result = runner.invoke(app, ["query", "calls", str(sample_file), "fetch", "--json"])
        assert result.exit_code == 0
        (row,) = json.loads(result.stdout)
        assert row == {"call": "self.client.fetch", "arguments": 1, "method": True, "line": 11}

    def test_try_json(self, sample_file):
        result = runner.invoke(app, ["query", "try", str(sample_file), "-t", "KeyError", "--json"])
        assert result.exit_code == 0
        (row,) = json.loads(result.stdout)
        assert row["types"] == "ValueError, KeyError"
        assert row["finally"] is True

    def test_assign_json(self, sample_file):
        result = runner.invoke(
            app, ["query", "assign", str(sample_file), "--filter", "x", "--json"]
        )
        assert result.exit_code == 0
        (row,) = json.loads(result.stdout)
        assert row == {"target": "x", "value": "get_distribution(__name__).version", "line": 28}

    def test_table_output(self, sample_file):
        result = runner.invoke(app, ["query", "imports", str(sample_file)])
        assert result.exit_code == 0
        assert "Imports" in result.stdout
        assert "json" in result.stdout

    def test_no_results_message(self, sample_file):
        result = runner.invoke(app, ["query", "calls", str(sample_file), "missing"])
        assert result.exit_code == 0
        assert "No calls found." in result.stdout


# -----------------------------------------------------------------------
# rewrite
# -----------------------------------------------------------------------


class TestRewrite:
    def test_dry_run(self, tmp_config, legacy_file):
        with patch("pyrewrite.config.Config", return_value=tmp_config):
            result = runner.invoke(app, ["rewrite", str(legacy_file), "--modernize-imports"])
        assert result.exit_code == 0
        assert "1 file(s) would change" in result.stdout
        assert legacy_file.read_text().startswith("import StringIO\n")

    def test_write(self, tmp_config, legacy_file):
        with patch("pyrewrite.config.Config", return_value=tmp_config):
            result = runner.invoke(
                app,
                ["rewrite", str(legacy_file), "--modernize-imports", "--sort-imports", "--write"],
            )
        assert result.exit_code == 0
        assert "1 file(s) rewritten" in result.stdout
        assert legacy_file.read_text() == "import io\nimport os\nprint(os.sep)\n"

    def test_json_report(self, tmp_config, legacy_file):
        with patch("pyrewrite.config.Config", return_value=tmp_config):
            result = runner.invoke(
                app, ["rewrite", str(legacy_file), "--remove-unused-imports", "--json"]
            )
        assert result.exit_code == 0
        report = json.loads(result.stdout)
        (entry,) = report["results"]
        assert entry["status"] == "changed"
        assert entry["changes"][0]["description"] == "Removed unused imports: StringIO"

    def test_rename_pairs(self, tmp_config, tmp_path):
        path = tmp_path / "mod.py"
        path.write_text("def old():\n    pass\n")
        with patch("pyrewrite.config.Config", return_value=tmp_config):
            result = runner.invoke(
                app, ["rewrite", str(path), "--rename-function", "old:new", "--write"]
            )
        assert result.exit_code == 0
        assert path.read_text() == "def new():\n    pass\n"

    def test_run_is_journaled(self, tmp_config, legacy_file):
        with patch("pyrewrite.config.Config", return_value=tmp_config):
            runner.invoke(app, ["rewrite", str(legacy_file), "--modernize-imports"])
        (log_file,) = tmp_config.log_dir.glob("*.jsonl")
        entries = [json.loads(line) for line in log_file.read_text().splitlines()]
        assert entries[-1]["event_type"] == "rewrite"
        assert entries[-1]["data"]["status"] == "success"
        assert entries[-1]["data"]["changed"] == 1

    def test_failed_run_journaled_as_failed(self, tmp_config, tmp_path):
        path = tmp_path / "broken.py"
        path.write_text("def broken(:\n")
        with patch("pyrewrite.config.Config", return_value=tmp_config):
            runner.invoke(app, ["rewrite", str(path), "--modernize-imports"])
        (log_file,) = tmp_config.log_dir.glob("*.jsonl")
        entries = [json.loads(line) for line in log_file.read_text().splitlines()]
        assert entries[-1]["event_type"] == "rewrite"
        assert entries[-1]["data"]["status"] == "failed"
        assert entries[-1]["data"]["failed"] == 1

    def test_failure_exit_code(self, tmp_config, tmp_path):
        path = tmp_path / "broken.py"
        path.write_text("def broken(:\n")
        with patch("pyrewrite.config.Config", return_value=tmp_config):
            result = runner.invoke(app, ["rewrite", str(path), "--modernize-imports"])
        assert result.exit_code == 1

    def test_no_operations(self, tmp_config, legacy_file):
        with patch("pyrewrite.config.Config", return_value=tmp_config):
            result = runner.invoke(app, ["rewrite", str(legacy_file)])
        assert result.exit_code == 2
        assert "No operations selected." in result.stdout

    def test_bad_pair(self, tmp_config, legacy_file):
        with patch("pyrewrite.config.Config", return_value=tmp_config):
            result = runner.invoke(
                app, ["rewrite", str(legacy_file), "--replace-import", "nocolon"]
            )
        assert result.exit_code == 2

    def test_invalid_rename_target(self, tmp_config, legacy_file):
        with patch("pyrewrite.config.Config", return_value=tmp_config):
            result = runner.invoke(
                app, ["rewrite", str(legacy_file), "--rename-class", "Old:not valid"]
            )
        assert result.exit_code == 2


class TestParsePairs:
    def test_pairs(self):
        assert parse_pairs(["a:b", "c.d:e"], "--x") == [("a", "b"), ("c.d", "e")]
        assert parse_pairs(None, "--x") == []

    @pytest.mark.parametrize("value", ["nocolon", ":new", "old:"])
    def test_rejects_malformed(self, value):
        import typer

        with pytest.raises(typer.BadParameter):
            parse_pairs([value], "--x")
