"""Unit tests for the command-line interface."""

import json
from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from stack_to_trace.cli import main
from stack_to_trace.exporters.sqlite import SQLiteSpanExporter, list_traces, read_spans

SCRIPT = """
import sys
import time


def crunch(seconds):
    end = time.perf_counter() + seconds
    total = 0
    while time.perf_counter() < end:
        total += sum(range(200))
    return total


if __name__ == "__main__":
    crunch(0.3)
    sys.exit(int(sys.argv[1]) if len(sys.argv) > 1 else 0)
"""


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def profile_file(tmp_path, v8_profile):
    path = tmp_path / "app.cpuprofile"
    path.write_text(json.dumps(v8_profile))
    return str(path)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "spans.db")


class TestEvents:
    def test_prints_start_and_end_events(self, runner, profile_file):
        result = runner.invoke(main, ["events", profile_file])

        assert result.exit_code == 0, result.output
        assert "Generated 10 events from 5 samples" in result.output
        lines = [line for line in result.output.splitlines() if " @ " in line]
        assert lines[0].startswith("START") and lines[0].endswith("- main")
        assert "7.500" in lines[0]
        assert lines[-1].startswith("END") and lines[-1].endswith("- main")

    def test_invalid_profile(self, runner, tmp_path):
        path = tmp_path / "bad.cpuprofile"
        path.write_text(json.dumps({"nodes": [{"id": 1, "frameName": "a"}], "samples": [1, 2], "timeDeltas": [1]}))

        result = runner.invoke(main, ["events", str(path)])

        assert result.exit_code == 1
        assert "invalid profile" in result.output


class TestReplayAndView:
    def test_replay_stores_spans(self, runner, profile_file, db_path):
        result = runner.invoke(main, ["replay", profile_file, "--db", db_path])

        assert result.exit_code == 0, result.output
        assert "into 5 spans" in result.output
        ((trace_id, count, _),) = list_traces(db_path)
        assert count == 5
        assert trace_id in result.output
        names = sorted(span["name"] for span in read_spans(db_path, trace_id))
        assert names == ["fn1", "fn1", "fn2", "fn2", "main"]

    def test_replay_reports_samples_when_export_fails(self, runner, profile_file, db_path, monkeypatch):
        def refuse(self, span):
            raise RuntimeError("disk full")

        monkeypatch.setattr(SQLiteSpanExporter, "export", refuse)

        result = runner.invoke(main, ["replay", profile_file, "--db", db_path])

        assert result.exit_code == 0, result.output
        assert "Warning: failed to export 5 span(s)" in result.output
        assert "Replayed 5 samples into 0 spans" in result.output

    def test_view_renders_trace(self, runner, profile_file, db_path):
        runner.invoke(main, ["replay", profile_file, "--db", db_path])
        ((trace_id, _, _),) = list_traces(db_path)

        result = runner.invoke(main, ["view", "--db", db_path, "--trace", trace_id])

        assert result.exit_code == 0, result.output
        assert "main" in result.output
        assert "fn2" in result.output

    def test_view_prompts_for_trace(self, runner, profile_file, db_path):
        runner.invoke(main, ["replay", profile_file, "--db", db_path])

        result = runner.invoke(main, ["view", "--db", db_path], input="1\n")

        assert result.exit_code == 0, result.output
        assert "Select trace" in result.output
        assert "fn1" in result.output

    def test_view_unknown_trace(self, runner, profile_file, db_path):
        runner.invoke(main, ["replay", profile_file, "--db", db_path])

        result = runner.invoke(main, ["view", "--db", db_path, "--trace", "nope"])

        assert result.exit_code == 1

    def test_view_without_databases(self, runner, tmp_path, monkeypatch):
        monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "empty"))

        result = runner.invoke(main, ["view"])

        assert result.exit_code == 1
        assert "No telemetry databases found" in result.output


class TestRun:
    def test_samples_script(self, runner, tmp_path, db_path):
        script = tmp_path / "job.py"
        script.write_text(SCRIPT)

        result = runner.invoke(main, ["run", "--interval", "5", "--db", db_path, str(script)])

        assert result.exit_code == 0, result.output
        ((trace_id, _, _),) = list_traces(db_path)
        names = [span["name"] for span in read_spans(db_path, trace_id)]
        assert "__main__.crunch" in names
        assert not any(name.startswith("stack_to_trace.") for name in names)

    def test_propagates_script_exit_code(self, runner, tmp_path, db_path):
        script = tmp_path / "job.py"
        script.write_text(SCRIPT)

        result = runner.invoke(main, ["run", "--db", db_path, str(script), "3"])

        assert result.exit_code == 3


class TestUpload:
    def test_posts_trace_as_json(self, runner, profile_file, db_path):
        runner.invoke(main, ["replay", profile_file, "--db", db_path])
        ((trace_id, _, _),) = list_traces(db_path)
        response = MagicMock(status=202)
        response.__enter__.return_value = response

        with patch("urllib.request.urlopen", return_value=response) as urlopen:
            result = runner.invoke(
                main,
                ["upload", "--db-file", db_path, "--trace-id", trace_id,
                 "--server-url", "http://collector/traces", "--auth-token", "secret"],
            )

        assert result.exit_code == 0, result.output
        assert "HTTP 202" in result.output
        request = urlopen.call_args[0][0]
        assert request.get_header("Authorization") == "Bearer secret"
        payload = json.loads(request.data)
        assert payload["trace_id"] == trace_id
        assert len(payload["spans"]) == 5

    def test_unknown_trace(self, runner, profile_file, db_path):
        runner.invoke(main, ["replay", profile_file, "--db", db_path])

        result = runner.invoke(
            main, ["upload", "--db-file", db_path, "--trace-id", "missing", "--server-url", "http://x"]
        )

        assert result.exit_code == 1
        assert "No spans found" in result.output
