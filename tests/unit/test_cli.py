"""Unit tests for the command-line interface."""

import json

import pytest
from typer.testing import CliRunner

from seven_stations import cli
from seven_stations.llm.generation import GenerationError
from seven_stations.models import STATION_ORDER
from seven_stations.pipeline import StationFailure

runner = CliRunner()


@pytest.fixture
def script_file(tmp_path, sample_screenplay):
    path = tmp_path / "relay.txt"
    path.write_text(sample_screenplay, encoding="utf-8")
    return path


class TestAnalyzeCommand:
    """Tests for the analyze command."""

    def test_writes_result(self, script_file, tmp_path):
        output = tmp_path / "out.json"

        result = runner.invoke(cli.app, ["analyze", str(script_file), "--no-llm", "--output", str(output)])

        assert result.exit_code == 0
        data = json.loads(output.read_text(encoding="utf-8"))
        assert list(data["stations"]) == list(STATION_ORDER)
        assert data["state"] == "completed"
        assert data["final_report"].startswith("# Script Analysis Report")

    def test_default_output_path(self, script_file):
        result = runner.invoke(cli.app, ["analyze", str(script_file), "--compact"])

        assert result.exit_code == 0
        assert (script_file.parent / "relay_analysis.json").exists()

    def test_empty_script_fails(self, tmp_path):
        path = tmp_path / "empty.txt"
        path.write_text("", encoding="utf-8")

        result = runner.invoke(cli.app, ["analyze", str(path), "--output", str(tmp_path / "out.json")])

        assert result.exit_code == 1
        assert not (tmp_path / "out.json").exists()

    def test_missing_script_is_rejected(self, tmp_path):
        result = runner.invoke(cli.app, ["analyze", str(tmp_path / "nope.txt")])
        assert result.exit_code != 0


class TestRetries:
    """Tests for retrying transient failures."""

    def test_permanent_failure_is_not_retried(self, monkeypatch):
        calls = []

        def failing(*args, **kwargs):
            calls.append(1)
            raise StationFailure("S2", GenerationError("bad prompt", transient=False))

        monkeypatch.setattr(cli, "run_pipeline", failing)

        with pytest.raises(StationFailure):
            cli._run_with_retries("text", use_llm=False, retries=3)
        assert len(calls) == 1

    def test_transient_failure_is_retried(self, monkeypatch):
        calls = []

        def flaky(raw_input, **kwargs):
            calls.append(raw_input)
            if len(calls) == 1:
                raise StationFailure("S1", GenerationError("overloaded", transient=True))
            return "done"

        monkeypatch.setattr(cli, "run_pipeline", flaky)

        assert cli._run_with_retries("text", use_llm=False, retries=1) == "done"
        assert len(calls) == 2
        assert calls[0] == {"text": "text", "options": {"use_llm": False}}


class TestInfoCommands:
    """Tests for info and principles."""

    def test_info(self):
        result = runner.invoke(cli.app, ["info"])
        assert result.exit_code == 0
        assert "S1 -> S2" in result.output

    def test_principles(self):
        result = runner.invoke(cli.app, ["principles"])
        assert result.exit_code == 0
        assert "Honesty" in result.output
