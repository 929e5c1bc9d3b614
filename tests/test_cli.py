"""
Tests for the command line interface and reporters.
"""

import json

import pytest
from decision_forecast.cli import main
from decision_forecast.output.reporter import LeverReport, Reporter, ReportFormat


@pytest.fixture
def scenario_file(tmp_path):
    path = tmp_path / "scenario.json"
    path.write_text(json.dumps({
        "runs": 200,
        "horizonMonths": 6,
        "dtDays": 10,
        "seed": 5,
        "baseState": {"capital": 100, "resilience": 30, "momentum": 25, "stress": 20},
        "strategy": "attack",
        "uncertainty": 0.5,
        "riskAppetite": 0.6,
        "blackSwanEnabled": True,
    }))
    return str(path)


@pytest.fixture
def request_file(tmp_path):
    path = tmp_path / "request.json"
    path.write_text(json.dumps({
        "runs": 80,
        "horizonMonths": 6,
        "dtDays": 10,
        "seed": 9,
        "baseState": {"capital": 100, "resilience": 30, "momentum": 20, "stress": 20},
        "branches": [
            {"id": "stay", "label": "Stay", "strategy": "defense", "riskAppetite": 0.3, "uncertainty": 0.2,
             "reasons": ["Known ground"], "nextActions": ["Negotiate raise"]},
            {"id": "move", "label": "Move", "strategy": "attack", "riskAppetite": 0.8, "uncertainty": 0.7},
        ],
    }))
    return str(path)


class TestSimulateCommand:
    """Tests for `simulate`."""

    def test_text_output(self, scenario_file, capsys):
        assert main(["simulate", scenario_file]) == 0

        out = capsys.readouterr().out
        assert "Simulating 200 worlds" in out
        assert "Success ratio" in out
        assert "Collapse Analysis" in out

    def test_json_output_with_run_override(self, scenario_file, capsys):
        assert main(["simulate", scenario_file, "-n", "50", "--format", "json"]) == 0

        data = json.loads(capsys.readouterr().out)
        assert data["runs"] == 50
        assert 0.0 <= data["collapse"]["collapseRisk"] <= 1.0

    def test_workers_match_sequential(self, scenario_file, capsys):
        main(["simulate", scenario_file, "--format", "json"])
        sequential = json.loads(capsys.readouterr().out)
        main(["simulate", scenario_file, "--format", "json", "-w", "2"])
        parallel = json.loads(capsys.readouterr().out)

        assert parallel == sequential

    def test_save_markdown(self, scenario_file, tmp_path, capsys):
        output = tmp_path / "report.md"

        assert main(["simulate", scenario_file, "-o", str(output)]) == 0
        assert output.read_text().startswith("# Forecast")

    def test_explicit_format_wins_over_extension(self, scenario_file, tmp_path, capsys):
        output = tmp_path / "report.md"

        assert main(["simulate", scenario_file, "-n", "40", "--format", "json", "-o", str(output)]) == 0
        assert json.loads(output.read_text())["runs"] == 40


class TestOtherCommands:
    """Tests for `sensitivity` and `decide`."""

    def test_sensitivity(self, scenario_file, capsys):
        assert main(["sensitivity", scenario_file, "-n", "60", "--format", "json"]) == 0

        levers = json.loads(capsys.readouterr().out)
        assert len(levers) == 3

    def test_sensitivity_zero_runs_is_kept(self, scenario_file, capsys):
        assert main(["sensitivity", scenario_file, "-n", "0", "--format", "json"]) == 0

        levers = json.loads(capsys.readouterr().out)
        assert len(levers) == 3
        for lever in levers:
            assert lever["successDelta"] == 0
            assert lever["drawdownDelta"] == 0

    def test_decide(self, request_file, capsys):
        assert main(["decide", request_file]) == 0

        out = capsys.readouterr().out
        assert "Stay" in out
        assert "Move" in out
        assert "Known ground" in out

    def test_decide_json(self, request_file, capsys):
        main(["decide", request_file, "--format", "json"])

        branches = json.loads(capsys.readouterr().out)
        assert [b["id"] for b in branches] == ["stay", "move"]

    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out


class TestReporter:
    """Tests for Reporter."""

    def test_format_parse(self):
        assert ReportFormat.parse("json") is ReportFormat.JSON

        with pytest.raises(ValueError):
            ReportFormat.parse("html")

    def test_empty_lever_report(self):
        reporter = Reporter(LeverReport([]))

        assert reporter.generate() == "No lever suggestions."
        assert reporter.generate(ReportFormat.JSON) == "[]"
        assert reporter.generate(ReportFormat.MARKDOWN).startswith("# Lever Sensitivity")
