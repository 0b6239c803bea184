import json

from click.testing import CliRunner

from asr_got import __version__
from asr_got.cli.main import cli


def test_version():
    result = CliRunner().invoke(cli, ["version"])
    assert result.exit_code == 0
    assert result.output.strip() == __version__


def test_run_json_reports_every_stage():
    result = CliRunner().invoke(cli, ["run", "Effects of exercise on sleep", "--seed", "3", "--json"])
    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert len(payload["stage_results"]) == 8
    assert payload["narrative"]
    assert payload["summary"]["stages_completed"] == "8/8"


def test_validate_exits_zero_for_pipeline_output():
    result = CliRunner().invoke(cli, ["validate", "gut microbiome", "--seed", "3"])
    assert result.exit_code == 0, result.output
    assert "valid" in result.output


def test_insights_reports_requested_focus():
    result = CliRunner().invoke(
        cli,
        ["insights", "Microbiome and labour", "--focus", "interdisciplinary",
         "--domain", "biology", "--domain", "economics", "--interdisciplinary", "--seed", "3"],
    )
    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["focus_area"] == "interdisciplinary"
    assert payload["insights"]["interdisciplinary_bridges"] >= 1


def test_insights_rejects_unknown_focus():
    result = CliRunner().invoke(cli, ["insights", "q", "--focus", "astrology"])
    assert result.exit_code != 0
