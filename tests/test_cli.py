"""Tests for the notebypine command line."""

import pytest

from notebypine import __main__ as cli


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    monkeypatch.setattr(cli, "configure_logging", lambda *args, **kwargs: None)


class TestCli:

    def test_no_command_prints_help(self, capsys):
        assert cli.main([]) == 1
        assert "usage: notebypine" in capsys.readouterr().out

    def test_validate_without_database(self, capsys):
        assert cli.main(["validate", "--skip-db"]) == 0
        out = capsys.readouterr().out
        assert "ok  AGENTS.md" in out
        assert "WARNING: default JWT secret or admin password in use" in out
        assert out.rstrip().endswith("Validation passed")

    def test_metrics(self, capsys):
        assert cli.main(["metrics"]) == 0
        out = capsys.readouterr().out
        assert "Tool Inventory: 7 tools" in out
        assert '"total_feedback": 0' in out

    def test_triage_missing_file(self, tmp_path, capsys):
        assert cli.main(["triage", str(tmp_path / "absent.log")]) == 1
        assert "Log file not found" in capsys.readouterr().err


class TestFeedbackCommands:

    def test_quick_then_resolve(self, capsys):
        assert cli.main(["feedback", "quick", "slow", "search takes 5s"]) == 0
        out = capsys.readouterr().out
        feedback_id = out.strip().split(": ", 1)[1]
        assert feedback_id.startswith("fb_")

        assert cli.main(["feedback", "resolve", feedback_id, "added an index"]) == 0
        assert capsys.readouterr().out.strip() == f"Feedback resolved: {feedback_id}"

    def test_invalid_quick_type(self, capsys):
        assert cli.main(["feedback", "quick", "boring", "x"]) == 1
        assert "Invalid type 'boring'" in capsys.readouterr().err

    def test_resolve_unknown(self, capsys):
        assert cli.main(["feedback", "resolve", "fb_nope", "x"]) == 1

    def test_report(self, capsys):
        assert cli.main(["feedback", "report"]) == 0
        assert capsys.readouterr().out.startswith("Code Mode Feedback Report")

    def test_missing_subcommand(self, capsys):
        assert cli.main(["feedback"]) == 1


class TestAuditCommands:

    def test_schedule_and_status(self, capsys):
        assert cli.main(["audit", "status"]) == 0
        assert capsys.readouterr().out.strip() == "Audit due"

        assert cli.main(["audit", "schedule", "--days", "14"]) == 0
        assert capsys.readouterr().out.startswith("Audits scheduled every 14 days, next run ")

        assert cli.main(["audit", "status"]) == 0
        assert capsys.readouterr().out.strip() == "No audit due"

    def test_report_before_run(self, capsys):
        assert cli.main(["audit", "report"]) == 0
        assert "No compliance report available" in capsys.readouterr().out

    def test_run(self, capsys):
        code = cli.main(["audit", "run"])
        out = capsys.readouterr().out
        assert out.startswith("Audit Summary:")
        assert code in (0, 1)
