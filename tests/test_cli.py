from __future__ import annotations

import json
import logging

import pytest
from click.testing import CliRunner

from recovery_progress.cli import main


@pytest.fixture(autouse=True)
def _isolate(monkeypatch):
    for name in (
        "RECOVERY_DEFAULT_TIMEZONE",
        "RECOVERY_DEFAULT_DAILY_COST",
        "RECOVERY_COMPLIANCE_WINDOW_DAYS",
        "RECOVERY_PATTERN_WINDOW_DAYS",
        "RECOVERY_LOG_FORMAT",
    ):
        monkeypatch.delenv(name, raising=False)
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def export_files(tmp_path):
    profile = tmp_path / "profile.json"
    profile.write_text(json.dumps(
        {"userId": "u1", "sobrietyDate": "2024-01-01", "timezone": "UTC", "dailyCost": 10}
    ))
    check_ins = tmp_path / "check_ins.json"
    check_ins.write_text(json.dumps([
        {"userId": "u1", "kind": "morning", "calendarDay": f"2024-01-{d:02d}", "metrics": {"mood": 6}}
        for d in (8, 9, 10)
    ]))
    assignments = tmp_path / "assignments.json"
    assignments.write_text(json.dumps(["2024-01-09", "2024-01-10"]))
    return {"profile": profile, "check_ins": check_ins, "assignments": assignments}


def test_snapshot_command(export_files):
    result = CliRunner().invoke(main, [
        "snapshot",
        "--check-ins", str(export_files["check_ins"]),
        "--profile", str(export_files["profile"]),
        "--assignments", str(export_files["assignments"]),
        "--today", "2024-01-10",
    ])
    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["sobriety_days"] == 10
    assert payload["money_saved"] == 100.0
    assert payload["check_in_streak"]["current_streak"] == 3
    assert payload["compliance"]["checkIn"]["window_days"] == 30
    assert payload["compliance"]["assignment"]["qualifying_days"] == 2
    assert payload["weekly"]["avg_mood"] == 6.0


def test_snapshot_weekly_window(export_files):
    result = CliRunner().invoke(main, [
        "snapshot",
        "--check-ins", str(export_files["check_ins"]),
        "--profile", str(export_files["profile"]),
        "--today", "2024-01-10",
        "--window", "7",
    ])
    assert result.exit_code == 0, result.output
    compliance = json.loads(result.stdout)["compliance"]["checkIn"]
    assert compliance == {"rate": 43, "window_days": 7, "qualifying_days": 3}


def test_snapshot_reports_goal_insights(export_files, tmp_path):
    goals = tmp_path / "goals.json"
    goals.write_text(json.dumps(["yes", "almost", "no", "yes"]))
    result = CliRunner().invoke(main, [
        "snapshot",
        "--check-ins", str(export_files["check_ins"]),
        "--profile", str(export_files["profile"]),
        "--goals", str(goals),
        "--today", "2024-01-10",
    ])
    assert result.exit_code == 0, result.output
    insights = json.loads(result.stdout)["insights"]
    assert insights["goals"] == {
        "completion_rate": 75,
        "current_streak": 2,
        "best_streak": 2,
        "total_goals": 4,
    }
    assert insights["savings_projection"] == {"week": 70.0, "month": 300.0, "year": 3650.0}


def test_snapshot_rejects_bad_today(export_files):
    result = CliRunner().invoke(main, [
        "snapshot",
        "--check-ins", str(export_files["check_ins"]),
        "--profile", str(export_files["profile"]),
        "--today", "10/01/2024",
    ])
    assert result.exit_code == 2
    assert "YYYY-MM-DD" in result.output


def test_snapshot_reports_invalid_json(tmp_path, export_files):
    broken = tmp_path / "broken.json"
    broken.write_text("[{")
    result = CliRunner().invoke(main, [
        "snapshot", "--check-ins", str(broken), "--profile", str(export_files["profile"]),
    ])
    assert result.exit_code == 1
    assert "invalid JSON" in result.output


def test_profile_without_user_id_fails(tmp_path, export_files):
    profile = tmp_path / "anon.json"
    profile.write_text(json.dumps({"sobrietyDate": "2024-01-01"}))
    result = CliRunner().invoke(main, ["milestones", "--profile", str(profile)])
    assert result.exit_code == 1
    assert "missing userId" in result.output


def test_milestones_command(export_files):
    result = CliRunner().invoke(main, [
        "milestones", "--profile", str(export_files["profile"]), "--today", "2024-01-10",
    ])
    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["sobriety_days"] == 10
    assert payload["progress"]["next_threshold"]["threshold_days"] == 14
    assert len(payload["timeline"]) == 13
    assert payload["timeline"][0]["date"] == "2024-01-07"


def test_next_midnight_command():
    result = CliRunner().invoke(main, ["next-midnight", "--timezone", "UTC"])
    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["timezone"] == "UTC"
    assert 0 < payload["ms_until_midnight"] <= 86_400_000


def test_invalid_environment_is_reported(monkeypatch, export_files):
    monkeypatch.setenv("RECOVERY_COMPLIANCE_WINDOW_DAYS", "10")
    result = CliRunner().invoke(main, ["milestones", "--profile", str(export_files["profile"])])
    assert result.exit_code == 1
    assert "RECOVERY_COMPLIANCE_WINDOW_DAYS" in result.output
