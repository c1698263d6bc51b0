"""CLI for computing progress snapshots from exported store documents."""

from __future__ import annotations

import json
import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

import click

from .compliance import SUPPORTED_WINDOWS
from .config import Config
from .dates import (
    local_today,
    ms_until_next_local_midnight,
    parse_day_key,
    resolve_timezone,
    sobriety_day_count,
)
from .ingest import normalize_check_in_documents, normalize_profile
from .logging import setup_logging
from .milestones import DEFAULT_MILESTONES, milestone_progress, milestone_timeline
from .progress import build_snapshot


def _load_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text())
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"{path}: invalid JSON ({exc.msg} at line {exc.lineno})") from exc


def _parse_today(value: str | None) -> date | None:
    if value is None:
        return None
    parsed = parse_day_key(value)
    if parsed is None:
        raise click.BadParameter("expected YYYY-MM-DD", param_hint="--today")
    return parsed


def _load_profile(path: Path, config: Config):
    doc = _load_json(path)
    if not isinstance(doc, dict):
        raise click.ClickException(f"{path}: expected a JSON object")
    profile = normalize_profile(
        doc,
        default_timezone=config.default_timezone,
        default_daily_cost=config.default_daily_cost,
    )
    if profile is None:
        raise click.ClickException(f"{path}: profile is missing userId")
    return profile


def _emit(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, sort_keys=True))


@click.group()
@click.option("--log-format", type=click.Choice(["json", "text"]), default=None)
@click.pass_context
def main(ctx: click.Context, log_format: str | None):
    """Recovery progress engine."""
    try:
        config = Config.from_env()
    except (RuntimeError, ValueError) as exc:
        raise click.ClickException(str(exc)) from exc
    setup_logging(log_format or config.log_format, level=logging.WARNING)
    ctx.obj = config


@main.command()
@click.option(
    "--check-ins", "check_ins_file",
    type=click.Path(exists=True, path_type=Path),
    required=True,
    help="JSON array of check-in documents.",
)
@click.option(
    "--profile", "profile_file",
    type=click.Path(exists=True, path_type=Path),
    required=True,
    help="JSON object with the user profile.",
)
@click.option(
    "--assignments", "assignments_file",
    type=click.Path(exists=True, path_type=Path),
    help="JSON array of assignment completion days (YYYY-MM-DD).",
)
@click.option(
    "--goals", "goals_file",
    type=click.Path(exists=True, path_type=Path),
    help="JSON array of goal outcomes, most recent first (yes/almost/no).",
)
@click.option("--today", type=str, help="Local day to evaluate (default: today in the user's timezone).")
@click.option("--window", type=click.Choice([str(w) for w in SUPPORTED_WINDOWS]), help="Compliance window in days.")
@click.pass_obj
def snapshot(
    config: Config,
    check_ins_file: Path,
    profile_file: Path,
    assignments_file: Path | None,
    goals_file: Path | None,
    today: str | None,
    window: str | None,
):
    """Print the full progress snapshot as JSON."""
    profile = _load_profile(profile_file, config)
    raw_check_ins = _load_json(check_ins_file)
    if not isinstance(raw_check_ins, list):
        raise click.ClickException(f"{check_ins_file}: expected a JSON array")

    assignment_days: list[date] = []
    if assignments_file is not None:
        raw_days = _load_json(assignments_file)
        if not isinstance(raw_days, list):
            raise click.ClickException(f"{assignments_file}: expected a JSON array")
        assignment_days = [d for d in (parse_day_key(v) for v in raw_days) if d is not None]

    goal_statuses: list[str] | None = None
    if goals_file is not None:
        raw_goals = _load_json(goals_file)
        if not isinstance(raw_goals, list):
            raise click.ClickException(f"{goals_file}: expected a JSON array")
        goal_statuses = [str(status) for status in raw_goals]

    records = normalize_check_in_documents(raw_check_ins, profile.timezone)
    day = _parse_today(today) or local_today(None, profile.timezone)
    result = build_snapshot(
        records,
        profile,
        day,
        compliance_window_days=int(window) if window else config.compliance_window_days,
        pattern_window_days=config.pattern_window_days,
        assignment_days=assignment_days,
        goal_statuses=goal_statuses,
    )
    _emit(result.to_dict())


@main.command()
@click.option(
    "--profile", "profile_file",
    type=click.Path(exists=True, path_type=Path),
    required=True,
    help="JSON object with the user profile.",
)
@click.option("--today", type=str, help="Local day to evaluate.")
@click.pass_obj
def milestones(config: Config, profile_file: Path, today: str | None):
    """Print the milestone timeline and progress toward the next one."""
    profile = _load_profile(profile_file, config)
    day = _parse_today(today) or local_today(None, profile.timezone)
    days = sobriety_day_count(profile.sobriety_date, day, profile.timezone)
    _emit({
        "sobriety_days": days,
        "progress": milestone_progress(DEFAULT_MILESTONES, days).to_dict(),
        "timeline": [
            status.to_dict()
            for status in milestone_timeline(DEFAULT_MILESTONES, profile.sobriety_date, days)
        ],
    })


@main.command("next-midnight")
@click.option("--timezone", "timezone_name", type=str, default=None, help="IANA timezone name.")
@click.pass_obj
def next_midnight(config: Config, timezone_name: str | None):
    """Print milliseconds until the next local midnight."""
    tz = resolve_timezone(timezone_name, default=config.default_timezone)
    now = datetime.now(timezone.utc)
    _emit({
        "timezone": tz,
        "now": now.isoformat(),
        "ms_until_midnight": ms_until_next_local_midnight(now, tz),
    })


if __name__ == "__main__":
    main()
