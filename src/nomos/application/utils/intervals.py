"""Numeric and date helpers shared by the scheduler, previews and stats."""

import math
import re
from datetime import date, datetime, timedelta, timezone

_STEP_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*([smhd]?)$")
_UNIT_MINUTES = {"s": 1 / 60, "": 1.0, "m": 1.0, "h": 60.0, "d": 1440.0}


def round_half_up(value: float) -> int:
    """Round to the nearest integer; .5 goes up (Python's round() goes to even)."""
    return int(math.floor(value + 0.5))


def parse_step(step: str | int | float) -> float:
    """
    Convert a learning-step value into minutes.

    Numbers are minutes. Strings accept an optional unit suffix:
    '10' / '10m' (minutes), '30s', '2h', '1d'.

    Raises:
        ValueError: If the value is not a positive duration.
    """
    if isinstance(step, bool):
        raise ValueError(f"Invalid step: {step!r}")
    if isinstance(step, (int, float)):
        minutes = float(step)
    elif isinstance(step, str):
        match = _STEP_RE.match(step.strip().lower())
        if not match:
            raise ValueError(f"Invalid step: {step!r}")
        minutes = float(match.group(1)) * _UNIT_MINUTES[match.group(2)]
    else:
        raise ValueError(f"Invalid step: {step!r}")
    if not math.isfinite(minutes) or minutes <= 0:
        raise ValueError(f"Step must be positive: {step!r}")
    return minutes


def as_utc(moment: datetime) -> datetime:
    """Read a naive datetime as UTC; aware ones pass through."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def step_delay(minutes: float) -> timedelta:
    return timedelta(minutes=minutes)


def add_days(moment: datetime, days: int) -> datetime:
    return moment + timedelta(days=days)


def next_calendar_day(moment: datetime) -> date:
    return moment.date() + timedelta(days=1)


def format_interval(delta: timedelta) -> str:
    """Coarse label for an interval: '< 1m', '10m', '3h', '4d', '2mo', '1.5y'."""
    ms = delta.total_seconds() * 1000
    if ms <= 0:
        return "< 1m"

    minutes = round_half_up(ms / 60000)
    if minutes < 1:
        return "< 1m"
    if minutes < 60:
        return f"{minutes}m"
    hours = round_half_up(minutes / 60)
    if hours < 24:
        return f"{hours}h"
    days = round_half_up(hours / 24)
    if days < 30:
        return f"{days}d"
    months = round_half_up(days / 30)
    if months < 12:
        return f"{months}mo"
    return f"{days / 365:.1f}y"


def format_interval_for_preview(delta: timedelta) -> str:
    """
    Label for answer-button previews.

    Keeps seconds and one decimal below ten minutes so that adjacent buttons
    (e.g. 1m vs 1.2m) stay distinguishable.
    """
    ms = delta.total_seconds() * 1000
    if ms <= 0:
        return "< 1m"

    total_seconds = round_half_up(ms / 1000)
    if total_seconds < 60:
        return f"{total_seconds}s"

    total_minutes = total_seconds / 60
    if total_minutes < 60:
        if total_minutes < 10 and total_minutes % 1 != 0:
            formatted = f"{total_minutes:.1f}"
            if formatted.endswith(".0"):
                return f"{round_half_up(total_minutes)}m"
            return f"{formatted}m"
        return f"{round_half_up(total_minutes)}m"

    total_hours = total_minutes / 60
    if total_hours < 24:
        return f"{round_half_up(total_hours)}h"

    total_days = total_hours / 24
    if total_days < 30:
        return f"{round_half_up(total_days)}d"

    total_months = total_days / 30
    if total_months < 12:
        return f"{round_half_up(total_months)}mo"

    return f"{total_days / 365:.1f}y"
