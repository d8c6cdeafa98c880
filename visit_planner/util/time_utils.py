"""Tiny time helpers for HH:MM wall-clock values."""

from datetime import date, datetime, time, timedelta
from math import floor
from typing import Optional


def parse_hhmm(s: str) -> time:
    if len(s) != 5 or s[2] != ":":
        raise ValueError(f"Expected HH:MM, got {s!r}")
    return time.fromisoformat(s)  # 'HH:MM' -> time, raises on 25:00 etc.


def at(hhmm: str, plan_date: Optional[date] = None) -> datetime:
    """Anchor an HH:MM string on the plan date (today when omitted)."""
    return datetime.combine(plan_date or date.today(), parse_hhmm(hhmm))


def format_hhmm(dt: datetime) -> str:
    return dt.strftime("%H:%M")


def minutes_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() / 60.0


def round_minutes(minutes: float) -> int:
    # half-up, so 14.5 -> 15 and -45.5 -> -45
    return int(floor(minutes + 0.5))


def add_minutes(dt: datetime, minutes: float) -> datetime:
    return dt + timedelta(minutes=minutes)
