"""Project timeline: one marker per elapsed week since the project start."""
from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

log = logging.getLogger(__name__)

DEFAULT_PROJECT_START = date(2025, 9, 1)
WEEK = timedelta(days=7)


@dataclass(frozen=True)
class Week:
    number: int
    start: datetime
    end: datetime  # last displayed day, start + 6 days
    current: bool


def project_start() -> date:
    """Start date from ``BOARD_PROJECT_START`` (ISO date), else the default."""
    raw = os.environ.get("BOARD_PROJECT_START", "").strip()
    if not raw:
        return DEFAULT_PROJECT_START
    try:
        return date.fromisoformat(raw)
    except ValueError:
        log.warning("Ignoring invalid BOARD_PROJECT_START=%r", raw)
        return DEFAULT_PROJECT_START


def _as_datetime(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.replace(tzinfo=None)
    return datetime(value.year, value.month, value.day)


def week_count(start: date | datetime, now: date | datetime) -> int:
    """``ceil((now - start) / 7 days)``, never negative."""
    elapsed = _as_datetime(now) - _as_datetime(start)
    if elapsed <= timedelta(0):
        return 0
    return math.ceil(elapsed / WEEK)


def compute_weeks(start: date | datetime, now: date | datetime) -> list[Week]:
    """Week markers 1..week_count(start, now).

    Week *i* is current when ``start + (i-1)*7d < now <= start + i*7d``. The
    closed upper bound puts a ``now`` that falls exactly on a week boundary in
    the last rendered week, so exactly one marker is current whenever
    ``now > start``.
    """
    begin = _as_datetime(start)
    today = _as_datetime(now)
    weeks = []
    for i in range(1, week_count(begin, today) + 1):
        week_start = begin + (i - 1) * WEEK
        weeks.append(Week(
            number=i,
            start=week_start,
            end=week_start + timedelta(days=6),
            current=week_start < today <= week_start + WEEK,
        ))
    return weeks
