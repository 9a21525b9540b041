"""Countdown state computed from an airstamp and the wall clock."""

from __future__ import annotations

import math
from datetime import datetime, timedelta

from .models import CountdownInfo
from .utils import parse_timestamp, utcnow

PROGRESS_WINDOW = timedelta(days=7)
PROGRESS_FLOOR = 5

_SECOND = timedelta(seconds=1)
_MILLISECOND = timedelta(milliseconds=1)


def get_countdown_info(
    airstamp: str | None, now: datetime | None = None
) -> CountdownInfo:
    """Return the countdown shown for an episode airing at ``airstamp``.

    The result only depends on ``airstamp`` and ``now`` so a live display can
    re-evaluate it every second.
    """

    if not airstamp:
        return CountdownInfo(mode="none", label="No upcoming episodes", progress=100)

    air_time = parse_timestamp(airstamp)
    if air_time is None:
        return CountdownInfo(mode="none", label="Unknown date", progress=50)

    current = now or utcnow()
    if current.tzinfo is None:
        current = parse_timestamp(current)

    remaining = air_time - current
    if remaining <= timedelta(0):
        return CountdownInfo(
            mode="past",
            label="Released",
            progress=100,
            days=0,
            hours=0,
            minutes=0,
            seconds=0,
        )

    total_seconds = remaining // _SECOND
    days, rest = divmod(total_seconds, 86_400)
    hours, rest = divmod(rest, 3_600)
    minutes, seconds = divmod(rest, 60)

    diff_ms = remaining // _MILLISECOND
    window_ms = PROGRESS_WINDOW // _MILLISECOND
    raw_progress = 100 - min(1.0, diff_ms / window_ms) * 100
    progress = max(PROGRESS_FLOOR, min(100, math.floor(raw_progress + 0.5)))

    return CountdownInfo(
        mode="upcoming",
        label="Time until release",
        progress=progress,
        days=days,
        hours=hours,
        minutes=minutes,
        seconds=seconds,
    )
