"""Pure helpers deciding refresh staleness and the next airing episode."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Any

from .models import Episode, NextEpisode
from .utils import parse_timestamp, utcnow

STALE_AFTER = timedelta(hours=24)


def is_stale(
    last_fetched_at: str | datetime | None,
    now: datetime | None = None,
    *,
    max_age: timedelta = STALE_AFTER,
) -> bool:
    """Return whether a show fetched at ``last_fetched_at`` needs a refresh."""

    last = parse_timestamp(last_fetched_at)
    if last is None:
        return True
    current = now or utcnow()
    if current.tzinfo is None:
        current = parse_timestamp(current)
    return current - last > max_age


def compute_next_episode(
    episodes: Iterable[Episode | dict[str, Any]],
    now: datetime | None = None,
) -> NextEpisode | None:
    """Return the future episode with the earliest airstamp, if any."""

    current = now or utcnow()
    if current.tzinfo is None:
        current = parse_timestamp(current)

    best: Episode | None = None
    best_time: datetime | None = None
    for entry in episodes:
        episode = entry if isinstance(entry, Episode) else _coerce_episode(entry)
        if episode is None:
            continue
        air_time = parse_timestamp(episode.airstamp)
        if air_time is None or air_time <= current:
            continue
        if best_time is None or air_time < best_time:
            best = episode
            best_time = air_time

    if best is None:
        return None
    return best.to_next_episode()


def _coerce_episode(entry: Any) -> Episode | None:
    if not isinstance(entry, dict):
        return None
    try:
        return Episode.model_validate(entry)
    except ValueError:
        return None
