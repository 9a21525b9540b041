"""Ordering, filtering and incremental reveal of a show collection."""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass

from .models import Show
from .utils import collation_key, parse_timestamp


@dataclass(slots=True)
class Page:
    """Visible prefix of a collection and whether more items remain."""

    items: list[Show]
    has_more: bool
    total: int


def _airstamp_key(show: Show) -> float:
    if show.next_episode is None:
        return math.inf
    parsed = parse_timestamp(show.next_episode.airstamp)
    if parsed is None:
        return math.inf
    return parsed.timestamp()


def sort_shows(shows: Sequence[Show], mode: str | None = "soonest") -> list[Show]:
    """Return shows ordered for display, pinned shows first.

    ``alpha`` orders by name; anything else orders by the soonest upcoming
    episode with unscheduled shows last. The sort is stable.
    """

    if mode == "alpha":
        ordered = sorted(shows, key=lambda show: (collation_key(show.name), show.name))
    else:
        ordered = sorted(shows, key=_airstamp_key)
    # Stable partition keeps the order above inside each group.
    return sorted(ordered, key=lambda show: not show.priority)


def filter_by_status(shows: Sequence[Show], status: str | None) -> list[Show]:
    """Keep shows whose catalog status matches ``status``."""

    wanted = (status or "").strip().casefold()
    if not wanted or wanted == "all":
        return list(shows)
    return [
        show
        for show in shows
        if show.status is not None and show.status.strip().casefold() == wanted
    ]


def paginate(shows: Sequence[Show], page: int, page_size: int) -> Page:
    """Reveal the first ``page * page_size`` shows."""

    if page_size < 1:
        raise ValueError("page_size must be at least 1")
    visible = max(0, page) * page_size
    items = list(shows[:visible])
    return Page(items=items, has_more=len(shows) > visible, total=len(shows))
