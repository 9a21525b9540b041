"""Staleness-gated refresh of tracked shows."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Sequence

from ..concurrency import run_bounded
from ..models import Show
from ..outcome import ErrorKind, Ok, Outcome
from ..schedule import STALE_AFTER, compute_next_episode, is_stale
from ..utils import isoformat, utcnow
from .matcher import IdentityMatcher
from .tvmaze import TVMazeClient

logger = logging.getLogger(__name__)


class RefreshScheduler:
    """Re-fetch episode data for shows whose last fetch is too old."""

    def __init__(
        self,
        tvmaze: TVMazeClient,
        *,
        matcher: IdentityMatcher | None = None,
        max_age: timedelta = STALE_AFTER,
    ):
        self._tvmaze = tvmaze
        self._matcher = matcher
        self._max_age = max_age

    def is_stale(self, show: Show, now: datetime | None = None) -> bool:
        return is_stale(show.last_fetched_at, now, max_age=self._max_age)

    async def refresh_show(
        self, show: Show, now: datetime | None = None
    ) -> Outcome[Show]:
        """Return ``show`` with a recomputed next episode when it is stale."""

        current = now or utcnow()
        if not self.is_stale(show, current):
            return Ok(show)

        stamp = isoformat(current)
        if show.content_type == "movie":
            return Ok(show.model_copy(update={"last_fetched_at": stamp}))
        if show.tv_catalog_id is None:
            return await self._rematch(show, current)

        outcome = await self._tvmaze.episodes_by_show_id(show.tv_catalog_id)
        if not isinstance(outcome, Ok):
            return outcome
        refreshed = show.model_copy(
            update={
                "next_episode": compute_next_episode(outcome.value, current),
                "last_fetched_at": stamp,
            }
        )
        return Ok(refreshed)

    async def _rematch(self, show: Show, now: datetime) -> Outcome[Show]:
        """Link an anime to the TV catalog, or stamp it when nothing matches."""

        stamp = isoformat(now)
        if show.content_type != "anime" or self._matcher is None:
            return Ok(show.model_copy(update={"last_fetched_at": stamp}))

        outcome = await self._matcher.match_show(show, now)
        if isinstance(outcome, Ok):
            logger.info(
                "Linked %s to TV catalog show %s", show.id, outcome.value.source_id
            )
            return Ok(
                show.model_copy(
                    update={
                        "tv_catalog_id": int(outcome.value.source_id),
                        "next_episode": outcome.value.next_episode,
                        "last_fetched_at": stamp,
                    }
                )
            )
        if outcome.kind is ErrorKind.NO_MATCH:
            return Ok(show.model_copy(update={"last_fetched_at": stamp}))
        return outcome

    async def refresh_all(
        self, shows: Sequence[Show], now: datetime | None = None
    ) -> list[Show]:
        """Refresh stale shows one at a time, keeping input order.

        A failed item keeps its previous record; user-owned fields are always
        copied back from the input.
        """

        current = now or utcnow()

        async def _refresh(show: Show) -> Show:
            try:
                outcome = await self.refresh_show(show, current)
            except Exception:
                logger.exception(
                    "Refreshing %s failed (%s)",
                    show.id,
                    ErrorKind.STALE_DATA_RETAINED.value,
                )
                return show
            if not isinstance(outcome, Ok):
                logger.warning(
                    "Keeping previous data for %s (%s: %s)",
                    show.id,
                    ErrorKind.STALE_DATA_RETAINED.value,
                    outcome.kind.value,
                )
                return show
            return outcome.value.with_user_fields_from(show)

        return await run_bounded(shows, _refresh, limit=1)


def reconcile(current: Sequence[Show], refreshed: Sequence[Show]) -> list[Show]:
    """Apply refreshed catalog data onto the latest stored collection.

    Shows removed while the refresh ran stay removed, shows added meanwhile are
    kept as stored, and user-owned fields always come from ``current``.
    """

    by_id = {show.id: show for show in refreshed}
    merged: list[Show] = []
    for show in current:
        update = by_id.get(show.id)
        merged.append(show if update is None else update.with_user_fields_from(show))
    return merged
