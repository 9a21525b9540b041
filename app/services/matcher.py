"""Cross-reference anime and movie entries against the TV catalog."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Sequence

from ..concurrency import run_bounded
from ..merge import merge_fragments
from ..models import CatalogSummary, Show
from ..outcome import Err, ErrorKind, Ok, Outcome
from ..schedule import compute_next_episode
from ..utils import titles_match
from .tvmaze import TVMazeClient

logger = logging.getLogger(__name__)

_SOURCE_BY_PREFIX = {"mal": "jikan", "wd": "wikidata"}


class IdentityMatcher:
    """Find the TV-catalog record describing the same title as a summary.

    Matching is strict: an IMDb cross-reference, or a case-insensitive exact
    title match on the English title and then the original title. Anything
    else is reported as ``no_match``.
    """

    def __init__(self, tvmaze: TVMazeClient, *, concurrency: int = 8):
        self._tvmaze = tvmaze
        self._concurrency = concurrency

    async def match(
        self, summary: CatalogSummary, now: datetime | None = None
    ) -> Outcome[CatalogSummary]:
        """Return the TV fragment for ``summary`` with its next episode.

        ``no_match`` means every lookup answered and none agreed. Transport
        and catalog failures are returned with their own kind.
        """

        if summary.is_tv:
            return Ok(summary)

        found = await self._find_candidate(summary)
        if not isinstance(found, Ok):
            return found
        candidate = found.value
        if candidate is None:
            logger.debug("No TV catalog match for %s (%s)", summary.id, summary.name)
            return Err(ErrorKind.NO_MATCH, summary.id)

        episodes = await self._tvmaze.episodes_by_show_id(int(candidate.source_id))
        if not isinstance(episodes, Ok):
            return episodes
        next_episode = compute_next_episode(episodes.value, now)
        return Ok(candidate.model_copy(update={"next_episode": next_episode}))

    async def match_show(
        self, show: Show, now: datetime | None = None
    ) -> Outcome[CatalogSummary]:
        """Retry the TV match for a stored anime that has no catalog link."""

        prefix, _, native = show.id.partition(":")
        summary = CatalogSummary(
            id=show.id,
            name=show.name,
            content_type=show.content_type,
            source=_SOURCE_BY_PREFIX.get(prefix, "jikan"),
            source_id=int(native) if native.isdigit() else native,
            title_english=show.name,
            title_original=show.name,
        )
        return await self.match(summary, now)

    async def _find_candidate(
        self, summary: CatalogSummary
    ) -> Outcome[CatalogSummary | None]:
        if summary.imdb_id:
            outcome = await self._tvmaze.lookup_by_imdb(summary.imdb_id)
            if isinstance(outcome, Ok):
                return outcome
            if outcome.kind is not ErrorKind.NOT_FOUND:
                return outcome

        primary_title = summary.title_english or summary.name
        found = await self._search_exact(primary_title)
        if not isinstance(found, Ok) or found.value is not None:
            return found

        original_title = summary.title_original or summary.name
        if original_title and not titles_match(original_title, primary_title):
            return await self._search_exact(original_title)
        return Ok(None)

    async def _search_exact(
        self, title: str | None
    ) -> Outcome[CatalogSummary | None]:
        if not title or not title.strip():
            return Ok(None)
        outcome = await self._tvmaze.search(title)
        if not isinstance(outcome, Ok):
            return outcome
        for candidate in outcome.value:
            if titles_match(candidate.name, title):
                return Ok(candidate)
        return Ok(None)

    async def cross_reference(
        self, summaries: Sequence[CatalogSummary], now: datetime | None = None
    ) -> Outcome[list[Show]]:
        """Merge each summary with its TV match, dropping unmatched entries.

        Returns the first lookup failure when nothing matched and at least one
        lookup failed, so callers can tell an outage from an empty result.
        """

        async def _resolve(summary: CatalogSummary) -> Outcome[Show]:
            outcome = await self.match(summary, now)
            if not isinstance(outcome, Ok):
                return outcome
            if outcome.value is summary:
                return Ok(merge_fragments(summary))
            return Ok(merge_fragments(summary, outcome.value))

        resolved = await run_bounded(summaries, _resolve, limit=self._concurrency)
        shows = [outcome.value for outcome in resolved if isinstance(outcome, Ok)]
        failures = [
            outcome
            for outcome in resolved
            if isinstance(outcome, Err) and outcome.kind is not ErrorKind.NO_MATCH
        ]
        if failures and not shows:
            logger.warning(
                "TV catalog lookups failed for all %s entries: %s",
                len(summaries),
                failures[0].kind.value,
            )
            return failures[0]

        dropped = len(summaries) - len(shows)
        if dropped:
            logger.info(
                "Dropped %s of %s entries (%s lookup failures)",
                dropped,
                len(summaries),
                len(failures),
            )
        return Ok(shows)
