"""Client for the TVmaze episodic TV catalog."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Callable

import httpx
from pydantic import ValidationError

from ..concurrency import RateLimiter
from ..config import Settings
from ..models import CatalogSummary, Episode, NextEpisode
from ..outcome import Err, ErrorKind, Ok, Outcome
from ..schedule import compute_next_episode
from ..utils import resolve_image, strip_html
from .http import fetch_json, unexpected_shape

logger = logging.getLogger(__name__)

SOURCE = "tvmaze"


class TVMazeClient:
    """Thin wrapper around the TVmaze HTTP API."""

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        limiter: RateLimiter | None = None,
    ):
        self._settings = settings
        self._client = http_client
        self._limiter = limiter

    async def _get(self, url: str, **kwargs: Any) -> Outcome[Any]:
        return await fetch_json(
            self._client, url, source=SOURCE, limiter=self._limiter, **kwargs
        )

    async def search(self, query: str) -> Outcome[list[CatalogSummary]]:
        """Search shows by free text, keeping the catalog's relevance order."""

        trimmed = (query or "").strip()
        if not trimmed:
            return Ok([])
        url = "/search/shows"
        outcome = await self._get(url, params={"q": trimmed})
        if not isinstance(outcome, Ok):
            return outcome
        if not isinstance(outcome.value, list):
            return unexpected_shape(SOURCE, url)

        results: list[CatalogSummary] = []
        for entry in outcome.value:
            if not isinstance(entry, dict):
                continue
            summary = self.to_summary(entry.get("show"))
            if summary is not None:
                results.append(summary)
            if len(results) >= self._settings.search_result_limit:
                break
        return Ok(results)

    async def show_by_id(self, show_id: int) -> Outcome[CatalogSummary]:
        url = f"/shows/{show_id}"
        outcome = await self._get(url)
        if not isinstance(outcome, Ok):
            return outcome
        summary = self.to_summary(outcome.value)
        if summary is None:
            return unexpected_shape(SOURCE, url)
        return Ok(summary)

    async def episodes_by_show_id(self, show_id: int) -> Outcome[list[Episode]]:
        url = f"/shows/{show_id}/episodes"
        outcome = await self._get(url)
        if not isinstance(outcome, Ok):
            return outcome
        if not isinstance(outcome.value, list):
            return unexpected_shape(SOURCE, url)

        episodes: list[Episode] = []
        for entry in outcome.value:
            if not isinstance(entry, dict):
                continue
            try:
                episodes.append(Episode.model_validate(entry))
            except ValidationError:
                logger.debug("Skipping malformed episode for show %s", show_id)
        return Ok(episodes)

    async def lookup_by_imdb(self, imdb_id: str) -> Outcome[CatalogSummary]:
        """Resolve a show from its IMDb id; TVmaze answers with a redirect."""

        cleaned = (imdb_id or "").strip()
        if not cleaned:
            return Err(ErrorKind.NOT_FOUND, "missing imdb id")
        url = "/lookup/shows"
        outcome = await self._get(
            url, params={"imdb": cleaned}, follow_redirects=True
        )
        if not isinstance(outcome, Ok):
            return outcome
        summary = self.to_summary(outcome.value)
        if summary is None:
            return unexpected_shape(SOURCE, url)
        return Ok(summary)

    async def schedule_for_today(
        self, country: str | None = None, *, now: datetime | None = None
    ) -> Outcome[list[CatalogSummary]]:
        """Return shows airing today with their earliest remaining episode."""

        url = "/schedule"
        outcome = await self._get(
            url, params={"country": country or self._settings.schedule_country}
        )
        if not isinstance(outcome, Ok):
            return outcome
        if not isinstance(outcome.value, list):
            return unexpected_shape(SOURCE, url)

        shows: dict[int, dict[str, Any]] = {}
        episodes: dict[int, list[dict[str, Any]]] = defaultdict(list)
        for entry in outcome.value:
            if not isinstance(entry, dict):
                continue
            show = entry.get("show")
            if not isinstance(show, dict) or show.get("id") is None:
                continue
            show_id = int(show["id"])
            shows.setdefault(show_id, show)
            episodes[show_id].append(entry)

        results: list[CatalogSummary] = []
        for show_id, show in shows.items():
            summary = self.to_summary(
                show, next_episode=compute_next_episode(episodes[show_id], now)
            )
            if summary is not None:
                results.append(summary)
        return Ok(results)

    async def popular_shows(
        self, limit: int | None = None
    ) -> Outcome[list[CatalogSummary]]:
        return await self._ranked_index(limit=limit)

    async def search_by_genre_with_popularity(
        self, genre: str, limit: int | None = None
    ) -> Outcome[list[CatalogSummary]]:
        wanted = (genre or "").strip().casefold()
        if not wanted:
            return await self._ranked_index(limit=limit)
        return await self._ranked_index(
            limit=limit,
            predicate=lambda summary: any(
                entry.casefold() == wanted for entry in summary.genres
            ),
        )

    async def _ranked_index(
        self,
        *,
        limit: int | None,
        predicate: Callable[[CatalogSummary], bool] | None = None,
    ) -> Outcome[list[CatalogSummary]]:
        """Rank the first index pages by TVmaze weight.

        TVmaze has no popularity endpoint, so only the first
        ``POPULAR_INDEX_PAGES`` pages of ``/shows`` (250 shows each, in id
        order) are considered. A failure past the first page ends the scan
        with what was collected.
        """

        url = "/shows"
        collected: dict[str, CatalogSummary] = {}
        for page in range(self._settings.popular_index_pages):
            outcome = await self._get(url, params={"page": page})
            if isinstance(outcome, Ok) and not isinstance(outcome.value, list):
                outcome = unexpected_shape(SOURCE, url)
            if not isinstance(outcome, Ok):
                if page == 0:
                    return outcome
                if outcome.kind is not ErrorKind.NOT_FOUND:
                    logger.warning(
                        "Ranking TVmaze index without page %s (%s)",
                        page,
                        outcome.kind.value,
                    )
                break
            if not outcome.value:
                break
            for entry in outcome.value:
                summary = self.to_summary(entry)
                if summary is None:
                    continue
                if predicate is None or predicate(summary):
                    collected.setdefault(summary.id, summary)

        summaries = sorted(
            collected.values(),
            key=lambda summary: summary.popularity or 0,
            reverse=True,
        )
        resolved_limit = limit or self._settings.popular_limit
        return Ok(summaries[:resolved_limit])

    @staticmethod
    def to_summary(
        payload: Any, *, next_episode: NextEpisode | None = None
    ) -> CatalogSummary | None:
        """Normalise a TVmaze show object."""

        if not isinstance(payload, dict):
            return None
        show_id = payload.get("id")
        name = payload.get("name")
        if show_id is None or not name:
            return None
        externals = payload.get("externals")
        rating = payload.get("rating")
        genres = payload.get("genres")
        try:
            return CatalogSummary(
                id=f"tv:{show_id}",
                name=str(name),
                image=resolve_image(payload.get("image")),
                genres=genres if isinstance(genres, list) else [],
                status=payload.get("status"),
                summary=strip_html(payload.get("summary")),
                content_type="tv",
                next_episode=next_episode,
                source=SOURCE,
                source_id=int(show_id),
                imdb_id=externals.get("imdb") if isinstance(externals, dict) else None,
                rating=rating.get("average") if isinstance(rating, dict) else None,
                popularity=payload.get("weight"),
                title_english=str(name),
                title_original=str(name),
                premiered=payload.get("premiered"),
            )
        except (ValidationError, TypeError, ValueError):
            logger.debug("Discarding malformed TVmaze show payload %s", show_id)
            return None
