"""Client for the Jikan (MyAnimeList) anime catalog."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

import httpx
from pydantic import ValidationError

from ..concurrency import RateLimiter
from ..config import Settings
from ..models import CatalogSummary
from ..outcome import Ok, Outcome
from ..utils import strip_html
from .http import fetch_json, unexpected_shape

logger = logging.getLogger(__name__)

SOURCE = "jikan"
MAX_PAGE_SIZE = 25


class GenreCache:
    """Lazily loaded mapping of lower-cased genre names to Jikan ids."""

    def __init__(self) -> None:
        self._genres: dict[str, int] | None = None
        self._lock = asyncio.Lock()

    @property
    def loaded(self) -> bool:
        return self._genres is not None

    async def get_id(
        self,
        genre: str,
        loader: Callable[[], Awaitable[Outcome[dict[str, int]]]],
    ) -> int | None:
        async with self._lock:
            if self._genres is None:
                outcome = await loader()
                if isinstance(outcome, Ok):
                    self._genres = outcome.value
        if self._genres is None:
            return None
        return self._genres.get((genre or "").strip().lower())

    def clear(self) -> None:
        self._genres = None


class JikanClient:
    """Wrapper around the Jikan v4 API sharing the anime rate limiter."""

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        limiter: RateLimiter,
        genre_cache: GenreCache | None = None,
    ):
        self._settings = settings
        self._client = http_client
        self._limiter = limiter
        self._genre_cache = genre_cache or GenreCache()

    async def _get(self, url: str, **kwargs: Any) -> Outcome[Any]:
        return await fetch_json(
            self._client, url, source=SOURCE, limiter=self._limiter, **kwargs
        )

    async def _list(
        self, url: str, params: dict[str, Any] | None = None
    ) -> Outcome[list[dict[str, Any]]]:
        outcome = await self._get(url, params=params)
        if not isinstance(outcome, Ok):
            return outcome
        data = outcome.value.get("data") if isinstance(outcome.value, dict) else None
        if not isinstance(data, list):
            return unexpected_shape(SOURCE, url)
        return Ok([entry for entry in data if isinstance(entry, dict)])

    def _summaries(self, entries: list[dict[str, Any]]) -> list[CatalogSummary]:
        return [
            summary
            for summary in (self.to_summary(entry) for entry in entries)
            if summary is not None
        ]

    async def top_airing(
        self, limit: int | None = None
    ) -> Outcome[list[CatalogSummary]]:
        resolved_limit = min(limit or self._settings.airing_limit, MAX_PAGE_SIZE)
        outcome = await self._list(
            "/top/anime", {"filter": "airing", "limit": resolved_limit}
        )
        if not isinstance(outcome, Ok):
            return outcome
        return Ok(self._summaries(outcome.value))

    async def search(self, query: str) -> Outcome[list[CatalogSummary]]:
        trimmed = (query or "").strip()
        if not trimmed:
            return Ok([])
        outcome = await self._list(
            "/anime", {"q": trimmed, "limit": self._settings.search_result_limit}
        )
        if not isinstance(outcome, Ok):
            return outcome
        return Ok(self._summaries(outcome.value))

    async def by_genre(self, genre: str) -> Outcome[list[CatalogSummary]]:
        """Return the best-scored anime for a genre name.

        Unknown genre names fall back to a free-text search filtered on the
        entries' own genre names.
        """

        genre_id = await self._genre_cache.get_id(genre, self._load_genre_ids)
        if genre_id is None:
            return await self.search_by_genre(genre)
        outcome = await self._list(
            "/anime",
            {
                "genres": genre_id,
                "order_by": "score",
                "sort": "desc",
                "limit": min(self._settings.popular_limit, MAX_PAGE_SIZE),
            },
        )
        if not isinstance(outcome, Ok):
            return outcome
        return Ok(self._summaries(outcome.value))

    async def search_by_genre(self, genre: str) -> Outcome[list[CatalogSummary]]:
        wanted = (genre or "").strip().lower()
        if not wanted:
            return Ok([])
        outcome = await self._list(
            "/anime",
            {
                "q": wanted,
                "order_by": "score",
                "sort": "desc",
                "limit": min(self._settings.popular_limit, MAX_PAGE_SIZE),
            },
        )
        if not isinstance(outcome, Ok):
            return outcome

        def _matches(summary: CatalogSummary) -> bool:
            names = [name.lower() for name in summary.genres]
            return any(wanted in name or name in wanted for name in names)

        return Ok([
            summary for summary in self._summaries(outcome.value) if _matches(summary)
        ])

    async def details(self, mal_id: int) -> Outcome[CatalogSummary]:
        url = f"/anime/{mal_id}"
        outcome = await self._get(url)
        if not isinstance(outcome, Ok):
            return outcome
        payload = outcome.value.get("data") if isinstance(outcome.value, dict) else None
        summary = self.to_summary(payload)
        if summary is None:
            return unexpected_shape(SOURCE, url)
        return Ok(summary)

    async def genre_list(self) -> Outcome[list[str]]:
        outcome = await self._list("/genres/anime")
        if not isinstance(outcome, Ok):
            return outcome
        return Ok([str(entry["name"]) for entry in outcome.value if entry.get("name")])

    async def _load_genre_ids(self) -> Outcome[dict[str, int]]:
        outcome = await self._list("/genres/anime")
        if not isinstance(outcome, Ok):
            return outcome
        mapping: dict[str, int] = {}
        for entry in outcome.value:
            name = entry.get("name")
            mal_id = entry.get("mal_id")
            if name and mal_id is not None:
                mapping[str(name).lower()] = int(mal_id)
        return Ok(mapping)

    @staticmethod
    def _extract_image(payload: dict[str, Any]) -> str | None:
        images = payload.get("images")
        if not isinstance(images, dict):
            return None
        jpg = images.get("jpg")
        if not isinstance(jpg, dict):
            return None
        for key in ("large_image_url", "image_url"):
            value = jpg.get(key)
            if isinstance(value, str) and value:
                return value
        return None

    @classmethod
    def to_summary(cls, payload: Any) -> CatalogSummary | None:
        """Normalise a Jikan anime object."""

        if not isinstance(payload, dict):
            return None
        mal_id = payload.get("mal_id")
        title = payload.get("title")
        if mal_id is None or not title:
            return None
        genres = [
            str(genre["name"])
            for genre in payload.get("genres") or []
            if isinstance(genre, dict) and genre.get("name")
        ]
        aired = payload.get("aired")
        try:
            return CatalogSummary(
                id=f"mal:{mal_id}",
                name=str(title),
                image=cls._extract_image(payload),
                genres=genres,
                status=payload.get("status"),
                summary=strip_html(payload.get("synopsis")),
                content_type="anime",
                source=SOURCE,
                source_id=int(mal_id),
                popularity=payload.get("members") or 0,
                title_english=payload.get("title_english") or str(title),
                title_original=str(title),
                premiered=aired.get("from") if isinstance(aired, dict) else None,
                rating=payload.get("score"),
            )
        except (ValidationError, TypeError, ValueError):
            logger.debug("Discarding malformed Jikan payload %s", mal_id)
            return None
