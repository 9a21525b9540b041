"""High level orchestration of the tracked-show collection."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from datetime import datetime
from typing import Any, Callable

from ..concurrency import ViewGeneration
from ..config import Settings
from ..merge import merge_fragments
from ..models import CONTENT_TYPES, CatalogSummary, Preferences, Show
from ..outcome import Err, ErrorKind, Ok, Outcome
from ..schedule import compute_next_episode
from ..sorting import Page, filter_by_status, paginate, sort_shows
from ..store import ShowStore
from ..transfer import (
    ExportFile,
    ImportMode,
    apply_import,
    export_shows,
    parse_import,
)
from ..utils import isoformat, utcnow
from .jikan import JikanClient
from .matcher import IdentityMatcher
from .scheduler import RefreshScheduler, reconcile
from .tvmaze import TVMazeClient
from .wikidata import WikidataClient

logger = logging.getLogger(__name__)

CATALOG_UNAVAILABLE_MESSAGE = "Offline or catalog unavailable"
VIEWS: tuple[str, ...] = ("tracked", "airing", "popular")


class CatalogUnavailableError(RuntimeError):
    """Raised when the catalog backing an aggregate view could not be read."""

    def __init__(self, kind: ErrorKind, detail: str = ""):
        super().__init__(CATALOG_UNAVAILABLE_MESSAGE)
        self.kind = kind
        self.detail = detail


class StaleViewError(RuntimeError):
    """Raised when a view load finished after the user switched views."""


def _require(outcome: Outcome[Any]) -> Any:
    if isinstance(outcome, Err):
        raise CatalogUnavailableError(outcome.kind, outcome.detail)
    return outcome.value


def _check_content_type(content_type: str) -> str:
    normalized = (content_type or "").strip().lower()
    if normalized not in CONTENT_TYPES:
        raise ValueError(f"Unsupported content type: {content_type}")
    return normalized


class TrackerService:
    """Coordinates catalog adapters, the refresh scheduler and the store.

    Every write to the tracked collection happens under one lock so two
    near-simultaneous actions cannot overwrite each other's changes.
    """

    def __init__(
        self,
        settings: Settings,
        tvmaze: TVMazeClient,
        jikan: JikanClient,
        wikidata: WikidataClient,
        matcher: IdentityMatcher,
        scheduler: RefreshScheduler,
        store: ShowStore,
        *,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._settings = settings
        self._tvmaze = tvmaze
        self._jikan = jikan
        self._wikidata = wikidata
        self._matcher = matcher
        self._scheduler = scheduler
        self._store = store
        self._clock = clock
        self._write_lock = asyncio.Lock()
        self._views = ViewGeneration()
        self._view_results: dict[str, list[Show]] = {}
        self._refresh_task: asyncio.Task[None] | None = None

    async def start(self) -> None:
        """Launch the daily refresh loop."""

        if self._refresh_task is None:
            self._refresh_task = asyncio.create_task(self._refresh_loop())

    async def stop(self) -> None:
        """Stop the background refresh loop."""

        if self._refresh_task is None:
            return
        self._refresh_task.cancel()
        with suppress(asyncio.CancelledError):
            await self._refresh_task
        self._refresh_task = None

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self._settings.refresh_interval_seconds)
            try:
                await self.refresh()
            except Exception as exc:  # pragma: no cover - background safety net
                logger.exception("Scheduled refresh failed: %s", exc)

    # Tracked collection -------------------------------------------------

    async def list_shows(
        self,
        *,
        sort_mode: str | None = None,
        status: str | None = None,
        page: int = 1,
    ) -> Page:
        preferences = await self._store.load_preferences()
        shows = await self._store.load_shows()
        filtered = filter_by_status(shows, status or preferences.status_filter)
        ordered = sort_shows(filtered, sort_mode or preferences.sort_mode)
        return paginate(ordered, page, self._settings.page_size)

    async def get_show(self, show_id: str) -> Show:
        for show in await self._store.load_shows():
            if show.id == show_id:
                return show
        raise KeyError(f"Show {show_id} is not tracked")

    async def add_show(self, summary: CatalogSummary) -> Show:
        """Start tracking a catalog entry, fetching its schedule once."""

        for show in await self._store.load_shows():
            if show.id == summary.id:
                return show

        show = await self._build_show(summary, self._clock())

        async with self._write_lock:
            shows = await self._store.load_shows()
            for existing in shows:
                if existing.id == show.id:
                    return existing
            shows.append(show)
            await self._store.save_shows(shows)
        logger.info("Tracking %s (%s)", show.id, show.name)
        return show

    async def _build_show(self, summary: CatalogSummary, now: datetime) -> Show:
        primary = summary
        fragments: list[CatalogSummary] = []
        fetched = False

        if summary.is_tv:
            outcome = await self._tvmaze.episodes_by_show_id(int(summary.source_id))
            if isinstance(outcome, Ok):
                primary = summary.model_copy(
                    update={"next_episode": compute_next_episode(outcome.value, now)}
                )
                fetched = True
        elif summary.content_type == "movie":
            fetched = True
        else:
            match = await self._matcher.match(summary, now)
            if isinstance(match, Ok):
                fragments.append(match.value)
                fetched = True
            else:
                # unfetched entries are retried by the next refresh
                fetched = match.kind is ErrorKind.NO_MATCH

        show = merge_fragments(primary, *fragments)
        if fetched:
            show = show.model_copy(update={"last_fetched_at": isoformat(now)})
        return show

    async def remove_show(self, show_id: str) -> None:
        async with self._write_lock:
            shows = await self._store.load_shows()
            remaining = [show for show in shows if show.id != show_id]
            if len(remaining) == len(shows):
                raise KeyError(f"Show {show_id} is not tracked")
            await self._store.save_shows(remaining)

    async def _update_show(self, show_id: str, **changes: Any) -> Show:
        async with self._write_lock:
            shows = await self._store.load_shows()
            for index, show in enumerate(shows):
                if show.id != show_id:
                    continue
                updated = show.model_copy(update=changes)
                shows[index] = updated
                await self._store.save_shows(shows)
                return updated
        raise KeyError(f"Show {show_id} is not tracked")

    async def set_priority(self, show_id: str, priority: bool) -> Show:
        return await self._update_show(show_id, priority=bool(priority))

    async def set_watch_link(self, show_id: str, link: str | None) -> Show:
        cleaned = (link or "").strip() or None
        return await self._update_show(show_id, watch_link=cleaned)

    async def set_watched(self, show_id: str, watched: bool) -> Show:
        watched_at = isoformat(self._clock()) if watched else None
        return await self._update_show(
            show_id, watched=bool(watched), watched_at=watched_at
        )

    async def refresh(self, now: datetime | None = None) -> list[Show]:
        """Refresh stale shows and store the result.

        The refresh runs on a snapshot; the write re-reads the collection so
        user actions made in the meantime are kept.
        """

        current = now or self._clock()
        snapshot = await self._store.load_shows()
        if not snapshot:
            return []
        refreshed = await self._scheduler.refresh_all(snapshot, current)
        async with self._write_lock:
            latest = await self._store.load_shows()
            merged = reconcile(latest, refreshed)
            await self._store.save_shows(merged)
        logger.info("Refresh pass finished for %s shows", len(merged))
        return merged

    # Catalog browsing ---------------------------------------------------

    async def search(
        self, query: str, content_type: str = "tv"
    ) -> list[CatalogSummary]:
        content_type = _check_content_type(content_type)
        if content_type == "tv":
            return _require(await self._tvmaze.search(query))
        if content_type == "anime":
            return _require(await self._jikan.search(query))
        return _require(await self._wikidata.search(query, ("movie",)))

    async def load_airing(
        self, content_type: str = "tv", now: datetime | None = None
    ) -> list[Show]:
        """Return entries airing now, each carrying an episode schedule."""

        content_type = _check_content_type(content_type)
        current = now or self._clock()
        if content_type == "tv":
            summaries = _require(await self._tvmaze.schedule_for_today(now=current))
            return [merge_fragments(summary) for summary in summaries]
        if content_type == "anime":
            summaries = _require(await self._jikan.top_airing())
            return _require(await self._matcher.cross_reference(summaries, current))
        return []

    async def load_popular(
        self,
        content_type: str = "tv",
        genre: str | None = None,
        now: datetime | None = None,
    ) -> list[Show]:
        content_type = _check_content_type(content_type)
        current = now or self._clock()
        genre = (genre or "").strip() or None
        if content_type == "tv":
            if genre:
                outcome = await self._tvmaze.search_by_genre_with_popularity(genre)
            else:
                outcome = await self._tvmaze.popular_shows()
            return [merge_fragments(summary) for summary in _require(outcome)]
        if content_type == "anime":
            if genre:
                outcome = await self._jikan.by_genre(genre)
            else:
                outcome = await self._jikan.top_airing(self._settings.popular_limit)
            return _require(
                await self._matcher.cross_reference(_require(outcome), current)
            )
        outcome = await self._wikidata.query_by_genre(genre or "", ("movie",))
        return [merge_fragments(summary) for summary in _require(outcome)]

    async def anime_genres(self) -> list[str]:
        return _require(await self._jikan.genre_list())

    async def open_view(
        self,
        view: str,
        *,
        content_type: str = "tv",
        genre: str | None = None,
    ) -> list[Show]:
        """Switch to ``view`` and load it, discarding superseded results."""

        if view not in VIEWS:
            raise ValueError(f"Unknown view: {view}")
        token = self._views.advance(view)

        if view == "airing":
            results = await self.load_airing(content_type)
        elif view == "popular":
            results = await self.load_popular(content_type, genre)
        else:
            results = sort_shows(await self._store.load_shows())

        if not self._views.is_current(token):
            logger.info("Discarding %s results, view changed while loading", view)
            raise StaleViewError(view)

        self._view_results[view] = results
        await self.update_preferences(current_view=view)
        return results

    def cached_view(self, view: str) -> list[Show] | None:
        return self._view_results.get(view)

    # Preferences and transfer -------------------------------------------

    async def get_preferences(self) -> Preferences:
        return await self._store.load_preferences()

    async def update_preferences(self, **changes: Any) -> Preferences:
        async with self._write_lock:
            current = await self._store.load_preferences()
            payload = current.model_dump()
            payload.update(
                {key: value for key, value in changes.items() if value is not None}
            )
            updated = Preferences.model_validate(payload)
            await self._store.save_preferences(updated)
        return updated

    async def export(self) -> ExportFile:
        return export_shows(await self._store.load_shows(), self._clock())

    async def import_shows(
        self, payload: Any, mode: ImportMode = "merge"
    ) -> tuple[list[Show], int]:
        """Import an exported file; returns the collection and number added."""

        document = parse_import(payload)
        async with self._write_lock:
            current = await self._store.load_shows()
            combined = apply_import(current, document.shows, mode)
            await self._store.save_shows(combined)
        base_count = 0 if mode == "replace" else len(current)
        return combined, len(combined) - base_count
