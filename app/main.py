"""Entry point for the FastAPI-powered show tracker."""

from __future__ import annotations

import json
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import timedelta
from typing import Any

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError, field_validator

from .concurrency import RateLimiter
from .config import settings
from .countdown import get_countdown_info
from .database import Database
from .models import (
    CatalogSummary,
    RecordModel,
    Show,
    SortMode,
    normalise_sort_mode,
)
from .services.jikan import JikanClient
from .services.matcher import IdentityMatcher
from .services.scheduler import RefreshScheduler
from .services.tracker import (
    CATALOG_UNAVAILABLE_MESSAGE,
    CatalogUnavailableError,
    StaleViewError,
    TrackerService,
)
from .services.tvmaze import TVMazeClient
from .services.wikidata import WikidataClient
from .store import ShowStore
from .utils import utcnow

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI


class PriorityUpdate(RecordModel):
    priority: bool


class WatchLinkUpdate(RecordModel):
    watch_link: str | None = None


class WatchedUpdate(RecordModel):
    watched: bool


class PreferencesUpdate(RecordModel):
    sort_mode: SortMode | None = None
    status_filter: str | None = None
    current_view: str | None = None

    @field_validator("sort_mode", mode="before")
    @classmethod
    def _normalise_sort_mode(cls, value: object) -> object:
        return normalise_sort_mode(value)


@asynccontextmanager
async def lifespan(_: FastAPI):
    exit_stack = AsyncExitStack()
    headers = {"User-Agent": settings.user_agent}
    tvmaze_http = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.tvmaze_api_url),
            timeout=httpx.Timeout(15.0, connect=5.0),
            headers=headers,
        )
    )
    jikan_http = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=str(settings.jikan_api_url),
            timeout=httpx.Timeout(20.0, connect=10.0),
            headers=headers,
        )
    )
    wikidata_http = await exit_stack.enter_async_context(
        httpx.AsyncClient(timeout=httpx.Timeout(60.0, connect=10.0))
    )
    database = Database(settings.database_url)
    await database.create_all()

    limiter = RateLimiter(settings.min_intervals())
    tvmaze = TVMazeClient(settings, tvmaze_http, limiter)
    jikan = JikanClient(settings, jikan_http, limiter)
    wikidata = WikidataClient(settings, wikidata_http, limiter)
    matcher = IdentityMatcher(tvmaze, concurrency=settings.match_concurrency)
    scheduler = RefreshScheduler(
        tvmaze,
        matcher=matcher,
        max_age=timedelta(seconds=settings.stale_after_seconds),
    )
    tracker = TrackerService(
        settings,
        tvmaze,
        jikan,
        wikidata,
        matcher,
        scheduler,
        ShowStore(database.session_factory),
    )

    app.state.tracker = tracker
    app.state.database = database
    await tracker.start()

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await tracker.stop()
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Tracks followed shows and their next episodes",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_tracker(app: FastAPI) -> TrackerService:
    tracker = getattr(app.state, "tracker", None)
    if not isinstance(tracker, TrackerService):
        raise RuntimeError("Tracker service not initialised")
    return tracker


def show_payload(show: Show) -> dict[str, Any]:
    """Serialise a show together with its current countdown."""

    payload = show.to_payload()
    airstamp = show.next_episode.airstamp if show.next_episode else None
    payload["countdown"] = get_countdown_info(airstamp, utcnow()).to_payload()
    return payload


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except json.JSONDecodeError as exc:
        raise HTTPException(status_code=400, detail="Invalid JSON payload") from exc


def _validate(model: type[RecordModel], payload: Any) -> Any:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise HTTPException(
            status_code=400, detail=exc.errors(include_url=False)
        ) from exc


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/shows")
    async def list_shows(
        sort: str | None = None, status: str | None = None, page: int = 1
    ) -> dict[str, Any]:
        tracker = get_tracker(fastapi_app)
        result = await tracker.list_shows(sort_mode=sort, status=status, page=page)
        return {
            "shows": [show_payload(show) for show in result.items],
            "hasMore": result.has_more,
            "total": result.total,
            "page": page,
        }

    @fastapi_app.post("/shows", status_code=201)
    async def add_show(request: Request) -> dict[str, Any]:
        tracker = get_tracker(fastapi_app)
        summary = _validate(CatalogSummary, await _read_json(request))
        show = await tracker.add_show(summary)
        return show_payload(show)

    @fastapi_app.get("/shows/{show_id}")
    async def get_show(show_id: str) -> dict[str, Any]:
        tracker = get_tracker(fastapi_app)
        try:
            show = await tracker.get_show(show_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return show_payload(show)

    @fastapi_app.get("/shows/{show_id}/countdown")
    async def show_countdown(show_id: str) -> dict[str, Any]:
        tracker = get_tracker(fastapi_app)
        try:
            show = await tracker.get_show(show_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        airstamp = show.next_episode.airstamp if show.next_episode else None
        return get_countdown_info(airstamp, utcnow()).to_payload()

    @fastapi_app.delete("/shows/{show_id}", status_code=204)
    async def remove_show(show_id: str) -> None:
        tracker = get_tracker(fastapi_app)
        try:
            await tracker.remove_show(show_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

    @fastapi_app.post("/shows/{show_id}/priority")
    async def set_priority(show_id: str, request: Request) -> dict[str, Any]:
        tracker = get_tracker(fastapi_app)
        update = _validate(PriorityUpdate, await _read_json(request))
        try:
            show = await tracker.set_priority(show_id, update.priority)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return show_payload(show)

    @fastapi_app.post("/shows/{show_id}/link")
    async def set_watch_link(show_id: str, request: Request) -> dict[str, Any]:
        tracker = get_tracker(fastapi_app)
        update = _validate(WatchLinkUpdate, await _read_json(request))
        try:
            show = await tracker.set_watch_link(show_id, update.watch_link)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return show_payload(show)

    @fastapi_app.post("/shows/{show_id}/watched")
    async def set_watched(show_id: str, request: Request) -> dict[str, Any]:
        tracker = get_tracker(fastapi_app)
        update = _validate(WatchedUpdate, await _read_json(request))
        try:
            show = await tracker.set_watched(show_id, update.watched)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return show_payload(show)

    @fastapi_app.get("/search")
    async def search(q: str = "", type: str = "tv") -> dict[str, Any]:
        tracker = get_tracker(fastapi_app)
        try:
            results = await tracker.search(q, type)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except CatalogUnavailableError as exc:
            raise HTTPException(
                status_code=503, detail=CATALOG_UNAVAILABLE_MESSAGE
            ) from exc
        return {"results": [summary.to_payload() for summary in results]}

    @fastapi_app.get("/views/{view}")
    async def open_view(
        view: str, type: str = "tv", genre: str | None = None
    ) -> dict[str, Any]:
        tracker = get_tracker(fastapi_app)
        try:
            shows = await tracker.open_view(view, content_type=type, genre=genre)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except CatalogUnavailableError as exc:
            raise HTTPException(
                status_code=503, detail=CATALOG_UNAVAILABLE_MESSAGE
            ) from exc
        except StaleViewError as exc:
            raise HTTPException(
                status_code=409, detail="View changed before results arrived"
            ) from exc
        return {"view": view, "shows": [show_payload(show) for show in shows]}

    @fastapi_app.get("/genres/anime")
    async def anime_genres() -> dict[str, Any]:
        tracker = get_tracker(fastapi_app)
        try:
            genres = await tracker.anime_genres()
        except CatalogUnavailableError as exc:
            raise HTTPException(
                status_code=503, detail=CATALOG_UNAVAILABLE_MESSAGE
            ) from exc
        return {"genres": genres}

    @fastapi_app.post("/refresh")
    async def refresh() -> dict[str, Any]:
        tracker = get_tracker(fastapi_app)
        shows = await tracker.refresh()
        return {"shows": [show_payload(show) for show in shows]}

    @fastapi_app.get("/export")
    async def export() -> dict[str, Any]:
        tracker = get_tracker(fastapi_app)
        document = await tracker.export()
        return document.to_payload()

    @fastapi_app.post("/import")
    async def import_shows(request: Request, mode: str = "merge") -> dict[str, Any]:
        if mode not in {"merge", "replace"}:
            raise HTTPException(status_code=400, detail="Unsupported import mode")
        tracker = get_tracker(fastapi_app)
        payload = await _read_json(request)
        try:
            shows, added = await tracker.import_shows(payload, mode)  # type: ignore[arg-type]
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return {"added": added, "total": len(shows)}

    @fastapi_app.get("/preferences")
    async def get_preferences() -> dict[str, Any]:
        tracker = get_tracker(fastapi_app)
        return (await tracker.get_preferences()).to_payload()

    @fastapi_app.put("/preferences")
    async def update_preferences(request: Request) -> dict[str, Any]:
        tracker = get_tracker(fastapi_app)
        update = _validate(PreferencesUpdate, await _read_json(request))
        preferences = await tracker.update_preferences(
            **update.model_dump(exclude_none=True)
        )
        return preferences.to_payload()


app = create_app()
