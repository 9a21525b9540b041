"""Tests for the SQLite-backed show store."""

from __future__ import annotations

import pytest

from app.database import Database
from app.models import Preferences
from app.store import SHOWS_KEY, ShowStore

from factories import make_show


@pytest.fixture
async def database(tmp_path):
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    await database.create_all()
    try:
        yield database
    finally:
        await database.dispose()


@pytest.mark.anyio("asyncio")
async def test_empty_store_has_defaults(database: Database) -> None:
    store = ShowStore(database.session_factory)

    assert await store.load_shows() == []
    assert await store.load_preferences() == Preferences()


@pytest.mark.anyio("asyncio")
async def test_collection_is_written_and_read_whole(database: Database) -> None:
    store = ShowStore(database.session_factory)
    first = [make_show("tv:1", priority=True), make_show("tv:2")]

    await store.save_shows(first)
    await store.save_shows(first[1:])
    loaded = await store.load_shows()

    assert [show.id for show in loaded] == ["tv:2"]


@pytest.mark.anyio("asyncio")
async def test_user_fields_survive_persistence(database: Database) -> None:
    store = ShowStore(database.session_factory)
    show = make_show(
        "mal:1",
        content_type="anime",
        watched=True,
        watched_at="2024-05-01T12:00:00.000Z",
        watch_link="https://stream.example.com/1",
        tv_catalog_id=77,
    )

    await store.save_shows([show])
    [loaded] = await store.load_shows()

    assert loaded.model_dump() == show.model_dump()


@pytest.mark.anyio("asyncio")
async def test_unreadable_entries_are_skipped(database: Database) -> None:
    store = ShowStore(database.session_factory)
    await store._write(
        SHOWS_KEY,
        [{"id": "tv:1", "name": "Kept", "contentType": "tv"}, {"id": "tv:2"}],
    )

    loaded = await store.load_shows()

    assert [show.id for show in loaded] == ["tv:1"]


@pytest.mark.anyio("asyncio")
async def test_preferences_round_trip(database: Database) -> None:
    store = ShowStore(database.session_factory)

    await store.save_preferences(
        Preferences(sort_mode="alpha", status_filter="Ended", current_view="popular")
    )
    loaded = await store.load_preferences()

    assert loaded.sort_mode == "alpha"
    assert loaded.status_filter == "Ended"
    assert loaded.current_view == "popular"
