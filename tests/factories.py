"""Builders for settings, catalog payloads and tracked shows used in tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import httpx

from app.config import Settings
from app.models import NextEpisode, Show
from app.utils import isoformat

NOW = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)

TVMAZE_BASE = "https://api.tvmaze.example"
JIKAN_BASE = "https://api.jikan.example/v4"


def build_settings(**overrides: Any) -> Settings:
    """Return a settings object with defaults suitable for tests."""

    base: dict[str, Any] = {"JIKAN_MIN_INTERVAL_MS": 0}
    base.update(overrides)
    return Settings(_env_file=None, **base)  # type: ignore[arg-type]


def mock_client(
    handler: Callable[[httpx.Request], Any], base_url: str = ""
) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.MockTransport(handler), base_url=base_url
    )


def stamp(offset: timedelta) -> str:
    """Return the airstamp ``offset`` away from :data:`NOW`."""

    return isoformat(NOW + offset)


def tvmaze_show(show_id: int, name: str, **fields: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": show_id,
        "name": name,
        "genres": ["Drama"],
        "status": "Running",
        "summary": f"<p>{name} summary</p>",
        "image": {
            "medium": f"https://img.example.com/medium/{show_id}.jpg",
            "original": f"https://img.example.com/original/{show_id}.jpg",
        },
        "weight": 50,
        "externals": {"imdb": None},
        "premiered": "2020-01-01",
        "rating": {"average": 7.5},
    }
    payload.update(fields)
    return payload


def tvmaze_episode(episode_id: int, offset: timedelta, **fields: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": episode_id,
        "season": 1,
        "number": episode_id,
        "name": f"Episode {episode_id}",
        "airstamp": stamp(offset),
    }
    payload.update(fields)
    return payload


def jikan_anime(mal_id: int, title: str, **fields: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "mal_id": mal_id,
        "title": title,
        "title_english": None,
        "genres": [{"mal_id": 1, "name": "Action"}],
        "images": {
            "jpg": {
                "image_url": f"https://cdn.example.com/{mal_id}.jpg",
                "large_image_url": f"https://cdn.example.com/{mal_id}l.jpg",
            }
        },
        "members": 1000,
        "score": 8.1,
        "status": "Currently Airing",
        "synopsis": "A <i>great</i> story.",
    }
    payload.update(fields)
    return payload


def make_show(show_id: str, name: str | None = None, **fields: Any) -> Show:
    """Return a tracked show; ``airstamp`` is a shortcut for the next episode."""

    airstamp = fields.pop("airstamp", None)
    data: dict[str, Any] = {
        "id": show_id,
        "name": name or show_id,
        "content_type": "tv",
        "status": "Running",
    }
    if airstamp is not None:
        data["next_episode"] = NextEpisode(season=1, number=1, airstamp=airstamp)
    data.update(fields)
    return Show(**data)
