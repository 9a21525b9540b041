"""Tests for cross-referencing anime and movies against the TV catalog."""

from __future__ import annotations

from datetime import timedelta

import httpx
import pytest

from app.models import CatalogSummary
from app.outcome import Err, ErrorKind, Ok
from app.services.matcher import IdentityMatcher
from app.services.tvmaze import TVMazeClient

from factories import (
    NOW,
    TVMAZE_BASE,
    build_settings,
    mock_client,
    tvmaze_episode,
    tvmaze_show,
)


def _anime(mal_id: int, title: str, **fields) -> CatalogSummary:
    data = {
        "id": f"mal:{mal_id}",
        "name": title,
        "content_type": "anime",
        "source": "jikan",
        "source_id": mal_id,
        "title_english": fields.pop("title_english", title),
        "title_original": fields.pop("title_original", title),
    }
    data.update(fields)
    return CatalogSummary(**data)


def _catalog_handler(shows: dict[str, list[dict]], imdb: dict[str, int] | None = None):
    """Serve search results keyed by lower-cased query plus episode lists."""

    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        path = request.url.path
        if path == "/search/shows":
            results = shows.get(request.url.params["q"].lower(), [])
            return httpx.Response(200, json=[{"show": show} for show in results])
        if path == "/lookup/shows":
            show_id = (imdb or {}).get(request.url.params["imdb"])
            if show_id is None:
                return httpx.Response(404)
            return httpx.Response(200, json=tvmaze_show(show_id, f"Show {show_id}"))
        if path.endswith("/episodes"):
            return httpx.Response(
                200,
                json=[
                    tvmaze_episode(1, timedelta(days=-7)),
                    tvmaze_episode(2, timedelta(days=2)),
                ],
            )
        return httpx.Response(404)

    return handler, requests


@pytest.mark.anyio("asyncio")
async def test_imdb_cross_reference_wins() -> None:
    handler, requests = _catalog_handler({}, imdb={"tt2560140": 42})

    async with mock_client(handler, TVMAZE_BASE) as http_client:
        matcher = IdentityMatcher(TVMazeClient(build_settings(), http_client))
        outcome = await matcher.match(
            _anime(16498, "Shingeki no Kyojin", imdb_id="tt2560140"), NOW
        )

    assert isinstance(outcome, Ok)
    assert outcome.value.id == "tv:42"
    assert outcome.value.next_episode is not None
    assert outcome.value.next_episode.number == 2
    assert [request.url.path for request in requests] == [
        "/lookup/shows",
        "/shows/42/episodes",
    ]


@pytest.mark.anyio("asyncio")
async def test_english_title_must_match_exactly() -> None:
    handler, _ = _catalog_handler(
        {
            "attack on titan": [
                tvmaze_show(7, "Attack on Titan: Junior High"),
                tvmaze_show(8, "ATTACK ON TITAN"),
            ]
        }
    )

    async with mock_client(handler, TVMAZE_BASE) as http_client:
        matcher = IdentityMatcher(TVMazeClient(build_settings(), http_client))
        outcome = await matcher.match(
            _anime(
                16498,
                "Shingeki no Kyojin",
                title_english="Attack on Titan",
                imdb_id="tt0000000",
            ),
            NOW,
        )

    assert isinstance(outcome, Ok)
    assert outcome.value.id == "tv:8"


@pytest.mark.anyio("asyncio")
async def test_original_title_is_tried_second() -> None:
    handler, requests = _catalog_handler(
        {
            "the apothecary diaries": [tvmaze_show(3, "Apothecary Diaries")],
            "kusuriya no hitorigoto": [tvmaze_show(4, "Kusuriya no Hitorigoto")],
        }
    )

    async with mock_client(handler, TVMAZE_BASE) as http_client:
        matcher = IdentityMatcher(TVMazeClient(build_settings(), http_client))
        outcome = await matcher.match(
            _anime(
                54492,
                "Kusuriya no Hitorigoto",
                title_english="The Apothecary Diaries",
            ),
            NOW,
        )

    assert isinstance(outcome, Ok)
    assert outcome.value.id == "tv:4"
    queries = [
        request.url.params["q"]
        for request in requests
        if request.url.path == "/search/shows"
    ]
    assert queries == ["The Apothecary Diaries", "Kusuriya no Hitorigoto"]


@pytest.mark.anyio("asyncio")
async def test_unmatched_title_reports_no_match() -> None:
    handler, _ = _catalog_handler({"obscure ova": [tvmaze_show(5, "Obscure OVA 2")]})

    async with mock_client(handler, TVMAZE_BASE) as http_client:
        matcher = IdentityMatcher(TVMazeClient(build_settings(), http_client))
        outcome = await matcher.match(_anime(1, "Obscure OVA"), NOW)

    assert isinstance(outcome, Err)
    assert outcome.kind is ErrorKind.NO_MATCH


@pytest.mark.anyio("asyncio")
async def test_tv_summaries_match_themselves() -> None:
    summary = TVMazeClient.to_summary(tvmaze_show(1, "Severance"))
    assert summary is not None

    async with mock_client(lambda request: httpx.Response(500), TVMAZE_BASE) as http_client:
        matcher = IdentityMatcher(TVMazeClient(build_settings(), http_client))
        outcome = await matcher.match(summary, NOW)

    assert outcome == Ok(summary)


@pytest.mark.anyio("asyncio")
async def test_cross_reference_omits_unmatched_entries() -> None:
    handler, _ = _catalog_handler(
        {
            "frieren": [tvmaze_show(60, "Frieren")],
            "dungeon meshi": [tvmaze_show(61, "Dungeon Meshi")],
        }
    )
    summaries = [
        _anime(1, "Frieren", image="https://cdn.example.com/frieren.jpg"),
        _anime(2, "Nothing Like It On TV"),
        _anime(3, "Dungeon Meshi"),
    ]

    async with mock_client(handler, TVMAZE_BASE) as http_client:
        matcher = IdentityMatcher(TVMazeClient(build_settings(), http_client), concurrency=2)
        outcome = await matcher.cross_reference(summaries, NOW)

    assert isinstance(outcome, Ok)
    shows = outcome.value
    assert [show.id for show in shows] == ["mal:1", "mal:3"]
    frieren = shows[0]
    assert frieren.content_type == "anime"
    assert frieren.image == "https://cdn.example.com/frieren.jpg"
    assert frieren.tv_catalog_id == 60
    assert frieren.next_episode is not None
    assert all(show.next_episode is not None for show in shows)


@pytest.mark.anyio("asyncio")
async def test_catalog_failure_is_not_reported_as_no_match() -> None:
    async with mock_client(lambda request: httpx.Response(503), TVMAZE_BASE) as http_client:
        matcher = IdentityMatcher(TVMazeClient(build_settings(), http_client))
        outcome = await matcher.match(_anime(1, "Frieren", imdb_id="tt22248376"), NOW)

    assert isinstance(outcome, Err)
    assert outcome.kind is ErrorKind.BAD_STATUS


@pytest.mark.anyio("asyncio")
async def test_episode_failure_after_match_is_returned() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/search/shows":
            return httpx.Response(200, json=[{"show": tvmaze_show(60, "Frieren")}])
        return httpx.Response(500)

    async with mock_client(handler, TVMAZE_BASE) as http_client:
        matcher = IdentityMatcher(TVMazeClient(build_settings(), http_client))
        outcome = await matcher.match(_anime(1, "Frieren"), NOW)

    assert isinstance(outcome, Err)
    assert outcome.kind is ErrorKind.BAD_STATUS


@pytest.mark.anyio("asyncio")
async def test_cross_reference_reports_outage_when_nothing_matched() -> None:
    summaries = [_anime(1, "Frieren"), _anime(2, "Dungeon Meshi")]

    async with mock_client(lambda request: httpx.Response(503), TVMAZE_BASE) as http_client:
        matcher = IdentityMatcher(TVMazeClient(build_settings(), http_client))
        outcome = await matcher.cross_reference(summaries, NOW)

    assert isinstance(outcome, Err)
    assert outcome.kind is ErrorKind.BAD_STATUS


@pytest.mark.anyio("asyncio")
async def test_cross_reference_keeps_matches_when_some_lookups_fail() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/search/shows":
            if request.url.params["q"] == "Frieren":
                return httpx.Response(200, json=[{"show": tvmaze_show(60, "Frieren")}])
            return httpx.Response(503)
        return httpx.Response(200, json=[tvmaze_episode(1, timedelta(days=1))])

    summaries = [_anime(1, "Frieren"), _anime(2, "Dungeon Meshi")]

    async with mock_client(handler, TVMAZE_BASE) as http_client:
        matcher = IdentityMatcher(TVMazeClient(build_settings(), http_client))
        outcome = await matcher.cross_reference(summaries, NOW)

    assert isinstance(outcome, Ok)
    assert [show.id for show in outcome.value] == ["mal:1"]


@pytest.mark.anyio("asyncio")
async def test_empty_input_cross_references_to_nothing() -> None:
    async with mock_client(lambda request: httpx.Response(503), TVMAZE_BASE) as http_client:
        matcher = IdentityMatcher(TVMazeClient(build_settings(), http_client))
        outcome = await matcher.cross_reference([], NOW)

    assert outcome == Ok([])
