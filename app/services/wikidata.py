"""Client for the Wikidata SPARQL endpoint, used for movies."""

from __future__ import annotations

import logging
import re
from textwrap import dedent
from typing import Any, Iterable, Mapping

import httpx
from pydantic import ValidationError

from ..concurrency import RateLimiter
from ..config import Settings
from ..models import CatalogSummary
from ..outcome import Err, ErrorKind, Ok, Outcome
from .http import fetch_json, unexpected_shape

logger = logging.getLogger(__name__)

SOURCE = "wikidata"
ENTITY_PREFIX = "http://www.wikidata.org/entity/"
ITEM_ID_RE = re.compile(r"Q\d+")

MEDIA_TYPE_ITEMS: Mapping[str, str] = {
    "movie": "Q11424",
    "tv": "Q5398426",
    "anime": "Q63952888",
}
ITEM_MEDIA_TYPES: Mapping[str, str] = {
    item: media_type for media_type, item in MEDIA_TYPE_ITEMS.items()
}


def _escape_literal(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", " ")


def _entity_id(binding: Mapping[str, Any], key: str) -> str | None:
    value = (binding.get(key) or {}).get("value")
    if not isinstance(value, str) or not value.startswith(ENTITY_PREFIX):
        return None
    return value[len(ENTITY_PREFIX):]


def _literal(binding: Mapping[str, Any], key: str) -> str | None:
    value = (binding.get(key) or {}).get("value")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def build_query(
    *,
    media_types: Iterable[str],
    limit: int,
    genre: str | None = None,
    search: str | None = None,
    item_id: str | None = None,
) -> str:
    """Return a SPARQL query selecting media items with display fields."""

    type_items = " ".join(
        f"wd:{MEDIA_TYPE_ITEMS[media_type]}"
        for media_type in media_types
        if media_type in MEDIA_TYPE_ITEMS
    )
    if not type_items:
        raise ValueError("At least one supported media type is required")

    selector = ""
    if search:
        selector = dedent(
            f"""
            SERVICE wikibase:mwapi {{
              bd:serviceParam wikibase:endpoint "www.wikidata.org";
                              wikibase:api "EntitySearch";
                              mwapi:search "{_escape_literal(search)}";
                              mwapi:language "en".
              ?item wikibase:apiOutputItem mwapi:item.
            }}
            """
        )
    elif item_id:
        selector = f"VALUES ?item {{ wd:{item_id} }}"

    genre_clause = (
        "?item wdt:P136 ?genre . ?genre rdfs:label ?genreName .\n"
        'FILTER(LANG(?genreName) = "en")'
    )
    if genre:
        genre_clause += (
            f'\nFILTER(CONTAINS(LCASE(?genreName), "{_escape_literal(genre.lower())}"))'
        )
    else:
        genre_clause = f"OPTIONAL {{ {genre_clause} }}"

    return dedent(
        """
        SELECT ?item ?itemLabel ?type ?imdb ?image ?description ?sitelinks
               (MIN(?published) AS ?premiered)
               (GROUP_CONCAT(DISTINCT ?genreName; separator="|") AS ?genres)
        WHERE {{
          {selector}
          VALUES ?type {{ {type_items} }}
          ?item wdt:P31 ?type ;
                wikibase:sitelinks ?sitelinks .
          {genre_clause}
          OPTIONAL {{ ?item wdt:P345 ?imdb . }}
          OPTIONAL {{ ?item wdt:P18 ?image . }}
          OPTIONAL {{ ?item wdt:P577 ?published . }}
          OPTIONAL {{
            ?item schema:description ?description .
            FILTER(LANG(?description) = "en")
          }}
          SERVICE wikibase:label {{ bd:serviceParam wikibase:language "en". }}
        }}
        GROUP BY ?item ?itemLabel ?type ?imdb ?image ?description ?sitelinks
        ORDER BY DESC(?sitelinks)
        LIMIT {limit}
        """
    ).format(
        selector=selector.strip(),
        type_items=type_items,
        genre_clause=genre_clause,
        limit=int(limit),
    )


class WikidataClient:
    """Queries the knowledge graph for media items by genre or title."""

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        limiter: RateLimiter | None = None,
    ):
        self._settings = settings
        self._client = http_client
        self._limiter = limiter

    def _headers(self) -> dict[str, str]:
        return {
            "Accept": "application/sparql-results+json",
            "User-Agent": self._settings.user_agent,
        }

    async def _run(self, query: str) -> Outcome[list[CatalogSummary]]:
        outcome = await fetch_json(
            self._client,
            str(self._settings.wikidata_sparql_url),
            source=SOURCE,
            limiter=self._limiter,
            params={"query": query, "format": "json"},
            headers=self._headers(),
        )
        if not isinstance(outcome, Ok):
            return outcome
        payload = outcome.value if isinstance(outcome.value, dict) else {}
        results = payload.get("results")
        bindings = results.get("bindings") if isinstance(results, dict) else None
        if not isinstance(bindings, list):
            return unexpected_shape(SOURCE, "sparql")

        summaries: list[CatalogSummary] = []
        seen: set[str] = set()
        for binding in bindings:
            summary = self.to_summary(binding)
            if summary is None or summary.id in seen:
                continue
            seen.add(summary.id)
            summaries.append(summary)
        return Ok(summaries)

    async def query_by_genre(
        self,
        genre: str,
        media_types: Iterable[str] = ("movie",),
        limit: int | None = None,
    ) -> Outcome[list[CatalogSummary]]:
        """Return the most linked items of the media types tagged with a genre."""

        query = build_query(
            media_types=media_types,
            limit=limit or self._settings.popular_limit,
            genre=(genre or "").strip() or None,
        )
        return await self._run(query)

    async def search(
        self, query: str, media_types: Iterable[str] = ("movie",)
    ) -> Outcome[list[CatalogSummary]]:
        trimmed = (query or "").strip()
        if not trimmed:
            return Ok([])
        sparql = build_query(
            media_types=media_types,
            limit=self._settings.search_result_limit,
            search=trimmed,
        )
        return await self._run(sparql)

    async def details(self, item_id: str) -> Outcome[CatalogSummary]:
        cleaned = (item_id or "").strip().removeprefix("wd:")
        if not ITEM_ID_RE.fullmatch(cleaned):
            return Err(ErrorKind.NOT_FOUND, f"invalid item id {item_id!r}")
        sparql = build_query(
            media_types=MEDIA_TYPE_ITEMS.keys(), limit=1, item_id=cleaned
        )
        outcome = await self._run(sparql)
        if not isinstance(outcome, Ok):
            return outcome
        if not outcome.value:
            return Err(ErrorKind.NOT_FOUND, cleaned)
        return Ok(outcome.value[0])

    @staticmethod
    def to_summary(binding: Any) -> CatalogSummary | None:
        """Normalise a SPARQL result row."""

        if not isinstance(binding, dict):
            return None
        item_id = _entity_id(binding, "item")
        label = _literal(binding, "itemLabel")
        if not item_id or not label or label == item_id:
            return None
        type_item = _entity_id(binding, "type")
        content_type = ITEM_MEDIA_TYPES.get(type_item or "", "movie")
        genres_raw = _literal(binding, "genres") or ""
        sitelinks = _literal(binding, "sitelinks")
        premiered = _literal(binding, "premiered")
        try:
            return CatalogSummary(
                id=f"wd:{item_id}",
                name=label,
                image=_literal(binding, "image"),
                genres=[genre for genre in genres_raw.split("|") if genre],
                summary=_literal(binding, "description") or "",
                content_type=content_type,
                source=SOURCE,
                source_id=item_id,
                imdb_id=_literal(binding, "imdb"),
                popularity=float(sitelinks) if sitelinks else None,
                title_english=label,
                title_original=label,
                premiered=premiered[:10] if premiered else None,
            )
        except (ValidationError, TypeError, ValueError):
            logger.debug("Discarding malformed Wikidata row %s", item_id)
            return None
