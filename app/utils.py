"""Utility helpers for the ShowTracker service."""

from __future__ import annotations

import html
import re
import unicodedata
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any


HTML_TAG_RE = re.compile(r"<[^>]+>")
WHITESPACE_RE = re.compile(r"\s+")


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""

    return datetime.now(timezone.utc)


def strip_html(value: Any) -> str:
    """Return plain text with tags removed and entities decoded."""

    if not isinstance(value, str) or not value:
        return ""
    text = HTML_TAG_RE.sub("", value)
    text = html.unescape(text)
    return WHITESPACE_RE.sub(" ", text).strip()


def resolve_image(value: Any) -> str | None:
    """Collapse a catalog image representation into a single URL.

    Catalogs return either a bare URL string or an object offering
    ``medium``/``original`` variants; ``medium`` wins when both exist.
    """

    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, Mapping):
        for key in ("medium", "original"):
            candidate = value.get(key)
            if isinstance(candidate, str) and candidate.strip():
                return candidate.strip()
    return None


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp, treating naive values as UTC."""

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = f"{text[:-1]}+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def isoformat(value: datetime) -> str:
    """Serialise a datetime as an ISO-8601 UTC string with millisecond precision."""

    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def collation_key(value: str) -> str:
    """Return an accent- and case-insensitive sort key for display names."""

    decomposed = unicodedata.normalize("NFKD", value or "")
    stripped = "".join(char for char in decomposed if not unicodedata.combining(char))
    return stripped.casefold()


def titles_match(left: str | None, right: str | None) -> bool:
    """Case-insensitive exact comparison used for cross-catalog matching."""

    if not left or not right:
        return False
    return left.strip().casefold() == right.strip().casefold()
