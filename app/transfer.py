"""Export and import of the tracked collection as a JSON document."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Any, Literal

from pydantic import Field, ValidationError

from .models import RecordModel, Show
from .utils import isoformat, utcnow

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"

ImportMode = Literal["merge", "replace"]


class ExportFile(RecordModel):
    """Serialized snapshot of the tracked collection."""

    version: str = EXPORT_VERSION
    exported_at: str
    shows: list[Show] = Field(default_factory=list)


def export_shows(shows: Sequence[Show], now: datetime | None = None) -> ExportFile:
    return ExportFile(exported_at=isoformat(now or utcnow()), shows=list(shows))


def parse_import(payload: Any) -> ExportFile:
    """Validate an import document, raising ``ValueError`` when unusable."""

    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise ValueError("Import file is not valid JSON") from exc
    if not isinstance(payload, dict):
        raise ValueError("Import file must be a JSON object")

    shows = payload.get("shows")
    if not isinstance(shows, list) or not shows:
        raise ValueError("Import file contains no shows")

    document = dict(payload)
    document.setdefault("version", EXPORT_VERSION)
    document.setdefault("exportedAt", isoformat(utcnow()))
    try:
        parsed = ExportFile.model_validate(document)
    except ValidationError as exc:
        raise ValueError(
            f"Import file contains invalid shows ({exc.error_count()} errors)"
        ) from exc
    if parsed.version != EXPORT_VERSION:
        logger.info("Importing file with version %s", parsed.version)
    return parsed


def apply_import(
    current: Sequence[Show],
    imported: Sequence[Show],
    mode: ImportMode = "merge",
) -> list[Show]:
    """Combine an imported collection with the current one.

    ``replace`` discards the current collection; ``merge`` appends imported
    shows whose id is not already tracked.
    """

    if mode == "replace":
        base: list[Show] = []
    elif mode == "merge":
        base = list(current)
    else:
        raise ValueError(f"Unsupported import mode: {mode}")

    seen = {show.id for show in base}
    result = list(base)
    for show in imported:
        if show.id in seen:
            continue
        seen.add(show.id)
        result.append(show)
    return result
