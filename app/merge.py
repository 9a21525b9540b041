"""Field-level fallback combining catalog fragments into one tracked show."""

from __future__ import annotations

from typing import Any, Union

from .models import CatalogSummary, Show

Fragment = Union[CatalogSummary, Show]

_FALLBACK_FIELDS: dict[str, Any] = {
    "genres": list,
    "summary": str,
    "status": lambda: None,
    "image": lambda: None,
}


def _first_filled(fragments: tuple[Fragment, ...], field: str) -> Any:
    for fragment in fragments:
        value = getattr(fragment, field)
        if value:
            return value
    return _FALLBACK_FIELDS[field]()


def _tv_catalog_id(fragment: Fragment) -> int | None:
    if isinstance(fragment, Show):
        return fragment.tv_catalog_id
    if fragment.is_tv:
        try:
            return int(fragment.source_id)
        except (TypeError, ValueError):
            return None
    return None


def merge_fragments(primary: Fragment, *secondaries: Fragment) -> Show:
    """Return one show built from ``primary`` with ``secondaries`` as fallbacks.

    Identity fields always come from the primary fragment. User-owned fields
    are never read from catalog data: an existing show as primary keeps its
    own, anything else starts with the creation defaults.
    """

    fragments = (primary, *secondaries)

    data: dict[str, Any] = {
        "id": primary.id,
        "name": primary.name,
        "content_type": primary.content_type,
    }
    for field in _FALLBACK_FIELDS:
        value = _first_filled(fragments, field)
        data[field] = list(value) if field == "genres" else value

    next_episode = None
    for fragment in fragments:
        if fragment.next_episode is not None:
            next_episode = fragment.next_episode.model_copy()
            break
    data["next_episode"] = next_episode

    tv_catalog_id = None
    for fragment in fragments:
        tv_catalog_id = _tv_catalog_id(fragment)
        if tv_catalog_id is not None:
            break
    data["tv_catalog_id"] = tv_catalog_id

    last_fetched_at = None
    for fragment in fragments:
        if isinstance(fragment, Show) and fragment.last_fetched_at:
            last_fetched_at = fragment.last_fetched_at
            break
    data["last_fetched_at"] = last_fetched_at

    if isinstance(primary, Show):
        data.update(
            priority=primary.priority,
            watch_link=primary.watch_link,
            watched=primary.watched,
            watched_at=primary.watched_at,
        )

    return Show(**data)
