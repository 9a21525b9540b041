"""Pydantic models describing tracked shows and catalog payloads."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

ContentType = Literal["tv", "anime", "movie"]
CatalogSource = Literal["tvmaze", "jikan", "wikidata"]
SortMode = Literal["soonest", "alpha"]
CountdownMode = Literal["none", "past", "upcoming"]

CONTENT_TYPES: tuple[str, ...] = ("tv", "anime", "movie")


def normalise_sort_mode(value: object) -> object:
    """Fold user-typed sort modes such as ``" Alpha "`` onto ``"alpha"``."""

    if isinstance(value, str):
        return value.strip().lower()
    return value


class RecordModel(BaseModel):
    """Base model serialising to the camelCase record shape."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    def to_payload(self) -> dict[str, object]:
        return self.model_dump(mode="json", by_alias=True)


class NextEpisode(RecordModel):
    """The earliest upcoming episode of a show."""

    season: int | None = None
    number: int | None = None
    airstamp: str


class Episode(RecordModel):
    """A single entry of the TV catalog's episode list."""

    id: int | None = None
    season: int | None = None
    number: int | None = None
    name: str | None = None
    airstamp: str | None = None

    def to_next_episode(self) -> NextEpisode:
        return NextEpisode(
            season=self.season, number=self.number, airstamp=self.airstamp or ""
        )


class _ShowFields(RecordModel):
    """Fields shared by catalog fragments and tracked shows."""

    id: str
    name: str
    image: str | None = None
    genres: list[str] = Field(default_factory=list)
    status: str | None = None
    summary: str = ""
    content_type: ContentType
    next_episode: NextEpisode | None = None

    @field_validator("genres", mode="before")
    @classmethod
    def _clean_genres(cls, value: object) -> object:
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return [str(entry).strip() for entry in value if str(entry or "").strip()]
        return value

    @field_validator("summary", mode="before")
    @classmethod
    def _default_summary(cls, value: object) -> object:
        return "" if value is None else value

    @field_validator("image", "status", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @model_validator(mode="after")
    def _movies_have_no_schedule(self):
        if self.content_type == "movie":
            self.next_episode = None
        return self


class CatalogSummary(_ShowFields):
    """A single catalog's normalized record, prior to merging."""

    source: CatalogSource
    source_id: int | str
    imdb_id: str | None = None
    popularity: float | None = None
    title_english: str | None = None
    title_original: str | None = None
    premiered: str | None = None
    rating: float | None = None

    @property
    def is_tv(self) -> bool:
        return self.source == "tvmaze"


class Show(_ShowFields):
    """A show tracked by the user."""

    tv_catalog_id: int | None = None
    last_fetched_at: str | None = None
    priority: bool = False
    watch_link: str | None = None
    watched: bool = False
    watched_at: str | None = None

    @model_validator(mode="after")
    def _tv_id_from_show_id(self):
        if self.tv_catalog_id is None and self.content_type == "tv":
            prefix, _, native = self.id.partition(":")
            if prefix == "tv" and native.isdigit():
                self.tv_catalog_id = int(native)
        return self

    def with_user_fields_from(self, other: "Show") -> "Show":
        """Return a copy carrying ``other``'s user-owned fields."""

        return self.model_copy(
            update={
                "priority": other.priority,
                "watch_link": other.watch_link,
                "watched": other.watched,
                "watched_at": other.watched_at,
            }
        )


class CountdownInfo(RecordModel):
    """Display-ready countdown state for a single airstamp."""

    mode: CountdownMode
    label: str
    progress: int
    days: int | None = None
    hours: int | None = None
    minutes: int | None = None
    seconds: int | None = None

    def to_payload(self) -> dict[str, object]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Preferences(RecordModel):
    """User preferences persisted alongside the tracked collection."""

    sort_mode: SortMode = "soonest"
    status_filter: str = "all"
    current_view: str = "tracked"

    @field_validator("sort_mode", mode="before")
    @classmethod
    def _normalise_sort_mode(cls, value: object) -> object:
        if value is None or value == "":
            return "soonest"
        return normalise_sort_mode(value)

    @field_validator("status_filter", "current_view", mode="before")
    @classmethod
    def _strip(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value
