from datetime import timedelta

from app.models import CatalogSummary, Episode, Preferences, Show

from factories import stamp


def test_show_serialises_with_camel_case_keys():
    show = Show(
        id="tv:1",
        name="Severance",
        content_type="tv",
        next_episode={"season": 2, "number": 1, "airstamp": stamp(timedelta(days=1))},
        tv_catalog_id=1,
        watch_link="https://stream.example.com/1",
    )

    payload = show.to_payload()

    assert payload["contentType"] == "tv"
    assert payload["nextEpisode"]["season"] == 2
    assert payload["tvCatalogId"] == 1
    assert payload["watchLink"] == "https://stream.example.com/1"
    assert Show.model_validate(payload) == show


def test_show_fields_are_cleaned():
    show = Show.model_validate(
        {
            "id": "mal:1",
            "name": "Mushishi",
            "contentType": "anime",
            "genres": ["Mystery", "", None, " Slice of Life "],
            "summary": None,
            "image": "  ",
            "status": "",
        }
    )

    assert show.genres == ["Mystery", "Slice of Life"]
    assert show.summary == ""
    assert show.image is None
    assert show.status is None


def test_movies_drop_episode_data():
    summary = CatalogSummary(
        id="wd:Q1",
        name="Heat",
        content_type="movie",
        source="wikidata",
        source_id="Q1",
        next_episode={"airstamp": stamp(timedelta(days=1))},
    )

    assert summary.next_episode is None
    assert not summary.is_tv


def test_with_user_fields_from_copies_only_user_fields():
    catalog = Show(id="tv:1", name="New name", content_type="tv", priority=False)
    stored = Show(
        id="tv:1",
        name="Old name",
        content_type="tv",
        priority=True,
        watched=True,
        watched_at="2024-05-01T00:00:00.000Z",
    )

    merged = catalog.with_user_fields_from(stored)

    assert merged.name == "New name"
    assert merged.priority is True
    assert merged.watched is True
    assert merged.watched_at == "2024-05-01T00:00:00.000Z"


def test_episode_converts_to_next_episode():
    episode = Episode(id=3, season=1, number=3, airstamp="2024-05-02T00:00:00.000Z")

    assert episode.to_next_episode().model_dump() == {
        "season": 1,
        "number": 3,
        "airstamp": "2024-05-02T00:00:00.000Z",
    }


def test_preferences_normalise_values():
    preferences = Preferences.model_validate({"sortMode": " Alpha ", "statusFilter": " Ended "})

    assert preferences.sort_mode == "alpha"
    assert preferences.status_filter == "Ended"
    assert Preferences.model_validate({"sortMode": None}).sort_mode == "soonest"


def test_tv_catalog_id_defaults_from_tv_show_id():
    imported = Show.model_validate({"id": "tv:82", "name": "Severance", "contentType": "tv"})
    explicit = Show(id="tv:82", name="Severance", content_type="tv", tv_catalog_id=7)
    anime = Show(id="mal:82", name="Frieren", content_type="anime")

    assert imported.tv_catalog_id == 82
    assert explicit.tv_catalog_id == 7
    assert anime.tv_catalog_id is None
