"""Tests for M/D/YYYY parsing and category flattening."""

from datetime import datetime, timezone

from sitecounts.models import format_iso
from sitecounts.transform.flatten import flatten_categories, parse_mdy
from sitecounts.transform.recency import dedupe


def test_parse_mdy_valid_is_midnight_utc():
    assert parse_mdy("1/5/2024") == datetime(2024, 1, 5, tzinfo=timezone.utc)
    assert parse_mdy("12/31/1999") == datetime(1999, 12, 31, tzinfo=timezone.utc)
    assert parse_mdy("02/29/2024") == datetime(2024, 2, 29, tzinfo=timezone.utc)
    assert format_iso(parse_mdy("1/5/2024")) == "2024-01-05T00:00:00.000Z"


def test_parse_mdy_rejects_malformed():
    for bad in ["13/40/2024", "2/30/2024", "2/29/2023", "", None, "2024-01-05", "1/5/24", "Jan 5 2024", 20240105]:
        assert parse_mdy(bad) is None, bad


def _tree():
    return [
        {
            "title": "Shabbos",
            "subcategories": [
                {
                    "title": "Muktzeh",
                    "items": [
                        {"title": "Intro", "note": "3/1/2024", "url": "https://cdn.example/a.mp3"},
                        {"title": "Bad date", "note": "13/40/2024", "url": "https://cdn.example/b.mp3"},
                        {"title": "", "note": "3/2/2024", "url": "https://cdn.example/c.mp3"},
                    ],
                },
                {"title": "Empty"},
            ],
        },
        {
            "title": "Brachos",
            "subcategories": [
                {"title": "Food", "items": [{"title": "No url", "note": "4/1/2024"}, {"title": "No date"}]},
            ],
        },
    ]


def test_flatten_categories_drops_unparseable_dates():
    items = flatten_categories(_tree(), "halacha", "audio", "/halacha.html", "Halacha Shiur")
    assert [i.title for i in items] == ["Intro", "Halacha Shiur", "No url"]
    assert all(i.kind == "audio" and i.program == "halacha" for i in items)
    assert all(i.date is not None for i in items)
    assert items[0].date == datetime(2024, 3, 1, tzinfo=timezone.utc)


def test_flatten_categories_identity_uses_natural_key():
    items = flatten_categories(_tree(), "halacha", "audio", "/halacha.html", "Halacha Shiur")
    assert items[0].identity.key == "https://cdn.example/a.mp3"
    assert items[2].identity.key == "Brachos/Food/0/No url"
    assert items[2].url is None


def test_flatten_categories_does_not_mutate_input():
    tree = _tree()
    before = repr(tree)
    flatten_categories(tree, "halacha", "audio", "/halacha.html", "Halacha Shiur")
    assert repr(tree) == before


def test_flatten_categories_tolerates_garbage():
    assert flatten_categories(None, "h", "audio", "/h.html", "x") == []
    assert flatten_categories({"not": "a list"}, "h", "audio", "/h.html", "x") == []
    assert flatten_categories([None, 3, {"subcategories": "nope"}], "h", "audio", "/h.html", "x") == []


def test_flatten_categories_keeps_same_titled_leaves_without_urls():
    tree = [
        {
            "title": "Shabbos",
            "subcategories": [
                {
                    "title": "Borer",
                    "items": [
                        {"title": "Shiur", "note": "5/1/2024"},
                        {"title": "Shiur", "note": "5/8/2024"},
                        {"note": "5/15/2024"},
                        {"title": "", "note": "5/22/2024"},
                    ],
                }
            ],
        }
    ]
    items = flatten_categories(tree, "halacha", "audio", "/halacha.html", "Halacha Shiur")
    assert len(items) == 4
    assert len(dedupe(items)) == 4
    assert len({i.identity for i in items}) == 4


def test_flatten_categories_falls_back_to_date_when_note_is_null():
    tree = [{"title": "C", "subcategories": [{"title": "S", "items": [{"title": "T", "note": None, "date": "6/2/2024"}]}]}]
    items = flatten_categories(tree, "halacha", "audio", "/halacha.html", "Halacha Shiur")
    assert [i.date for i in items] == [datetime(2024, 6, 2, tzinfo=timezone.utc)]
