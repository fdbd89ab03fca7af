"""Tests for artifact serialization."""

import json
from datetime import datetime, timezone

import pytest

from sitecounts.load.artifacts import COUNTS_FILE, SEARCH_INDEX_FILE, write_artifacts
from sitecounts.models import CountsDocument, CountsSummary, Item, ItemId, SearchIndexEntry


def _item(key, title="Ma'ariv", date=datetime(2024, 1, 5, tzinfo=timezone.utc)):
    return Item(
        identity=ItemId(program="tefila", source="page", key=key),
        program="tefila",
        kind="video",
        title=title,
        date=date,
        url=f"https://example.org/{key}",
        page="/tefilah.html",
    )


def _document():
    return CountsDocument(
        all_shiurim=CountsSummary(total=3, breakdown={"tefila": {"video": 3, "audio": None}}, updated="2024-06-01"),
        recent=[_item("a")],
        recent_by_program={"tefila": [_item("a")]},
    )


def test_write_artifacts_shapes(tmp_path):
    paths = write_artifacts(str(tmp_path / "data"), _document(), [SearchIndexEntry(item=_item("b", title="Shir HaMaalos"))])
    assert [p.name for p in paths] == [COUNTS_FILE, SEARCH_INDEX_FILE]

    counts = json.loads((tmp_path / "data" / COUNTS_FILE).read_text())
    assert counts["allShiurim"]["breakdown"] == {"tefila": {"video": 3, "audio": None}}
    assert counts["recent"][0] == {
        "id": "tefila:page:a",
        "program": "tefila",
        "kind": "video",
        "title": "Ma'ariv",
        "url": "https://example.org/a",
        "date": "2024-01-05T00:00:00.000Z",
        "page": "/tefilah.html",
    }

    index = json.loads((tmp_path / "data" / SEARCH_INDEX_FILE).read_text())
    assert index[0]["title_lc"] == "shir hamaalos"


def test_write_artifacts_overwrites_whole_file(tmp_path):
    target = tmp_path / COUNTS_FILE
    target.write_text("x" * 10000)
    write_artifacts(str(tmp_path), _document(), [])
    text = target.read_text()
    assert text.endswith("}\n")
    json.loads(text)
    assert json.loads((tmp_path / SEARCH_INDEX_FILE).read_text()) == []
    assert not list(tmp_path.glob("*.tmp"))


def test_failed_staging_leaves_previous_pair(tmp_path):
    (tmp_path / COUNTS_FILE).write_text("previous counts")
    (tmp_path / SEARCH_INDEX_FILE).write_text("previous index")
    # The index temp file cannot be created when a directory sits in its place
    (tmp_path / (SEARCH_INDEX_FILE + ".tmp")).mkdir()

    with pytest.raises(OSError):
        write_artifacts(str(tmp_path), _document(), [])

    assert (tmp_path / COUNTS_FILE).read_text() == "previous counts"
    assert (tmp_path / SEARCH_INDEX_FILE).read_text() == "previous index"
    assert not (tmp_path / (COUNTS_FILE + ".tmp")).exists()
