"""Tests for the page renderer against a fake browser page."""

import pytest
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from sitecounts.config import PageProbe
from sitecounts.errors import SourceUnreachableError
from sitecounts.extract.renderer import PageRenderer, snapshot_from_payload
from sitecounts.models import ReadyState


class FakePage:
    def __init__(self, payload=None, goto_error=None, wait_error=None):
        self.payload = payload or {}
        self.goto_error = goto_error
        self.wait_error = wait_error
        self.calls = []

    def goto(self, url, wait_until=None, timeout=None):
        self.calls.append(("goto", url, wait_until))
        if self.goto_error is not None:
            raise self.goto_error

    def wait_for_function(self, predicate, timeout=None):
        self.calls.append(("wait", predicate, timeout))
        if self.wait_error is not None:
            raise self.wait_error

    def evaluate(self, script, arg):
        self.calls.append(("evaluate", arg))
        return self.payload


PAYLOAD = {
    "fragment": {"parsha": {"audio": 120, "video": None}},
    "datasets": {"TM_COUNTS": {"total_items": 44}},
    "dom": {"#halachaTotalAll@data-total": "311"},
}


def _probe(**kwargs):
    return PageProbe(path="/parsha.html", **kwargs)


def test_render_copies_exposed_state():
    page = FakePage(PAYLOAD)
    renderer = PageRenderer("http://127.0.0.1:4173/", page=page)
    probe = _probe(
        ready="() => window.SITE_COUNTS",
        datasets=["TM_COUNTS"],
        dom=[("#halachaTotalAll@data-total", "#halachaTotalAll", "data-total")],
    )
    snap = renderer.render(probe)

    assert snap.ready is ReadyState.READY
    assert snap.fragment == PAYLOAD["fragment"]
    assert snap.datasets == {"TM_COUNTS": {"total_items": 44}}
    assert snap.dom == {"#halachaTotalAll@data-total": "311"}
    assert page.calls[0] == ("goto", "http://127.0.0.1:4173/parsha.html", "load")
    assert page.calls[2][1]["dom"] == [["#halachaTotalAll@data-total", "#halachaTotalAll", "data-total"]]


def test_snapshot_does_not_share_payload():
    payload = {"fragment": {"x": {"video": 1}}}
    snap = snapshot_from_payload("/x.html", ReadyState.READY, payload)
    payload["fragment"]["x"]["video"] = 99
    assert snap.fragment == {"x": {"video": 1}}


def test_readiness_timeout_degrades():
    page = FakePage(PAYLOAD, wait_error=PlaywrightTimeoutError("Timeout 8000ms exceeded."))
    snap = PageRenderer("http://127.0.0.1:4173", ready_timeout_ms=10, page=page).render(_probe(ready="() => false"))
    assert snap.ready is ReadyState.TIMED_OUT
    assert snap.fragment == PAYLOAD["fragment"]


def test_readiness_failure_is_reported():
    page = FakePage(PAYLOAD, wait_error=PlaywrightError("Execution context was destroyed"))
    snap = PageRenderer("http://127.0.0.1:4173", page=page).render(_probe(ready="() => boom()"))
    assert snap.ready is ReadyState.FAILED


def test_no_predicate_means_ready_on_load():
    page = FakePage(PAYLOAD)
    snap = PageRenderer("http://127.0.0.1:4173", page=page).render(_probe())
    assert snap.ready is ReadyState.READY
    assert [c[0] for c in page.calls] == ["goto", "evaluate"]


def test_navigation_failure_is_source_unreachable():
    page = FakePage(goto_error=PlaywrightError("net::ERR_CONNECTION_REFUSED"))
    with pytest.raises(SourceUnreachableError):
        PageRenderer("http://127.0.0.1:4173", page=page).render(_probe())


def test_array_fragment_is_treated_as_absent():
    snap = snapshot_from_payload("/x.html", ReadyState.READY, {"fragment": [1, 2], "datasets": {"A": [1]}})
    assert snap.fragment is None
    assert snap.datasets == {"A": [1]}


def test_array_fragment_through_render():
    page = FakePage({"fragment": [{"parsha": {"audio": 1}}], "dom": {}})
    snap = PageRenderer("http://127.0.0.1:4173", page=page).render(_probe())
    assert snap.fragment is None


def test_malformed_dom_values_skip_the_page():
    with pytest.raises(SourceUnreachableError):
        snapshot_from_payload("/x.html", ReadyState.READY, {"dom": {"#c@data-total": {"nested": True}}})


def test_non_object_payload_is_empty_snapshot():
    snap = snapshot_from_payload("/x.html", ReadyState.TIMED_OUT, ["not", "a", "dict"])
    assert snap.fragment is None
    assert snap.datasets == {}
    assert snap.dom == {}
