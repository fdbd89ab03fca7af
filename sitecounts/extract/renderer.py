"""
Loads pages from the content server in a headless Chromium and copies out the
values they expose: the global breakdown fragment, named global datasets and
count attributes on DOM elements.

One browser, one page. Visits are strictly sequential because every
navigation mutates the same browsing context.
"""

import copy
from typing import Any, Dict, Optional
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright
from pydantic import ValidationError

from ..config import PageProbe
from ..errors import SourceUnreachableError
from ..models import PageSnapshot, ReadyState

DEFAULT_READY_TIMEOUT_MS = 8000
NAVIGATION_TIMEOUT_MS = 30000

# Runs in the page. Everything returned is serialized, so the snapshot never
# holds references into live page state.
READ_STATE_JS = """
({ fragmentGlobal, datasets, dom }) => {
  const read = (path) => path.split(".").reduce(
    (obj, key) => (obj === null || obj === undefined ? undefined : obj[key]),
    window
  );
  const fragment = read(fragmentGlobal);
  const out = {
    fragment: fragment && typeof fragment === "object" && !Array.isArray(fragment) ? fragment : null,
    datasets: {},
    dom: {},
  };
  for (const name of datasets) {
    const value = read(name);
    out.datasets[name] = value === undefined ? null : value;
  }
  for (const [key, selector, attribute] of dom) {
    const el = document.querySelector(selector);
    out.dom[key] = el ? el.getAttribute(attribute) : null;
  }
  return out;
}
"""


def _as_dict(value: Any) -> Optional[Dict[str, Any]]:
    return value if isinstance(value, dict) else None


def snapshot_from_payload(path: str, ready: ReadyState, payload: Optional[Dict[str, Any]]) -> PageSnapshot:
    payload = copy.deepcopy(_as_dict(payload) or {})
    try:
        return PageSnapshot(
            path=path,
            ready=ready,
            # A breakdown that is not an object exposes nothing usable
            fragment=_as_dict(payload.get("fragment")),
            datasets=_as_dict(payload.get("datasets")) or {},
            dom=_as_dict(payload.get("dom")) or {},
        )
    except ValidationError as e:
        raise SourceUnreachableError(f"unexpected state shape on {path}: {e}") from e


class PageRenderer:
    def __init__(self, base_url: str, ready_timeout_ms: int = DEFAULT_READY_TIMEOUT_MS, page=None):
        self.base_url = base_url.rstrip("/")
        self.ready_timeout_ms = ready_timeout_ms
        self._playwright = None
        self._browser = None
        self._page = page

    def __enter__(self) -> "PageRenderer":
        if self._page is None:
            self._playwright = sync_playwright().start()
            self._browser = self._playwright.chromium.launch(headless=True)
            self._page = self._browser.new_page()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        if self._browser is not None:
            self._browser.close()
            self._browser = None
        if self._playwright is not None:
            self._playwright.stop()
            self._playwright = None
        self._page = None

    def wait_until_ready(self, predicate: Optional[str]) -> ReadyState:
        """Bounded best-effort wait. Timing out is reported, never raised."""
        if not predicate:
            return ReadyState.READY
        try:
            self._page.wait_for_function(predicate, timeout=self.ready_timeout_ms)
            return ReadyState.READY
        except PlaywrightTimeoutError:
            return ReadyState.TIMED_OUT
        except PlaywrightError as e:
            print(f"    [Renderer] readiness check failed: {e}")
            return ReadyState.FAILED

    def render(self, probe: PageProbe) -> PageSnapshot:
        url = f"{self.base_url}{probe.path}"
        try:
            self._page.goto(url, wait_until="load", timeout=NAVIGATION_TIMEOUT_MS)
        except PlaywrightError as e:
            raise SourceUnreachableError(f"could not load {probe.path}: {e}") from e

        ready = self.wait_until_ready(probe.ready)
        if ready is not ReadyState.READY:
            print(f"    [Renderer] {probe.path}: readiness {ready.value}, reading whatever is there")

        try:
            payload = self._page.evaluate(
                READ_STATE_JS,
                {
                    "fragmentGlobal": probe.fragment_global,
                    "datasets": list(probe.datasets),
                    "dom": [list(entry) for entry in probe.dom],
                },
            )
        except PlaywrightError as e:
            raise SourceUnreachableError(f"could not read state from {probe.path}: {e}") from e

        return snapshot_from_payload(probe.path, ready, payload)
