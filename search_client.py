"""Client-side search session for pages embedding the result widget.

Two modes mirror the two ways a page can search:

- ``remote``: every (debounced) keystroke calls ``/api/search``
- ``local``: ``/api/data`` is loaded once per session and filtered in process
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urljoin

import requests

from client_cache import SingleFlightCache
from errors import UpstreamError
from search import ALL_COLLECTIONS, filter_items
from stores.base import Item
from widget import SearchWidget

logger = logging.getLogger(__name__)

REMOTE_DEBOUNCE_MS = 300
LOCAL_DEBOUNCE_MS = 100
REQUEST_TIMEOUT_SECONDS = 10
DEFAULT_API_URL = "http://localhost:5000"

Results = List[Dict[str, Any]]


class Debouncer:
    """Coalesce bursts of calls into one trailing call with the latest arguments."""

    def __init__(self, fn: Callable[..., Any], delay_ms: int, timer_factory=threading.Timer):
        self._fn = fn
        self._delay = max(delay_ms, 0) / 1000.0
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer = None
        self._pending = None
        self._generation = 0

    def __call__(self, *args, **kwargs) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            self._pending = (args, kwargs)
            self._timer = self._timer_factory(self._delay, self._fire, args=(self._generation,))
            self._timer.daemon = True
            self._timer.start()

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._pending is None:
                return
            args, kwargs = self._pending
            self._pending = None
            self._timer = None
        self._fn(*args, **kwargs)

    def flush(self) -> None:
        """Run the pending call now, if any."""

        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            pending = self._pending
            self._pending = None
            self._timer = None
            self._generation += 1
        if pending is not None:
            args, kwargs = pending
            self._fn(*args, **kwargs)

    def cancel(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._pending = None
            self._timer = None
            self._generation += 1


@dataclass
class SearchConfig:
    api_url: str = DEFAULT_API_URL
    collections: str = ALL_COLLECTIONS
    mode: str = "remote"
    debounce_ms: int = REMOTE_DEBOUNCE_MS
    search_path: str = "/api/search"
    api_path: str = "/api/data"

    @classmethod
    def from_widget(cls, widget: SearchWidget, api_url: str = DEFAULT_API_URL) -> "SearchConfig":
        """Read ``data-*`` settings from the widget's search input."""

        mode = (widget.attribute("data-mode", "remote") or "remote").strip().lower()
        if mode not in ("remote", "local"):
            logger.warning("Unknown data-mode %r, using remote search", mode)
            mode = "remote"

        default_debounce = LOCAL_DEBOUNCE_MS if mode == "local" else REMOTE_DEBOUNCE_MS
        try:
            debounce_ms = int(widget.attribute("data-debounce", str(default_debounce)))
        except ValueError:
            debounce_ms = default_debounce

        return cls(
            api_url=widget.attribute("data-api-url", api_url),
            collections=widget.attribute("data-collections", ALL_COLLECTIONS),
            mode=mode,
            debounce_ms=debounce_ms,
            api_path=widget.attribute("data-api-path", "/api/data"),
        )


class SearchSession:
    """One page's search state: config, data cache and rendered results.

    Every search takes a sequence number; results are only published when no
    newer search has been published already, so a slow response can never
    overwrite the results of a later query.
    """

    def __init__(
        self,
        config: SearchConfig,
        http: Optional[requests.Session] = None,
        widget: Optional[SearchWidget] = None,
        on_results: Optional[Callable[[Results], None]] = None,
        timer_factory=threading.Timer,
    ):
        self.config = config
        self.widget = widget
        self._http = http or requests.Session()
        self._on_results = on_results
        self._lock = threading.Lock()
        self._render_lock = threading.RLock()
        self._sequence = 0
        self._latest_published = 0
        self.cache: SingleFlightCache[Item] = SingleFlightCache(self._load_data)
        self._debouncer = Debouncer(self.submit, config.debounce_ms, timer_factory=timer_factory)

    def preload(self) -> None:
        if self.config.mode == "local":
            self.cache.get_or_load()

    def on_input(self, value: str) -> None:
        self._debouncer(value)

    def submit(self, value: str) -> Results:
        """Search for *value* immediately and publish the results."""

        sequence = self._next_sequence()
        if not value.strip():
            self._publish(sequence, [])
            return []

        try:
            if self.config.mode == "local":
                results = [item.to_result() for item in filter_items(self.cache.get_or_load(), value)]
            else:
                results = self._remote_search(value)
        except (UpstreamError, requests.RequestException, ValueError):
            logger.exception("Search for %r failed", value)
            results = []

        self._publish(sequence, results)
        return results

    def close(self) -> None:
        self._debouncer.cancel()
        self.cache.reset()

    def _next_sequence(self) -> int:
        with self._lock:
            self._sequence += 1
            return self._sequence

    def _publish(self, sequence: int, results: Results) -> bool:
        # Searches finish on timer threads; the check and the render must not interleave.
        with self._render_lock:
            with self._lock:
                if sequence < self._latest_published:
                    logger.info("Dropping stale results for search #%d", sequence)
                    return False
                self._latest_published = sequence

            if self.widget is not None:
                self.widget.render(results)
            if self._on_results is not None:
                self._on_results(results)
        return True

    def _get(self, path: str, params: Dict[str, str]) -> Dict[str, Any]:
        url = urljoin(self.config.api_url, path)
        resp = self._http.get(url, params=params, timeout=REQUEST_TIMEOUT_SECONDS)
        if not resp.ok:
            raise UpstreamError(f"Request to {path} failed: {resp.status_code}", status=resp.status_code)
        payload = resp.json()
        if not isinstance(payload, dict):
            raise ValueError(f"Unexpected payload from {path}")
        return payload

    def _remote_search(self, value: str) -> Results:
        payload = self._get(
            self.config.search_path, {"q": value, "collections": self.config.collections}
        )
        return [entry for entry in payload.get("results") or [] if isinstance(entry, dict)]

    def _load_data(self) -> List[Item]:
        payload = self._get(self.config.api_path, {"collections": self.config.collections})
        return [Item.from_dict(entry) for entry in payload.get("items") or [] if isinstance(entry, dict)]
