"""Single-flight memoizing cache for a client's full item set."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from typing import Callable, Generic, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleFlightCache(Generic[T]):
    """Load a value once per session and share it with every caller.

    The first caller runs *loader*; callers arriving while it runs wait on the
    same future instead of loading again, and later callers get the memoized
    value. A failed load is logged, the cache is reset so the next call
    retries, and the callers of that load receive an empty list. A load still
    running when reset() is called is not memoized.
    """

    def __init__(self, loader: Callable[[], List[T]]):
        self._loader = loader
        self._lock = threading.Lock()
        self.cached_value: Optional[List[T]] = None
        self.in_flight: Optional[Future] = None

    def get_or_load(self) -> List[T]:
        with self._lock:
            if self.cached_value is not None:
                return self.cached_value
            if self.in_flight is not None:
                future = self.in_flight
                owner = False
            else:
                future = Future()
                self.in_flight = future
                owner = True

        if not owner:
            return future.result()

        try:
            value = list(self._loader())
        except Exception:
            logger.exception("Failed to load search data")
            with self._lock:
                if self.in_flight is future:
                    self.in_flight = None
            future.set_result([])
            return []

        with self._lock:
            # A reset() during the load discards its result.
            if self.in_flight is future:
                self.cached_value = value
                self.in_flight = None
        future.set_result(value)
        return value

    def reset(self) -> None:
        with self._lock:
            self.cached_value = None
            self.in_flight = None
