import threading
import time
from concurrent.futures import ThreadPoolExecutor

from client_cache import SingleFlightCache


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        time.sleep(0.005)


def test_concurrent_callers_share_one_load():
    release = threading.Event()
    calls = []

    def loader():
        calls.append("load")
        release.wait(timeout=2)
        return ["a", "b"]

    cache = SingleFlightCache(loader)

    with ThreadPoolExecutor(max_workers=2) as executor:
        first = executor.submit(cache.get_or_load)
        _wait_for(lambda: cache.in_flight is not None)
        second = executor.submit(cache.get_or_load)
        time.sleep(0.05)
        release.set()

        assert first.result(timeout=2) == ["a", "b"]
        assert second.result(timeout=2) == ["a", "b"]

    assert calls == ["load"]
    assert cache.in_flight is None


def test_cached_value_is_reused():
    calls = []

    def loader():
        calls.append("load")
        return [1, 2, 3]

    cache = SingleFlightCache(loader)

    assert cache.get_or_load() == [1, 2, 3]
    assert cache.get_or_load() == [1, 2, 3]
    assert calls == ["load"]


def test_failed_load_returns_empty_and_retries(caplog):
    attempts = []

    def loader():
        attempts.append("load")
        if len(attempts) == 1:
            raise RuntimeError("network down")
        return ["fresh"]

    cache = SingleFlightCache(loader)

    assert cache.get_or_load() == []
    assert cache.cached_value is None
    assert cache.in_flight is None
    assert any("Failed to load" in message for message in caplog.messages)

    assert cache.get_or_load() == ["fresh"]
    assert len(attempts) == 2


def test_reset_forces_reload():
    calls = []
    cache = SingleFlightCache(lambda: calls.append("load") or ["x"])

    cache.get_or_load()
    cache.reset()
    cache.get_or_load()

    assert calls == ["load", "load"]


def test_reset_during_load_discards_its_result():
    release = threading.Event()

    def loader():
        release.wait(timeout=2)
        return ["old-session"]

    cache = SingleFlightCache(loader)

    with ThreadPoolExecutor(max_workers=1) as executor:
        pending = executor.submit(cache.get_or_load)
        _wait_for(lambda: cache.in_flight is not None)
        cache.reset()
        release.set()

        assert pending.result(timeout=2) == ["old-session"]

    assert cache.cached_value is None
    assert cache.in_flight is None
