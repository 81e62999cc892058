"""Key-value blob backend.

The snapshot is written as JSON blobs under fixed keys:

- ``all_items``: every item, used for unfiltered reads
- ``collection:<slug>``: the items of one collection
- ``collections_meta``: the collection list
- ``last_sync``: timestamp of the last completed sync

A KV namespace offers no transactions, so readers can observe a mix of the
old and new snapshot while ``replace_snapshot`` runs.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .base import Collection, Item, SearchStore
from .utils import dumps

logger = logging.getLogger(__name__)

ALL_ITEMS_KEY = "all_items"
COLLECTIONS_META_KEY = "collections_meta"
LAST_SYNC_KEY = "last_sync"
COLLECTION_KEY_PREFIX = "collection:"
EXPIRATION_TTL_SECONDS = 7 * 24 * 60 * 60


def collection_key(slug: str) -> str:
    return f"{COLLECTION_KEY_PREFIX}{slug}"


class KeyValueNamespace:
    """Minimal get/put/delete contract of an edge key-value store."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def put(self, key: str, value: str, expiration_ttl: Optional[int] = None) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class MemoryNamespace(KeyValueNamespace):
    """In-process namespace with per-key expiry."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and self._clock() >= expires_at:
                del self._data[key]
                return None
            return value

    def put(self, key: str, value: str, expiration_ttl: Optional[int] = None) -> None:
        expires_at = self._clock() + expiration_ttl if expiration_ttl else None
        with self._lock:
            self._data[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._data)


class KVStore(SearchStore):
    mode = "substring"
    name = "kv"

    def __init__(self, namespace: KeyValueNamespace, ttl: int = EXPIRATION_TTL_SECONDS):
        self._ns = namespace
        self._ttl = ttl

    def _get_json(self, key: str, default):
        raw = self._ns.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable KV entry %s", key)
            return default

    def _put_json(self, key: str, value) -> None:
        self._ns.put(key, dumps(value), expiration_ttl=self._ttl)

    def replace_snapshot(
        self,
        collections: Sequence[Collection],
        items: Sequence[Item],
        synced_at: str,
    ) -> None:
        previous_slugs = {collection.slug for collection in self.list_collections()}

        by_slug: Dict[str, List[dict]] = {collection.slug: [] for collection in collections}
        for item in items:
            by_slug.setdefault(item.collection_slug, []).append(item.to_dict())

        for slug, entries in by_slug.items():
            self._put_json(collection_key(slug), entries)
        self._put_json(ALL_ITEMS_KEY, [item.to_dict() for item in items])
        self._put_json(COLLECTIONS_META_KEY, [collection.to_dict() for collection in collections])
        self._ns.put(LAST_SYNC_KEY, synced_at, expiration_ttl=self._ttl)

        for slug in previous_slugs - set(by_slug):
            self._ns.delete(collection_key(slug))

        logger.info(
            "KV snapshot written: %d collections, %d items", len(collections), len(items)
        )

    def list_collections(self) -> List[Collection]:
        entries = self._get_json(COLLECTIONS_META_KEY, [])
        collections = [Collection.from_dict(entry) for entry in entries if isinstance(entry, dict)]
        return sorted(collections, key=lambda collection: collection.id)

    def list_items(self, collection_ids: Optional[Iterable[str]] = None) -> List[Item]:
        if collection_ids is None:
            entries = self._get_json(ALL_ITEMS_KEY, [])
            return [Item.from_dict(entry) for entry in entries if isinstance(entry, dict)]

        wanted = set(collection_ids)
        items: List[Item] = []
        for collection in self.list_collections():
            if collection.id not in wanted:
                continue
            entries = self._get_json(collection_key(collection.slug), [])
            items.extend(Item.from_dict(entry) for entry in entries if isinstance(entry, dict))
        return items

    def search(self, text: str, collection_ids: Optional[Iterable[str]] = None) -> List[Item]:
        needle = text.lower()
        if not needle.strip():
            return []
        return [item for item in self.list_items(collection_ids) if needle in item.search_text]

    def last_synced_at(self) -> Optional[str]:
        return self._ns.get(LAST_SYNC_KEY)
