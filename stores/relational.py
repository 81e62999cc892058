"""SQLite row store with ``LIKE`` substring matching.

Tables mirror the CMS snapshot:

- ``collections(id, slug UNIQUE, display_name, singular_name)``
- ``items(id, name, slug, collection_id, collection_slug, field_data, search_text)``
- ``sync_meta(key, value)``

A sync replaces both tables inside one transaction, so readers see either the
previous snapshot or the new one.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from .base import Collection, Item, SearchStore
from .utils import BATCH_SIZE, chunked, dumps, escape_like, placeholders

logger = logging.getLogger(__name__)

LAST_SYNC_KEY = "last_sync"

SCHEMA = """
CREATE TABLE IF NOT EXISTS collections (
    id TEXT PRIMARY KEY NOT NULL,
    slug TEXT NOT NULL,
    display_name TEXT NOT NULL,
    singular_name TEXT NOT NULL
);
CREATE UNIQUE INDEX IF NOT EXISTS collections_slug_unique ON collections (slug);

CREATE TABLE IF NOT EXISTS items (
    id TEXT PRIMARY KEY NOT NULL,
    name TEXT NOT NULL,
    slug TEXT NOT NULL,
    collection_id TEXT NOT NULL,
    collection_slug TEXT NOT NULL,
    field_data TEXT NOT NULL,
    search_text TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS items_collection_slug_idx ON items (collection_slug);
CREATE INDEX IF NOT EXISTS items_search_text_idx ON items (search_text);

CREATE TABLE IF NOT EXISTS sync_meta (
    key TEXT PRIMARY KEY NOT NULL,
    value TEXT NOT NULL
);
"""

ITEM_COLUMNS = "id, name, slug, collection_id, collection_slug, field_data, search_text"


def _item_from_row(row: sqlite3.Row) -> Item:
    try:
        field_data = json.loads(row["field_data"])
    except (TypeError, json.JSONDecodeError):
        logger.warning("Item %s has unreadable field data", row["id"])
        field_data = {}

    return Item(
        id=row["id"],
        name=row["name"],
        slug=row["slug"],
        collection_id=row["collection_id"],
        collection_slug=row["collection_slug"],
        field_data=field_data if isinstance(field_data, dict) else {},
        search_text=row["search_text"],
    )


def _item_params(item: Item) -> tuple:
    return (
        item.id,
        item.name,
        item.slug,
        item.collection_id,
        item.collection_slug,
        dumps(item.field_data),
        item.search_text,
    )


class RelationalStore(SearchStore):
    mode = "substring"
    name = "sqlite"

    def __init__(self, db_path, batch_size: int = BATCH_SIZE):
        self._db_path = str(db_path)
        self._batch_size = batch_size
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._init_db()

    def _init_db(self) -> None:
        with self._lock:
            self._conn.executescript(SCHEMA)
            self._conn.commit()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def replace_snapshot(
        self,
        collections: Sequence[Collection],
        items: Sequence[Item],
        synced_at: str,
    ) -> None:
        with self._lock:
            cur = self._conn.cursor()
            try:
                self._write_snapshot(cur, collections, items, synced_at)
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise
            finally:
                cur.close()

        logger.info(
            "%s snapshot written: %d collections, %d items",
            self.name,
            len(collections),
            len(items),
        )

    def _write_snapshot(
        self,
        cur: sqlite3.Cursor,
        collections: Sequence[Collection],
        items: Sequence[Item],
        synced_at: str,
    ) -> None:
        cur.execute("DELETE FROM items")
        cur.execute("DELETE FROM collections")

        for batch in chunked(collections, self._batch_size):
            cur.executemany(
                "INSERT INTO collections (id, slug, display_name, singular_name) VALUES (?, ?, ?, ?)",
                [(c.id, c.slug, c.display_name, c.singular_name) for c in batch],
            )

        for batch in chunked(items, self._batch_size):
            cur.executemany(
                f"INSERT INTO items ({ITEM_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                [_item_params(item) for item in batch],
            )

        cur.execute(
            """
            INSERT INTO sync_meta (key, value) VALUES (?, ?)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value
            """,
            (LAST_SYNC_KEY, synced_at),
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_collections(self) -> List[Collection]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT id, slug, display_name, singular_name FROM collections ORDER BY id"
            ).fetchall()
        return [
            Collection(
                id=row["id"],
                slug=row["slug"],
                display_name=row["display_name"],
                singular_name=row["singular_name"],
            )
            for row in rows
        ]

    def list_items(self, collection_ids: Optional[Iterable[str]] = None) -> List[Item]:
        sql = f"SELECT {ITEM_COLUMNS} FROM items"
        params: list = []

        if collection_ids is not None:
            ids = list(collection_ids)
            if not ids:
                return []
            sql += f" WHERE collection_id IN ({placeholders(len(ids))})"
            params.extend(ids)

        sql += " ORDER BY rowid"
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [_item_from_row(row) for row in rows]

    def search(self, text: str, collection_ids: Optional[Iterable[str]] = None) -> List[Item]:
        needle = text.lower()
        if not needle.strip():
            return []

        sql = f"SELECT {ITEM_COLUMNS} FROM items WHERE search_text LIKE ? ESCAPE '\\'"
        params: list = [f"%{escape_like(needle)}%"]

        if collection_ids is not None:
            ids = list(collection_ids)
            if not ids:
                return []
            sql += f" AND collection_id IN ({placeholders(len(ids))})"
            params.extend(ids)

        sql += " ORDER BY rowid"
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        return [_item_from_row(row) for row in rows]

    def last_synced_at(self) -> Optional[str]:
        with self._lock:
            row = self._conn.execute(
                "SELECT value FROM sync_meta WHERE key = ?", (LAST_SYNC_KEY,)
            ).fetchone()
        return row["value"] if row else None

    def close(self) -> None:
        with self._lock:
            self._conn.close()
