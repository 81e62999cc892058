"""SQLite store backed by an FTS5 index over the item rows.

The ``items_fts`` virtual table copies the item columns it needs to answer a
query without joining back to ``items``. It is rewritten in the same
transaction as the rows, and ``rebuild_index`` / ``check_index`` allow it to be
regenerated and verified as a derived copy of ``items``.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .base import Collection, Item
from .relational import ITEM_COLUMNS, RelationalStore, _item_from_row, _item_params
from .utils import BATCH_SIZE, chunked, placeholders

logger = logging.getLogger(__name__)

# Deliberate bound on FTS matches; not a pagination cursor.
FTS_RESULT_LIMIT = 100

FTS_SCHEMA = """
CREATE VIRTUAL TABLE IF NOT EXISTS items_fts USING fts5(
    item_id UNINDEXED,
    name,
    slug UNINDEXED,
    collection_id UNINDEXED,
    collection_slug UNINDEXED,
    field_data UNINDEXED,
    search_text
);
"""

FTS_COLUMNS = "item_id, name, slug, collection_id, collection_slug, field_data, search_text"


def build_match_query(text: str) -> str:
    """Turn free text into an FTS5 expression of quoted prefix terms.

    Every whitespace-separated token is quoted (embedded quotes doubled) and
    suffixed with ``*``; FTS5 ANDs adjacent terms.
    """

    terms = []
    for token in text.split():
        escaped = token.replace('"', '""')
        terms.append(f'"{escaped}"*')
    return " ".join(terms)


@dataclass(frozen=True)
class IndexHealth:
    items: int
    indexed: int
    missing: int

    @property
    def in_sync(self) -> bool:
        return self.items == self.indexed and self.missing == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items": self.items,
            "indexed": self.indexed,
            "missing": self.missing,
            "inSync": self.in_sync,
        }


class FtsStore(RelationalStore):
    mode = "fts"
    name = "fts"

    def __init__(self, db_path, batch_size: int = BATCH_SIZE, limit: int = FTS_RESULT_LIMIT):
        self._limit = limit
        super().__init__(db_path, batch_size=batch_size)

    def _init_db(self) -> None:
        super()._init_db()
        with self._lock:
            self._conn.executescript(FTS_SCHEMA)
            self._conn.commit()

    def _write_snapshot(
        self,
        cur: sqlite3.Cursor,
        collections: Sequence[Collection],
        items: Sequence[Item],
        synced_at: str,
    ) -> None:
        super()._write_snapshot(cur, collections, items, synced_at)

        cur.execute("DELETE FROM items_fts")
        for batch in chunked(items, self._batch_size):
            cur.executemany(
                f"INSERT INTO items_fts ({FTS_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                [_item_params(item) for item in batch],
            )

    def search(self, text: str, collection_ids: Optional[Iterable[str]] = None) -> List[Item]:
        match = build_match_query(text)
        if not match:
            return []

        sql = (
            "SELECT item_id AS id, name, slug, collection_id, collection_slug, field_data, search_text "
            "FROM items_fts WHERE items_fts MATCH ?"
        )
        params: list = [match]

        if collection_ids is not None:
            ids = list(collection_ids)
            if not ids:
                return []
            sql += f" AND collection_id IN ({placeholders(len(ids))})"
            params.extend(ids)

        sql += " ORDER BY rank LIMIT ?"
        params.append(self._limit)

        try:
            with self._lock:
                rows = self._conn.execute(sql, params).fetchall()
        except sqlite3.OperationalError as exc:
            if "fts5" in str(exc).lower():
                logger.warning("FTS query %r rejected: %s", match, exc)
                return []
            raise
        return [_item_from_row(row) for row in rows]

    def rebuild_index(self) -> int:
        """Regenerate ``items_fts`` from ``items`` and return the row count."""

        with self._lock:
            try:
                self._conn.execute("DELETE FROM items_fts")
                self._conn.execute(
                    f"INSERT INTO items_fts ({FTS_COLUMNS}) SELECT {ITEM_COLUMNS} FROM items"
                )
                count = self._conn.execute("SELECT COUNT(*) FROM items_fts").fetchone()[0]
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

        logger.info("Rebuilt FTS index with %d rows", count)
        return count

    def check_index(self) -> IndexHealth:
        with self._lock:
            items = self._conn.execute("SELECT COUNT(*) FROM items").fetchone()[0]
            indexed = self._conn.execute("SELECT COUNT(*) FROM items_fts").fetchone()[0]
            missing = self._conn.execute(
                "SELECT COUNT(*) FROM items WHERE id NOT IN (SELECT item_id FROM items_fts)"
            ).fetchone()[0]
        health = IndexHealth(items=items, indexed=indexed, missing=missing)
        if not health.in_sync:
            logger.warning("FTS index out of sync: %s", health)
        return health

    def health(self) -> Dict[str, Any]:
        payload = super().health()
        payload["index"] = self.check_index().to_dict()
        return payload
