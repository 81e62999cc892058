import json
from typing import Iterable, Iterator, List, TypeVar

T = TypeVar("T")

# Upper bound on statements sent to the database in a single batch.
BATCH_SIZE = 400


def chunked(rows: Iterable[T], size: int = BATCH_SIZE) -> Iterator[List[T]]:
    """Yield lists of at most *size* rows from *rows*."""

    if size <= 0:
        raise ValueError("size must be positive")

    batch: List[T] = []
    for row in rows:
        batch.append(row)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch


def placeholders(count):
    """Return ``?, ?, ...`` for an SQL ``IN`` clause with *count* values."""

    return ", ".join("?" for _ in range(count))


def escape_like(value):
    """Escape ``LIKE`` wildcards; pair with ``ESCAPE '\\'`` in the query."""

    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def dumps(value):
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
