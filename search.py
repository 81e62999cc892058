"""Search entrypoints for the CMS mirror."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from errors import NotFoundError, ValidationError
from stores.base import Collection, Item, SearchStore

logger = logging.getLogger(__name__)

ALL_COLLECTIONS = "all"


def build_search_text(field_data: Mapping[str, Any]) -> str:
    """Return the lowercased, space-joined string values of *field_data*.

    Only plain strings take part; numbers, booleans, ``None`` and nested
    values are skipped. Field order is preserved.
    """

    return " ".join(value for value in field_data.values() if isinstance(value, str)).lower()


def _is_wildcard(requested: Optional[str]) -> bool:
    return requested is None or requested.strip().lower() == ALL_COLLECTIONS


def _collection_names(collection: Collection) -> tuple:
    return (
        collection.slug.lower(),
        collection.display_name.lower(),
        collection.singular_name.lower(),
    )


def resolve_collections(requested: Optional[str], known: Sequence[Collection]) -> List[str]:
    """Map a comma-separated collection filter to collection ids.

    ``"all"`` (any casing) selects every collection. Other tokens match a
    collection's slug, display name or singular name case-insensitively.
    Unknown tokens are dropped. When a token names several collections the
    one with the lowest id wins.
    """

    ordered = sorted(known, key=lambda collection: collection.id)

    if _is_wildcard(requested):
        return [collection.id for collection in ordered]

    tokens = [token.strip().lower() for token in requested.split(",")]
    resolved: List[str] = []

    for token in tokens:
        if not token:
            continue

        matches = [collection for collection in ordered if token in _collection_names(collection)]
        if not matches:
            logger.info("No collection matches %r", token)
            continue
        if len(matches) > 1:
            logger.warning(
                "Collection name %r is ambiguous (%s); using %s",
                token,
                ", ".join(collection.id for collection in matches),
                matches[0].id,
            )

        if matches[0].id not in resolved:
            resolved.append(matches[0].id)

    return resolved


@dataclass
class SearchResponse:
    results: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    def to_dict(self) -> Dict[str, Any]:
        return {"results": self.results, "total": self.total}


def search_items(store: SearchStore, text: Optional[str], collections_filter: Optional[str] = ALL_COLLECTIONS) -> SearchResponse:
    """Return items from *store* matching *text* within *collections_filter*.

    Missing text is a validation error, blank text yields no results, and a
    filter naming only unknown collections raises ``NotFoundError``. The
    collection restriction is handed to the store so capped backends never
    drop in-scope matches.
    """

    if text is None:
        raise ValidationError("Query parameter 'q' is required")

    if not text.strip():
        return SearchResponse()

    collection_ids = _scope(store, collections_filter, strict=True)
    matches = store.search(text, collection_ids)
    logger.info("Search %r over %s returned %d items", text, collections_filter, len(matches))
    return SearchResponse(results=[item.to_result() for item in matches])


def load_items(store: SearchStore, collections_filter: Optional[str] = ALL_COLLECTIONS) -> List[Item]:
    """Return the full items of the requested collections for client-side filtering."""

    collection_ids = _scope(store, collections_filter, strict=False)
    return store.list_items(collection_ids)


def _scope(store: SearchStore, collections_filter: Optional[str], strict: bool) -> Optional[List[str]]:
    if _is_wildcard(collections_filter):
        return None

    collection_ids = resolve_collections(collections_filter, store.list_collections())
    if not collection_ids and strict:
        raise NotFoundError(f"Collection not found: {collections_filter}")
    return collection_ids


def filter_items(items: Iterable[Item], text: str) -> List[Item]:
    """Substring match over precomputed search text, used by local clients."""

    if not text.strip():
        return []
    needle = text.lower()
    return [item for item in items if needle in item.search_text]
