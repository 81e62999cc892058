"""Mirror the CMS into the local store."""

from __future__ import annotations

import hmac
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from cms_client import CmsClient
from config import Settings
from errors import AuthError
from search import build_search_text
from stores.base import Collection, Item, SearchStore

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    collections_count: int
    items_count: int
    synced_at: str
    per_collection_counts: List[Tuple[str, int]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "collectionsCount": self.collections_count,
            "itemsCount": self.items_count,
            "collections": [
                {"slug": slug, "itemCount": count} for slug, count in self.per_collection_counts
            ],
            "syncedAt": self.synced_at,
        }


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""

    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def check_credential(settings: Settings, credential: Optional[str]) -> None:
    """Raise ``AuthError`` unless *credential* is ``Bearer <sync secret>``.

    Nothing is checked when no sync secret is configured.
    """

    if not settings.sync_secret:
        return
    expected = f"Bearer {settings.sync_secret}"
    if not credential or not hmac.compare_digest(credential.encode(), expected.encode()):
        raise AuthError()


def _text_field(field_data: Dict[str, Any], key: str) -> str:
    value = field_data.get(key)
    return value if isinstance(value, str) else ""


def collection_from_upstream(raw: Dict[str, Any]) -> Collection:
    return Collection(
        id=str(raw.get("id", "")),
        slug=str(raw.get("slug") or ""),
        display_name=str(raw.get("displayName") or ""),
        singular_name=str(raw.get("singularName") or ""),
    )


def item_from_upstream(raw: Dict[str, Any], collection: Collection) -> Item:
    field_data = raw.get("fieldData")
    if not isinstance(field_data, dict):
        field_data = {}

    return Item(
        id=str(raw.get("id", "")),
        name=_text_field(field_data, "name"),
        slug=_text_field(field_data, "slug"),
        collection_id=collection.id,
        collection_slug=collection.slug,
        field_data=field_data,
        search_text=build_search_text(field_data),
    )


def sync(
    settings: Settings,
    store: SearchStore,
    client: Optional[CmsClient] = None,
    credential: Optional[str] = None,
) -> SyncReport:
    """Replace the store's snapshot with a fresh copy of the CMS.

    Every collection is fetched in full before the store is written, so an
    upstream failure leaves the previous snapshot untouched.
    """

    check_credential(settings, credential)
    settings.require_upstream()

    client = client or CmsClient(settings.api_token, settings.api_base)

    logger.info("Starting sync for site %s", settings.site_id)
    collections = [collection_from_upstream(raw) for raw in client.list_collections(settings.site_id)]

    items: List[Item] = []
    per_collection: List[Tuple[str, int]] = []
    for collection in collections:
        raw_items = client.fetch_all_items(collection.id, page_size=settings.page_size)
        items.extend(item_from_upstream(raw, collection) for raw in raw_items)
        per_collection.append((collection.slug, len(raw_items)))
        logger.info("Collection %s: %d items", collection.slug, len(raw_items))

    synced_at = utc_timestamp()
    store.replace_snapshot(collections, items, synced_at)

    logger.info("Sync finished: %d collections, %d items", len(collections), len(items))
    return SyncReport(
        collections_count=len(collections),
        items_count=len(items),
        synced_at=synced_at,
        per_collection_counts=per_collection,
    )
