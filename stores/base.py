"""Records and the interface shared by every storage backend."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence


@dataclass(frozen=True)
class Collection:
    id: str
    slug: str
    display_name: str
    singular_name: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "slug": self.slug,
            "displayName": self.display_name,
            "singularName": self.singular_name,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Collection":
        return cls(
            id=str(data.get("id", "")),
            slug=str(data.get("slug", "")),
            display_name=str(data.get("displayName") or ""),
            singular_name=str(data.get("singularName") or ""),
        )


@dataclass
class Item:
    """A mirrored CMS record.

    ``search_text`` is derived from ``field_data`` when the item is built from
    upstream data; stores persist it alongside the record so queries never have
    to recompute it.
    """

    id: str
    name: str
    slug: str
    collection_id: str
    collection_slug: str
    field_data: Dict[str, Any] = field(default_factory=dict)
    search_text: str = ""

    def to_result(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "collectionId": self.collection_id,
            "fieldData": self.field_data,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "collectionId": self.collection_id,
            "collectionSlug": self.collection_slug,
            "fieldData": self.field_data,
            "searchText": self.search_text,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Item":
        field_data = data.get("fieldData")
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name") or ""),
            slug=str(data.get("slug") or ""),
            collection_id=str(data.get("collectionId") or ""),
            collection_slug=str(data.get("collectionSlug") or ""),
            field_data=field_data if isinstance(field_data, dict) else {},
            search_text=str(data.get("searchText") or ""),
        )


class SearchStore:
    """Interface implemented by the KV, relational and FTS backends.

    ``mode`` tells callers how ``search`` matches: ``"substring"`` backends
    look for the lowercased query inside ``search_text``; ``"fts"`` backends
    use a native full-text index with prefix matching and a result cap.
    """

    mode = "substring"
    name = "base"

    def replace_snapshot(
        self,
        collections: Sequence[Collection],
        items: Sequence[Item],
        synced_at: str,
    ) -> None:
        raise NotImplementedError

    def list_collections(self) -> List[Collection]:
        raise NotImplementedError

    def list_items(self, collection_ids: Optional[Iterable[str]] = None) -> List[Item]:
        raise NotImplementedError

    def search(self, text: str, collection_ids: Optional[Iterable[str]] = None) -> List[Item]:
        raise NotImplementedError

    def last_synced_at(self) -> Optional[str]:
        raise NotImplementedError

    def health(self) -> Dict[str, Any]:
        return {"backend": self.name, "mode": self.mode, "lastSyncedAt": self.last_synced_at()}

    def close(self) -> None:
        return None
