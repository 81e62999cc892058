import json
from urllib.parse import urlparse

import pytest

from config import Settings
from stores.fts import FtsStore
from stores.kv import KVStore, MemoryNamespace
from stores.relational import RelationalStore


class FakeResponse:
    def __init__(self, payload=None, status_code=200):
        self._payload = payload
        self.status_code = status_code
        self.text = json.dumps(payload) if payload is not None else ""

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


def make_item(item_id, **field_data):
    return {"id": item_id, "isDraft": False, "isArchived": False, "fieldData": field_data}


class FakeWebflow:
    """Stands in for ``requests.Session`` and serves the two Webflow endpoints."""

    def __init__(self, collections, items):
        self.collections = collections
        self.items = items
        self.totals = {}
        self.failures = {}
        self.page_failures = {}
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        params = dict(params or {})
        self.calls.append({"url": url, "params": params, "headers": headers or {}})

        parts = urlparse(url).path.strip("/").split("/")
        if "sites" in parts:
            if "sites" in self.failures:
                return FakeResponse({"message": "nope"}, self.failures["sites"])
            return FakeResponse({"collections": self.collections})

        collection_id = parts[parts.index("collections") + 1]
        if collection_id in self.failures:
            return FakeResponse({"message": "boom"}, self.failures[collection_id])

        offset = int(params["offset"])
        if offset in self.page_failures:
            return FakeResponse({"message": "page failed"}, self.page_failures[offset])
        limit = int(params["limit"])
        items = self.items.get(collection_id, [])
        total = self.totals.get(collection_id, len(items))
        return FakeResponse(
            {
                "items": items[offset:offset + limit],
                "pagination": {"limit": limit, "offset": offset, "total": total},
            }
        )

    def item_calls(self, collection_id):
        return [call for call in self.calls if f"/collections/{collection_id}/items" in call["url"]]


PRODUCTS = {"id": "c-products", "slug": "products", "displayName": "Products", "singularName": "Product"}
BLOG = {"id": "c-blog", "slug": "blog", "displayName": "Blog Posts", "singularName": "Blog Post"}


@pytest.fixture
def webflow():
    return FakeWebflow(
        collections=[PRODUCTS, BLOG],
        items={
            "c-products": [
                make_item("i-1", name="Red Shoes", slug="red-shoes", color="red", price=59),
                make_item("i-2", name="Blue Hat", slug="blue-hat", color="blue", featured=True),
            ],
            "c-blog": [
                make_item("i-3", name="Styling Red Shoes", slug="styling-red-shoes", body="A guide"),
            ],
        },
    )


@pytest.fixture
def settings():
    return Settings(api_token="token-123", site_id="site-1", api_base="https://api.test/v2")


@pytest.fixture(params=["kv", "sqlite", "fts"])
def store(request, tmp_path):
    if request.param == "kv":
        backend = KVStore(MemoryNamespace())
    elif request.param == "sqlite":
        backend = RelationalStore(tmp_path / "search.db")
    else:
        backend = FtsStore(tmp_path / "search.db")
    yield backend
    backend.close()
