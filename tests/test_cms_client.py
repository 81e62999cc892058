import pytest
import requests

from cms_client import CmsClient
from errors import UpstreamError

from conftest import FakeWebflow, make_item


def _client_for(count, total=None):
    fake = FakeWebflow(
        collections=[],
        items={"c-1": [make_item(f"i-{n}", name=f"Item {n}") for n in range(count)]},
    )
    if total is not None:
        fake.totals["c-1"] = total
    return CmsClient("token", "https://api.test/v2/", session=fake), fake


@pytest.mark.parametrize(
    "count,page_size,expected_requests",
    [(0, 100, 1), (1, 100, 1), (250, 100, 3), (200, 100, 2), (7, 3, 3)],
)
def test_fetch_all_items_pages_until_exhausted(count, page_size, expected_requests):
    client, fake = _client_for(count)

    items = client.fetch_all_items("c-1", page_size=page_size)

    assert [item["id"] for item in items] == [f"i-{n}" for n in range(count)]
    assert len(fake.item_calls("c-1")) == expected_requests


def test_fetch_all_items_uses_increasing_offsets():
    client, fake = _client_for(250)

    client.fetch_all_items("c-1", page_size=100)

    offsets = [call["params"]["offset"] for call in fake.item_calls("c-1")]
    assert offsets == [0, 100, 200]
    assert all(call["params"]["limit"] == 100 for call in fake.item_calls("c-1"))
    assert fake.calls[0]["url"] == "https://api.test/v2/collections/c-1/items/live"


def test_undercounted_total_does_not_stop_full_pages():
    client, fake = _client_for(250, total=150)

    items = client.fetch_all_items("c-1", page_size=100)

    assert len(items) == 250
    assert len(fake.item_calls("c-1")) == 3


def test_failed_page_aborts_whole_fetch():
    client, fake = _client_for(250)
    fake.page_failures[100] = 429

    with pytest.raises(UpstreamError) as excinfo:
        client.fetch_all_items("c-1", page_size=100)

    assert excinfo.value.status == 429
    assert len(fake.item_calls("c-1")) == 2


def test_transport_errors_become_upstream_errors():
    class BrokenSession:
        def get(self, *args, **kwargs):
            raise requests.ConnectionError("connection refused")

    client = CmsClient("token", "https://api.test/v2", session=BrokenSession())

    with pytest.raises(UpstreamError) as excinfo:
        client.list_collections("site-1")

    assert excinfo.value.status is None
    assert "connection refused" in excinfo.value.details


def test_list_collections_sends_bearer_token(webflow):
    client = CmsClient("token-123", "https://api.test/v2", session=webflow)

    collections = client.list_collections("site-1")

    assert [c["slug"] for c in collections] == ["products", "blog"]
    assert webflow.calls[0]["url"] == "https://api.test/v2/sites/site-1/collections"
    assert webflow.calls[0]["headers"]["Authorization"] == "Bearer token-123"


def test_list_collections_failure_carries_status(webflow):
    webflow.failures["sites"] = 401
    client = CmsClient("bad", "https://api.test/v2", session=webflow)

    with pytest.raises(UpstreamError) as excinfo:
        client.list_collections("site-1")

    assert excinfo.value.status == 401
    assert "401" in excinfo.value.message
