import sqlite3

import pytest

from stores.base import Collection, Item
from stores.fts import FtsStore, build_match_query
from stores.kv import KVStore, MemoryNamespace
from stores.relational import RelationalStore
from stores.utils import chunked, escape_like

SYNCED_AT = "2024-05-01T12:00:00.000Z"

SHOP = Collection(id="c-shop", slug="shop", display_name="Shop", singular_name="Product")
NEWS = Collection(id="c-news", slug="news", display_name="News", singular_name="Article")


def _item(item_id, collection, name, **extra):
    field_data = {"name": name, "slug": item_id, **extra}
    text = " ".join(v for v in field_data.values() if isinstance(v, str)).lower()
    return Item(
        id=item_id,
        name=name,
        slug=item_id,
        collection_id=collection.id,
        collection_slug=collection.slug,
        field_data=field_data,
        search_text=text,
    )


def _ids(items):
    return sorted(item.id for item in items)


@pytest.fixture
def items():
    return [
        _item("red-shoes", SHOP, "Red Shoes", color="red"),
        _item("blue-hat", SHOP, "Blue Hat", color="blue"),
        _item("shoe-care", NEWS, "Shoe care tips", body="Keep your red shoes shiny"),
    ]


def test_replace_snapshot_then_read(store, items):
    store.replace_snapshot([SHOP, NEWS], items, SYNCED_AT)

    assert [c.slug for c in store.list_collections()] == ["news", "shop"]
    assert _ids(store.list_items()) == ["blue-hat", "red-shoes", "shoe-care"]
    assert _ids(store.list_items(["c-news"])) == ["shoe-care"]
    assert store.list_items([]) == []
    assert store.last_synced_at() == SYNCED_AT


def test_round_trip_preserves_item_fields(store, items):
    store.replace_snapshot([SHOP, NEWS], items, SYNCED_AT)

    stored = {item.id: item for item in store.list_items()}
    assert stored["red-shoes"] == items[0]


def test_search_matches_and_scopes(store, items):
    store.replace_snapshot([SHOP, NEWS], items, SYNCED_AT)

    assert _ids(store.search("red")) == ["red-shoes", "shoe-care"]
    assert _ids(store.search("red", ["c-shop"])) == ["red-shoes"]
    assert _ids(store.search("hat")) == ["blue-hat"]
    assert store.search("zzz") == []
    assert store.search("red", []) == []


def test_search_is_case_insensitive(store, items):
    store.replace_snapshot([SHOP, NEWS], items, SYNCED_AT)

    assert _ids(store.search("BLUE")) == ["blue-hat"]


def test_replace_snapshot_drops_previous_data(store, items):
    store.replace_snapshot([SHOP, NEWS], items, SYNCED_AT)
    store.replace_snapshot([SHOP], [items[1]], "2024-05-02T00:00:00.000Z")

    assert [c.id for c in store.list_collections()] == ["c-shop"]
    assert _ids(store.list_items()) == ["blue-hat"]
    assert store.search("red") == []
    assert store.last_synced_at() == "2024-05-02T00:00:00.000Z"


def test_empty_store_reads(store):
    assert store.list_collections() == []
    assert store.list_items() == []
    assert store.search("anything") == []
    assert store.last_synced_at() is None


def test_substring_stores_treat_wildcards_literally(store):
    if store.mode != "substring":
        pytest.skip("only substring backends scan search_text")

    store.replace_snapshot(
        [SHOP],
        [_item("cotton", SHOP, "100% cotton tee"), _item("wool", SHOP, "wool_blend scarf")],
        SYNCED_AT,
    )

    assert _ids(store.search("0%")) == ["cotton"]
    assert _ids(store.search("_")) == ["wool"]
    assert _ids(store.search("l_b")) == ["wool"]


@pytest.mark.parametrize("backend", [RelationalStore, FtsStore])
def test_failed_replace_keeps_previous_snapshot(tmp_path, items, backend):
    store = backend(tmp_path / "search.db")
    store.replace_snapshot([SHOP, NEWS], items, SYNCED_AT)

    duplicate = [items[0], items[0]]
    with pytest.raises(sqlite3.IntegrityError):
        store.replace_snapshot([SHOP], duplicate, "2024-06-01T00:00:00.000Z")

    assert _ids(store.list_items()) == ["blue-hat", "red-shoes", "shoe-care"]
    assert _ids(store.search("red")) == ["red-shoes", "shoe-care"]
    assert store.last_synced_at() == SYNCED_AT
    store.close()


def test_relational_writes_in_batches(tmp_path):
    store = RelationalStore(tmp_path / "search.db", batch_size=3)
    many = [_item(f"item-{n}", SHOP, f"Gadget {n}") for n in range(10)]

    store.replace_snapshot([SHOP], many, SYNCED_AT)

    assert len(store.list_items()) == 10
    assert len(store.search("gadget")) == 10
    store.close()


def test_snapshot_survives_reopen(tmp_path, items):
    path = tmp_path / "nested" / "search.db"
    store = FtsStore(path)
    store.replace_snapshot([SHOP, NEWS], items, SYNCED_AT)
    store.close()

    reopened = FtsStore(path)
    assert _ids(reopened.search("hat")) == ["blue-hat"]
    assert reopened.last_synced_at() == SYNCED_AT
    reopened.close()


class TestFtsStore:
    @pytest.fixture
    def fts(self, tmp_path, items):
        store = FtsStore(tmp_path / "search.db")
        store.replace_snapshot([SHOP, NEWS], items, SYNCED_AT)
        yield store
        store.close()

    def test_build_match_query_quotes_and_prefixes(self):
        assert build_match_query("red sho") == '"red"* "sho"*'
        assert build_match_query('say "hi"') == '"say"* """hi"""*'
        assert build_match_query("   ") == ""

    def test_prefix_matching(self, fts):
        assert _ids(fts.search("sho")) == ["red-shoes", "shoe-care"]

    def test_tokens_are_and_combined(self, fts):
        assert _ids(fts.search("red hat")) == []
        assert _ids(fts.search("blue hat")) == ["blue-hat"]

    def test_operators_are_not_interpreted(self, fts):
        assert fts.search("red OR blue") == []
        assert fts.search('"unbalanced') == []
        assert fts.search("NEAR(") == []

    def test_cap_applies_after_collection_filter(self, tmp_path):
        store = FtsStore(tmp_path / "capped.db", limit=3)
        store.replace_snapshot(
            [SHOP, NEWS],
            [_item(f"shop-{n}", SHOP, f"Lamp {n}") for n in range(5)]
            + [_item(f"news-{n}", NEWS, f"Lamp news {n}") for n in range(5)],
            SYNCED_AT,
        )

        capped = store.search("lamp", ["c-news"])

        assert len(capped) == 3
        assert all(item.collection_id == "c-news" for item in capped)
        store.close()

    def test_check_and_rebuild_index(self, fts):
        assert fts.check_index().in_sync

        with fts._lock:
            fts._conn.execute("DELETE FROM items_fts WHERE item_id = ?", ("blue-hat",))
            fts._conn.commit()

        health = fts.check_index()
        assert not health.in_sync
        assert health.missing == 1
        assert fts.search("hat") == []

        assert fts.rebuild_index() == 3
        assert fts.check_index().in_sync
        assert _ids(fts.search("hat")) == ["blue-hat"]

    def test_health_reports_index(self, fts):
        health = fts.health()
        assert health["backend"] == "fts"
        assert health["lastSyncedAt"] == SYNCED_AT
        assert health["index"] == {"items": 3, "indexed": 3, "missing": 0, "inSync": True}


class TestKVStore:
    def test_keys_follow_layout_and_stale_collections_are_removed(self, items):
        namespace = MemoryNamespace()
        store = KVStore(namespace)

        store.replace_snapshot([SHOP, NEWS], items, SYNCED_AT)
        assert namespace.keys() == [
            "all_items",
            "collection:news",
            "collection:shop",
            "collections_meta",
            "last_sync",
        ]

        store.replace_snapshot([SHOP], items[:2], SYNCED_AT)
        assert "collection:news" not in namespace.keys()

    def test_entries_expire(self, items):
        now = [1000.0]
        namespace = MemoryNamespace(clock=lambda: now[0])
        store = KVStore(namespace, ttl=60)
        store.replace_snapshot([SHOP, NEWS], items, SYNCED_AT)

        now[0] += 59
        assert store.last_synced_at() == SYNCED_AT

        now[0] += 2
        assert store.last_synced_at() is None
        assert store.list_items() == []

    def test_unreadable_blob_is_ignored(self, caplog):
        namespace = MemoryNamespace()
        namespace.put("collections_meta", "{not json")

        assert KVStore(namespace).list_collections() == []
        assert any("unreadable" in message for message in caplog.messages)


def test_chunked_splits_rows():
    assert list(chunked(range(7), 3)) == [[0, 1, 2], [3, 4, 5], [6]]
    assert list(chunked([], 3)) == []
    with pytest.raises(ValueError):
        list(chunked([1], 0))


def test_escape_like():
    assert escape_like("50%_off\\") == "50\\%\\_off\\\\"
