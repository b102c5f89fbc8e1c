"""Tests for the observable entity store."""

from __future__ import annotations

import logging

import pytest

from backoffice.lists.store import DuplicateIdError, EntityStore, StoreDisposedError, StoreError

pytestmark = pytest.mark.unit


def _ids(store: EntityStore) -> list:
    return [e["id"] for e in store.snapshot()]


class TestConstruction:
    def test_drops_duplicate_and_idless_entities(self, caplog):
        with caplog.at_level(logging.WARNING, logger="backoffice.lists.store"):
            store = EntityStore(items=[{"id": 1}, {"name": "no id"}, {"id": 1}, {"id": 2}])
        assert _ids(store) == [1, 2]
        assert "Dropping duplicate id 1" in caplog.text

    def test_custom_id_field(self):
        store = EntityStore("invoiceNo", [{"invoiceNo": 160}, {"invoiceNo": 159}])
        assert 159 in store
        assert store.get(160) == {"invoiceNo": 160}


class TestWrites:
    def test_insert_appends_or_places_at_index(self):
        store = EntityStore(items=[{"id": 1}, {"id": 3}])
        store.insert({"id": 4})
        store.insert({"id": 2}, index=1)
        assert _ids(store) == [1, 2, 3, 4]

    def test_insert_duplicate_raises(self):
        store = EntityStore(items=[{"id": 1}])
        with pytest.raises(DuplicateIdError):
            store.insert({"id": 1, "name": "again"})
        assert len(store) == 1

    def test_insert_without_id_raises(self):
        with pytest.raises(StoreError):
            EntityStore().insert({"name": "x"})

    def test_put_replaces_in_place(self):
        store = EntityStore(items=[{"id": 1}, {"id": 2, "name": "B"}, {"id": 3}])
        store.put(2, {"id": 2, "name": "B2"})
        assert store.snapshot()[1] == {"id": 2, "name": "B2"}

    def test_put_missing_raises_key_error(self):
        with pytest.raises(KeyError):
            EntityStore().put(9, {"id": 9})

    def test_put_with_new_id_keeps_ids_unique(self):
        store = EntityStore(items=[{"id": "tmp-1"}, {"id": 7}])
        store.put("tmp-1", {"id": 7, "name": "server copy"})
        assert store.snapshot() == [{"id": 7, "name": "server copy"}]

    def test_remove_returns_position(self):
        store = EntityStore(items=[{"id": 1}, {"id": 2}, {"id": 3}])
        assert store.remove(2) == (1, {"id": 2})
        assert store.remove(2) is None
        assert _ids(store) == [1, 3]


class TestSubscription:
    def test_listeners_notified_on_every_write(self):
        store = EntityStore(items=[{"id": 1}])
        calls = []
        store.subscribe(lambda: calls.append(len(store)))
        store.insert({"id": 2})
        store.remove(1)
        store.replace([])
        assert calls == [2, 1, 0]

    def test_unsubscribe(self):
        store = EntityStore()
        calls = []
        unsubscribe = store.subscribe(lambda: calls.append(1))
        unsubscribe()
        unsubscribe()
        store.insert({"id": 1})
        assert calls == []

    def test_failing_listener_is_logged_not_raised(self, caplog):
        store = EntityStore()

        def boom() -> None:
            raise RuntimeError("listener broke")

        store.subscribe(boom)
        with caplog.at_level(logging.ERROR, logger="backoffice.lists.store"):
            store.insert({"id": 1})
        assert len(store) == 1
        assert "Store listener failed" in caplog.text


class TestDispose:
    def test_writes_after_dispose_raise(self):
        store = EntityStore(items=[{"id": 1}])
        store.dispose()
        assert store.disposed
        with pytest.raises(StoreDisposedError):
            store.insert({"id": 2})
        with pytest.raises(StoreDisposedError):
            store.replace([])

    def test_dispose_drops_listeners(self):
        store = EntityStore()
        calls = []
        store.subscribe(lambda: calls.append(1))
        store.dispose()
        assert calls == []
