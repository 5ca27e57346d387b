import json
import os

import pytest

from ledger import store as tables
from ledger.config import settings
from ledger.exceptions import StoreError
from ledger.store import JsonStore


def test_empty_store_has_all_tables():
    store = JsonStore()
    for name in tables.TABLES:
        assert store.select(name) == []


def test_seed_is_loaded_when_path_missing(tmp_path):
    store = JsonStore(tmp_path / "ledger.json", seed=settings.SEED_PATH)
    assert len(store.select(tables.PLATFORMS)) == 4
    assert not (tmp_path / "ledger.json").exists()


def test_insert_select_update_delete():
    store = JsonStore()
    row = store.insert(tables.PLATFORMS, {"id": "bca", "name": "BCA", "type": "bank", "balance": 10})
    assert row["id"] == "bca"

    store.update(tables.PLATFORMS, "bca", {"balance": 25, "id": "other"})
    assert store.select(tables.PLATFORMS, filters={"id": "bca"})[0]["balance"] == 25

    assert store.delete(tables.PLATFORMS, "bca") is True
    assert store.select(tables.PLATFORMS) == []


def test_insert_generates_id():
    store = JsonStore()
    row = store.insert(tables.GOALS, {"name": "Rumah", "targetAmount": 1})
    assert row["id"]
    assert store.select(tables.GOALS)[0]["id"] == row["id"]


def test_select_filters_and_orders():
    store = JsonStore()
    store.insert(tables.DEBTS, {"id": "d1", "name": "A", "dueDate": "2025-10-15"})
    store.insert(tables.DEBTS, {"id": "d2", "name": "B"})
    store.insert(tables.DEBTS, {"id": "d3", "name": "C", "dueDate": "2025-10-05"})

    ordered = store.select(tables.DEBTS, order_by="dueDate")
    assert [r["id"] for r in ordered] == ["d3", "d1", "d2"]
    assert [r["id"] for r in store.select(tables.DEBTS, filters={"name": "B"})] == ["d2"]


def test_select_returns_copies():
    store = JsonStore()
    store.insert(tables.PLATFORMS, {"id": "bca", "balance": 10})
    store.select(tables.PLATFORMS)[0]["balance"] = 999
    assert store.select(tables.PLATFORMS)[0]["balance"] == 10


def test_store_errors():
    store = JsonStore()
    store.insert(tables.PLATFORMS, {"id": "bca"})
    with pytest.raises(StoreError):
        store.insert(tables.PLATFORMS, {"id": "bca"})
    with pytest.raises(StoreError) as info:
        store.update(tables.PLATFORMS, "nope", {"balance": 1})
    assert (info.value.table, info.value.row_id) == (tables.PLATFORMS, "nope")
    with pytest.raises(StoreError):
        store.delete(tables.TRANSACTIONS, "nope")
    with pytest.raises(StoreError):
        store.select("accounts")


def test_writes_are_flushed_and_reloaded(tmp_path):
    path = tmp_path / "data" / "ledger.json"
    store = JsonStore(path, seed=settings.SEED_PATH)
    store.update(tables.PLATFORMS, "ovo", {"balance": 1})

    on_disk = json.loads(path.read_text(encoding="utf-8"))
    assert next(r for r in on_disk["platforms"] if r["id"] == "ovo")["balance"] == 1

    reloaded = JsonStore(path, seed=settings.SEED_PATH)
    assert reloaded.select(tables.PLATFORMS, filters={"id": "ovo"})[0]["balance"] == 1


def test_unreadable_file(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(StoreError):
        JsonStore(path)


def test_failed_flush_leaves_tables_unchanged(tmp_path, monkeypatch):
    path = tmp_path / "ledger.json"
    store = JsonStore(path, seed=settings.SEED_PATH)

    def disk_full(src, dst):
        raise OSError("No space left on device")

    monkeypatch.setattr(os, "replace", disk_full)

    with pytest.raises(StoreError) as info:
        store.update(tables.PLATFORMS, "bca", {"balance": 0})
    assert (info.value.table, info.value.row_id) == (tables.PLATFORMS, "bca")
    assert store.select(tables.PLATFORMS, filters={"id": "bca"})[0]["balance"] == 5_250_000

    with pytest.raises(StoreError) as info:
        store.insert(tables.GOALS, {"id": "g9", "name": "Mobil", "targetAmount": 1})
    assert (info.value.table, info.value.row_id) == (tables.GOALS, "g9")
    assert "g9" not in {r["id"] for r in store.select(tables.GOALS)}

    with pytest.raises(StoreError):
        store.delete(tables.DEBTS, "d1")
    assert "d1" in {r["id"] for r in store.select(tables.DEBTS)}

    assert not path.exists()
    assert list(tmp_path.glob("*.tmp")) == []
