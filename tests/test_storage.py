"""
Tests for the storage backends and the whole-table repository.
"""

from __future__ import annotations

import json

import pytest

from db import MemoryStorage, SQLStorage, TableRepository, create_db_and_tables, make_engine
from exceptions import StorageError


@pytest.fixture
def sql_storage() -> SQLStorage:
    engine = make_engine("sqlite://")
    create_db_and_tables(engine)
    return SQLStorage(engine)


def test_memory_storage_get_set_remove() -> None:
    """Values are stored as text and removed by key."""
    s = MemoryStorage()
    assert s.get_item("k") is None
    s.set_item("k", "v")
    assert s.get_item("k") == "v"
    assert s.keys() == ["k"]
    s.remove_item("k")
    s.remove_item("k")
    assert s.get_item("k") is None


def test_memory_storage_quota_keeps_old_value() -> None:
    """A write over quota fails and the previous value survives."""
    s = MemoryStorage(quota_bytes=10)
    s.set_item("k", "small")
    with pytest.raises(StorageError, match="quota"):
        s.set_item("k", "x" * 50)
    assert s.get_item("k") == "small"


def test_load_missing_table_is_empty(tables: TableRepository) -> None:
    assert tables.load("dms_food_donations") == []


def test_load_corrupt_table_is_empty(storage: MemoryStorage, tables: TableRepository) -> None:
    """Unreadable JSON or a non-list payload reads as an empty table."""
    storage.set_item("dms_food_donations", "{not json")
    assert tables.load("dms_food_donations") == []
    storage.set_item("dms_food_donations", json.dumps({"id": "x"}))
    assert tables.load("dms_food_donations") == []


def test_replace_writes_whole_table(storage: MemoryStorage, tables: TableRepository) -> None:
    """replace() serializes the entire table under its key."""
    rows = [{"id": "fd_2", "donationId": "dr_2"}, {"id": "fd_1", "donationId": "dr_1"}]
    tables.replace("dms_food_donations", rows)
    assert json.loads(storage.get_item("dms_food_donations")) == rows
    tables.replace("dms_food_donations", rows[:1])
    assert tables.load("dms_food_donations") == rows[:1]


def test_sql_storage_upsert_and_remove(sql_storage: SQLStorage) -> None:
    """SQLStorage keeps one row per key and overwrites in place."""
    assert sql_storage.get_item("dms_notifications") is None
    sql_storage.set_item("dms_notifications", "[]")
    sql_storage.set_item("dms_notifications", '[{"id": "n_1"}]')
    assert sql_storage.get_item("dms_notifications") == '[{"id": "n_1"}]'
    assert sql_storage.keys() == ["dms_notifications"]
    sql_storage.remove_item("dms_notifications")
    assert sql_storage.get_item("dms_notifications") is None
    assert sql_storage.keys() == []


def test_repository_over_sql_storage(sql_storage: SQLStorage) -> None:
    """The same repository works unchanged over the SQL backend."""
    repo = TableRepository(sql_storage)
    repo.replace("dms_donation_records", [{"id": "dr_1", "userId": "u_1"}])
    assert repo.load("dms_donation_records") == [{"id": "dr_1", "userId": "u_1"}]
