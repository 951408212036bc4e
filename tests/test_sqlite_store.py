"""
SQLite record store: durability across handles, dimension metadata,
clear semantics and blocked clears.
"""

import sqlite3
from unittest.mock import patch

import numpy as np
import pytest

from clap_search.core import db
from clap_search.core.errors import (
    ClearBlockedError,
    ClearFailure,
    DimensionMismatchError,
    InitFailure,
    NotReadyError,
    StoreIOError,
)
from clap_search.vector.sqlite_store import SqliteRecordStore


def test_initialize_creates_collection(sqlite_path):
    store = SqliteRecordStore(sqlite_path, name="clap-embeddings-db")
    assert not store.is_initialized

    store.initialize()
    try:
        assert store.is_initialized
        assert sqlite_path.exists()
        assert db.health_check(sqlite_path)
        assert store.count() == 0
    finally:
        store.close()


def test_round_trip_fidelity(sqlite_store):
    vector = np.array([0.125, -1.5, 2.0e-7, 42.0], dtype=np.float32)
    key = sqlite_store.insert("clip.wav", vector, {"audio", "audio/wav"})

    records = list(sqlite_store.scan())
    assert len(records) == 1
    assert records[0].key == key == 1
    assert records[0].content == "clip.wav"
    assert records[0].embedding.dtype == np.float32
    assert np.array_equal(records[0].embedding, vector)
    assert records[0].tags == frozenset({"audio", "audio/wav"})


def test_records_survive_reopen(sqlite_path):
    """Inserted records are durable once insert returns."""
    first = SqliteRecordStore(sqlite_path).initialize()
    first.insert("a", [1.0, 0.0])
    first.insert("b", [0.0, 1.0])
    first.close()

    second = SqliteRecordStore(sqlite_path).initialize()
    try:
        assert second.count() == 2
        assert second.dimension == 2
        assert [r.content for r in second.scan()] == ["a", "b"]
        assert second.insert("c", [1.0, 1.0]) == 3
    finally:
        second.close()


def test_dimension_persisted_and_enforced(sqlite_path):
    store = SqliteRecordStore(sqlite_path).initialize()
    store.insert("a", [1.0, 0.0, 0.0])
    store.close()

    reopened = SqliteRecordStore(sqlite_path).initialize()
    try:
        with pytest.raises(DimensionMismatchError):
            reopened.insert("b", [1.0, 0.0])
        assert reopened.count() == 1
    finally:
        reopened.close()


def test_invalid_vectors_not_persisted(sqlite_store):
    sqlite_store.insert("a", [1.0, 0.0])

    with pytest.raises(DimensionMismatchError):
        sqlite_store.insert("empty", [])
    with pytest.raises(ValueError):
        sqlite_store.insert("nan", [float("nan"), 1.0])
    with pytest.raises(ValueError):
        sqlite_store.insert("matrix", [[1.0, 0.0]])

    assert sqlite_store.count() == 1
    assert sqlite_store.insert("b", [0.0, 1.0]) == 2


def test_pinned_dimension_conflict_fails_init(sqlite_path):
    store = SqliteRecordStore(sqlite_path).initialize()
    store.insert("a", [1.0, 0.0])
    store.close()

    with pytest.raises(InitFailure):
        SqliteRecordStore(sqlite_path, dimension=512).initialize()
    assert db.open_handle_count(sqlite_path) == 0


def test_init_failure_on_unusable_path(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("file in the way")

    with pytest.raises(InitFailure):
        SqliteRecordStore(blocker / "db.sqlite3").initialize()


def test_scan_pages_through_large_collections(sqlite_store):
    with patch("clap_search.vector.sqlite_store.SCAN_PAGE_SIZE", 3):
        for i in range(10):
            sqlite_store.insert(f"r{i}", [float(i), 1.0])
        keys = [r.key for r in sqlite_store.scan()]
    assert keys == list(range(1, 11))


def test_insert_io_error_leaves_store_unchanged(sqlite_store):
    sqlite_store.insert("a", [1.0, 0.0])

    real_conn = sqlite_store._conn

    class FailingConnection:
        def execute(self, sql, params=()):
            if sql.startswith("INSERT INTO records"):
                raise sqlite3.OperationalError("disk I/O error")
            return real_conn.execute(sql, params)

        def rollback(self):
            real_conn.rollback()

        def commit(self):
            real_conn.commit()

    sqlite_store._conn = FailingConnection()
    try:
        with pytest.raises(StoreIOError):
            sqlite_store.insert("b", [0.0, 1.0])
    finally:
        sqlite_store._conn = real_conn

    assert sqlite_store.count() == 1


def test_clear_deletes_collection_and_requires_reinit(sqlite_path):
    store = SqliteRecordStore(sqlite_path).initialize()
    store.insert("a", [1.0, 0.0])

    store.clear()
    assert not store.is_initialized
    assert not sqlite_path.exists()
    with pytest.raises(NotReadyError):
        store.insert("b", [1.0, 0.0])

    store.initialize()
    try:
        assert store.insert("b", [1.0, 0.0, 0.0]) == 1
        assert len(list(store.scan())) == 1
    finally:
        store.close()


def test_clear_blocked_by_other_open_handle(sqlite_path):
    """A second open handle on the same collection blocks the drop."""
    first = SqliteRecordStore(sqlite_path).initialize()
    second = SqliteRecordStore(sqlite_path).initialize()
    first.insert("a", [1.0])

    try:
        with pytest.raises(ClearBlockedError):
            first.clear()
        # Blocked clear leaves the collection untouched and usable
        assert first.is_initialized
        assert first.count() == 1
        assert sqlite_path.exists()

        second.close()
        first.clear()
        assert not sqlite_path.exists()
    finally:
        first.close()
        second.close()


def test_clear_blocked_by_lock_from_another_connection(sqlite_path):
    store = SqliteRecordStore(sqlite_path).initialize()
    store.insert("a", [1.0])

    foreign = sqlite3.connect(str(sqlite_path))
    foreign.execute("BEGIN EXCLUSIVE")
    try:
        with pytest.raises(ClearBlockedError):
            store.clear()
    finally:
        foreign.rollback()
        foreign.close()
        store.close()


def test_clear_failure_on_os_error(sqlite_store, sqlite_path):
    with patch("pathlib.Path.unlink", side_effect=OSError("read-only file system")):
        with pytest.raises(ClearFailure):
            sqlite_store.clear()


def test_clear_uninitialized_store_drops_existing_file(sqlite_path):
    store = SqliteRecordStore(sqlite_path).initialize()
    store.insert("a", [1.0])
    store.close()

    SqliteRecordStore(sqlite_path).clear()
    assert not sqlite_path.exists()


def test_scan_in_flight_fails_after_clear(sqlite_store):
    with patch("clap_search.vector.sqlite_store.SCAN_PAGE_SIZE", 1):
        sqlite_store.insert("a", [1.0])
        sqlite_store.insert("b", [2.0])

        scan = sqlite_store.scan()
        assert next(scan).content == "a"
        sqlite_store.clear()

        with pytest.raises(NotReadyError):
            next(scan)


def test_close_releases_handle(sqlite_path):
    store = SqliteRecordStore(sqlite_path).initialize()
    assert db.open_handle_count(sqlite_path) == 1
    store.close()
    assert db.open_handle_count(sqlite_path) == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
