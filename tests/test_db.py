"""Tests for the db module (schema and CRUD)."""

import sqlite3

from fieldsync.db import (
    clear_mutations,
    count_mutations,
    delete_blobs,
    delete_mutation,
    get_blob,
    get_cache,
    get_connection,
    get_mutations,
    get_stats,
    get_sync_state,
    init_db,
    insert_blob,
    insert_mutation,
    list_blob_keys,
    now_iso,
    record_drain,
    upsert_cache,
)


def _setup():
    init_db()
    return get_connection()


class TestSchema:
    def test_tables_created(self, temp_data_dir):
        init_db()
        conn = sqlite3.connect(str(temp_data_dir / "fieldsync.db"))
        tables = {
            row[0]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        }
        conn.close()
        assert {"mutation_queue", "staged_blobs", "offline_cache", "sync_state"} <= tables

    def test_init_idempotent(self, temp_data_dir):
        init_db()
        init_db()
        conn = get_connection()
        assert count_mutations(conn) == 0
        conn.close()

    def test_now_iso_has_timezone(self):
        assert now_iso().endswith("+00:00")


class TestMutationCrud:
    def test_insert_and_order(self, temp_data_dir):
        conn = _setup()
        insert_mutation(conn, "b", "create-project", {"name": "B"})
        insert_mutation(conn, "a", "create-project", {"name": "A"})
        rows = get_mutations(conn)
        assert [r["id"] for r in rows] == ["b", "a"]
        assert count_mutations(conn) == 2
        conn.close()

    def test_delete(self, temp_data_dir):
        conn = _setup()
        insert_mutation(conn, "a", "create-project", {})
        assert delete_mutation(conn, "a") is True
        assert delete_mutation(conn, "a") is False
        conn.close()

    def test_clear(self, temp_data_dir):
        conn = _setup()
        insert_mutation(conn, "a", "create-project", {})
        insert_mutation(conn, "b", "create-project", {})
        assert clear_mutations(conn) == 2
        assert count_mutations(conn) == 0
        conn.close()


class TestBlobCrud:
    def test_insert_get_delete(self, temp_data_dir):
        conn = _setup()
        insert_blob(conn, "k1", b"\x00\x01binary", "image/png", "p.png")
        insert_blob(conn, "k2", b"x", "image/jpeg", "x.jpg")
        assert bytes(get_blob(conn, "k1")["data"]) == b"\x00\x01binary"
        assert delete_blobs(conn, ["k1", "missing"]) == 1
        assert get_blob(conn, "k1") is None
        assert list_blob_keys(conn) == ["k2"]
        assert delete_blobs(conn, []) == 0
        conn.close()


class TestCacheAndState:
    def test_upsert_cache(self, temp_data_dir):
        conn = _setup()
        upsert_cache(conn, "projects", [{"id": 1}])
        upsert_cache(conn, "projects", [{"id": 2}])
        assert get_cache(conn, "projects")["data"] == '[{"id": 2}]'
        conn.close()

    def test_record_drain_single_row(self, temp_data_dir):
        conn = _setup()
        assert get_sync_state(conn) is None
        record_drain(conn, 3, 0, "Synced 3")
        record_drain(conn, 1, 2, "Synced 1, failed 2")
        row = get_sync_state(conn)
        assert (row["last_success"], row["last_failed"]) == (1, 2)
        assert row["last_message"] == "Synced 1, failed 2"
        assert conn.execute("SELECT COUNT(*) FROM sync_state").fetchone()[0] == 1
        conn.close()


class TestStats:
    def test_counts(self, temp_data_dir):
        conn = _setup()
        insert_mutation(conn, "a", "create-project", {})
        insert_mutation(conn, "b", "create-chamber", {})
        insert_mutation(conn, "c", "create-chamber", {})
        insert_blob(conn, "k", b"x", "image/jpeg", "x.jpg")
        stats = get_stats(conn)
        conn.close()
        assert stats["queued_mutations"] == 3
        assert stats["staged_blobs"] == 1
        assert stats["mutations_by_type"] == {"create-project": 1, "create-chamber": 2}
        assert stats["db_size_mb"] >= 0
