"""SQLite database initialization, schema, and CRUD operations."""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Any, Optional

from .config import DB_PATH, ensure_data_dirs


def get_connection() -> sqlite3.Connection:
    """Get a database connection on the local store."""
    ensure_data_dirs()
    conn = sqlite3.connect(str(DB_PATH), timeout=30)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout=30000")
    conn.executescript(SCHEMA_SQL)
    return conn


def init_db() -> None:
    """Initialize the database schema."""
    conn = get_connection()
    conn.close()


SCHEMA_SQL = """
-- Pending writes, replayed oldest first (seq)
CREATE TABLE IF NOT EXISTS mutation_queue (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    type TEXT NOT NULL,
    payload TEXT NOT NULL,
    created_at TEXT NOT NULL
);

-- Binary attachments captured offline
CREATE TABLE IF NOT EXISTS staged_blobs (
    key TEXT PRIMARY KEY,
    data BLOB NOT NULL,
    mime_type TEXT NOT NULL DEFAULT '',
    filename TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL
);

-- Cached pick-lists (projects, chambers) for offline forms
CREATE TABLE IF NOT EXISTS offline_cache (
    key TEXT PRIMARY KEY,
    data TEXT NOT NULL DEFAULT '[]',
    cached_at TEXT NOT NULL
);

-- Outcome of the most recent drain pass (single row)
CREATE TABLE IF NOT EXISTS sync_state (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    last_drain_at TEXT,
    last_success INTEGER NOT NULL DEFAULT 0,
    last_failed INTEGER NOT NULL DEFAULT 0,
    last_message TEXT NOT NULL DEFAULT ''
);
"""


def now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(timezone.utc).isoformat()


# --- Mutation queue CRUD ---

def insert_mutation(
    conn: sqlite3.Connection,
    mutation_id: str,
    mutation_type: str,
    payload: dict[str, Any],
) -> None:
    conn.execute(
        """INSERT INTO mutation_queue (id, type, payload, created_at)
        VALUES (?, ?, ?, ?)""",
        (mutation_id, mutation_type, json.dumps(payload), now_iso()),
    )
    conn.commit()


def get_mutations(conn: sqlite3.Connection) -> list[sqlite3.Row]:
    return conn.execute(
        "SELECT * FROM mutation_queue ORDER BY seq ASC"
    ).fetchall()


def count_mutations(conn: sqlite3.Connection) -> int:
    row = conn.execute("SELECT COUNT(*) AS n FROM mutation_queue").fetchone()
    return row["n"]


def delete_mutation(conn: sqlite3.Connection, mutation_id: str) -> bool:
    """Delete one queued mutation. Returns True if a row was removed."""
    cursor = conn.execute("DELETE FROM mutation_queue WHERE id = ?", (mutation_id,))
    conn.commit()
    return cursor.rowcount > 0


def clear_mutations(conn: sqlite3.Connection) -> int:
    cursor = conn.execute("DELETE FROM mutation_queue")
    conn.commit()
    return cursor.rowcount


# --- Staged blob CRUD ---

def insert_blob(
    conn: sqlite3.Connection,
    key: str,
    data: bytes,
    mime_type: str,
    filename: str,
) -> None:
    conn.execute(
        """INSERT INTO staged_blobs (key, data, mime_type, filename, created_at)
        VALUES (?, ?, ?, ?, ?)""",
        (key, sqlite3.Binary(data), mime_type, filename, now_iso()),
    )
    conn.commit()


def get_blob(conn: sqlite3.Connection, key: str) -> Optional[sqlite3.Row]:
    return conn.execute(
        "SELECT * FROM staged_blobs WHERE key = ?", (key,)
    ).fetchone()


def delete_blobs(conn: sqlite3.Connection, keys: list[str]) -> int:
    if not keys:
        return 0
    placeholders = ",".join("?" * len(keys))
    cursor = conn.execute(
        f"DELETE FROM staged_blobs WHERE key IN ({placeholders})", keys
    )
    conn.commit()
    return cursor.rowcount


def list_blob_keys(conn: sqlite3.Connection) -> list[str]:
    rows = conn.execute(
        "SELECT key FROM staged_blobs ORDER BY created_at ASC"
    ).fetchall()
    return [row["key"] for row in rows]


# --- Offline cache CRUD ---

def upsert_cache(conn: sqlite3.Connection, key: str, data: list[dict]) -> None:
    conn.execute(
        """INSERT INTO offline_cache (key, data, cached_at) VALUES (?, ?, ?)
        ON CONFLICT(key) DO UPDATE SET data = excluded.data, cached_at = excluded.cached_at""",
        (key, json.dumps(data), now_iso()),
    )
    conn.commit()


def get_cache(conn: sqlite3.Connection, key: str) -> Optional[sqlite3.Row]:
    return conn.execute(
        "SELECT * FROM offline_cache WHERE key = ?", (key,)
    ).fetchone()


# --- Sync state ---

def record_drain(
    conn: sqlite3.Connection, success: int, failed: int, message: str = ""
) -> None:
    conn.execute(
        """INSERT INTO sync_state (id, last_drain_at, last_success, last_failed, last_message)
        VALUES (1, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            last_drain_at = excluded.last_drain_at,
            last_success = excluded.last_success,
            last_failed = excluded.last_failed,
            last_message = excluded.last_message""",
        (now_iso(), success, failed, message),
    )
    conn.commit()


def get_sync_state(conn: sqlite3.Connection) -> Optional[sqlite3.Row]:
    return conn.execute("SELECT * FROM sync_state WHERE id = 1").fetchone()


def get_stats(conn: sqlite3.Connection) -> dict:
    """Get counts for the local store."""
    queued = count_mutations(conn)
    blobs = conn.execute("SELECT COUNT(*) AS n FROM staged_blobs").fetchone()["n"]
    by_type = {
        row["type"]: row["n"]
        for row in conn.execute(
            "SELECT type, COUNT(*) AS n FROM mutation_queue GROUP BY type"
        ).fetchall()
    }
    db_size = DB_PATH.stat().st_size if DB_PATH.exists() else 0
    return {
        "queued_mutations": queued,
        "staged_blobs": blobs,
        "mutations_by_type": by_type,
        "db_size_mb": round(db_size / (1024 * 1024), 2),
    }
