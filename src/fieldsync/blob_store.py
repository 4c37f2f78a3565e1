"""Blob staging store -- photos captured offline, held until uploaded.

Blobs live in the staged_blobs table of the local store, keyed by a
generated uuid that is unrelated to any record id. Queue payloads carry
the key, never the bytes. If the local store cannot be opened, staging
degrades to "not capturable" (None) instead of raising.
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime
from typing import Iterable, Optional

from .db import delete_blobs, get_blob, get_connection, insert_blob, list_blob_keys
from .models import StagedBlob

logger = logging.getLogger(__name__)


def _generate_key() -> str:
    return uuid.uuid4().hex


def stage(data: bytes, mime_type: str, filename: str) -> Optional[str]:
    """Persist a blob locally. Returns its key, or None if the store is unavailable."""
    key = _generate_key()
    try:
        conn = get_connection()
    except (sqlite3.Error, OSError) as e:
        logger.warning("Blob staging unavailable, %s not captured: %s", filename, e)
        return None
    try:
        insert_blob(conn, key, bytes(data), mime_type or "", filename or "")
        return key
    except sqlite3.Error as e:
        logger.warning("Failed to stage blob %s: %s", filename, e)
        return None
    finally:
        conn.close()


def retrieve(key: str) -> Optional[StagedBlob]:
    """Read a staged blob back. None if absent or the store is unavailable."""
    if not key:
        return None
    try:
        conn = get_connection()
    except (sqlite3.Error, OSError) as e:
        logger.warning("Blob staging unavailable, cannot read %s: %s", key, e)
        return None
    try:
        row = get_blob(conn, key)
    except sqlite3.Error as e:
        logger.warning("Failed to read staged blob %s: %s", key, e)
        return None
    finally:
        conn.close()
    if row is None:
        return None
    return StagedBlob(
        key=row["key"],
        data=bytes(row["data"]),
        mime_type=row["mime_type"],
        filename=row["filename"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def remove(keys: Iterable[Optional[str]]) -> None:
    """Delete staged blobs. Missing or empty keys are ignored."""
    valid = [k for k in keys if k]
    if not valid:
        return
    try:
        conn = get_connection()
    except (sqlite3.Error, OSError) as e:
        logger.warning("Blob staging unavailable, cannot remove %d blob(s): %s", len(valid), e)
        return
    try:
        removed = delete_blobs(conn, valid)
        logger.debug("Removed %d of %d staged blob(s)", removed, len(valid))
    except sqlite3.Error as e:
        logger.warning("Failed to remove staged blobs: %s", e)
    finally:
        conn.close()


def list_staged_keys() -> list[str]:
    """Keys of every blob still staged (orphans if the queue is empty)."""
    try:
        conn = get_connection()
    except (sqlite3.Error, OSError) as e:
        logger.warning("Blob staging unavailable: %s", e)
        return []
    try:
        return list_blob_keys(conn)
    finally:
        conn.close()
