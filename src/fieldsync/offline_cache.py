"""Cached project/chamber lists for forms used without connectivity."""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from typing import Any, Optional

from .config import CACHE_KEYS
from .db import get_cache, get_connection, upsert_cache
from .models import CachedList

logger = logging.getLogger(__name__)


def _check_key(key: str) -> None:
    if key not in CACHE_KEYS:
        raise ValueError(f"Unknown cache key {key!r}; expected one of {', '.join(CACHE_KEYS)}")


def cache_list(key: str, rows: list[dict[str, Any]]) -> bool:
    """Replace the cached list for key. Returns False if the store is unavailable."""
    _check_key(key)
    try:
        conn = get_connection()
    except (sqlite3.Error, OSError) as e:
        logger.warning("Offline cache unavailable, %s not cached: %s", key, e)
        return False
    try:
        upsert_cache(conn, key, rows)
        return True
    except sqlite3.Error as e:
        logger.warning("Failed to cache %s: %s", key, e)
        return False
    finally:
        conn.close()


def get_cached_list(key: str) -> Optional[CachedList]:
    """Read a cached list, or None if nothing was cached yet."""
    _check_key(key)
    try:
        conn = get_connection()
    except (sqlite3.Error, OSError) as e:
        logger.warning("Offline cache unavailable: %s", e)
        return None
    try:
        row = get_cache(conn, key)
    finally:
        conn.close()
    if row is None:
        return None
    return CachedList(
        key=row["key"],
        data=json.loads(row["data"]),
        cached_at=datetime.fromisoformat(row["cached_at"]),
    )


def append_cached(key: str, row: dict[str, Any]) -> bool:
    """Add one row to a cached list (e.g. a project created offline)."""
    cached = get_cached_list(key)
    rows = cached.data if cached else []
    rows.append(row)
    return cache_list(key, rows)
