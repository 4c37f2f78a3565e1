"""Durable, ordered log of writes waiting for connectivity.

Entries are replayed oldest first by the reconciler. The only writers are
enqueue() and the reconciler's remove() on success; clear() is the
user-facing escape hatch.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from datetime import datetime
from typing import Any, Optional, Union

from .db import (
    clear_mutations,
    count_mutations,
    delete_mutation,
    get_connection,
    get_mutations,
    insert_mutation,
)
from .models import PAYLOAD_MODELS, MutationType, QueuedMutation

logger = logging.getLogger(__name__)


def _generate_id() -> str:
    return uuid.uuid4().hex


def _parse_mutation_row(row) -> QueuedMutation:
    """Convert a database row to a QueuedMutation model."""
    return QueuedMutation(
        id=row["id"],
        type=MutationType(row["type"]),
        payload=json.loads(row["payload"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


def enqueue(
    mutation_type: Union[MutationType, str], payload: dict[str, Any]
) -> Optional[str]:
    """Append a pending write. Returns its id, or None if the local store is unavailable.

    The payload is validated against the model for its type and must be
    JSON-serialisable; both checks raise before anything is written.
    """
    mutation_type = MutationType(mutation_type)
    PAYLOAD_MODELS[mutation_type].model_validate(payload)
    # Round-trip now so a bad value fails at the call site, not at replay.
    # NaN and Infinity raise ValueError
    payload = json.loads(json.dumps(payload, allow_nan=False))

    mutation_id = _generate_id()
    try:
        conn = get_connection()
    except (sqlite3.Error, OSError) as e:
        logger.warning("Offline queue unavailable, %s not queued: %s", mutation_type.value, e)
        return None
    try:
        insert_mutation(conn, mutation_id, mutation_type.value, payload)
    except sqlite3.Error as e:
        logger.warning("Failed to queue %s: %s", mutation_type.value, e)
        return None
    finally:
        conn.close()
    logger.info("Queued %s (%s)", mutation_type.value, mutation_id)
    return mutation_id


def list_queue() -> list[QueuedMutation]:
    """All pending entries, oldest first."""
    try:
        conn = get_connection()
    except (sqlite3.Error, OSError) as e:
        logger.warning("Offline queue unavailable: %s", e)
        return []
    try:
        rows = get_mutations(conn)
    finally:
        conn.close()
    queue = []
    for row in rows:
        try:
            queue.append(_parse_mutation_row(row))
        except (ValueError, KeyError) as e:
            logger.warning("Skipping unreadable queue entry %s: %s", row["id"], e)
    return queue


def queue_depth() -> int:
    try:
        conn = get_connection()
    except (sqlite3.Error, OSError) as e:
        logger.warning("Offline queue unavailable: %s", e)
        return 0
    try:
        return count_mutations(conn)
    finally:
        conn.close()


def remove(mutation_id: str) -> bool:
    """Delete one entry. Removing a missing id is a no-op that returns False."""
    conn = get_connection()
    try:
        return delete_mutation(conn, mutation_id)
    finally:
        conn.close()


def clear() -> int:
    """Drop every pending entry. Returns the number removed."""
    conn = get_connection()
    try:
        removed = clear_mutations(conn)
    finally:
        conn.close()
    logger.info("Cleared offline queue (%d entries)", removed)
    return removed
