"""Replay engine -- drains the offline queue against the hosted backend.

One drain pass walks the mutation log oldest first. Each entry is
dispatched on its type, its remote calls run strictly in sequence, and
the entry is removed only after everything it needs has succeeded. A
failing entry stays queued and the pass moves on to the next one.

Chamber inserts get two extra steps:
  - a project_id that is still a client-minted temporary id is swapped
    for the real one, found by querying projects on the natural key
    carried in project_lookup (a miss leaves the temporary id in place
    and the insert is left to fail);
  - staged photos are uploaded, and their public URLs are patched onto
    the new chamber. Photo failures are warnings, not entry failures,
    because the chamber row already exists.

Delivery is at-least-once: a crash between the remote write and the
local removal replays the entry on the next pass.
"""

from __future__ import annotations

import base64
import binascii
import logging
import threading
import time
from typing import Callable, Optional

from . import blob_store, config, mutation_log
from .backend import Backend, BackendError
from .config import (
    CHAMBERS_TABLE,
    DEFAULT_PHOTO_EXTENSION,
    DEFAULT_PHOTO_MIME,
    PHOTO_SLOTS,
    PROJECT_LOOKUP_FIELDS,
    PROJECTS_TABLE,
    TEMP_ID_PREFIX,
)
from .db import get_connection, record_drain
from .models import (
    ChamberInsertPayload,
    ChamberUpdatePayload,
    DrainResult,
    MutationType,
    ProjectInsertPayload,
    ProjectLookup,
    ProjectUpdatePayload,
    QueuedMutation,
    StagedPhotoRef,
)

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str], None]


def is_temp_id(value: Optional[str]) -> bool:
    return isinstance(value, str) and value.startswith(TEMP_ID_PREFIX)


def photo_extension(filename: str) -> str:
    """Lower-cased extension of filename, or the default image extension."""
    if "." in filename:
        ext = filename.rsplit(".", 1)[1].strip().lower()
        if ext:
            return ext
    return DEFAULT_PHOTO_EXTENSION


def decode_data_url(data_url: str) -> Optional[tuple[bytes, str]]:
    """Decode a base64 data URL into (bytes, mime type). None if malformed."""
    if not data_url or not data_url.startswith("data:") or "," not in data_url:
        return None
    header, _, encoded = data_url.partition(",")
    meta = header[len("data:"):]
    if not meta.endswith(";base64"):
        return None
    mime_type = meta[: -len(";base64")]
    try:
        return base64.b64decode(encoded, validate=True), mime_type
    except (binascii.Error, ValueError):
        return None


class QueueReconciler:
    """Drains the mutation log. One pass at a time per instance."""

    def __init__(self, backend: Optional[Backend], photo_bucket: Optional[str] = None) -> None:
        self.backend = backend
        self.photo_bucket = photo_bucket or config.PHOTO_BUCKET
        self._drain_lock = threading.Lock()

    @property
    def draining(self) -> bool:
        return self._drain_lock.locked()

    def drain(self, on_status: Optional[StatusCallback] = None) -> DrainResult:
        """Replay every queued mutation once. Never raises."""
        if self.backend is None:
            return DrainResult()
        if not self._drain_lock.acquire(blocking=False):
            logger.info("Drain already in progress, skipping")
            return DrainResult(skipped=True)
        try:
            return self._drain(on_status)
        finally:
            self._drain_lock.release()

    def _drain(self, on_status: Optional[StatusCallback]) -> DrainResult:
        result = DrainResult()
        try:
            queue = mutation_log.list_queue()
        except Exception as e:
            logger.error("Could not read offline queue: %s", e, exc_info=True)
            return result
        if not queue:
            return result

        logger.info("Draining %d queued mutation(s)", len(queue))
        for item in queue:
            try:
                warnings = self._apply(item)
                mutation_log.remove(item.id)
            except Exception as e:
                result.failed += 1
                logger.warning("Sync failed for %s (%s): %s", item.type.value, item.id, e)
                continue
            result.success += 1
            for warning in warnings:
                result.warnings.append(warning)
                self._notify(on_status, warning)
            self._notify(on_status, f"Synced {item.type.value}")

        logger.info(
            "Drain complete: %d synced, %d failed, %d warning(s)",
            result.success, result.failed, len(result.warnings),
        )
        self._record(result)
        return result

    def _notify(self, on_status: Optional[StatusCallback], message: str) -> None:
        if on_status is None:
            return
        try:
            on_status(message)
        except Exception as e:
            logger.warning("Status callback raised: %s", e)

    def _record(self, result: DrainResult) -> None:
        message = (
            f"Synced {result.success}, failed {result.failed}"
            if result.failed else f"Synced {result.success}"
        )
        try:
            conn = get_connection()
            try:
                record_drain(conn, result.success, result.failed, message)
            finally:
                conn.close()
        except Exception as e:
            logger.warning("Could not record drain result: %s", e)

    # --- Dispatch ---

    def _apply(self, item: QueuedMutation) -> list[str]:
        """Run the remote writes for one entry. Returns non-fatal warnings."""
        payload = item.parsed_payload()
        if item.type is MutationType.CREATE_PROJECT:
            self._create_project(payload)
        elif item.type is MutationType.UPDATE_PROJECT:
            self._update(PROJECTS_TABLE, payload)
        elif item.type is MutationType.CREATE_CHAMBER:
            return self._create_chamber(payload)
        elif item.type is MutationType.UPDATE_CHAMBER:
            self._update(CHAMBERS_TABLE, payload)
        else:
            raise ValueError(f"Unknown mutation type: {item.type}")
        return []

    def _create_project(self, payload: ProjectInsertPayload) -> str:
        row = payload.model_dump(exclude_unset=True)
        if is_temp_id(row.get("id")):
            # Server assigns the real id
            row.pop("id")
        return self.backend.insert(PROJECTS_TABLE, row)

    def _update(
        self, table: str, payload: ProjectUpdatePayload | ChamberUpdatePayload
    ) -> None:
        self.backend.update(table, payload.id, payload.update)

    def _create_chamber(self, payload: ChamberInsertPayload) -> list[str]:
        row = payload.model_dump(
            exclude_unset=True, exclude={"project_lookup", "offline_photos"}
        )
        if is_temp_id(payload.project_id) and payload.project_lookup is not None:
            real_id = self._resolve_project(payload.project_lookup)
            if real_id:
                logger.info("Resolved %s -> %s", payload.project_id, real_id)
                row["project_id"] = real_id
            else:
                logger.info("Could not resolve %s; inserting as-is", payload.project_id)

        chamber_id = self.backend.insert(CHAMBERS_TABLE, row)
        if payload.offline_photos is None:
            return []
        return self._promote_photos(chamber_id, payload)

    def _resolve_project(self, lookup: ProjectLookup) -> Optional[str]:
        filters = {field: getattr(lookup, field) for field in PROJECT_LOOKUP_FIELDS}
        try:
            match = self.backend.query(PROJECTS_TABLE, filters)
        except BackendError as e:
            logger.warning("Project lookup failed: %s", e)
            return None
        if match and match.get("id"):
            return str(match["id"])
        return None

    # --- Blob promotion ---

    def _promote_photos(self, chamber_id: str, payload: ChamberInsertPayload) -> list[str]:
        warnings = []
        photos = payload.offline_photos
        for slot in PHOTO_SLOTS:
            ref = getattr(photos, slot)
            if ref is None:
                continue
            try:
                self._promote_one(chamber_id, slot, ref)
            except Exception as e:
                warnings.append(f"Failed to upload {slot} photo for chamber {chamber_id}: {e}")
        blob_store.remove([
            photos.internal.key if photos.internal else None,
            photos.external.key if photos.external else None,
        ])
        return warnings

    def _promote_one(self, chamber_id: str, slot: str, ref: StagedPhotoRef) -> None:
        data = None
        mime_type = ref.type
        filename = ref.name
        if ref.key:
            staged = blob_store.retrieve(ref.key)
            if staged is not None:
                data = staged.data
                mime_type = staged.mime_type or mime_type
                filename = staged.filename or filename
        if data is None and ref.data_url:
            decoded = decode_data_url(ref.data_url)
            if decoded is not None:
                data, inline_mime = decoded
                mime_type = mime_type or inline_mime
        if not data:
            logger.debug("No bytes for %s photo of chamber %s, skipping", slot, chamber_id)
            return

        ext = photo_extension(filename or "")
        path = f"{chamber_id}/{slot}-{int(time.time() * 1000)}.{ext}"
        url = self.backend.upload_blob(
            self.photo_bucket, path, data, mime_type or DEFAULT_PHOTO_MIME
        )
        self.backend.update(CHAMBERS_TABLE, chamber_id, {f"{slot}_photo_url": url})
        logger.info("Uploaded %s photo for chamber %s", slot, chamber_id)
