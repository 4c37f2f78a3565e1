"""Offline capture -- turn form submissions into queued mutations.

These are the enqueue call sites: they mint temporary ids, stage photos,
and attach the project lookup descriptor a chamber needs so the
reconciler can re-find its project after that project has synced.
"""

from __future__ import annotations

import base64
import logging
import uuid
from typing import Any, Optional

from . import blob_store, mutation_log, offline_cache
from .config import PHOTO_SLOTS, TEMP_ID_PREFIX
from .models import MutationType, OfflinePhotos, PhotoFile, ProjectLookup, StagedPhotoRef

logger = logging.getLogger(__name__)


def new_temp_id() -> str:
    return f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}"


def build_project_lookup(project: dict[str, Any]) -> ProjectLookup:
    """Natural key exactly as the project row stores it.

    Blank strings stay blank and missing fields stay None, so the lookup
    filters (eq. vs is.null) match what the backend holds for the row.
    """
    return ProjectLookup(
        project_number=project.get("project_number"),
        name=project.get("name"),
        client=project.get("client"),
    )


def to_data_url(photo: PhotoFile) -> str:
    encoded = base64.b64encode(photo.data).decode("ascii")
    return f"data:{photo.mime_type or 'application/octet-stream'};base64,{encoded}"


def _stage_photo(photo: PhotoFile) -> StagedPhotoRef:
    """Stage bytes locally; the inline data URL covers a failed stage."""
    key = blob_store.stage(photo.data, photo.mime_type, photo.filename)
    if key is None:
        logger.warning("Could not stage %s; keeping inline copy only", photo.filename)
    return StagedPhotoRef(
        key=key,
        data_url=to_data_url(photo),
        name=photo.filename,
        type=photo.mime_type,
    )


def queue_project_create(row: dict[str, Any]) -> tuple[str, Optional[str]]:
    """Queue a new project. Returns (temporary id, mutation id).

    The project is also appended to the cached project list so chamber
    forms can pick it before it has synced.
    """
    temp_id = new_temp_id()
    payload = {**row, "id": temp_id}
    mutation_id = mutation_log.enqueue(MutationType.CREATE_PROJECT, payload)
    if mutation_id is not None:
        offline_cache.append_cached("projects", payload)
    return temp_id, mutation_id


def queue_project_update(project_id: str, update: dict[str, Any]) -> Optional[str]:
    return mutation_log.enqueue(
        MutationType.UPDATE_PROJECT, {"id": project_id, "update": update}
    )


def queue_chamber_create(
    row: dict[str, Any],
    project: Optional[dict[str, Any]] = None,
    internal_photo: Optional[PhotoFile] = None,
    external_photo: Optional[PhotoFile] = None,
) -> Optional[str]:
    """Queue a new chamber, staging any photos taken with it.

    project is the selected project record (from the cached list); when
    given, its natural key travels with the payload as project_lookup.
    """
    payload = dict(row)
    photos = {}
    for slot, photo in zip(PHOTO_SLOTS, (internal_photo, external_photo)):
        if photo is not None:
            photos[slot] = _stage_photo(photo)
    if photos:
        payload["offline_photos"] = OfflinePhotos(**photos).model_dump(exclude_none=True)
    if project is not None:
        payload["project_lookup"] = build_project_lookup(project).model_dump()
    return mutation_log.enqueue(MutationType.CREATE_CHAMBER, payload)


def queue_chamber_update(chamber_id: str, update: dict[str, Any]) -> Optional[str]:
    return mutation_log.enqueue(
        MutationType.UPDATE_CHAMBER, {"id": chamber_id, "update": update}
    )
