"""Pydantic data models for FieldSync."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# --- Enums ---

class MutationType(str, Enum):
    CREATE_PROJECT = "create-project"
    UPDATE_PROJECT = "update-project"
    CREATE_CHAMBER = "create-chamber"
    UPDATE_CHAMBER = "update-chamber"


class Role(str, Enum):
    VIEWER = "viewer"
    EDITOR = "editor"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


# --- Queue payloads (one variant per MutationType) ---

class ProjectLookup(BaseModel):
    """Natural key used to re-find a project whose real id is unknown."""

    project_number: Optional[str] = None
    name: Optional[str] = None
    client: Optional[str] = None


class StagedPhotoRef(BaseModel):
    key: Optional[str] = Field(default=None, description="Blob staging store key")
    data_url: Optional[str] = Field(
        default=None, description="Inline base64 data URL fallback"
    )
    name: str = ""
    type: str = ""


class OfflinePhotos(BaseModel):
    internal: Optional[StagedPhotoRef] = None
    external: Optional[StagedPhotoRef] = None


class ProjectInsertPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    name: Optional[str] = None
    project_number: Optional[str] = None
    client: Optional[str] = None


class ProjectUpdatePayload(BaseModel):
    id: str
    update: dict[str, Any] = Field(default_factory=dict)


class ChamberInsertPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    project_id: str
    identifier: str
    project_lookup: Optional[ProjectLookup] = None
    offline_photos: Optional[OfflinePhotos] = None


class ChamberUpdatePayload(BaseModel):
    id: str
    update: dict[str, Any] = Field(default_factory=dict)


MutationPayload = Union[
    ProjectInsertPayload,
    ProjectUpdatePayload,
    ChamberInsertPayload,
    ChamberUpdatePayload,
]

PAYLOAD_MODELS: dict[MutationType, type[BaseModel]] = {
    MutationType.CREATE_PROJECT: ProjectInsertPayload,
    MutationType.UPDATE_PROJECT: ProjectUpdatePayload,
    MutationType.CREATE_CHAMBER: ChamberInsertPayload,
    MutationType.UPDATE_CHAMBER: ChamberUpdatePayload,
}


# --- Queue entries ---

class QueuedMutation(BaseModel):
    id: str
    type: MutationType
    payload: dict[str, Any]
    created_at: datetime

    def parsed_payload(self) -> MutationPayload:
        """Validate the raw payload against the model for this entry's type."""
        return PAYLOAD_MODELS[self.type].model_validate(self.payload)


class PhotoFile(BaseModel):
    """A photo as captured by a form, before it is staged."""

    data: bytes
    mime_type: str = ""
    filename: str = ""


class StagedBlob(BaseModel):
    key: str
    data: bytes
    mime_type: str
    filename: str
    created_at: Optional[datetime] = None


class DrainResult(BaseModel):
    success: int = 0
    failed: int = 0
    warnings: list[str] = Field(default_factory=list)
    skipped: bool = Field(
        default=False, description="True when another drain pass was already running"
    )


class CachedList(BaseModel):
    key: str
    data: list[dict[str, Any]]
    cached_at: datetime


# --- Roles ---

class RoleInfo(BaseModel):
    email: str = ""
    role: str = ""
    roles: list[str] = Field(default_factory=list)
    is_admin: bool = False
    is_superadmin: bool = False

    @property
    def effective_role(self) -> Role:
        if self.is_superadmin:
            return Role.SUPERADMIN
        if self.is_admin:
            return Role.ADMIN
        if "editor" in self.role or any("editor" in r for r in self.roles):
            return Role.EDITOR
        return Role.VIEWER
