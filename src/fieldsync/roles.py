"""Role detection from auth metadata and the role -> permission lookup.

Role strings arrive loosely typed in the auth provider's app metadata
(a single "role", a "roles" list, and/or an "is_admin" flag). They are
normalised here into RoleInfo and then into the closed Role enum that
keys the permission table.
"""

from __future__ import annotations

import copy
import logging
from pathlib import Path
from typing import Any, Optional

import yaml

from . import config
from .models import Role, RoleInfo

logger = logging.getLogger(__name__)

ADMIN_ROLES = {"admin", "owner", "superadmin", "root"}


def _is_admin_like(role: str) -> bool:
    return role in ADMIN_ROLES or "admin" in role


def derive_role_info(
    email: Optional[str] = None, app_metadata: Optional[dict[str, Any]] = None
) -> RoleInfo:
    """Normalise raw auth metadata into a RoleInfo."""
    meta = app_metadata or {}
    role = str(meta.get("role") or "").strip().lower()
    raw_roles = meta.get("roles")
    roles = (
        [str(r).strip().lower() for r in raw_roles]
        if isinstance(raw_roles, (list, tuple))
        else []
    )
    is_admin = (
        bool(meta.get("is_admin"))
        or _is_admin_like(role)
        or any(_is_admin_like(r) for r in roles)
    )
    is_superadmin = role == "superadmin" or "superadmin" in roles
    return RoleInfo(
        email=str(email or "").lower(),
        role=role,
        roles=roles,
        is_admin=is_admin,
        is_superadmin=is_superadmin,
    )


def can_manage_everything(info: RoleInfo) -> bool:
    return info.is_superadmin


def can_administer(info: RoleInfo) -> bool:
    return info.is_admin or info.is_superadmin


# --- Permission table ---

def _entries(*pairs: tuple[str, str, bool]) -> list[dict]:
    return [{"key": k, "label": label, "allowed": allowed} for k, label, allowed in pairs]


def _default_for(level: int) -> dict[str, list[dict]]:
    """Built-in table: level 0 viewer, 1 editor, 2 admin, 3 superadmin."""
    return {
        "general": _entries(("dashboard.view", "View dashboard", True)),
        "manholes": _entries(
            ("manholes.view", "View chambers", True),
            ("manholes.create", "Add chambers", level >= 1),
            ("manholes.edit", "Edit chambers", level >= 1),
            ("manholes.delete", "Delete chambers", level >= 2),
        ),
        "projects": _entries(
            ("projects.view", "View projects", True),
            ("projects.create", "Create projects", level >= 1),
            ("projects.edit", "Edit projects", level >= 1),
            ("projects.delete", "Delete projects", level >= 2),
        ),
        "media": _entries(
            ("media.upload", "Upload photos", level >= 1),
            ("media.delete", "Delete photos", level >= 2),
        ),
        "exports": _entries(("exports.pdf", "Export reports", True)),
        "adminTools": _entries(
            ("admin.users", "Manage users", level >= 2),
            ("admin.storage", "Manage storage", level >= 2),
            ("admin.permissions", "Edit permissions", level >= 3),
        ),
        "map": _entries(("map.view", "View map", True)),
    }


DEFAULT_PERMISSIONS = {
    role.value: _default_for(level)
    for level, role in enumerate((Role.VIEWER, Role.EDITOR, Role.ADMIN, Role.SUPERADMIN))
}


def load_permissions(path: Optional[Path] = None) -> dict:
    """Read the permission table YAML, falling back to the built-in default."""
    path = path or config.PERMISSIONS_PATH
    if not path.exists():
        return copy.deepcopy(DEFAULT_PERMISSIONS)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        if isinstance(data, dict) and data:
            return data
    except Exception as e:
        logger.warning("Failed to read permissions, using defaults: %s", e)
    return copy.deepcopy(DEFAULT_PERMISSIONS)


def allowed_keys(permissions: dict, role: Role | str) -> set[str]:
    """Every permission key the role has, across all categories."""
    role_key = Role(role).value
    categories = permissions.get(role_key) or {}
    keys = set()
    for entries in categories.values():
        for entry in entries or []:
            if isinstance(entry, dict) and entry.get("allowed"):
                keys.add(entry.get("key"))
    return keys


def has_permission(permissions: dict, role: Role | str, key: str) -> bool:
    """Unknown roles, categories, and keys are denied."""
    try:
        return key in allowed_keys(permissions, role)
    except ValueError:
        return False
