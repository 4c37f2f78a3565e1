"""Tests for role detection and permission lookup."""

import yaml

from fieldsync.models import Role
from fieldsync.roles import (
    DEFAULT_PERMISSIONS,
    allowed_keys,
    can_administer,
    can_manage_everything,
    derive_role_info,
    has_permission,
    load_permissions,
)


class TestDeriveRoleInfo:
    def test_empty_metadata(self):
        info = derive_role_info(None, None)
        assert info.email == ""
        assert not info.is_admin
        assert info.effective_role == Role.VIEWER

    def test_email_lowercased(self):
        assert derive_role_info("Surveyor@Example.COM", {}).email == "surveyor@example.com"

    def test_admin_role(self):
        info = derive_role_info("a@x.com", {"role": "Admin"})
        assert info.is_admin
        assert not info.is_superadmin
        assert info.effective_role == Role.ADMIN
        assert can_administer(info)
        assert not can_manage_everything(info)

    def test_owner_in_roles_list(self):
        assert derive_role_info(None, {"roles": ["viewer", "owner"]}).is_admin

    def test_admin_substring(self):
        assert derive_role_info(None, {"role": "site-admin"}).is_admin

    def test_is_admin_flag(self):
        assert derive_role_info(None, {"is_admin": True}).is_admin

    def test_superadmin_exact(self):
        info = derive_role_info(None, {"role": "superadmin"})
        assert info.is_superadmin
        assert info.effective_role == Role.SUPERADMIN
        assert can_manage_everything(info)

    def test_superadmin_not_substring(self):
        info = derive_role_info(None, {"role": "not-superadmin-really"})
        assert info.is_admin
        assert not info.is_superadmin

    def test_editor(self):
        assert derive_role_info(None, {"roles": ["editor"]}).effective_role == Role.EDITOR

    def test_roles_not_a_list_ignored(self):
        assert derive_role_info(None, {"roles": "admin"}).roles == []


class TestPermissions:
    def test_defaults_when_missing(self, temp_data_dir):
        assert load_permissions() == DEFAULT_PERMISSIONS

    def test_viewer_is_read_only(self):
        keys = allowed_keys(DEFAULT_PERMISSIONS, Role.VIEWER)
        assert "manholes.view" in keys
        assert "manholes.create" not in keys

    def test_has_permission(self):
        assert has_permission(DEFAULT_PERMISSIONS, "editor", "media.upload")
        assert not has_permission(DEFAULT_PERMISSIONS, "editor", "admin.users")
        assert has_permission(DEFAULT_PERMISSIONS, Role.SUPERADMIN, "admin.permissions")
        assert not has_permission(DEFAULT_PERMISSIONS, Role.ADMIN, "admin.permissions")

    def test_unknown_role_and_key_denied(self):
        assert not has_permission(DEFAULT_PERMISSIONS, "janitor", "manholes.view")
        assert not has_permission(DEFAULT_PERMISSIONS, "admin", "nonexistent.key")

    def test_load_from_yaml(self, temp_data_dir):
        table = {
            "viewer": {
                "manholes": [{"key": "manholes.create", "label": "Add chambers", "allowed": True}],
            },
        }
        (temp_data_dir / "permissions.yaml").write_text(yaml.safe_dump(table))
        loaded = load_permissions()
        assert has_permission(loaded, "viewer", "manholes.create")
        assert not has_permission(loaded, "editor", "manholes.create")

    def test_invalid_yaml_falls_back(self, temp_data_dir):
        (temp_data_dir / "permissions.yaml").write_text("viewer: [unclosed")
        assert load_permissions() == DEFAULT_PERMISSIONS

    def test_loaded_defaults_are_a_copy(self, temp_data_dir):
        first = load_permissions()
        first["viewer"]["manholes"][0]["allowed"] = False
        first["intruder"] = {}
        again = load_permissions()
        assert "intruder" not in again
        assert has_permission(again, Role.VIEWER, "manholes.view")
        assert has_permission(DEFAULT_PERMISSIONS, Role.VIEWER, "manholes.view")
