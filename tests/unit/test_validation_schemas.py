"""
tests/unit/test_validation_schemas.py — Unit tests for all marshmallow schemas.

What this file proves:
  - Every schema accepts valid input without raising
  - Every schema rejects invalid input with a ValidationError keyed by field
  - Field-level rules (type, length, password strength, duplicate entries)
    are enforced by schemas
  - Cross-entity rules (feature/role existence, uniqueness, protected
    entities) are NOT tested here; they belong in services

Unit test constraints:
  - No database and no Flask application context. Schemas inherit from
    marshmallow.Schema directly (not ma.Schema), which is what makes this
    possible (see extensions.py).
"""

from __future__ import annotations

import pytest
from marshmallow import ValidationError

from gatehouse.schemas.auth_schema import LoginSchema, RefreshTokenSchema
from gatehouse.schemas.rbac_schema import (
    CreateFeatureSchema,
    CreateRoleSchema,
    ListRolesQuerySchema,
    PaginationQuerySchema,
    UpdateFeatureSchema,
    UpdateRoleSchema,
)
from gatehouse.schemas.user_schema import (
    CreateUserSchema,
    ListUsersQuerySchema,
    UpdateUserSchema,
)

ALL_FALSE = {
    "can_create": False,
    "can_read": False,
    "can_update": False,
    "can_delete": False,
    "can_print": False,
}


# ═══════════════════════════════════════════════════════════════════════════
# LoginSchema / RefreshTokenSchema
# ═══════════════════════════════════════════════════════════════════════════

class TestLoginSchema:

    def _load(self, data: dict):
        return LoginSchema().load(data)

    def test_valid_payload(self):
        result = self._load({"email": "alice@example.com", "password": "x"})
        assert result == {"email": "alice@example.com", "password": "x"}

    def test_missing_password_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load({"email": "alice@example.com"})
        assert "password" in exc.value.messages

    def test_empty_password_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load({"email": "alice@example.com", "password": ""})
        assert "password" in exc.value.messages

    def test_invalid_email_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load({"email": "not-an-email", "password": "x"})
        assert "email" in exc.value.messages

    def test_password_is_never_dumped(self):
        assert "password" not in LoginSchema().dump({"email": "a@b.com", "password": "x"})


class TestRefreshTokenSchema:

    def test_token_is_optional(self):
        assert RefreshTokenSchema().load({}) == {"refresh_token": None}

    def test_token_passes_through(self):
        assert RefreshTokenSchema().load({"refresh_token": "abc"}) == {"refresh_token": "abc"}

    def test_non_string_token_raises(self):
        with pytest.raises(ValidationError):
            RefreshTokenSchema().load({"refresh_token": 123})


# ═══════════════════════════════════════════════════════════════════════════
# Feature schemas
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateFeatureSchema:

    def _load(self, data: dict):
        return CreateFeatureSchema().load(data)

    def test_defaults_absent_loads_as_none(self):
        result = self._load({"name": "billing"})
        assert result == {"name": "billing", "description": None, "default_permissions": None}

    def test_partial_defaults_fill_remaining_flags_false(self):
        result = self._load({"name": "billing", "default_permissions": {"can_read": True}})
        assert result["default_permissions"] == {**ALL_FALSE, "can_read": True}

    @pytest.mark.parametrize("name", ["", "   ", "x" * 101])
    def test_bad_names_raise(self, name):
        with pytest.raises(ValidationError) as exc:
            self._load({"name": name})
        assert "name" in exc.value.messages

    def test_missing_name_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load({})
        assert exc.value.messages["name"] == ["Missing data for required field."]

    def test_non_boolean_flag_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load({"name": "billing", "default_permissions": {"can_read": "maybe"}})
        assert "default_permissions" in exc.value.messages


class TestUpdateFeatureSchema:

    def test_empty_body_is_a_no_op(self):
        assert UpdateFeatureSchema().load({}) == {}

    def test_description_can_be_cleared(self):
        assert UpdateFeatureSchema().load({"description": None}) == {"description": None}

    def test_null_name_raises(self):
        with pytest.raises(ValidationError) as exc:
            UpdateFeatureSchema().load({"name": None})
        assert "name" in exc.value.messages


# ═══════════════════════════════════════════════════════════════════════════
# Role schemas
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateRoleSchema:

    def _load(self, data: dict):
        return CreateRoleSchema().load(data)

    def test_minimal_payload(self):
        result = self._load({"name": "Editor"})
        assert result["permissions"] == []
        assert result["is_privileged"] is None

    def test_permission_entry_fills_missing_flags(self):
        result = self._load({"name": "Editor", "permissions": [{"feature_id": 3, "can_update": True}]})
        assert result["permissions"] == [{"feature_id": 3, **ALL_FALSE, "can_update": True}]

    def test_duplicate_feature_ids_raise(self):
        with pytest.raises(ValidationError) as exc:
            self._load({
                "name": "Editor",
                "permissions": [{"feature_id": 3}, {"feature_id": 3, "can_read": True}],
            })
        assert "permissions" in exc.value.messages

    @pytest.mark.parametrize("feature_id", [0, -1, "3", None])
    def test_bad_feature_id_raises(self, feature_id):
        with pytest.raises(ValidationError) as exc:
            self._load({"name": "Editor", "permissions": [{"feature_id": feature_id}]})
        assert "permissions" in exc.value.messages

    def test_missing_feature_id_raises(self):
        with pytest.raises(ValidationError):
            self._load({"name": "Editor", "permissions": [{"can_read": True}]})


class TestUpdateRoleSchema:

    def test_absent_permissions_stay_absent(self):
        assert UpdateRoleSchema().load({"description": "x"}) == {"description": "x"}

    def test_empty_permission_list_is_kept(self):
        assert UpdateRoleSchema().load({"permissions": []}) == {"permissions": []}

    def test_is_privileged_loads(self):
        assert UpdateRoleSchema().load({"is_privileged": False}) == {"is_privileged": False}


# ═══════════════════════════════════════════════════════════════════════════
# Query-string schemas
# ═══════════════════════════════════════════════════════════════════════════

class TestPaginationQuerySchema:

    def test_defaults(self):
        assert PaginationQuerySchema().load({}) == {"page": 1, "limit": 10, "search": None}

    def test_strings_from_the_query_string_are_coerced(self):
        assert PaginationQuerySchema().load({"page": "2", "limit": "50"})["limit"] == 50

    @pytest.mark.parametrize("args, field", [
        ({"page": "0"}, "page"),
        ({"limit": "0"}, "limit"),
        ({"limit": "101"}, "limit"),
        ({"page": "abc"}, "page"),
    ])
    def test_out_of_range_raises(self, args, field):
        with pytest.raises(ValidationError) as exc:
            PaginationQuerySchema().load(args)
        assert field in exc.value.messages

    def test_roles_query_accepts_feature_filter(self):
        assert ListRolesQuerySchema().load({"feature": "bill"})["feature"] == "bill"


# ═══════════════════════════════════════════════════════════════════════════
# User schemas
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateUserSchema:

    def _load(self, data: dict):
        return CreateUserSchema().load(data)

    def test_valid_payload_defaults(self):
        result = self._load({"email": "a@b.com", "password": "Password1", "role_id": 2})
        assert result["is_active"] is True
        assert result["name"] is None

    @pytest.mark.parametrize("password", [
        "Pass1",            # too short
        "passwordonly",     # no digit
        "1234567890",       # no letter
        "a1" * 37,          # over 72 bytes
    ])
    def test_weak_passwords_raise(self, password):
        with pytest.raises(ValidationError) as exc:
            self._load({"email": "a@b.com", "password": password, "role_id": 2})
        assert "password" in exc.value.messages

    def test_multibyte_password_counts_bytes(self):
        with pytest.raises(ValidationError):
            self._load({"email": "a@b.com", "password": "é" * 36 + "a1", "role_id": 2})

    def test_string_role_id_raises(self):
        with pytest.raises(ValidationError) as exc:
            self._load({"email": "a@b.com", "password": "Password1", "role_id": "2"})
        assert "role_id" in exc.value.messages

    def test_missing_fields_are_all_reported(self):
        with pytest.raises(ValidationError) as exc:
            self._load({})
        assert set(exc.value.messages) == {"email", "password", "role_id"}


class TestUpdateUserSchema:

    def test_partial_payload(self):
        assert UpdateUserSchema().load({"name": "Ed"}) == {"name": "Ed"}

    def test_weak_password_raises(self):
        with pytest.raises(ValidationError):
            UpdateUserSchema().load({"password": "short"})


class TestListUsersQuerySchema:

    def test_filters_default_to_none(self):
        result = ListUsersQuerySchema().load({})
        assert result["is_active"] is None and result["role_id"] is None

    def test_filters_are_coerced(self):
        result = ListUsersQuerySchema().load({"is_active": "false", "role_id": "4"})
        assert result["is_active"] is False
        assert result["role_id"] == 4
