"""
schemas/rbac_schema.py — Marshmallow schemas for role and feature endpoints.

Validation responsibility:
  - This file: types, name lengths, non-blank names, duplicate feature_id
    entries inside one permission list, pagination bounds.
  - services/rbac_service.py: feature_id existence (INVALID_REFERENCE),
    name uniqueness (DUPLICATE_*), protected entities.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate


def _validate_non_empty_after_trim(value: str) -> None:
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def _name_field(required: bool) -> fields.Str:
    return fields.Str(
        required=required,
        validate=[
            validate.Length(min=1, max=100, error="Name must be between 1 and 100 characters."),
            _validate_non_empty_after_trim,
        ],
    )


def _description_field() -> fields.Str:
    return fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=255),
    )


class PermissionFlagsSchema(Schema):
    """The five action flags. Omitted flags load as False."""

    can_create = fields.Bool(load_default=False)
    can_read = fields.Bool(load_default=False)
    can_update = fields.Bool(load_default=False)
    can_delete = fields.Bool(load_default=False)
    can_print = fields.Bool(load_default=False)


class PermissionInputSchema(PermissionFlagsSchema):
    """One entry of a role's permission list."""

    feature_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="feature_id must be a positive integer."),
    )


def _reject_duplicate_feature_ids(value: list[dict]) -> None:
    seen = set()
    for entry in value:
        if entry["feature_id"] in seen:
            raise ValidationError(
                f"feature_id {entry['feature_id']} appears more than once in permissions."
            )
        seen.add(entry["feature_id"])


class CreateFeatureSchema(Schema):
    """
    POST /rbac/features

    default_permissions, when supplied, becomes the row every existing role
    receives for the new feature (privileged roles receive every flag).
    When omitted every role receives an all-false row.
    """

    name = _name_field(required=True)
    description = _description_field()
    default_permissions = fields.Nested(PermissionFlagsSchema, load_default=None, allow_none=True)


class UpdateFeatureSchema(Schema):
    """PATCH /rbac/features/<id> — name and/or description."""

    name = _name_field(required=False)
    description = fields.Str(allow_none=True, validate=validate.Length(max=255))


class CreateRoleSchema(Schema):
    """
    POST /rbac/roles

    permissions lists flags for some or all features; every feature the list
    omits gets an all-false row. is_privileged is optional; the service
    derives it from the name when absent.
    """

    name = _name_field(required=True)
    description = _description_field()
    is_privileged = fields.Bool(load_default=None, allow_none=True)
    permissions = fields.List(
        fields.Nested(PermissionInputSchema),
        load_default=list,
        validate=_reject_duplicate_feature_ids,
    )


class UpdateRoleSchema(Schema):
    """
    PATCH /rbac/roles/<id>

    When permissions is present the role's whole permission set is replaced.
    """

    name = _name_field(required=False)
    description = fields.Str(allow_none=True, validate=validate.Length(max=255))
    is_privileged = fields.Bool()
    permissions = fields.List(
        fields.Nested(PermissionInputSchema),
        validate=_reject_duplicate_feature_ids,
    )


class PaginationQuerySchema(Schema):
    """Query string for list endpoints: ?page=1&limit=10&search=..."""

    page = fields.Int(
        load_default=1,
        validate=validate.Range(min=1, error="page must be at least 1."),
    )
    limit = fields.Int(
        load_default=10,
        validate=validate.Range(min=1, max=100, error="limit must be between 1 and 100."),
    )
    search = fields.Str(load_default=None)


class ListRolesQuerySchema(PaginationQuerySchema):
    """Adds ?feature=... (roles that carry a row for a matching feature)."""

    feature = fields.Str(load_default=None)
