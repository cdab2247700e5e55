"""
schemas/user_schema.py — Marshmallow schemas for user administration.

Validation responsibility:
  - This file: email format, password strength, name length, role_id type.
  - services/user_service.py: DUPLICATE_EMAIL, role existence
    (INVALID_REFERENCE), SuperAdmin protections.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate

from gatehouse.schemas.rbac_schema import PaginationQuerySchema


def _validate_password_strength(value: str) -> None:
    """8 to 72 bytes (bcrypt's input limit), at least one letter and one digit."""
    if len(value) < 8:
        raise ValidationError("Password must be at least 8 characters long.")
    if len(value.encode("utf-8")) > 72:
        raise ValidationError("Password must be at most 72 bytes long.")
    if not any(c.isalpha() for c in value):
        raise ValidationError("Password must contain at least one letter.")
    if not any(c.isdigit() for c in value):
        raise ValidationError("Password must contain at least one digit.")


def _role_id_field(required: bool) -> fields.Int:
    return fields.Int(
        required=required,
        strict=True,
        validate=validate.Range(min=1, error="role_id must be a positive integer."),
    )


class CreateUserSchema(Schema):
    """POST /users"""

    email = fields.Email(required=True, validate=validate.Length(max=255))
    password = fields.Str(required=True, load_only=True, validate=_validate_password_strength)
    name = fields.Str(load_default=None, allow_none=True, validate=validate.Length(max=100))
    role_id = _role_id_field(required=True)
    is_active = fields.Bool(load_default=True)


class UpdateUserSchema(Schema):
    """
    PATCH /users/<id>

    Changing the password or setting is_active=false logs the user out of
    every device.
    """

    email = fields.Email(validate=validate.Length(max=255))
    password = fields.Str(load_only=True, validate=_validate_password_strength)
    name = fields.Str(allow_none=True, validate=validate.Length(max=100))
    role_id = _role_id_field(required=False)
    is_active = fields.Bool()


class ListUsersQuerySchema(PaginationQuerySchema):
    """Adds ?is_active=true|false and ?role_id=<id> filters."""

    is_active = fields.Bool(load_default=None)
    role_id = fields.Int(load_default=None, validate=validate.Range(min=1))
