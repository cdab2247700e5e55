"""
schemas/auth_schema.py — Marshmallow schemas for authentication endpoints.

Validation responsibility:
  - This file: field presence, types, formats.
  - services/auth_service.py: credential correctness, token validity,
    account state (require a DB lookup, not a schema concern).

IMPORTANT: All schemas inherit from marshmallow.Schema directly.
           Do NOT use ma.Schema — it requires an active Flask app context
           and breaks unit tests. See extensions.py for the full explanation.
"""

from __future__ import annotations

from marshmallow import Schema, fields, validate


class LoginSchema(Schema):
    """
    POST /auth/login

    Email is matched case-insensitively by the service. Credential
    correctness is checked in auth_service.py (INVALID_CREDENTIALS, 401).
    """

    email = fields.Email(
        required=True,
        validate=validate.Length(max=255),
    )
    password = fields.Str(
        required=True,
        load_only=True,
        validate=validate.Length(min=1, error="Password must not be empty."),
    )


class RefreshTokenSchema(Schema):
    """
    POST /auth/refresh, /auth/logout, /auth/logout/all

    The refresh token may come in the body or, when absent, from the
    refresh_token cookie, so the field is optional here. Token validity is
    checked in auth_service.py.
    """

    refresh_token = fields.Str(load_default=None, allow_none=True)
