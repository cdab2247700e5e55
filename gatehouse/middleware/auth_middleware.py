"""
middleware/auth_middleware.py — Request gate decorators.

@require_auth:
  1. Reads the Authorization header (expected: "Bearer <token>")
  2. Verifies the access JWT (signature, expiry, type, claims)
  3. Runs the account-state guard against the live user row:
     user exists, is active, and its token_version equals the token's tv
  4. Attaches user_id and token_version to flask.g

@require_permission(feature, action):
  Must be stacked BELOW @require_auth. Calls the permission evaluator with
  g.user_id and the route's declared (feature, action) pair.

Error codes:
  TOKEN_MISSING          (401) — no Authorization header
  TOKEN_INVALID          (401) — malformed header, bad/expired token
  UNAUTHORIZED           (401) — user no longer exists
  TOKEN_VERSION_MISMATCH (401) — token issued before the last version bump
  ACCOUNT_DISABLED       (403) — account deactivated
  PERMISSION_DENIED      (403) — role lacks the action on the feature
"""

from __future__ import annotations

import functools
from typing import Callable

from flask import current_app, g, request

from gatehouse.errors import AppError, ErrorCode, InvalidToken
from gatehouse.extensions import db
from gatehouse.services import auth_service, permission_service
from gatehouse.services.token_codec import TokenCodec, TokenKind


def require_auth(f: Callable) -> Callable:
    """
    Route decorator that enforces access-token authentication.

    Usage:
        @bp.route("/me")
        @require_auth
        def me():
            user_id = g.user_id  # always an int when this runs
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        return f(*args, **kwargs)

    return decorated


def require_permission(feature_name: str, action: str) -> Callable:
    """
    Route decorator factory that enforces an RBAC permission.

    Usage:
        @bp.route("/", methods=["POST"])
        @require_auth
        @require_permission("user_management", "create")
        def create_user(): ...
    """
    def decorator(f: Callable) -> Callable:
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            permission_service.require_permission(
                g.user_id, feature_name, action, db.session,
            )
            return f(*args, **kwargs)

        return decorated

    return decorator


def _bearer_token() -> str:
    auth_header = request.headers.get("Authorization", "")

    if not auth_header:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
            401,
        )

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise InvalidToken("Authorization header must be in the format: Bearer <token>.")

    return parts[1]


def _authenticate_request() -> None:
    """
    Performs the full authentication sequence and sets flask.g.user_id and
    flask.g.token_version.

    Raises AppError on any failure; the global handler renders it.
    """
    raw_token = _bearer_token()

    codec = TokenCodec.from_config(current_app.config)
    claims = codec.verify(TokenKind.ACCESS, raw_token)

    auth_service.check_account_state(claims.user_id, claims.token_version, db.session)

    g.user_id = claims.user_id
    g.token_version = claims.token_version
