"""
routes/auth.py — Authentication route handlers.

Layer rules:
  - Parse request body
  - Validate with the appropriate schema (raises ValidationError on bad input)
  - Call exactly ONE service function; services own their transactions
  - Return the standard response envelope: {"data": {...}, "warnings": []}

No business logic here. No DB queries. No bare SQL.
AppError propagates to the global error handler in gatehouse/__init__.py —
routes never catch it.

Refresh tokens are read from the JSON body field "refresh_token" or, when
absent, from the refresh cookie. Login and refresh set the cookie; logout
and logout-all clear it.

Endpoints (url_prefix=/api/v1/auth):
  POST   /auth/login       → 200
  POST   /auth/refresh     → 200
  POST   /auth/logout      → 200 (always)
  POST   /auth/logout/all  → 200 (access token required)
  GET    /auth/me          → 200 (access token required)
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request
from marshmallow import ValidationError

from gatehouse.extensions import db
from gatehouse.middleware.auth_middleware import require_auth
from gatehouse.schemas.auth_schema import LoginSchema, RefreshTokenSchema
from gatehouse.services import auth_service
from gatehouse.unit_of_work import UnitOfWork

auth_bp = Blueprint("auth", __name__)


def _presented_refresh_token(lenient: bool = False) -> str | None:
    """
    Body field first, then the cookie. With lenient=True a malformed body is
    treated as if it carried no token instead of raising ValidationError.
    """
    try:
        data = RefreshTokenSchema().load(request.get_json(silent=True) or {})
    except ValidationError:
        if not lenient:
            raise
        data = {"refresh_token": None}
    return data["refresh_token"] or request.cookies.get(current_app.config["REFRESH_COOKIE_NAME"])


def _set_refresh_cookie(response, refresh_token: str):
    config = current_app.config
    response.set_cookie(
        config["REFRESH_COOKIE_NAME"],
        refresh_token,
        max_age=int(config["JWT_REFRESH_TOKEN_EXPIRES"].total_seconds()),
        httponly=True,
        secure=config["REFRESH_COOKIE_SECURE"],
        samesite=config["REFRESH_COOKIE_SAMESITE"],
        path="/api/v1/auth",
    )
    return response


def _clear_refresh_cookie(response):
    config = current_app.config
    response.delete_cookie(
        config["REFRESH_COOKIE_NAME"],
        path="/api/v1/auth",
        httponly=True,
        secure=config["REFRESH_COOKIE_SECURE"],
        samesite=config["REFRESH_COOKIE_SAMESITE"],
    )
    return response


@auth_bp.route("/login", methods=["POST"])
def login():
    """POST /auth/login — Authenticate; return tokens. (No auth required.)"""
    data = LoginSchema().load(request.get_json(force=True) or {})
    result = auth_service.login_user(
        email=data["email"],
        password=data["password"],
        uow=UnitOfWork(db.session),
    )
    response = jsonify({"data": result, "warnings": []})
    return _set_refresh_cookie(response, result["refresh_token"]), 200


@auth_bp.route("/refresh", methods=["POST"])
def refresh():
    """POST /auth/refresh — Rotate the refresh token; return a new pair."""
    result = auth_service.refresh_session(
        raw_refresh_token=_presented_refresh_token(),
        uow=UnitOfWork(db.session),
    )
    response = jsonify({"data": result, "warnings": []})
    return _set_refresh_cookie(response, result["refresh_token"]), 200


@auth_bp.route("/logout", methods=["POST"])
def logout():
    """POST /auth/logout — Revoke one refresh token. Always succeeds."""
    auth_service.logout_user(
        raw_refresh_token=_presented_refresh_token(lenient=True),
        uow=UnitOfWork(db.session),
    )
    response = jsonify({"data": {"message": "Logged out successfully."}, "warnings": []})
    return _clear_refresh_cookie(response), 200


@auth_bp.route("/logout/all", methods=["POST"])
@require_auth
def logout_all():
    """POST /auth/logout/all — Revoke every session of the caller. (Auth required.)"""
    auth_service.logout_all(
        user_id=g.user_id,
        raw_refresh_token=_presented_refresh_token(),
        uow=UnitOfWork(db.session),
    )
    response = jsonify({
        "data": {"message": "Logged out from all devices."},
        "warnings": [],
    })
    return _clear_refresh_cookie(response), 200


@auth_bp.route("/me", methods=["GET"])
@require_auth
def me():
    """GET /auth/me — Return current user profile. (Auth required.)"""
    result = auth_service.get_current_user(
        user_id=g.user_id,
        token_version=g.token_version,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200
