"""
gatehouse/__init__.py — Flask application factory.

Pattern: create_app(config_name) creates and returns a configured Flask app.
         Nothing is initialised at import time — this enables:
           - Multiple isolated test app instances
           - Clean separation between app creation and app startup
           - `flask db` / alembic and `flask seed` to work without serving

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Initialise extensions (SQLAlchemy, Marshmallow) via init_app()
  3. Register all route blueprints under /api/v1
  4. Register global error handlers (AppError → JSON, Exception → 500)
  5. Register the request logger, CORS headers and CLI commands

Note on model imports:
  All model classes are imported inside create_app() so that SQLAlchemy's
  metadata is populated before Alembic inspects it. They are not used
  directly here — the import side-effect is sufficient.
"""

from __future__ import annotations

import logging
import os
import traceback

from flask import Flask, jsonify, request
from marshmallow import ValidationError
from sqlalchemy import event
from werkzeug.exceptions import HTTPException

from gatehouse.config import config_by_name, validate_production_config


# ── Application factory ────────────────────────────────────────────────────

def create_app(config_name: str | None = None) -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".
                     Resolved via config_by_name in config.py.
                     Defaults to $FLASK_ENV, then "development".

    Returns:
        A fully configured Flask app ready to serve requests.
    """
    config_name = config_name or os.getenv("FLASK_ENV", "development")

    app = Flask(__name__)

    # ── Configuration ──────────────────────────────────────────────────────
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    _configure_logging(app)

    # ── Extensions ─────────────────────────────────────────────────────────
    # Import here (not at module top) to avoid circular imports.
    from gatehouse.extensions import db, ma
    db.init_app(app)
    ma.init_app(app)

    # ── Model registration ─────────────────────────────────────────────────
    # Import all models so that SQLAlchemy's MetaData is populated.
    with app.app_context():
        from gatehouse.models import (  # noqa: F401
            feature,
            refresh_token,
            role,
            role_feature,
            user,
        )
        _enable_sqlite_foreign_keys(db.engine)

    # ── Blueprints ─────────────────────────────────────────────────────────
    _register_blueprints(app)

    # ── Error handlers, hooks, CLI ─────────────────────────────────────────
    _register_error_handlers(app)
    _register_cors(app)

    from gatehouse.middleware.request_logger import register_request_logger
    register_request_logger(app)

    from gatehouse.cli import register_cli
    register_cli(app)

    return app


def _configure_logging(app: Flask) -> None:
    """
    app.logger is the "gatehouse" logger, so the module loggers
    (gatehouse.services.auth_service, gatehouse.request, ...) propagate to
    the handler Flask installs on it.
    """
    app.logger.setLevel(logging.DEBUG if app.config.get("DEBUG") else logging.INFO)


def _enable_sqlite_foreign_keys(engine) -> None:
    """SQLite ignores ON DELETE CASCADE/RESTRICT unless the pragma is set per connection."""
    if engine.url.get_backend_name() != "sqlite":
        return

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _register_blueprints(app: Flask) -> None:
    """
    Registers all route blueprints under the /api/v1 prefix.

    The url_prefix is set here so individual route files only specify
    the path relative to their resource (e.g. "" and "/<int:id>").
    """
    from gatehouse.routes.auth import auth_bp
    from gatehouse.routes.health import health_bp
    from gatehouse.routes.rbac import rbac_bp
    from gatehouse.routes.users import users_bp

    app.register_blueprint(health_bp, url_prefix="/api/v1/health")
    app.register_blueprint(auth_bp,   url_prefix="/api/v1/auth")
    app.register_blueprint(rbac_bp,   url_prefix="/api/v1/rbac")
    app.register_blueprint(users_bp,  url_prefix="/api/v1/users")


def _first_validation_error(messages) -> tuple[str | None, str]:
    """
    Walks marshmallow's nested messages to the first leaf.

    {"permissions": {0: {"feature_id": ["Missing data ..."]}}}
        → ("permissions.0.feature_id", "Missing data ...")
    """
    path = []
    node = messages
    while isinstance(node, dict) and node:
        key, node = next(iter(node.items()))
        if key != "_schema":
            path.append(str(key))
    if isinstance(node, list):
        node = node[0] if node else "Invalid value."
    return (".".join(path) or None), str(node)


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

    Handlers:
      AppError        → structured JSON error envelope with the correct HTTP status
      ValidationError → marshmallow schema errors formatted as MISSING_FIELD /
                        INVALID_FIELD responses (400), first error only
      HTTPException   → werkzeug errors (404 route, 405, bad JSON) in the envelope
      Exception       → generic INTERNAL_ERROR (500); full traceback logged

    Stack traces never leave the server.
    """
    from gatehouse.errors import AppError, ErrorCode

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        """
        Converts an AppError raised anywhere in the request lifecycle
        (middleware, service, route) into the standard error envelope.

        Routes never catch AppError — they let it propagate here.
        """
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        field, message = _first_validation_error(error.messages)

        if message.startswith("Missing data for required field"):
            code = ErrorCode.MISSING_FIELD
        else:
            code = ErrorCode.INVALID_FIELD

        response_body = {"error": {"code": code, "message": message}}
        if field is not None:
            response_body["error"]["field"] = field

        return jsonify(response_body), 400

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        if error.code == 400:
            code = ErrorCode.INVALID_FIELD
        elif error.code == 404:
            code = ErrorCode.NOT_FOUND
        elif error.code == 405:
            code = ErrorCode.METHOD_NOT_ALLOWED
        else:
            code = error.name.upper().replace(" ", "_")
        return jsonify({
            "error": {"code": code, "message": error.description},
        }), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        """
        Catches all unhandled exceptions and returns a generic 500 response.

        The full traceback is logged to the application logger. Stack traces
        NEVER leave the server in the response body.
        """
        app.logger.error(
            "Unhandled exception: %s\n%s",
            str(error),
            traceback.format_exc(),
        )
        return jsonify({
            "error": {
                "code": ErrorCode.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again later.",
            }
        }), 500


def _register_cors(app: Flask) -> None:
    """
    Adds CORS headers for browser-based local development.

    Enabled when DEBUG or TESTING is true so a frontend served from another
    local port can call the API with Authorization headers and the refresh
    cookie.
    """

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allow_all = bool(app.config.get("DEBUG") or app.config.get("TESTING"))

        if allow_all and origin:
            # Reflect the origin: credentialed requests cannot use "*".
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PATCH, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type, X-Request-ID"

        return response
