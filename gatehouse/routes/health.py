"""
routes/health.py — Liveness probe.

GET /api/v1/health → 200 when the database answers, 503 otherwise.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from gatehouse.extensions import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__)


@health_bp.route("", methods=["GET"])
def health():
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")
        db.session.rollback()
        return jsonify({
            "data": {"status": "degraded", "database": "unreachable"},
            "warnings": [],
        }), 503

    return jsonify({"data": {"status": "ok", "database": "ok"}, "warnings": []}), 200
