"""
routes/rbac.py — Role and feature management route handlers.

Every endpoint except GET /roles/me is gated by the RBAC_management feature
with the matching action. GET /roles/me only needs a valid access token: any
user may read their own permissions.

Endpoints (url_prefix=/api/v1/rbac):
  GET    /rbac/features          → 200  (read)
  POST   /rbac/features          → 201  (create)
  PATCH  /rbac/features/<id>     → 200  (update)
  DELETE /rbac/features/<id>     → 200  (delete)
  GET    /rbac/roles             → 200  (read)
  GET    /rbac/roles/options     → 200  (read)
  GET    /rbac/roles/me          → 200  (access token only)
  GET    /rbac/roles/<id>        → 200  (read)
  POST   /rbac/roles             → 201  (create)
  PATCH  /rbac/roles/<id>        → 200  (update)
  DELETE /rbac/roles/<id>        → 200  (delete)

List responses carry a "pagination" block next to "data".
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from gatehouse.extensions import db
from gatehouse.middleware.auth_middleware import require_auth, require_permission
from gatehouse.models.feature import RBAC_FEATURE
from gatehouse.schemas.rbac_schema import (
    CreateFeatureSchema,
    CreateRoleSchema,
    ListRolesQuerySchema,
    PaginationQuerySchema,
    UpdateFeatureSchema,
    UpdateRoleSchema,
)
from gatehouse.services import permission_service, rbac_service
from gatehouse.unit_of_work import UnitOfWork

rbac_bp = Blueprint("rbac", __name__)


# ── Features ───────────────────────────────────────────────────────────────

@rbac_bp.route("/features", methods=["GET"])
@require_auth
@require_permission(RBAC_FEATURE, "read")
def list_features():
    query = PaginationQuerySchema().load(request.args.to_dict())
    features, pagination = rbac_service.list_features(
        page=query["page"],
        limit=query["limit"],
        search=query["search"],
        session=db.session,
    )
    return jsonify({"data": features, "pagination": pagination, "warnings": []}), 200


@rbac_bp.route("/features", methods=["POST"])
@require_auth
@require_permission(RBAC_FEATURE, "create")
def create_feature():
    data = CreateFeatureSchema().load(request.get_json(force=True) or {})
    result = rbac_service.create_feature(
        name=data["name"],
        description=data["description"],
        default_permissions=data["default_permissions"],
        uow=UnitOfWork(db.session),
    )
    return jsonify({"data": result, "warnings": []}), 201


@rbac_bp.route("/features/<int:feature_id>", methods=["PATCH"])
@require_auth
@require_permission(RBAC_FEATURE, "update")
def update_feature(feature_id: int):
    changes = UpdateFeatureSchema().load(request.get_json(force=True) or {})
    result = rbac_service.update_feature(feature_id, changes, UnitOfWork(db.session))
    return jsonify({"data": result, "warnings": []}), 200


@rbac_bp.route("/features/<int:feature_id>", methods=["DELETE"])
@require_auth
@require_permission(RBAC_FEATURE, "delete")
def delete_feature(feature_id: int):
    result = rbac_service.delete_feature(feature_id, UnitOfWork(db.session))
    return jsonify({"data": result, "warnings": []}), 200


# ── Roles ──────────────────────────────────────────────────────────────────
# /roles/options and /roles/me are registered before /roles/<int:role_id>.
# The int converter already keeps them apart; the order keeps reading easy.

@rbac_bp.route("/roles", methods=["GET"])
@require_auth
@require_permission(RBAC_FEATURE, "read")
def list_roles():
    query = ListRolesQuerySchema().load(request.args.to_dict())
    roles, pagination = rbac_service.list_roles(
        page=query["page"],
        limit=query["limit"],
        search=query["search"],
        feature=query["feature"],
        session=db.session,
    )
    return jsonify({"data": roles, "pagination": pagination, "warnings": []}), 200


@rbac_bp.route("/roles/options", methods=["GET"])
@require_auth
@require_permission(RBAC_FEATURE, "read")
def list_role_options():
    query = PaginationQuerySchema().load(request.args.to_dict())
    options, pagination = rbac_service.list_role_options(
        page=query["page"],
        limit=query["limit"],
        search=query["search"],
        session=db.session,
    )
    return jsonify({"data": options, "pagination": pagination, "warnings": []}), 200


@rbac_bp.route("/roles/me", methods=["GET"])
@require_auth
def my_role():
    """GET /rbac/roles/me — The caller's role and permission rows."""
    result = permission_service.get_my_permissions(g.user_id, db.session)
    return jsonify({"data": result, "warnings": []}), 200


@rbac_bp.route("/roles/<int:role_id>", methods=["GET"])
@require_auth
@require_permission(RBAC_FEATURE, "read")
def get_role(role_id: int):
    result = rbac_service.get_role(role_id, db.session)
    return jsonify({"data": result, "warnings": []}), 200


@rbac_bp.route("/roles", methods=["POST"])
@require_auth
@require_permission(RBAC_FEATURE, "create")
def create_role():
    data = CreateRoleSchema().load(request.get_json(force=True) or {})
    result = rbac_service.create_role(
        name=data["name"],
        description=data["description"],
        permissions=data["permissions"],
        uow=UnitOfWork(db.session),
        is_privileged=data["is_privileged"],
    )
    return jsonify({"data": result, "warnings": []}), 201


@rbac_bp.route("/roles/<int:role_id>", methods=["PATCH"])
@require_auth
@require_permission(RBAC_FEATURE, "update")
def update_role(role_id: int):
    changes = UpdateRoleSchema().load(request.get_json(force=True) or {})
    result = rbac_service.update_role(role_id, changes, UnitOfWork(db.session))
    return jsonify({"data": result, "warnings": []}), 200


@rbac_bp.route("/roles/<int:role_id>", methods=["DELETE"])
@require_auth
@require_permission(RBAC_FEATURE, "delete")
def delete_role(role_id: int):
    result = rbac_service.delete_role(role_id, UnitOfWork(db.session))
    return jsonify({"data": result, "warnings": []}), 200
