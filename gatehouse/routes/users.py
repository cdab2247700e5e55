"""
routes/users.py — User administration, gated by the user_management feature.

Endpoints (url_prefix=/api/v1/users):
  GET    /users        → 200  (read)
  POST   /users        → 201  (create)
  GET    /users/<id>   → 200  (read)
  PATCH  /users/<id>   → 200  (update)
  DELETE /users/<id>   → 200  (delete)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from gatehouse.extensions import db
from gatehouse.middleware.auth_middleware import require_auth, require_permission
from gatehouse.models.feature import USER_FEATURE
from gatehouse.schemas.user_schema import CreateUserSchema, ListUsersQuerySchema, UpdateUserSchema
from gatehouse.services import user_service
from gatehouse.unit_of_work import UnitOfWork

users_bp = Blueprint("users", __name__)


@users_bp.route("", methods=["GET"])
@require_auth
@require_permission(USER_FEATURE, "read")
def list_users():
    query = ListUsersQuerySchema().load(request.args.to_dict())
    users, pagination = user_service.list_users(
        page=query["page"],
        limit=query["limit"],
        search=query["search"],
        is_active=query["is_active"],
        role_id=query["role_id"],
        session=db.session,
    )
    return jsonify({"data": users, "pagination": pagination, "warnings": []}), 200


@users_bp.route("", methods=["POST"])
@require_auth
@require_permission(USER_FEATURE, "create")
def create_user():
    data = CreateUserSchema().load(request.get_json(force=True) or {})
    result = user_service.create_user(
        email=data["email"],
        password=data["password"],
        role_id=data["role_id"],
        uow=UnitOfWork(db.session),
        name=data["name"],
        is_active=data["is_active"],
    )
    return jsonify({"data": result, "warnings": []}), 201


@users_bp.route("/<int:user_id>", methods=["GET"])
@require_auth
@require_permission(USER_FEATURE, "read")
def get_user(user_id: int):
    result = user_service.get_user(user_id, db.session)
    return jsonify({"data": result, "warnings": []}), 200


@users_bp.route("/<int:user_id>", methods=["PATCH"])
@require_auth
@require_permission(USER_FEATURE, "update")
def update_user(user_id: int):
    changes = UpdateUserSchema().load(request.get_json(force=True) or {})
    result = user_service.update_user(user_id, changes, UnitOfWork(db.session))
    return jsonify({"data": result, "warnings": []}), 200


@users_bp.route("/<int:user_id>", methods=["DELETE"])
@require_auth
@require_permission(USER_FEATURE, "delete")
def delete_user(user_id: int):
    result = user_service.delete_user(
        target_id=user_id,
        requesting_user_id=g.user_id,
        uow=UnitOfWork(db.session),
    )
    return jsonify({"data": result, "warnings": []}), 200
