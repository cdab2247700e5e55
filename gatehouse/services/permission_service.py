"""
services/permission_service.py — Request-time permission evaluation.

check_permission(user, feature, action) is allowed iff the RoleFeature row
for (user's current role, feature) has the action's flag set. The user's
role and the row are read in one query on every call. There is no cache, so
a flag flipped by an administrator takes effect on the very next request.

A feature that does not exist denies. Because of the coverage invariant
maintained by rbac_service, an existing feature always has a row for every
role.

Layer rules:
  - No Flask imports. Receives a SQLAlchemy session.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from gatehouse.errors import AppError, ErrorCode, PermissionDenied
from gatehouse.models.feature import Feature
from gatehouse.models.role import Role
from gatehouse.models.role_feature import ACTIONS, FLAG_COLUMNS, RoleFeature
from gatehouse.models.user import User


def _flag_column(action: str):
    try:
        return getattr(RoleFeature, ACTIONS[action])
    except KeyError:
        raise ValueError(
            f"Unknown permission action {action!r}; expected one of {sorted(ACTIONS)}."
        ) from None


def permission_to_dict(row: RoleFeature, feature: Feature) -> dict:
    """Serialises one RoleFeature row together with its feature's identity."""
    payload = {
        "feature_id": feature.id,
        "feature_name": feature.name,
    }
    for column in FLAG_COLUMNS:
        payload[column] = bool(getattr(row, column))
    return payload


def check_permission(user_id: int, feature_name: str, action: str, session: Session) -> bool:
    """
    Returns True iff user_id's role grants `action` on `feature_name`.

    Raises ValueError for an action outside ACTIONS: that is a programming
    error in a route declaration, not a runtime deny.
    """
    flag = _flag_column(action)

    stmt = (
        select(flag)
        .select_from(User)
        .join(RoleFeature, RoleFeature.role_id == User.role_id)
        .join(Feature, Feature.id == RoleFeature.feature_id)
        .where(
            User.id == user_id,
            Feature.name == feature_name,
        )
    )
    allowed = session.execute(stmt).scalar_one_or_none()
    return bool(allowed)


def require_permission(user_id: int, feature_name: str, action: str, session: Session) -> None:
    """Raises PermissionDenied (403) unless check_permission allows."""
    if not check_permission(user_id, feature_name, action, session):
        raise PermissionDenied(
            f"You do not have '{action}' permission on '{feature_name}'."
        )


def get_my_permissions(user_id: int, session: Session) -> dict:
    """
    Returns the caller's role and every permission row of that role,
    ordered by feature name (GET /rbac/roles/me).
    """
    user = session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} not found.",
            404,
        )

    role = session.get(Role, user.role_id)
    rows = session.execute(
        select(RoleFeature, Feature)
        .join(Feature, Feature.id == RoleFeature.feature_id)
        .where(RoleFeature.role_id == user.role_id)
        .order_by(Feature.name.asc())
    ).all()

    return {
        "role_id": user.role_id,
        "role_name": role.name if role is not None else None,
        "is_privileged": bool(role.is_privileged) if role is not None else False,
        "permissions": [permission_to_dict(rf, feature) for rf, feature in rows],
    }
