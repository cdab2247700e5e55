"""
services/rbac_service.py — Role and Feature management.

Invariant enforced here (permission coverage):
  For every existing Role R and every existing Feature F exactly one
  RoleFeature row (R, F) exists.

  create_role     inserts the role and one row per existing feature
                  (caller flags where supplied, all-false otherwise)
  create_feature  inserts the feature and one row per existing role
                  (caller defaults; privileged roles get all-true when
                  defaults are supplied; all-false when none are)
  update_role     with a permission list: wipe-and-replace. Every row of the
                  role is deleted and a full set inserted: supplied flags for
                  listed features, all-false for the rest
  delete_*        deletes the entity's RoleFeature rows explicitly, then
                  compare-and-deletes the entity; losing a concurrent delete
                  is a 404

Every mutation runs inside one uow.transaction().

Protected entities (SuperAdmin role, RBAC_management feature) can be neither
deleted nor renamed → ProtectedEntity (403).
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, exists, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from gatehouse.errors import AppError, ErrorCode, InvalidReference, ProtectedEntity
from gatehouse.models.feature import Feature
from gatehouse.models.role import Role
from gatehouse.models.role_feature import FLAG_COLUMNS, RoleFeature
from gatehouse.models.user import User
from gatehouse.services.pagination import paginate
from gatehouse.services.permission_service import permission_to_dict
from gatehouse.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

PRIVILEGED_NAME_MARKER = "admin"


# ── Private helpers ────────────────────────────────────────────────────────

def _get_role_or_404(role_id: int, session: Session) -> Role:
    role = session.get(Role, role_id)
    if role is None:
        raise AppError(
            ErrorCode.ROLE_NOT_FOUND,
            f"Role {role_id} does not exist.",
            404,
        )
    return role


def _get_feature_or_404(feature_id: int, session: Session) -> Feature:
    feature = session.get(Feature, feature_id)
    if feature is None:
        raise AppError(
            ErrorCode.FEATURE_NOT_FOUND,
            f"Feature {feature_id} does not exist.",
            404,
        )
    return feature


def _duplicate_role(name: str) -> AppError:
    return AppError(
        ErrorCode.DUPLICATE_ROLE_NAME,
        f"A role named '{name}' already exists.",
        409,
        field="name",
    )


def _duplicate_feature(name: str) -> AppError:
    return AppError(
        ErrorCode.DUPLICATE_FEATURE_NAME,
        f"A feature named '{name}' already exists.",
        409,
        field="name",
    )


def _ensure_role_name_free(name: str, session: Session, exclude_id: int | None = None) -> None:
    stmt = select(Role.id).where(Role.name == name)
    if exclude_id is not None:
        stmt = stmt.where(Role.id != exclude_id)
    if session.execute(stmt).scalar_one_or_none() is not None:
        raise _duplicate_role(name)


def _ensure_feature_name_free(name: str, session: Session, exclude_id: int | None = None) -> None:
    stmt = select(Feature.id).where(Feature.name == name)
    if exclude_id is not None:
        stmt = stmt.where(Feature.id != exclude_id)
    if session.execute(stmt).scalar_one_or_none() is not None:
        raise _duplicate_feature(name)


def _validate_feature_ids(feature_ids: list[int], session: Session) -> None:
    """Raises InvalidReference listing every supplied feature id that does not exist."""
    if not feature_ids:
        return
    existing = set(
        session.execute(
            select(Feature.id).where(Feature.id.in_(feature_ids))
        ).scalars().all()
    )
    missing = [fid for fid in feature_ids if fid not in existing]
    if missing:
        raise InvalidReference(
            "Invalid feature_id(s): " + ", ".join(str(fid) for fid in missing),
            field="permissions",
        )


def _flags(source: dict | None) -> dict:
    """Picks the five can_* flags out of `source`, defaulting each to False."""
    source = source or {}
    return {column: bool(source.get(column, False)) for column in FLAG_COLUMNS}


def _all_flags() -> dict:
    return {column: True for column in FLAG_COLUMNS}


def _materialize_role_rows(role_id: int, provided: dict[int, dict], session: Session) -> None:
    """
    Inserts one RoleFeature row for role_id per existing feature, using the
    flags in `provided` (keyed by feature_id) or all-false.
    """
    feature_ids = session.execute(select(Feature.id)).scalars().all()
    session.add_all([
        RoleFeature(role_id=role_id, feature_id=feature_id, **_flags(provided.get(feature_id)))
        for feature_id in feature_ids
    ])
    session.flush()


def _feature_dict(feature: Feature) -> dict:
    return {
        "id": feature.id,
        "name": feature.name,
        "description": feature.description,
        "created_at": feature.created_at.isoformat() if feature.created_at else None,
        "updated_at": feature.updated_at.isoformat() if feature.updated_at else None,
    }


def _role_dict(role: Role, include_permissions: bool = True) -> dict:
    payload = {
        "id": role.id,
        "name": role.name,
        "description": role.description,
        "is_privileged": role.is_privileged,
        "created_at": role.created_at.isoformat() if role.created_at else None,
        "updated_at": role.updated_at.isoformat() if role.updated_at else None,
    }
    if include_permissions:
        rows = sorted(role.permissions, key=lambda rf: rf.feature.name)
        payload["permissions"] = [permission_to_dict(rf, rf.feature) for rf in rows]
    return payload


def _fresh_role_dict(role: Role, session: Session) -> dict:
    # The permission collection was rewritten with bulk statements; reload it.
    session.expire(role, ["permissions"])
    return _role_dict(role)


# ── Features ───────────────────────────────────────────────────────────────

def list_features(page: int, limit: int, search: str | None, session: Session) -> tuple[list[dict], dict]:
    stmt = select(Feature).order_by(Feature.name.asc())
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(Feature.name.ilike(pattern) | Feature.description.ilike(pattern))
    features, pagination = paginate(stmt, page, limit, session)
    return [_feature_dict(f) for f in features], pagination


def create_feature(
        name: str,
        description: str | None,
        default_permissions: dict | None,
        uow: UnitOfWork,
) -> dict:
    """
    Creates a feature and back-fills one RoleFeature row per existing role,
    in one transaction.

    With default_permissions: each role gets those flags, except privileged
    roles which get every flag. Without: every role gets an all-false row.
    """
    session = uow.session
    try:
        with uow.transaction():
            _ensure_feature_name_free(name, session)

            feature = Feature(name=name, description=description)
            session.add(feature)
            session.flush()

            roles = session.execute(select(Role.id, Role.is_privileged)).all()
            rows = []
            for role_id, is_privileged in roles:
                if default_permissions is not None and is_privileged:
                    flags = _all_flags()
                else:
                    flags = _flags(default_permissions)
                rows.append(RoleFeature(role_id=role_id, feature_id=feature.id, **flags))
            session.add_all(rows)
            session.flush()

            result = _feature_dict(feature)
    except IntegrityError:
        raise _duplicate_feature(name)

    return result


def update_feature(feature_id: int, changes: dict, uow: UnitOfWork) -> dict:
    """Updates name and/or description. A protected feature cannot be renamed."""
    session = uow.session
    new_name = changes.get("name")
    try:
        with uow.transaction():
            feature = _get_feature_or_404(feature_id, session)

            if new_name is not None and new_name != feature.name:
                if feature.is_protected:
                    raise ProtectedEntity(
                        f"Feature '{feature.name}' is a protected system feature and cannot be renamed."
                    )
                _ensure_feature_name_free(new_name, session, exclude_id=feature.id)
                feature.name = new_name

            if "description" in changes:
                feature.description = changes["description"]

            session.flush()
            result = _feature_dict(feature)
    except IntegrityError:
        raise _duplicate_feature(new_name)

    return result


def delete_feature(feature_id: int, uow: UnitOfWork) -> dict:
    """
    Deletes a feature and every RoleFeature row referencing it.

    Raises:
      FEATURE_NOT_FOUND (404) — missing, or lost a concurrent delete
      ProtectedEntity   (403) — RBAC_management
    """
    session = uow.session
    with uow.transaction():
        feature = _get_feature_or_404(feature_id, session)
        if feature.is_protected:
            logger.warning("Rejected delete of protected feature %r", feature.name)
            raise ProtectedEntity(
                f"Feature '{feature.name}' is a protected system feature and cannot be deleted."
            )

        snapshot = _feature_dict(feature)

        session.execute(delete(RoleFeature).where(RoleFeature.feature_id == feature_id))
        deleted = session.execute(delete(Feature).where(Feature.id == feature_id))
        if deleted.rowcount != 1:
            raise AppError(
                ErrorCode.FEATURE_NOT_FOUND,
                f"Feature {feature_id} does not exist.",
                404,
            )

    return snapshot


# ── Roles ──────────────────────────────────────────────────────────────────

def list_roles(
        page: int,
        limit: int,
        search: str | None,
        feature: str | None,
        session: Session,
) -> tuple[list[dict], dict]:
    """
    Lists roles with their permission rows. `feature` keeps only roles that
    have a permission row on a feature whose name contains it.
    """
    stmt = select(Role).order_by(Role.name.asc())
    if search:
        stmt = stmt.where(Role.name.ilike(f"%{search}%"))
    if feature:
        stmt = stmt.where(
            exists()
            .where(RoleFeature.role_id == Role.id)
            .where(RoleFeature.feature_id == Feature.id)
            .where(Feature.name.ilike(f"%{feature}%"))
        )
    roles, pagination = paginate(
        stmt, page, limit, session,
        options=(selectinload(Role.permissions).selectinload(RoleFeature.feature),),
    )
    return [_role_dict(r) for r in roles], pagination


def list_role_options(page: int, limit: int, search: str | None, session: Session) -> tuple[list[dict], dict]:
    """Lightweight id/name list for select boxes."""
    stmt = select(Role).order_by(Role.name.asc())
    if search:
        stmt = stmt.where(Role.name.ilike(f"%{search}%"))
    roles, pagination = paginate(stmt, page, limit, session)
    return [{"id": r.id, "name": r.name} for r in roles], pagination


def get_role(role_id: int, session: Session) -> dict:
    return _role_dict(_get_role_or_404(role_id, session))


def create_role(
        name: str,
        description: str | None,
        permissions: list[dict] | None,
        uow: UnitOfWork,
        is_privileged: bool | None = None,
) -> dict:
    """
    Creates a role with one RoleFeature row per existing feature, in one
    transaction. Every feature_id in `permissions` must exist; it is checked
    before anything is written.

    is_privileged defaults to whether the name contains "admin"
    (case-insensitive) when the caller does not decide explicitly.
    """
    permissions = permissions or []
    if is_privileged is None:
        is_privileged = PRIVILEGED_NAME_MARKER in name.lower()

    session = uow.session
    try:
        with uow.transaction():
            _ensure_role_name_free(name, session)
            _validate_feature_ids([p["feature_id"] for p in permissions], session)

            role = Role(name=name, description=description, is_privileged=is_privileged)
            session.add(role)
            session.flush()

            _materialize_role_rows(role.id, {p["feature_id"]: p for p in permissions}, session)
            result = _fresh_role_dict(role, session)
    except IntegrityError:
        raise _duplicate_role(name)

    return result


def update_role(role_id: int, changes: dict, uow: UnitOfWork) -> dict:
    """
    Updates name, description and is_privileged and, when
    changes["permissions"] is present, replaces the role's whole permission
    set (wipe-and-replace).
    A protected role cannot be renamed.
    """
    session = uow.session
    new_name = changes.get("name")
    permissions = changes.get("permissions")
    try:
        with uow.transaction():
            role = _get_role_or_404(role_id, session)

            if new_name is not None and new_name != role.name:
                if role.is_protected:
                    raise ProtectedEntity(
                        f"Role '{role.name}' is a protected system role and cannot be renamed."
                    )
                _ensure_role_name_free(new_name, session, exclude_id=role.id)
                role.name = new_name

            if "description" in changes:
                role.description = changes["description"]

            if "is_privileged" in changes:
                if role.is_protected and not changes["is_privileged"]:
                    raise ProtectedEntity(
                        f"Role '{role.name}' is a protected system role and must stay privileged."
                    )
                role.is_privileged = bool(changes["is_privileged"])

            if permissions is not None:
                _validate_feature_ids([p["feature_id"] for p in permissions], session)
                session.execute(delete(RoleFeature).where(RoleFeature.role_id == role.id))
                _materialize_role_rows(role.id, {p["feature_id"]: p for p in permissions}, session)

            session.flush()
            result = _fresh_role_dict(role, session)
    except IntegrityError:
        raise _duplicate_role(new_name or str(role_id))

    return result


def delete_role(role_id: int, uow: UnitOfWork) -> dict:
    """
    Deletes a role and every RoleFeature row referencing it.

    Raises:
      ROLE_NOT_FOUND  (404) — missing, or lost a concurrent delete
      ProtectedEntity (403) — SuperAdmin
      ROLE_IN_USE     (409) — users are still assigned to the role
    """
    session = uow.session
    with uow.transaction():
        role = _get_role_or_404(role_id, session)
        if role.is_protected:
            logger.warning("Rejected delete of protected role %r", role.name)
            raise ProtectedEntity(
                f"Role '{role.name}' is a protected system role and cannot be deleted."
            )

        assigned = session.execute(
            select(func.count()).select_from(User).where(User.role_id == role_id)
        ).scalar_one()
        if assigned:
            raise AppError(
                ErrorCode.ROLE_IN_USE,
                f"Role '{role.name}' is still assigned to {assigned} user(s).",
                409,
            )

        snapshot = _role_dict(role, include_permissions=False)

        session.execute(delete(RoleFeature).where(RoleFeature.role_id == role_id))
        deleted = session.execute(delete(Role).where(Role.id == role_id))
        if deleted.rowcount != 1:
            raise AppError(
                ErrorCode.ROLE_NOT_FOUND,
                f"Role {role_id} does not exist.",
                404,
            )

    return snapshot
