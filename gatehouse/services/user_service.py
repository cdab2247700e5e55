"""
services/user_service.py — User administration (guarded by "user_management").

Rules:
  - Only one SuperAdmin exists: it is created by the seed command, and no
    user can be created with, or moved into, the SuperAdmin role.
  - A SuperAdmin can be neither deactivated nor deleted.
  - A user cannot delete their own account.
  - Changing a password or deactivating an account bumps token_version,
    which invalidates every outstanding access and refresh token.

Layer rules:
  - No Flask imports. Mutations take a UnitOfWork, reads take a Session.
"""

from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from gatehouse.errors import AppError, ErrorCode, InvalidReference, ProtectedEntity
from gatehouse.models.role import SUPER_ADMIN_ROLE, Role
from gatehouse.models.user import User
from gatehouse.security import hash_password
from gatehouse.services.auth_service import build_user_dict, bump_token_version, normalize_email
from gatehouse.services.pagination import paginate
from gatehouse.unit_of_work import UnitOfWork


# ── Private helpers ────────────────────────────────────────────────────────

def _get_user_or_404(user_id: int, session: Session) -> User:
    user = session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} not found.",
            404,
        )
    return user


def _get_role_or_invalid(role_id: int, session: Session) -> Role:
    role = session.get(Role, role_id)
    if role is None:
        raise InvalidReference(
            f"The role_id {role_id} does not exist.",
            field="role_id",
        )
    return role


def _duplicate_email(email: str) -> AppError:
    return AppError(
        ErrorCode.DUPLICATE_EMAIL,
        f"The email address '{email}' is already registered.",
        409,
        field="email",
    )


def _ensure_email_free(email: str, session: Session, exclude_id: int | None = None) -> None:
    stmt = select(User.id).where(User.email == email)
    if exclude_id is not None:
        stmt = stmt.where(User.id != exclude_id)
    if session.execute(stmt).scalar_one_or_none() is not None:
        raise _duplicate_email(email)


# ── Public service functions ───────────────────────────────────────────────

def list_users(
        page: int,
        limit: int,
        search: str | None,
        is_active: bool | None,
        role_id: int | None,
        session: Session,
) -> tuple[list[dict], dict]:
    """Lists users ordered by creation; search matches name or email."""
    stmt = select(User).order_by(User.created_at.asc(), User.id.asc())
    if role_id is not None:
        stmt = stmt.where(User.role_id == role_id)
    if is_active is not None:
        stmt = stmt.where(User.is_active.is_(is_active))
    if search:
        pattern = f"%{search}%"
        stmt = stmt.where(User.name.ilike(pattern) | User.email.ilike(pattern))

    users, pagination = paginate(
        stmt, page, limit, session,
        options=(selectinload(User.role),),
    )
    return [build_user_dict(u) for u in users], pagination


def get_user(user_id: int, session: Session) -> dict:
    return build_user_dict(_get_user_or_404(user_id, session))


def create_user(
        email: str,
        password: str,
        role_id: int,
        uow: UnitOfWork,
        name: str | None = None,
        is_active: bool = True,
) -> dict:
    """
    Raises:
      InvalidReference  (400) — role_id does not exist
      ProtectedEntity   (403) — role is SuperAdmin
      DUPLICATE_EMAIL   (409)
    """
    email = normalize_email(email)
    session = uow.session
    try:
        with uow.transaction():
            role = _get_role_or_invalid(role_id, session)
            if role.name == SUPER_ADMIN_ROLE:
                raise ProtectedEntity("Only one SuperAdmin user may exist.")

            _ensure_email_free(email, session)

            user = User(
                email=email,
                name=name,
                password_hash=hash_password(password),
                is_active=is_active,
                token_version=0,
                role_id=role.id,
            )
            session.add(user)
            session.flush()
            result = build_user_dict(user)
    except IntegrityError:
        raise _duplicate_email(email)

    return result


def update_user(user_id: int, changes: dict, uow: UnitOfWork) -> dict:
    """
    Applies a partial update. Supported keys: email, name, password,
    is_active, role_id.

    Password change and deactivation bump token_version (exactly once even
    when both happen in the same call).
    """
    session = uow.session
    try:
        with uow.transaction():
            user = _get_user_or_404(user_id, session)
            current_role = session.get(Role, user.role_id)
            is_super_admin = current_role is not None and current_role.name == SUPER_ADMIN_ROLE
            revoke_sessions = False

            if changes.get("is_active") is False and is_super_admin:
                raise ProtectedEntity("A SuperAdmin account cannot be deactivated.")

            if "role_id" in changes and changes["role_id"] != user.role_id:
                role = _get_role_or_invalid(changes["role_id"], session)
                if role.name == SUPER_ADMIN_ROLE:
                    raise ProtectedEntity("Only one SuperAdmin user may exist.")
                if is_super_admin:
                    raise ProtectedEntity("The SuperAdmin user cannot change role.")
                user.role_id = role.id

            if "email" in changes:
                email = normalize_email(changes["email"])
                _ensure_email_free(email, session, exclude_id=user.id)
                user.email = email

            if "name" in changes:
                user.name = changes["name"]

            if changes.get("password"):
                user.password_hash = hash_password(changes["password"])
                revoke_sessions = True

            if "is_active" in changes:
                if user.is_active and changes["is_active"] is False:
                    revoke_sessions = True
                user.is_active = changes["is_active"]

            session.flush()
            if revoke_sessions:
                bump_token_version(user.id, session)

            session.expire(user, ["role"])
            result = build_user_dict(user)
    except IntegrityError:
        raise _duplicate_email(changes.get("email", ""))

    return result


def delete_user(target_id: int, requesting_user_id: int, uow: UnitOfWork) -> dict:
    """
    Deletes a user; refresh tokens go with it (FK CASCADE).

    Raises:
      CANNOT_DELETE_SELF (403)
      ProtectedEntity    (403) — target is the SuperAdmin
      USER_NOT_FOUND     (404) — missing, or lost a concurrent delete
    """
    if target_id == requesting_user_id:
        raise AppError(
            ErrorCode.CANNOT_DELETE_SELF,
            "You cannot delete your own account.",
            403,
        )

    session = uow.session
    with uow.transaction():
        user = _get_user_or_404(target_id, session)
        role = session.get(Role, user.role_id)
        if role is not None and role.name == SUPER_ADMIN_ROLE:
            raise ProtectedEntity("Cannot delete a user with SuperAdmin privileges.")

        snapshot = build_user_dict(user)
        deleted = session.execute(delete(User).where(User.id == target_id))
        if deleted.rowcount != 1:
            raise AppError(
                ErrorCode.USER_NOT_FOUND,
                f"User {target_id} not found.",
                404,
            )

    return snapshot
