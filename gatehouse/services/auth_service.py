"""
services/auth_service.py — Session authority.

Responsibilities:
  - Credential validation (login)
  - Refresh-token rotation with reuse detection
  - Logout (single session, best effort) and logout-all (every device)
  - The account-state / token-version guard used by the request gate

Layer rules:
  - No imports from routes or schemas
  - No use of flask.request, flask.g, or HTTP status codes
  - current_app.config is read ONLY to build the TokenCodec (_codec)

Token design:
  - Access token: JWT {sub, tv}, short TTL
  - Refresh token: JWT {sub, tv, jti}, long TTL; jti is the id of a
    RefreshToken row. The row, not the JWT, decides whether the token can
    still be redeemed.
  - tv is the user's token_version at issue time. Bumping token_version
    kills every token issued against the old value on every device.

Rotation protocol (refresh_session):
  1. verify signature/expiry                         → InvalidToken
  2. load row by jti                                 → InvalidToken if missing
  3. row already revoked: this is a replay of a rotated or stolen token.
     Bump the owner's token_version in its own committed transaction and
     fail                                            → InvalidToken
  4. owner inactive                                  → AccountDisabled
  5. tv != live token_version                        → TokenVersionMismatch
  6. one transaction: compare-and-set revoked false→true on the presented
     row, insert the replacement row, mint a new pair. If the CAS matches no
     row a concurrent request won the race          → InvalidToken
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gatehouse.errors import (
    AccountDisabled,
    InvalidCredentials,
    InvalidToken,
    TokenVersionMismatch,
    Unauthorized,
)
from gatehouse.models.refresh_token import RefreshToken, new_token_id
from gatehouse.models.user import User
from gatehouse.security import verify_password
from gatehouse.services.token_codec import TokenClaims, TokenCodec, TokenKind
from gatehouse.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _codec() -> TokenCodec:
    return TokenCodec.from_config(current_app.config)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _create_refresh_row(user_id: int, codec: TokenCodec, session: Session) -> RefreshToken:
    """
    Inserts a new active RefreshToken row for user_id and returns it.
    The id is assigned up front because it becomes the refresh JWT's jti.
    """
    row = RefreshToken(
        id=new_token_id(),
        user_id=user_id,
        expires_at=datetime.now(timezone.utc) + codec.ttl(TokenKind.REFRESH),
        revoked=False,
    )
    session.add(row)
    session.flush()
    return row


def _build_token_pair(user: User, token_id: str, codec: TokenCodec) -> dict:
    return {
        "access_token": codec.sign(TokenKind.ACCESS, user.id, user.token_version),
        "refresh_token": codec.sign(
            TokenKind.REFRESH, user.id, user.token_version, jti=token_id,
        ),
    }


def build_user_dict(user: User) -> dict:
    """Serialises a User to a plain dict. Never includes the password hash."""
    role = getattr(user, "role", None)
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "is_active": user.is_active,
        "role_id": user.role_id,
        "role_name": role.name if role is not None else None,
        "created_at": user.created_at.isoformat() if user.created_at else None,
        "updated_at": user.updated_at.isoformat() if user.updated_at else None,
    }


def _load_refresh_row(claims: TokenClaims, session: Session) -> RefreshToken | None:
    """Returns the row behind a verified refresh token, or None if it does not
    exist or belongs to a different user than the token's subject."""
    row = session.get(RefreshToken, claims.jti)
    if row is None or row.user_id != claims.user_id:
        return None
    return row


def bump_token_version(user_id: int, session: Session) -> None:
    """
    Increments token_version in SQL. Invalidates every access and refresh
    token issued against the previous value. Caller owns the transaction.
    """
    session.execute(
        update(User)
        .where(User.id == user_id)
        .values(token_version=User.token_version + 1)
    )


def _revoke_session_family(row: RefreshToken, uow: UnitOfWork) -> None:
    logger.warning(
        "Refresh token reuse detected (token_id=%s, user_id=%s); "
        "invalidating all sessions for the user.",
        row.id,
        row.user_id,
    )
    with uow.transaction():
        bump_token_version(row.user_id, uow.session)


# ── Public service functions ───────────────────────────────────────────────

def login_user(email: str, password: str, uow: UnitOfWork) -> dict:
    """
    Validates credentials and opens a new session (one new RefreshToken row).

    Concurrent logins for the same user are independent; each device gets
    its own row.

    Raises:
      InvalidCredentials — email unknown or password wrong (indistinguishable)
      AccountDisabled    — credentials correct but account deactivated

    Returns: {"user": {...}, "access_token": "...", "refresh_token": "..."}
    """
    session = uow.session
    user = session.execute(
        select(User).where(User.email == normalize_email(email))
    ).scalar_one_or_none()

    if not verify_password(password, user.password_hash if user is not None else None):
        logger.info("Failed login attempt for %s", normalize_email(email))
        raise InvalidCredentials()

    if not user.is_active:
        raise AccountDisabled()

    codec = _codec()
    with uow.transaction():
        row = _create_refresh_row(user.id, codec, session)
        result = {
            "user": build_user_dict(user),
            **_build_token_pair(user, row.id, codec),
        }

    return result


def refresh_session(raw_refresh_token: str | None, uow: UnitOfWork) -> dict:
    """
    Exchanges a refresh token for a new access/refresh pair, revoking the
    presented one. See the module docstring for the full protocol.

    Raises:
      InvalidToken         — bad/expired/unknown token, replayed token, lost race
      AccountDisabled      — owner deactivated
      TokenVersionMismatch — token issued before the last version bump

    Returns: {"user": {...}, "access_token": "...", "refresh_token": "..."}
    """
    codec = _codec()
    claims = codec.verify(TokenKind.REFRESH, raw_refresh_token)
    session = uow.session

    row = _load_refresh_row(claims, session)
    if row is None:
        raise InvalidToken()

    if row.revoked:
        _revoke_session_family(row, uow)
        raise InvalidToken()

    user = session.get(User, row.user_id)
    if user is None:
        raise InvalidToken()
    if not user.is_active:
        raise AccountDisabled()
    if claims.token_version != user.token_version:
        raise TokenVersionMismatch()

    with uow.transaction():
        revoked = session.execute(
            update(RefreshToken)
            .where(
                RefreshToken.id == row.id,
                RefreshToken.revoked.is_(False),
            )
            .values(revoked=True)
        )
        if revoked.rowcount != 1:
            # Another request rotated this token between our read and our
            # write. Exactly one rotation may succeed.
            raise InvalidToken()

        new_row = _create_refresh_row(user.id, codec, session)
        result = {
            "user": build_user_dict(user),
            **_build_token_pair(user, new_row.id, codec),
        }

    return result


def logout_user(raw_refresh_token: str | None, uow: UnitOfWork) -> None:
    """
    Best-effort revoke of one refresh token. Never raises for token problems:
    malformed, expired, unknown and already-revoked tokens are all ignored so
    that a client can always clear its local session state.
    """
    try:
        claims = _codec().verify(TokenKind.REFRESH, raw_refresh_token)
    except InvalidToken:
        logger.debug("Logout with an unverifiable refresh token; nothing to revoke.")
        return

    try:
        with uow.transaction():
            uow.session.execute(
                update(RefreshToken)
                .where(
                    RefreshToken.id == claims.jti,
                    RefreshToken.user_id == claims.user_id,
                    RefreshToken.revoked.is_(False),
                )
                .values(revoked=True)
            )
    except SQLAlchemyError:
        logger.warning(
            "Failed to revoke refresh token %s during logout.",
            claims.jti,
            exc_info=True,
        )


def logout_all(user_id: int, raw_refresh_token: str | None, uow: UnitOfWork) -> None:
    """
    Revokes every session of user_id. The caller must prove possession of a
    live refresh token of that same user. The initiating token is revoked
    with a compare-and-set, so of two concurrent calls with the same token
    only one bumps token_version.

    Raises:
      Unauthorized         — token absent/invalid/unknown/revoked, lost the
                             compare-and-set, or it belongs to a different
                             user than user_id
      AccountDisabled      — account deactivated
      TokenVersionMismatch — initiating token is stale
    """
    try:
        claims = _codec().verify(TokenKind.REFRESH, raw_refresh_token)
    except InvalidToken:
        raise Unauthorized("A valid refresh token is required to confirm identity.")

    if claims.user_id != user_id:
        raise Unauthorized("The refresh token does not belong to the authenticated user.")

    session = uow.session
    row = _load_refresh_row(claims, session)
    if row is None:
        raise Unauthorized("A valid refresh token is required to confirm identity.")
    if row.revoked:
        raise Unauthorized("The refresh token has already been revoked.")

    user = session.get(User, user_id)
    if user is None:
        raise Unauthorized("User no longer exists.")
    if not user.is_active:
        raise AccountDisabled()
    if claims.token_version != user.token_version:
        raise TokenVersionMismatch()

    with uow.transaction():
        initiating = session.execute(
            update(RefreshToken)
            .where(
                RefreshToken.id == row.id,
                RefreshToken.revoked.is_(False),
            )
            .values(revoked=True)
        )
        if initiating.rowcount != 1:
            # A concurrent logout-all or rotation consumed this token first.
            raise Unauthorized("The refresh token has already been revoked.")

        session.execute(
            update(RefreshToken)
            .where(
                RefreshToken.user_id == user_id,
                RefreshToken.revoked.is_(False),
            )
            .values(revoked=True)
        )
        bump_token_version(user_id, session)

    logger.info("All sessions revoked for user_id=%s", user_id)


def check_account_state(user_id: int, token_version: int, session: Session) -> User:
    """
    Guard run on every protected request, after the access token verified.
    Reads the live user row; token_version is never cached.

    Raises:
      Unauthorized         — user no longer exists
      AccountDisabled      — account deactivated
      TokenVersionMismatch — token issued against an older token_version
    """
    user = session.get(User, user_id)
    if user is None:
        raise Unauthorized("User no longer exists.")
    if not user.is_active:
        raise AccountDisabled()
    if user.token_version != token_version:
        raise TokenVersionMismatch()
    return user


def get_current_user(user_id: int, token_version: int, session: Session) -> dict:
    """Returns the profile of the currently authenticated user (GET /auth/me)."""
    user = check_account_state(user_id, token_version, session)
    return build_user_dict(user)
