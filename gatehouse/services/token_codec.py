"""
services/token_codec.py — Signs and verifies access and refresh JWTs.

Two independent token kinds, each with its own secret and its own expiry
window (access: minutes, refresh: days). Stateless: nothing here touches the
database. Whether a verified refresh token is still redeemable is decided by
auth_service against its RefreshToken row.

Claims:
  sub   user id (string, per RFC 7519)
  tv    token_version the token was issued against (int)
  type  "access" | "refresh" — checked on verify, so a refresh token is never
        accepted where an access token is expected even if both secrets were
        configured identically
  jti   refresh tokens only: id of the backing RefreshToken row
  iat, exp

Every verification failure (bad signature, expired, malformed, wrong type,
missing or ill-typed claim) collapses into InvalidToken so callers cannot
tell which case occurred.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt

from gatehouse.errors import InvalidToken


class TokenKind(str, enum.Enum):
    ACCESS = "access"
    REFRESH = "refresh"


@dataclass(frozen=True)
class TokenClaims:
    kind: TokenKind
    user_id: int
    token_version: int
    jti: str | None = None


class TokenCodec:

    def __init__(
            self,
            access_secret: str,
            refresh_secret: str,
            access_ttl: timedelta,
            refresh_ttl: timedelta,
            algorithm: str = "HS256",
    ) -> None:
        self._secrets = {
            TokenKind.ACCESS: access_secret,
            TokenKind.REFRESH: refresh_secret,
        }
        self._ttls = {
            TokenKind.ACCESS: access_ttl,
            TokenKind.REFRESH: refresh_ttl,
        }
        self.algorithm = algorithm

    @classmethod
    def from_config(cls, config: Mapping) -> "TokenCodec":
        """Builds a codec from a Flask config mapping."""
        return cls(
            access_secret=config["JWT_ACCESS_SECRET_KEY"],
            refresh_secret=config["JWT_REFRESH_SECRET_KEY"],
            access_ttl=config["JWT_ACCESS_TOKEN_EXPIRES"],
            refresh_ttl=config["JWT_REFRESH_TOKEN_EXPIRES"],
            algorithm=config.get("JWT_ALGORITHM", "HS256"),
        )

    def ttl(self, kind: TokenKind) -> timedelta:
        return self._ttls[TokenKind(kind)]

    def sign(
            self,
            kind: TokenKind,
            user_id: int,
            token_version: int,
            jti: str | None = None,
    ) -> str:
        kind = TokenKind(kind)
        if kind is TokenKind.REFRESH and not jti:
            raise ValueError("refresh tokens require a jti")

        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "tv": token_version,
            "type": kind.value,
            "iat": now,
            "exp": now + self._ttls[kind],
        }
        if jti is not None:
            payload["jti"] = jti

        return jwt.encode(payload, self._secrets[kind], algorithm=self.algorithm)

    def verify(self, kind: TokenKind, token: str | None) -> TokenClaims:
        kind = TokenKind(kind)
        if not token or not isinstance(token, str):
            raise InvalidToken()

        try:
            payload = jwt.decode(
                token,
                self._secrets[kind],
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.InvalidTokenError:
            # ExpiredSignatureError, DecodeError, InvalidSignatureError,
            # MissingRequiredClaimError are all subclasses.
            raise InvalidToken()

        if payload.get("type") != kind.value:
            raise InvalidToken()

        try:
            user_id = int(payload["sub"])
        except (TypeError, ValueError):
            raise InvalidToken()

        token_version = payload.get("tv")
        # bool is an int subclass; a literal true/false is not a version.
        if not isinstance(token_version, int) or isinstance(token_version, bool):
            raise InvalidToken()

        jti = payload.get("jti")
        if kind is TokenKind.REFRESH and (not isinstance(jti, str) or not jti):
            raise InvalidToken()

        return TokenClaims(
            kind=kind,
            user_id=user_id,
            token_version=token_version,
            jti=jti,
        )
