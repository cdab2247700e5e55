"""
models/refresh_token.py — RefreshToken table definition.

One row per issued refresh credential. The primary key is an opaque UUID hex
string that is embedded in the signed refresh JWT as its `jti` claim; the
signed token itself is never stored.

Lifecycle: active (revoked = false) → revoked (terminal). A row is never
un-revoked and never deleted except through the users ON DELETE CASCADE.

No business logic. No imports from services or routes.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gatehouse.extensions import db


def new_token_id() -> str:
    return uuid.uuid4().hex


class RefreshToken(db.Model):
    __tablename__ = "refresh_tokens"

    id: Mapped[str] = mapped_column(
        String(32),
        primary_key=True,
        default=new_token_id,
    )

    # ON DELETE CASCADE: token is destroyed when its owning user is deleted.
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    revoked: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default="false",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="refresh_tokens",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<RefreshToken id={self.id} "
            f"user_id={self.user_id} "
            f"revoked={self.revoked}>"
        )
