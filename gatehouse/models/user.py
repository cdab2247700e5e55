"""
models/user.py — User table definition.

No business logic. No imports from services or routes.

token_version is the per-user revocation epoch: every access and refresh
token embeds the value it was issued against (`tv` claim), and a token is
only honoured while that value still equals the live column. It is only ever
incremented, always in SQL (`token_version + 1`) so concurrent bumps cannot
lose an update.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gatehouse.extensions import db


class User(db.Model):
    __tablename__ = "users"

    __table_args__ = (
        CheckConstraint(
            "email LIKE '%@%'",
            name="ck_users_email_format",
        ),
        CheckConstraint(
            "token_version >= 0",
            name="ck_users_token_version_nonnegative",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # Always stored lower-cased; login normalises the same way, which makes
    # the unique constraint case-insensitive in practice.
    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
    )

    name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default="true",
    )

    token_version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )

    # ON DELETE RESTRICT: a role that still has users cannot be deleted.
    role_id: Mapped[int] = mapped_column(
        ForeignKey("roles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    role: Mapped["Role"] = relationship(  # noqa: F821
        "Role",
        back_populates="users",
    )

    refresh_tokens: Mapped[list["RefreshToken"]] = relationship(  # noqa: F821
        "RefreshToken",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<User id={self.id} email={self.email!r} tv={self.token_version}>"
