"""
models/role.py — Role table definition.

A role is a named permission bundle. Every user owns exactly one role, and a
role owns exactly one RoleFeature row per existing feature (see
services/rbac_service.py for how that coverage is maintained).

is_privileged marks roles that receive full access on newly created
features. A protected role always stays privileged.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gatehouse.extensions import db

SUPER_ADMIN_ROLE = "SuperAdmin"
PROTECTED_ROLES = frozenset({SUPER_ADMIN_ROLE})


class Role(db.Model):
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
    )

    description: Mapped[str | None] = mapped_column(String(255), nullable=True)

    is_privileged: Mapped[bool] = mapped_column(
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

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    users: Mapped[list["User"]] = relationship(  # noqa: F821
        "User",
        back_populates="role",
    )

    permissions: Mapped[list["RoleFeature"]] = relationship(  # noqa: F821
        "RoleFeature",
        back_populates="role",
        passive_deletes=True,
    )

    @property
    def is_protected(self) -> bool:
        return self.name in PROTECTED_ROLES

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Role id={self.id} name={self.name!r}>"
