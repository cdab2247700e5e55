"""
models/feature.py — Feature table definition.

A feature is a named protectable capability (e.g. "user_management").
Routes declare the (feature name, action) pair they require.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gatehouse.extensions import db

RBAC_FEATURE = "RBAC_management"
USER_FEATURE = "user_management"
PROTECTED_FEATURES = frozenset({RBAC_FEATURE})


class Feature(db.Model):
    __tablename__ = "features"

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
    )

    description: Mapped[str | None] = mapped_column(String(255), nullable=True)

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

    permissions: Mapped[list["RoleFeature"]] = relationship(  # noqa: F821
        "RoleFeature",
        back_populates="feature",
        passive_deletes=True,
    )

    @property
    def is_protected(self) -> bool:
        return self.name in PROTECTED_FEATURES

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Feature id={self.id} name={self.name!r}>"
