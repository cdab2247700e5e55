"""
models/role_feature.py — RoleFeature (permission) table definition.

Join entity between Role and Feature carrying the five action flags.
Composite-unique on (role_id, feature_id).

Coverage invariant: for every existing role and every existing feature
exactly one row exists. The FK CASCADEs are a DB-level backstop only; the
service layer deletes these rows explicitly inside the same transaction as
the role/feature delete.
"""

from __future__ import annotations

from sqlalchemy import Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gatehouse.extensions import db

# Action name → column attribute. The single source of truth for which
# actions exist; permission checks and serialisers both read from it.
ACTIONS: dict[str, str] = {
    "create": "can_create",
    "read":   "can_read",
    "update": "can_update",
    "delete": "can_delete",
    "print":  "can_print",
}

FLAG_COLUMNS: tuple[str, ...] = tuple(ACTIONS.values())


class RoleFeature(db.Model):
    __tablename__ = "role_features"

    __table_args__ = (
        UniqueConstraint("role_id", "feature_id", name="uq_role_features_role_feature"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    role_id: Mapped[int] = mapped_column(
        ForeignKey("roles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    feature_id: Mapped[int] = mapped_column(
        ForeignKey("features.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    can_create: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    can_read:   Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    can_update: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    can_delete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    can_print:  Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")

    # ── Relationships ──────────────────────────────────────────────────────

    role: Mapped["Role"] = relationship(  # noqa: F821
        "Role",
        back_populates="permissions",
    )

    feature: Mapped["Feature"] = relationship(  # noqa: F821
        "Feature",
        back_populates="permissions",
    )

    def __repr__(self) -> str:  # pragma: no cover
        flags = "".join(
            action[0].upper() if getattr(self, column) else "-"
            for action, column in ACTIONS.items()
        )
        return f"<RoleFeature role_id={self.role_id} feature_id={self.feature_id} {flags}>"
