"""Initial schema — users, refresh tokens, roles, features and permissions.

Revision: 001_initial_schema
Created:  2026-10-18

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a schema change is required, create a NEW migration file.

Creation order (FK dependency order):
  roles → features → role_features → users → refresh_tokens

ON DELETE policies:
  users.role_id             → RESTRICT  (cannot delete a role that has users)
  refresh_tokens.user_id    → CASCADE   (token owned by user)
  role_features.role_id     → CASCADE   (backstop; rbac_service deletes the
  role_features.feature_id  → CASCADE    rows explicitly in the same transaction)
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_schema"
down_revision: str | None = None      # first migration
branch_labels: tuple | None = None
depends_on: tuple | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
    ]


def upgrade() -> None:

    # ── Step 1: roles ──────────────────────────────────────────────────────

    op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column(
            "is_privileged",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_roles"),
        sa.UniqueConstraint("name", name="uq_roles_name"),
    )

    # ── Step 2: features ───────────────────────────────────────────────────

    op.create_table(
        "features",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.String(255), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_features"),
        sa.UniqueConstraint("name", name="uq_features_name"),
    )

    # ── Step 3: role_features ──────────────────────────────────────────────
    # Exactly one row per (role, feature) pair.

    op.create_table(
        "role_features",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "role_id",
            sa.Integer(),
            sa.ForeignKey("roles.id", ondelete="CASCADE", name="fk_role_features_role"),
            nullable=False,
        ),
        sa.Column(
            "feature_id",
            sa.Integer(),
            sa.ForeignKey("features.id", ondelete="CASCADE", name="fk_role_features_feature"),
            nullable=False,
        ),
        *[
            sa.Column(flag, sa.Boolean(), nullable=False, server_default=sa.false())
            for flag in ("can_create", "can_read", "can_update", "can_delete", "can_print")
        ],
        sa.PrimaryKeyConstraint("id", name="pk_role_features"),
        sa.UniqueConstraint("role_id", "feature_id", name="uq_role_features_role_feature"),
    )

    # ── Step 4: users ──────────────────────────────────────────────────────

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(100), nullable=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column(
            "is_active",
            sa.Boolean(),
            nullable=False,
            server_default=sa.true(),
        ),
        sa.Column(
            "token_version",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column(
            "role_id",
            sa.Integer(),
            sa.ForeignKey("roles.id", ondelete="RESTRICT", name="fk_users_role"),
            nullable=False,
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.CheckConstraint("email LIKE '%@%'", name="ck_users_email_format"),
        sa.CheckConstraint("token_version >= 0", name="ck_users_token_version_nonnegative"),
    )

    # ── Step 5: refresh_tokens ─────────────────────────────────────────────
    # id is the refresh JWT's jti (uuid4 hex).

    op.create_table(
        "refresh_tokens",
        sa.Column("id", sa.String(32), nullable=False),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE", name="fk_refresh_tokens_user"),
            nullable=False,
        ),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "revoked",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("CURRENT_TIMESTAMP"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_refresh_tokens"),
    )

    # ── Step 6: indexes ────────────────────────────────────────────────────

    op.create_index("ix_users_role_id", "users", ["role_id"])
    op.create_index("ix_refresh_tokens_user_id", "refresh_tokens", ["user_id"])
    op.create_index("ix_role_features_feature_id", "role_features", ["feature_id"])


def downgrade() -> None:
    """
    Drop all objects created in upgrade(), in reverse dependency order.
    Local development reset only; corrective migrations are preferred.
    """
    op.drop_index("ix_role_features_feature_id", table_name="role_features")
    op.drop_index("ix_refresh_tokens_user_id",   table_name="refresh_tokens")
    op.drop_index("ix_users_role_id",            table_name="users")

    op.drop_table("refresh_tokens")
    op.drop_table("users")
    op.drop_table("role_features")
    op.drop_table("features")
    op.drop_table("roles")
