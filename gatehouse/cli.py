"""
cli.py — Flask CLI commands.

    flask --app gatehouse seed
    flask --app gatehouse seed --email root@example.com --password 's3cretpass'

`seed` is idempotent. It makes sure that:
  - the system features RBAC_management and user_management exist,
  - the privileged SuperAdmin role exists with every flag on every feature,
  - when --email/--password are given and no SuperAdmin user exists yet,
    that single SuperAdmin user is created.

The SuperAdmin user cannot be created through the API (user_service rejects
the role), so this command is the only way in on a fresh database.
"""

from __future__ import annotations

import logging

import click
from flask import Flask
from sqlalchemy import select

from gatehouse.extensions import db
from gatehouse.models.feature import RBAC_FEATURE, USER_FEATURE, Feature
from gatehouse.models.role import SUPER_ADMIN_ROLE, Role
from gatehouse.models.role_feature import FLAG_COLUMNS
from gatehouse.models.user import User
from gatehouse.security import hash_password
from gatehouse.services import rbac_service
from gatehouse.services.auth_service import normalize_email
from gatehouse.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

SYSTEM_FEATURES = {
    RBAC_FEATURE: "Manage roles, features and their permissions.",
    USER_FEATURE: "Manage user accounts.",
}


def seed_defaults(uow: UnitOfWork, email: str | None = None, password: str | None = None) -> dict:
    """
    Creates whatever part of the bootstrap data is missing.

    Returns a summary: {"features_created": [...], "role_created": bool,
    "user_created": bool}.
    """
    session = uow.session
    summary = {"features_created": [], "role_created": False, "user_created": False}

    for name, description in SYSTEM_FEATURES.items():
        exists = session.execute(select(Feature.id).where(Feature.name == name)).scalar_one_or_none()
        if exists is None:
            # Empty defaults: ordinary roles get all-false, privileged roles all-true.
            rbac_service.create_feature(name, description, {}, uow)
            summary["features_created"].append(name)

    feature_ids = session.execute(select(Feature.id)).scalars().all()
    full_access = [
        {"feature_id": feature_id, **{column: True for column in FLAG_COLUMNS}}
        for feature_id in feature_ids
    ]

    role = session.execute(select(Role).where(Role.name == SUPER_ADMIN_ROLE)).scalar_one_or_none()
    if role is None:
        created = rbac_service.create_role(
            SUPER_ADMIN_ROLE,
            "Full access to every feature.",
            full_access,
            uow,
            is_privileged=True,
        )
        role_id = created["id"]
        summary["role_created"] = True
    else:
        rbac_service.update_role(
            role.id,
            {"is_privileged": True, "permissions": full_access},
            uow,
        )
        role_id = role.id

    if email and password:
        existing = session.execute(
            select(User.id).where(User.role_id == role_id)
        ).scalars().first()
        if existing is None:
            with uow.transaction():
                session.add(User(
                    email=normalize_email(email),
                    name="Super Admin",
                    password_hash=hash_password(password),
                    is_active=True,
                    token_version=0,
                    role_id=role_id,
                ))
            summary["user_created"] = True
        else:
            logger.info("A SuperAdmin user already exists (id=%s); not creating another.", existing)

    return summary


def register_cli(app: Flask) -> None:

    @app.cli.command("seed")
    @click.option("--email", default=None, help="Email of the SuperAdmin user to create.")
    @click.option("--password", default=None, help="Password of the SuperAdmin user to create.")
    def seed(email: str | None, password: str | None) -> None:
        """Create the system features, the SuperAdmin role and optionally its user."""
        if bool(email) != bool(password):
            raise click.UsageError("--email and --password must be given together.")

        summary = seed_defaults(UnitOfWork(db.session), email=email, password=password)

        for name in summary["features_created"]:
            click.echo(f"Created feature {name}")
        click.echo(
            f"{'Created' if summary['role_created'] else 'Refreshed'} role {SUPER_ADMIN_ROLE}"
        )
        if summary["user_created"]:
            click.echo(f"Created SuperAdmin user {normalize_email(email)}")
