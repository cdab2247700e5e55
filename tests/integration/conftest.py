"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - Tests run against create_app("testing"): in-memory SQLite by default,
    PostgreSQL when TEST_DATABASE_URL points at one.
  - The app is created once per session; tables via db.create_all().
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.
  - The `admin` fixture runs the seed (system features, SuperAdmin role and
    user) and logs the SuperAdmin in.

Helper functions (not fixtures) are provided for common operations:
  - seed(app, ...)                 → bootstrap data, like `flask seed`
  - login(client, ...)             → dict with user + tokens
  - auth_headers(token)            → {"Authorization": "Bearer <token>"}
  - make_feature(client, ...)      → feature dict
  - make_role(client, ...)         → role dict
  - make_user(client, ...)         → user dict
  - feature_id(client, token, name)
  - permission_pairs(app)          → list of (role_id, feature_id) rows

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test without fixture parameterization overhead.
"""

from __future__ import annotations

import pytest
from sqlalchemy import select, text

from gatehouse import create_app
from gatehouse.cli import seed_defaults
from gatehouse.extensions import db as _db
from gatehouse.models.role_feature import RoleFeature
from gatehouse.unit_of_work import UnitOfWork

ADMIN_EMAIL = "root@test.com"
PASSWORD = "Password1"


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """
    Creates the Flask application in 'testing' mode once for the entire test session.
    """
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """
    Deletes all rows between tests in FK-safe order.

    users.role_id is RESTRICT, so users go before roles.
    """
    yield  # run the test

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test

        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM refresh_tokens"))
            conn.execute(text("DELETE FROM users"))
            conn.execute(text("DELETE FROM role_features"))
            conn.execute(text("DELETE FROM features"))
            conn.execute(text("DELETE FROM roles"))
            conn.commit()


# ═══════════════════════════════════════════════════════════════════════════
# Client / admin fixtures
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


@pytest.fixture
def admin(app, client) -> dict:
    """Seeds the database and returns the SuperAdmin's login data."""
    seed(app)
    return login(client, ADMIN_EMAIL)


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def seed(app, email: str = ADMIN_EMAIL, password: str = PASSWORD) -> dict:
    with app.app_context():
        return seed_defaults(UnitOfWork(_db.session), email=email, password=password)


def login(client, email: str, password: str = PASSWORD) -> dict:
    """
    Logs in a user and returns the response data dict.
    Returns: {"user": {...}, "access_token": "...", "refresh_token": "..."}
    """
    resp = client.post(
        "/api/v1/auth/login",
        json={"email": email, "password": password},
    )
    assert resp.status_code == 200, f"login failed: {resp.get_json()}"
    return resp.get_json()["data"]


def auth_headers(token: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {token}"}


def make_feature(
    client,
    token: str,
    name: str,
    default_permissions: dict | None = None,
    description: str | None = None,
) -> dict:
    payload: dict = {"name": name, "description": description}
    if default_permissions is not None:
        payload["default_permissions"] = default_permissions
    resp = client.post("/api/v1/rbac/features", json=payload, headers=auth_headers(token))
    assert resp.status_code == 201, f"make_feature failed: {resp.get_json()}"
    return resp.get_json()["data"]


def make_role(
    client,
    token: str,
    name: str,
    permissions: list[dict] | None = None,
    **extra,
) -> dict:
    payload: dict = {"name": name, "permissions": permissions or [], **extra}
    resp = client.post("/api/v1/rbac/roles", json=payload, headers=auth_headers(token))
    assert resp.status_code == 201, f"make_role failed: {resp.get_json()}"
    return resp.get_json()["data"]


def make_user(
    client,
    token: str,
    email: str,
    role_id: int,
    password: str = PASSWORD,
    name: str | None = None,
) -> dict:
    resp = client.post(
        "/api/v1/users",
        json={"email": email, "password": password, "role_id": role_id, "name": name},
        headers=auth_headers(token),
    )
    assert resp.status_code == 201, f"make_user failed: {resp.get_json()}"
    return resp.get_json()["data"]


def feature_id(client, token: str, name: str) -> int:
    resp = client.get(
        f"/api/v1/rbac/features?search={name}&limit=100",
        headers=auth_headers(token),
    )
    assert resp.status_code == 200, resp.get_json()
    matches = [f["id"] for f in resp.get_json()["data"] if f["name"] == name]
    assert matches, f"feature {name!r} not found"
    return matches[0]


def permission_pairs(app) -> list[tuple[int, int]]:
    """Every (role_id, feature_id) pair present in role_features."""
    with app.app_context():
        rows = _db.session.execute(
            select(RoleFeature.role_id, RoleFeature.feature_id)
        ).all()
        return [tuple(row) for row in rows]


def entity_ids(app, table: str) -> list[int]:
    with app.app_context():
        return list(_db.session.execute(text(f"SELECT id FROM {table}")).scalars().all())


def token_version(app, user_id: int) -> int:
    with app.app_context():
        return _db.session.execute(
            text("SELECT token_version FROM users WHERE id = :id"), {"id": user_id}
        ).scalar_one()
