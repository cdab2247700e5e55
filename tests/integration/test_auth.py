"""
tests/integration/test_auth.py — Integration tests for authentication endpoints.

Endpoints covered:
  POST /auth/login       → 200
  POST /auth/refresh     → 200
  POST /auth/logout      → 200 (always)
  POST /auth/logout/all  → 200
  GET  /auth/me          → 200

Error cases:
  INVALID_CREDENTIALS    401 — wrong password / unknown email (identical)
  ACCOUNT_DISABLED       403 — deactivated account
  TOKEN_MISSING          401 — no Authorization header
  TOKEN_INVALID          401 — malformed, wrong kind, replayed or revoked token
  TOKEN_VERSION_MISMATCH 401 — token issued before a version bump
  UNAUTHORIZED           401 — logout-all without proof of a live session
"""

from __future__ import annotations

import pytest

from .conftest import (
    ADMIN_EMAIL,
    PASSWORD,
    auth_headers,
    login,
    make_role,
    make_user,
    token_version,
)


def _refresh(client, refresh_token):
    return client.post("/api/v1/auth/refresh", json={"refresh_token": refresh_token})


def _viewer(client, admin, email: str = "viewer@test.com") -> dict:
    """Creates a plain user with an all-false role and returns its record."""
    role = make_role(client, admin["access_token"], "Viewer")
    return make_user(client, admin["access_token"], email, role["id"])


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/login
# ═══════════════════════════════════════════════════════════════════════════

class TestLogin:

    def test_login_success_returns_tokens_and_user(self, client, admin):
        resp = client.post("/api/v1/auth/login", json={
            "email": ADMIN_EMAIL,
            "password": PASSWORD,
        })
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["access_token"]
        assert data["refresh_token"]
        assert data["user"]["email"] == ADMIN_EMAIL
        assert data["user"]["role_name"] == "SuperAdmin"
        # password_hash must NEVER appear in the response
        assert "password"      not in data["user"]
        assert "password_hash" not in data["user"]

    def test_login_sets_http_only_refresh_cookie(self, client, admin):
        resp = client.post("/api/v1/auth/login", json={
            "email": ADMIN_EMAIL,
            "password": PASSWORD,
        })
        cookie = next(
            c for c in resp.headers.getlist("Set-Cookie") if c.startswith("refresh_token=")
        )
        assert resp.get_json()["data"]["refresh_token"] in cookie
        assert "HttpOnly" in cookie

    def test_login_email_is_case_insensitive(self, client, admin):
        resp = client.post("/api/v1/auth/login", json={
            "email": "ROOT@TEST.COM",
            "password": PASSWORD,
        })
        assert resp.status_code == 200

    def test_wrong_password_and_unknown_email_are_indistinguishable(self, client, admin):
        wrong = client.post("/api/v1/auth/login", json={
            "email": ADMIN_EMAIL,
            "password": "WrongPass9",
        })
        unknown = client.post("/api/v1/auth/login", json={
            "email": "nobody@test.com",
            "password": PASSWORD,
        })
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.get_json() == unknown.get_json()
        assert wrong.get_json()["error"]["code"] == "INVALID_CREDENTIALS"

    def test_missing_password_returns_missing_field(self, client):
        resp = client.post("/api/v1/auth/login", json={"email": ADMIN_EMAIL})
        assert resp.status_code == 400
        error = resp.get_json()["error"]
        assert error["code"] == "MISSING_FIELD"
        assert error["field"] == "password"

    def test_disabled_account_is_rejected_after_password_check(self, client, admin):
        user = _viewer(client, admin)
        resp = client.patch(
            f"/api/v1/users/{user['id']}",
            json={"is_active": False},
            headers=auth_headers(admin["access_token"]),
        )
        assert resp.status_code == 200

        resp = client.post("/api/v1/auth/login", json={
            "email": "viewer@test.com",
            "password": PASSWORD,
        })
        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == "ACCOUNT_DISABLED"

        # A wrong password still says INVALID_CREDENTIALS, not ACCOUNT_DISABLED.
        resp = client.post("/api/v1/auth/login", json={
            "email": "viewer@test.com",
            "password": "WrongPass9",
        })
        assert resp.status_code == 401


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/refresh
# ═══════════════════════════════════════════════════════════════════════════

class TestRefresh:

    def test_refresh_rotates_the_token(self, client, admin):
        resp = _refresh(client, admin["refresh_token"])
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["refresh_token"] != admin["refresh_token"]

        me = client.get("/api/v1/auth/me", headers=auth_headers(data["access_token"]))
        assert me.status_code == 200

    def test_rotation_then_replay_poisons_every_session(self, app, client, admin):
        user_id = admin["user"]["id"]
        r1 = admin["refresh_token"]

        first = _refresh(client, r1)
        assert first.status_code == 200
        r2 = first.get_json()["data"]["refresh_token"]
        a2 = first.get_json()["data"]["access_token"]

        # Replaying the rotated token is treated as theft.
        replay = _refresh(client, r1)
        assert replay.status_code == 401
        assert replay.get_json()["error"]["code"] == "TOKEN_INVALID"
        assert token_version(app, user_id) == 1

        # The legitimate successor is dead too, as is its access token.
        successor = _refresh(client, r2)
        assert successor.status_code == 401
        assert successor.get_json()["error"]["code"] == "TOKEN_VERSION_MISMATCH"

        me = client.get("/api/v1/auth/me", headers=auth_headers(a2))
        assert me.status_code == 401
        assert me.get_json()["error"]["code"] == "TOKEN_VERSION_MISMATCH"

        # Fresh credentials work again.
        assert login(client, ADMIN_EMAIL)["access_token"]

    def test_each_replay_bumps_version_by_exactly_one(self, app, client, admin):
        r1 = admin["refresh_token"]
        assert _refresh(client, r1).status_code == 200

        _refresh(client, r1)
        _refresh(client, r1)
        assert token_version(app, admin["user"]["id"]) == 2

    def test_refresh_reads_cookie_when_body_is_empty(self, client, admin):
        # admin fixture logged in with this client; the cookie holds the token.
        resp = client.post("/api/v1/auth/refresh")
        assert resp.status_code == 200
        assert resp.get_json()["data"]["refresh_token"] != admin["refresh_token"]

    def test_devices_rotate_independently(self, client, admin):
        device_b = login(client, ADMIN_EMAIL)

        assert _refresh(client, admin["refresh_token"]).status_code == 200
        assert _refresh(client, device_b["refresh_token"]).status_code == 200

    def test_access_token_cannot_be_used_as_refresh_token(self, client, admin):
        resp = _refresh(client, admin["access_token"])
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"

    def test_garbage_token_is_invalid(self, app, admin):
        resp = _refresh(app.test_client(), "not-a-jwt")
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"

    def test_missing_token_is_invalid(self, app, admin):
        resp = app.test_client().post("/api/v1/auth/refresh", json={})
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"

    def test_refresh_for_disabled_account_is_forbidden(self, client, admin):
        user = _viewer(client, admin)
        session = login(client, "viewer@test.com")

        client.patch(
            f"/api/v1/users/{user['id']}",
            json={"is_active": False},
            headers=auth_headers(admin["access_token"]),
        )

        resp = _refresh(client, session["refresh_token"])
        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == "ACCOUNT_DISABLED"


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/logout
# ═══════════════════════════════════════════════════════════════════════════

class TestLogout:

    def test_logout_is_idempotent(self, client, admin):
        for _ in range(2):
            resp = client.post("/api/v1/auth/logout", json={"refresh_token": admin["refresh_token"]})
            assert resp.status_code == 200

    def test_logout_clears_cookie(self, client, admin):
        resp = client.post("/api/v1/auth/logout", json={"refresh_token": admin["refresh_token"]})
        cookie = next(
            c for c in resp.headers.getlist("Set-Cookie") if c.startswith("refresh_token=")
        )
        assert "Max-Age=0" in cookie or "Expires=Thu, 01 Jan 1970" in cookie

    def test_logout_accepts_garbage_and_missing_tokens(self, app):
        fresh = app.test_client()
        assert fresh.post("/api/v1/auth/logout", json={"refresh_token": "junk"}).status_code == 200
        assert fresh.post("/api/v1/auth/logout").status_code == 200

    @pytest.mark.parametrize("body", [{"refresh_token": 123}, ["x"], {"refresh_token": {"a": 1}}])
    def test_logout_accepts_malformed_bodies(self, app, body):
        fresh = app.test_client()
        resp = fresh.post("/api/v1/auth/logout", json=body)
        assert resp.status_code == 200
        assert resp.get_json()["data"]["message"] == "Logged out successfully."

    def test_malformed_body_falls_back_to_cookie(self, client, admin):
        # The admin fixture logged in through this client, so it holds the cookie.
        resp = client.post("/api/v1/auth/logout", json={"refresh_token": 123})
        assert resp.status_code == 200

        assert _refresh(client, admin["refresh_token"]).status_code == 401

    def test_logged_out_token_cannot_refresh(self, client, admin):
        client.post("/api/v1/auth/logout", json={"refresh_token": admin["refresh_token"]})
        resp = _refresh(client, admin["refresh_token"])
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"

    def test_logout_leaves_other_devices_alone(self, client, admin):
        device_b = login(client, ADMIN_EMAIL)
        client.post("/api/v1/auth/logout", json={"refresh_token": device_b["refresh_token"]})

        assert _refresh(client, admin["refresh_token"]).status_code == 200


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/logout/all
# ═══════════════════════════════════════════════════════════════════════════

class TestLogoutAll:

    def test_logout_all_kills_every_device(self, app, client, admin):
        device_b = login(client, ADMIN_EMAIL)

        resp = client.post(
            "/api/v1/auth/logout/all",
            json={"refresh_token": admin["refresh_token"]},
            headers=auth_headers(admin["access_token"]),
        )
        assert resp.status_code == 200
        assert token_version(app, admin["user"]["id"]) == 1

        assert _refresh(client, device_b["refresh_token"]).status_code == 401
        me = client.get("/api/v1/auth/me", headers=auth_headers(admin["access_token"]))
        assert me.status_code == 401
        me = client.get("/api/v1/auth/me", headers=auth_headers(device_b["access_token"]))
        assert me.status_code == 401

    def test_logout_all_requires_refresh_token(self, app, admin):
        resp = app.test_client().post(
            "/api/v1/auth/logout/all",
            json={},
            headers=auth_headers(admin["access_token"]),
        )
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "UNAUTHORIZED"

    def test_logout_all_rejects_another_users_refresh_token(self, app, client, admin):
        _viewer(client, admin)
        other = login(client, "viewer@test.com")

        resp = client.post(
            "/api/v1/auth/logout/all",
            json={"refresh_token": other["refresh_token"]},
            headers=auth_headers(admin["access_token"]),
        )
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "UNAUTHORIZED"
        assert token_version(app, admin["user"]["id"]) == 0

    def test_logout_all_requires_access_token(self, client, admin):
        resp = client.post(
            "/api/v1/auth/logout/all",
            json={"refresh_token": admin["refresh_token"]},
        )
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_MISSING"


# ═══════════════════════════════════════════════════════════════════════════
# GET /auth/me and the request gate
# ═══════════════════════════════════════════════════════════════════════════

class TestMe:

    def test_me_returns_profile(self, client, admin):
        resp = client.get("/api/v1/auth/me", headers=auth_headers(admin["access_token"]))
        assert resp.status_code == 200
        assert resp.get_json()["data"]["email"] == ADMIN_EMAIL

    def test_me_without_header_is_token_missing(self, client):
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_MISSING"

    def test_me_with_malformed_header_is_token_invalid(self, client, admin):
        resp = client.get(
            "/api/v1/auth/me",
            headers={"Authorization": f"Token {admin['access_token']}"},
        )
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"

    def test_refresh_token_is_not_an_access_token(self, client, admin):
        resp = client.get("/api/v1/auth/me", headers=auth_headers(admin["refresh_token"]))
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"

    def test_password_change_invalidates_access_tokens(self, client, admin):
        user = _viewer(client, admin)
        session = login(client, "viewer@test.com")

        resp = client.patch(
            f"/api/v1/users/{user['id']}",
            json={"password": "NewPassword2"},
            headers=auth_headers(admin["access_token"]),
        )
        assert resp.status_code == 200

        me = client.get("/api/v1/auth/me", headers=auth_headers(session["access_token"]))
        assert me.status_code == 401
        assert me.get_json()["error"]["code"] == "TOKEN_VERSION_MISMATCH"
        assert login(client, "viewer@test.com", "NewPassword2")["access_token"]

    def test_deleted_user_token_is_unauthorized(self, client, admin):
        user = _viewer(client, admin)
        session = login(client, "viewer@test.com")

        resp = client.delete(
            f"/api/v1/users/{user['id']}",
            headers=auth_headers(admin["access_token"]),
        )
        assert resp.status_code == 200

        me = client.get("/api/v1/auth/me", headers=auth_headers(session["access_token"]))
        assert me.status_code == 401
        assert me.get_json()["error"]["code"] == "UNAUTHORIZED"

    def test_response_carries_request_id(self, client):
        resp = client.get("/api/v1/health", headers={"X-Request-ID": "abc123"})
        assert resp.status_code == 200
        assert resp.headers["X-Request-ID"] == "abc123"
