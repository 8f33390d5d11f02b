"""
tests/test_api_routes.py -- Integration tests for the token endpoint and the
bearer-protected user routes.

These tests exercise the full stack: FastAPI routing -> form / Basic auth
parsing -> authenticators -> SQLCredentialStore -> response serialization.

Fixtures used (from conftest.py):
  - api_client: ApiHarness with a live TestClient, the seeded store, and one
    bearer token per role ("root" Admin, "dev" Developer, "alice" User).
"""

from __future__ import annotations

import pytest

from api.limiter import limiter
from core.config import get_settings


class TestTokenEndpoint:
    def test_password_grant_success(self, api_client) -> None:
        resp = api_client.request_token("alice", "alicepass123")
        assert resp.status_code == 200
        body = resp.json()
        assert body["token_type"] == "Bearer"
        assert body["access_token"]
        assert resp.headers["cache-control"] == "no-store"

    def test_username_is_case_insensitive(self, api_client) -> None:
        resp = api_client.request_token("ALICE", "alicepass123")
        assert resp.status_code == 200

    def test_client_credentials_in_form_body(self, api_client) -> None:
        resp = api_client.request_token(
            "alice",
            "alicepass123",
            auth=None,
            data={"client_id": "test-client", "client_secret": "test-client-secret"},
        )
        assert resp.status_code == 200

    @pytest.mark.parametrize(
        "auth",
        [("test-client", "wrong"), ("unknown", "test-client-secret"), None],
    )
    def test_bad_client_is_401_invalid_client(self, api_client, auth) -> None:
        resp = api_client.request_token("alice", "alicepass123", auth=auth)
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_client"
        assert resp.headers["www-authenticate"].startswith("Basic")

    def test_unsupported_grant_type(self, api_client) -> None:
        resp = api_client.request_token("alice", "alicepass123", data={"grant_type": "client_credentials"})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "unsupported_grant_type"

    @pytest.mark.parametrize("username, password", [("alice", "wrong"), ("nobody", "x"), ("", "")])
    def test_bad_user_credentials_is_invalid_grant(self, api_client, username, password) -> None:
        resp = api_client.request_token(username, password)
        assert resp.status_code == 401
        body = resp.json()
        assert body["error"]["code"] == "invalid_grant"
        assert body["error"]["message"] == "Invalid username or password."
        assert resp.headers["cache-control"] == "no-store"

    def test_two_logins_two_valid_tokens(self, api_client) -> None:
        first = api_client.request_token("dev", "devpass123").json()["access_token"]
        second = api_client.request_token("dev", "devpass123").json()["access_token"]
        assert first != second
        for token in (first, second):
            resp = api_client.client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
            assert resp.status_code == 200
            assert resp.json()["username"] == "dev"


class TestBearerAuth:
    def test_me_returns_identity(self, api_client) -> None:
        resp = api_client.client.get("/api/v1/auth/me", headers=api_client.auth("alice"))
        assert resp.status_code == 200
        body = resp.json()
        assert body == {
            "username": "alice",
            "name": "Alice",
            "email": "alice@example.com",
            "role": "User",
            "created_at": body["created_at"],
        }
        assert "hashed_password" not in body

    @pytest.mark.parametrize(
        "headers",
        [{}, {"Authorization": "Bearer not-a-real-token"}, {"Authorization": "Basic dGVzdDp0ZXN0"}],
    )
    def test_missing_or_unknown_token_is_401(self, api_client, headers) -> None:
        resp = api_client.client.get("/api/v1/auth/me", headers=headers)
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"
        assert resp.headers["www-authenticate"] == "Bearer"


class TestRoleGating:
    def test_user_cannot_list_users(self, api_client) -> None:
        resp = api_client.client.get("/api/v1/users", headers=api_client.auth("alice"))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    @pytest.mark.parametrize("username", ["dev", "root"])
    def test_developer_and_admin_can_list_users(self, api_client, username) -> None:
        resp = api_client.client.get("/api/v1/users", headers=api_client.auth(username))
        assert resp.status_code == 200
        assert {"root", "dev", "alice"} <= {u["username"] for u in resp.json()}

    def test_get_single_user(self, api_client) -> None:
        resp = api_client.client.get("/api/v1/users/ALICE", headers=api_client.auth("dev"))
        assert resp.status_code == 200
        assert resp.json()["username"] == "alice"

    def test_get_unknown_user_404(self, api_client) -> None:
        resp = api_client.client.get("/api/v1/users/ghost", headers=api_client.auth("dev"))
        assert resp.status_code == 404

    @pytest.mark.parametrize("username", ["dev", "alice"])
    def test_non_admin_cannot_create_users(self, api_client, username) -> None:
        resp = api_client.client.post(
            "/api/v1/users",
            json={"username": "mallory", "name": "M", "email": "m@x", "password": "pw"},
            headers=api_client.auth(username),
        )
        assert resp.status_code == 403


class TestUserManagement:
    def test_admin_creates_user_who_can_log_in(self, api_client) -> None:
        resp = api_client.client.post(
            "/api/v1/users",
            json={"username": "Bob", "name": "Bob Builder", "email": "bob@example.com", "password": "b0b-pass"},
            headers=api_client.auth("root"),
        )
        assert resp.status_code == 201
        assert resp.json()["username"] == "bob"
        assert resp.json()["role"] == "User"

        login = api_client.request_token("bob", "b0b-pass")
        assert login.status_code == 200

    def test_blank_fields_reported_together(self, api_client) -> None:
        resp = api_client.client.post(
            "/api/v1/users",
            json={"username": "carol", "name": "", "email": "", "password": ""},
            headers=api_client.auth("root"),
        )
        assert resp.status_code == 422
        error = resp.json()["error"]
        assert error["code"] == "validation_error"
        assert error["violations"] == ["Name cannot be blank", "Email cannot be blank", "Invalid password"]
        assert api_client.store.find_user_by_username_ci("carol") is None

    def test_invalid_role_rejected(self, api_client) -> None:
        resp = api_client.client.post(
            "/api/v1/users",
            json={"username": "dave", "name": "Dave", "email": "d@x", "password": "pw", "role": "Root"},
            headers=api_client.auth("root"),
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["violations"] == ["Role must be one of User, Developer, Admin"]

    def test_blank_role_rejected(self, api_client) -> None:
        resp = api_client.client.post(
            "/api/v1/users",
            json={"username": "blankrole", "name": "Blank", "email": "b@x", "password": "pw", "role": ""},
            headers=api_client.auth("root"),
        )
        assert resp.status_code == 422
        assert "Role cannot be blank" in resp.json()["error"]["violations"]
        assert api_client.store.find_user_by_username_ci("blankrole") is None

    def test_duplicate_username_conflict(self, api_client) -> None:
        resp = api_client.client.post(
            "/api/v1/users",
            json={"username": "Alice", "name": "Other Alice", "email": "a2@x", "password": "pw"},
            headers=api_client.auth("root"),
        )
        assert resp.status_code == 409

    def test_promote_user_takes_effect_on_next_request(self, api_client) -> None:
        api_client.client.post(
            "/api/v1/users",
            json={"username": "erin", "name": "Erin", "email": "e@x", "password": "erin-pass"},
            headers=api_client.auth("root"),
        )
        token = api_client.request_token("erin", "erin-pass").json()["access_token"]
        erin = {"Authorization": f"Bearer {token}"}
        assert api_client.client.get("/api/v1/users", headers=erin).status_code == 403

        resp = api_client.client.patch(
            "/api/v1/users/erin", json={"role": "Developer"}, headers=api_client.auth("root")
        )
        assert resp.status_code == 200
        assert resp.json()["role"] == "Developer"

        # Same token, new role: access is re-checked per request.
        assert api_client.client.get("/api/v1/users", headers=erin).status_code == 200

    def test_patch_rejects_unknown_role(self, api_client) -> None:
        resp = api_client.client.patch(
            "/api/v1/users/alice", json={"role": "Overlord"}, headers=api_client.auth("root")
        )
        assert resp.status_code == 422

    def test_patch_unknown_user_404(self, api_client) -> None:
        resp = api_client.client.patch("/api/v1/users/ghost", json={"role": "User"}, headers=api_client.auth("root"))
        assert resp.status_code == 404

    def test_admin_cannot_demote_self(self, api_client) -> None:
        resp = api_client.client.patch("/api/v1/users/root", json={"role": "User"}, headers=api_client.auth("root"))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "self_demotion"

    def test_developer_cannot_change_roles(self, api_client) -> None:
        resp = api_client.client.patch("/api/v1/users/alice", json={"role": "Admin"}, headers=api_client.auth("dev"))
        assert resp.status_code == 403


class TestTokenRateLimit:
    def test_excess_logins_get_429(self, api_client, monkeypatch) -> None:
        """The token endpoint enforces TOKEN_RATE_LIMIT per client address."""
        monkeypatch.setattr(get_settings(), "token_rate_limit", "2/minute")
        limiter.reset()
        try:
            codes = [api_client.request_token("alice", "alicepass123").status_code for _ in range(3)]
            blocked = api_client.request_token("alice", "wrong")
        finally:
            limiter.reset()

        assert codes == [200, 200, 429]
        assert blocked.status_code == 429
        assert blocked.json()["error"]["code"] == "rate_limited"
        assert int(blocked.headers["retry-after"]) > 0
