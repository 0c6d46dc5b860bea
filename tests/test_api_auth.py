"""
tests/test_api_auth.py -- Integration tests for sign-in, session verification and the gate.

These tests exercise the full stack: FastAPI routing -> GoogleCredentialVerifier
(over the local key set) -> UserStore upsert -> session token -> access gate ->
response envelope.

Coverage:
  - POST /auth/google: first login creates a "user", repeat login reuses the
    row, field aliases, error codes for bad Google tokens, 503 when unconfigured
  - GET /auth/verify: 200 with a session, 401 + WWW-Authenticate without
  - Session failures: expired, forged, deleted user
  - Authorization: member -> 403 forbidden on admin routes, admin -> 200
  - Rate limit on POST /auth/google -> 429 with Retry-After
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import text

from api.main import app
from auth.tokens import create_session_token
from core.config import get_settings
from google_stub import OTHER_PRIVATE_PEM, make_id_token


def _login(api, token: str, field: str = "token"):
    return api.client.post("/api/v1/auth/google", json={field: token})


class TestGoogleLogin:
    def test_first_login_creates_user_and_session(self, api) -> None:
        resp = _login(api, make_id_token())
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["token_type"] == "bearer"
        assert data["expires_in"] == 7 * 24 * 3600
        assert data["user"]["email"] == "alice@example.com"
        assert data["user"]["name"] == "Alice Example"
        assert data["user"]["role"] == "user"
        assert set(data["user"]) == {"id", "email", "name", "avatar", "role"}
        assert resp.headers["Cache-Control"] == "no-store"

        verify = api.client.get("/api/v1/auth/verify", headers=api.bearer(data["session_token"]))
        assert verify.status_code == 200
        assert verify.json()["user"]["id"] == data["user"]["id"]

    def test_repeat_login_reuses_account_and_refreshes_profile(self, api) -> None:
        first = _login(api, make_id_token()).json()["user"]
        second = _login(api, make_id_token(name="Alice Renamed", picture="https://example.com/a.png")).json()["user"]
        assert second["id"] == first["id"]
        assert second["name"] == "Alice Renamed"
        assert second["avatar"] == "https://example.com/a.png"
        assert api.users.count_users() == 3  # admin + member + alice

    def test_login_never_grants_admin(self, api) -> None:
        """Signing in as the pre-created admin keeps admin; a new account stays user."""
        admin = _login(api, make_id_token(sub="google-sub-admin", email="admin@example.com")).json()["user"]
        assert admin["id"] == api.admin.id
        assert admin["role"] == "admin"

    @pytest.mark.parametrize("field", ["token", "external_token", "externalToken", "credential"])
    def test_token_field_aliases(self, api, field: str) -> None:
        assert _login(api, make_id_token(), field=field).status_code == 200

    def test_missing_token_is_validation_error(self, api) -> None:
        resp = api.client.post("/api/v1/auth/google", json={})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    @pytest.mark.parametrize(
        "token_kwargs",
        [
            {"aud": "another-app.apps.googleusercontent.com"},
            {"iss": "https://evil.example.com"},
            {"email_verified": False},
            {"private_pem": OTHER_PRIVATE_PEM},
        ],
    )
    def test_rejected_google_token(self, api, token_kwargs: dict) -> None:
        resp = _login(api, make_id_token(**token_kwargs))
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_credential"
        assert resp.headers["WWW-Authenticate"] == "Bearer"
        assert api.users.count_users() == 2

    def test_garbage_token(self, api) -> None:
        resp = _login(api, "definitely-not-a-jwt")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "invalid_credential"

    def test_provider_outage_is_502(self, api) -> None:
        api.key_set.error = RuntimeError("metadata unavailable")
        resp = _login(api, make_id_token())
        assert resp.status_code == 502
        assert resp.json()["error"]["code"] == "provider_unavailable"
        assert api.users.count_users() == 2

    def test_unconfigured_provider_is_503(self, api) -> None:
        app.state.credential_verifier = None
        resp = _login(api, make_id_token())
        assert resp.status_code == 503
        assert resp.json()["error"]["code"] == "provider_unavailable"


class TestSessionVerification:
    def test_verify_without_token(self, api) -> None:
        resp = api.client.get("/api/v1/auth/verify")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthenticated"
        assert resp.headers["WWW-Authenticate"] == "Bearer"

    def test_verify_with_non_bearer_scheme(self, api) -> None:
        resp = api.client.get("/api/v1/auth/verify", headers={"Authorization": f"Basic {api.member_token}"})
        assert resp.status_code == 401

    def test_verify_returns_user_shape(self, api) -> None:
        resp = api.client.get("/api/v1/auth/verify", headers=api.as_member)
        assert resp.status_code == 200
        assert resp.json()["user"] == {
            "id": api.member.id,
            "email": "member@example.com",
            "name": "Forum Member",
            "avatar": None,
            "role": "user",
        }

    def test_forged_session(self, api) -> None:
        resp = api.client.get("/api/v1/auth/verify", headers=api.bearer(api.member_token + "x"))
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthenticated"

    def test_expired_session(self, api) -> None:
        issued = datetime.now(timezone.utc) - timedelta(days=8)
        stale = create_session_token(api.member, now=issued)
        resp = api.client.get("/api/v1/auth/verify", headers=api.bearer(stale))
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "session_expired"

    def test_deleted_user(self, api) -> None:
        with api.users.engine.begin() as conn:
            conn.execute(text("DELETE FROM users WHERE id = :id"), {"id": api.member.id})
        resp = api.client.get("/api/v1/auth/verify", headers=api.as_member)
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "user_not_found"


class TestAuthorization:
    def test_admin_users_requires_authentication_first(self, api) -> None:
        resp = api.client.get("/api/v1/admin/users")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthenticated"

    def test_member_is_forbidden(self, api) -> None:
        resp = api.client.get("/api/v1/admin/users", headers=api.as_member)
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"
        assert "WWW-Authenticate" not in resp.headers

    def test_admin_lists_users(self, api) -> None:
        resp = api.client.get("/api/v1/admin/users", headers=api.as_admin)
        assert resp.status_code == 200
        emails = [u["email"] for u in resp.json()]
        assert emails == ["admin@example.com", "member@example.com"]
        assert all(u["linked"] is False for u in resp.json())

    def test_demotion_applies_to_live_session(self, api) -> None:
        api.users.set_role(api.admin.id, "user")
        resp = api.client.get("/api/v1/admin/users", headers=api.as_admin)
        assert resp.status_code == 403

    def test_docs_require_session(self, api) -> None:
        assert api.client.get("/docs").status_code == 401
        assert api.client.get("/docs", headers=api.as_member).status_code == 200


class TestLoginRateLimit:
    def test_limit_returns_429_with_retry_after(self, api, monkeypatch) -> None:
        limited = get_settings().model_copy(update={"login_rate_limit": "2/minute"})
        monkeypatch.setattr("api.limiter.get_settings", lambda: limited)

        statuses = [_login(api, make_id_token()).status_code for _ in range(3)]

        assert statuses == [200, 200, 429]
        resp = _login(api, make_id_token())
        assert resp.json()["error"]["code"] == "rate_limited"
        assert "Retry-After" in resp.headers
