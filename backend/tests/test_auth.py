"""
Login, logout, registration and session lifecycle.

Verifies:
- Login succeeds with the right password and fails with one message otherwise
- New sessions start without MFA verification
- Logout and password change revoke sessions
- Repeated failures lock the username (429)
"""

from datetime import timedelta

import pytest

from pharmasys.errors import Unauthorized
from pharmasys.extensions import db
from pharmasys.models import SecurityEvent, SessionToken
from pharmasys.services import auth_service, session_service
from pharmasys.time_utils import utcnow

from conftest import DEFAULT_PASSWORD, auth_headers, get_auth_token, login


class TestLogin:

    def test_login_success_returns_user_token_and_cookie(self, client, pharmacist_user):
        resp = login(client, "pharma")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["user"]["username"] == "pharma"
        assert body["user"]["role"] == "pharmacist"
        assert "password_hash" not in body["user"]
        assert body["token"]
        assert body["mfa_required"] is False
        assert "pharmasys_session=" in resp.headers.get("Set-Cookie", "")
        assert "HttpOnly" in resp.headers.get("Set-Cookie", "")

    def test_session_cookie_authenticates(self, client, pharmacist_user):
        login(client, "pharma")
        resp = client.get("/api/user")
        assert resp.status_code == 200
        assert resp.get_json()["user"]["username"] == "pharma"

    def test_wrong_password_and_unknown_user_share_message(self, client, pharmacist_user):
        wrong = login(client, "pharma", "nope12345")
        unknown = login(client, "ghost", "nope12345")
        assert wrong.status_code == 401
        assert unknown.status_code == 401
        assert wrong.get_json()["error"] == unknown.get_json()["error"] == "Invalid credentials"

    def test_inactive_user_cannot_login(self, client, pharmacist_user):
        pharmacist_user.is_active = False
        db.session.commit()
        assert login(client, "pharma").status_code == 401

    def test_missing_fields(self, client, db_session):
        resp = client.post("/api/login", json={"username": "pharma"})
        assert resp.status_code == 400

    def test_new_session_is_not_mfa_verified(self, client, pharmacist_user):
        token = get_auth_token(client, "pharma")
        session = session_service.validate_session(token)
        assert session.mfa_verified is False
        assert session.expires_at - session.created_at == timedelta(hours=24)

    def test_login_records_audit_event(self, client, pharmacist_user):
        login(client, "pharma")
        event = db.session.query(SecurityEvent).filter_by(event_type="LOGIN").one()
        assert event.user_id == pharmacist_user.id
        assert event.success is True


class TestLogout:

    def test_logout_revokes_session(self, client, pharmacist_user):
        token = get_auth_token(client, "pharma")
        resp = client.post("/api/logout", headers=auth_headers(token))
        assert resp.status_code == 200
        assert client.get("/api/user", headers=auth_headers(token)).status_code == 401

    def test_logout_without_session_is_ok(self, client, db_session):
        assert client.post("/api/logout").status_code == 200


class TestSessionValidity:

    def test_no_token_is_401(self, client, db_session):
        assert client.get("/api/user").status_code == 401

    def test_garbage_token_is_401(self, client, db_session):
        assert client.get("/api/user", headers=auth_headers("not-a-token")).status_code == 401

    def test_expired_session_is_401(self, client, pharmacist_user):
        token = get_auth_token(client, "pharma")
        session = db.session.query(SessionToken).filter_by(user_id=pharmacist_user.id).one()
        session.expires_at = utcnow() - timedelta(seconds=1)
        db.session.commit()
        assert client.get("/api/user", headers=auth_headers(token)).status_code == 401

    def test_deactivated_user_loses_session(self, client, pharmacist_user):
        token = get_auth_token(client, "pharma")
        pharmacist_user.is_active = False
        db.session.commit()
        assert client.get("/api/user", headers=auth_headers(token)).status_code == 401

    def test_cleanup_removes_old_expired_sessions(self, pharmacist_user):
        session, _ = session_service.create_session(pharmacist_user.id)
        session.created_at = utcnow() - timedelta(days=40)
        session.expires_at = utcnow() - timedelta(days=39)
        db.session.commit()
        assert session_service.cleanup_expired_sessions() == 1


class TestRegistration:

    def test_register_creates_and_signs_in(self, client, db_session):
        resp = client.post("/api/register", json={
            "username": "alice", "password": "pw123456",
            "name": "Alice", "email": "alice@example.test",
        })
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["user"]["role"] == "pharmacist"
        assert client.get("/api/user", headers=auth_headers(body["token"])).status_code == 200

    def test_register_cannot_pick_admin(self, client, db_session):
        resp = client.post("/api/register", json={
            "username": "mallory", "password": "pw123456",
            "name": "Mallory", "email": "m@example.test", "role": "admin",
        })
        assert resp.status_code == 400

    def test_register_duplicate_username(self, client, pharmacist_user):
        resp = client.post("/api/register", json={
            "username": "pharma", "password": "pw123456",
            "name": "Dup", "email": "dup@example.test",
        })
        assert resp.status_code == 400

    def test_register_weak_password(self, client, db_session):
        resp = client.post("/api/register", json={
            "username": "bob", "password": "short",
            "name": "Bob", "email": "bob@example.test",
        })
        assert resp.status_code == 400


class TestProfileAndPassword:

    def test_update_profile(self, client, pharmacist_headers):
        resp = client.patch("/api/user", json={"name": "Pat Pharma", "contact_number": "555-0100"},
                            headers=pharmacist_headers)
        assert resp.status_code == 200
        assert resp.get_json()["user"]["name"] == "Pat Pharma"

    def test_profile_cannot_change_role(self, client, pharmacist_headers):
        resp = client.patch("/api/user", json={"role": "admin"}, headers=pharmacist_headers)
        assert resp.status_code == 400

    def test_change_password_revokes_other_sessions(self, client, pharmacist_user):
        first = get_auth_token(client, "pharma")
        second = get_auth_token(client, "pharma")

        resp = client.post("/api/user/password", json={
            "current_password": DEFAULT_PASSWORD, "new_password": "newpass123",
        }, headers=auth_headers(first))
        assert resp.status_code == 200
        assert resp.get_json()["sessions_revoked"] == 1

        assert client.get("/api/user", headers=auth_headers(first)).status_code == 200
        assert client.get("/api/user", headers=auth_headers(second)).status_code == 401
        assert login(client, "pharma", "newpass123").status_code == 200

    def test_change_password_wrong_current(self, client, pharmacist_headers):
        resp = client.post("/api/user/password", json={
            "current_password": "wrong1234", "new_password": "newpass123",
        }, headers=pharmacist_headers)
        assert resp.status_code == 401


class TestLoginThrottle:

    def test_lockout_after_repeated_failures(self, client, pharmacist_user):
        for _ in range(10):
            assert login(client, "pharma", "wrong1234").status_code == 401

        resp = login(client, "pharma")
        assert resp.status_code == 429
        body = resp.get_json()
        assert body["locked"] is True
        assert body["retry_after_seconds"] > 0

    def test_failures_recorded_as_security_events(self, client, pharmacist_user):
        login(client, "pharma", "wrong1234")
        event = db.session.query(SecurityEvent).filter_by(event_type="LOGIN_FAILED").one()
        assert event.action == "pharma"
        assert event.success is False


class TestCurrentUser:

    def test_resolves_token_to_user(self, client, pharmacist_user):
        token = get_auth_token(client, "pharma")
        assert auth_service.current_user(token).id == pharmacist_user.id

    def test_revoked_token_is_unauthorized(self, client, pharmacist_user):
        token = get_auth_token(client, "pharma")
        session_service.revoke_session(token, reason="test")
        with pytest.raises(Unauthorized):
            auth_service.current_user(token)

    def test_missing_token_is_unauthorized(self, db_session):
        with pytest.raises(Unauthorized):
            auth_service.current_user(None)
