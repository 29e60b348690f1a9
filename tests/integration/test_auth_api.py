"""Integration tests for the authentication API."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from radius_console.core import totp
from radius_console.core.security import create_access_token
from radius_console.core.users import UserManager
from radius_console.db.models import AuditLog

from tests.utils.helpers import TEST_PASSWORD


def previous_code(secret: str) -> str:
    return totp.generate_code(secret, datetime.now(timezone.utc) - timedelta(seconds=30))


def login(client, username: str, password: str = TEST_PASSWORD, **extra):
    return client.post("/api/auth/login", json={"username": username, "password": password, **extra})


def actions(db) -> list[str]:
    return [log.action for log in db.execute(select(AuditLog).order_by(AuditLog.id)).scalars()]


@pytest.mark.integration
class TestLogin:
    """Test credential and two-factor login."""

    def test_login_success(self, client, db, admin_user):
        response = login(client, "admin")

        assert response.status_code == 200
        data = response.json()
        assert data["requires_totp"] is False
        assert data["token_type"] == "bearer"
        assert data["access_token"]
        assert data["refresh_token"]
        assert data["user"]["username"] == "admin"
        assert data["user"]["roles"] == ["Admin"]
        assert "LOGIN_SUCCESS" in actions(db)

    def test_wrong_password(self, client, db, admin_user):
        response = login(client, "admin", "wrong-password")

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid username or password"
        failed = db.execute(select(AuditLog).where(AuditLog.action == "LOGIN_FAILED")).scalar_one()
        assert failed.after_data["reason"] == "invalid_credentials"

    def test_unknown_user(self, client, db):
        assert login(client, "ghost").status_code == 401

    def test_inactive_user(self, client, db, regular_user):
        UserManager(db).deactivate(regular_user)
        db.commit()

        response = login(client, "operator")
        assert response.status_code == 401

    def test_totp_flow(self, client, db, regular_user):
        manager = UserManager(db)
        secret, _ = manager.setup_totp(regular_user)
        manager.enable_totp(regular_user, previous_code(secret))
        db.commit()

        challenge = login(client, "operator")
        assert challenge.status_code == 200
        assert challenge.json()["requires_totp"] is True
        assert challenge.json()["access_token"] is None

        rejected = login(client, "operator", totp_code="12345x")
        assert rejected.status_code == 401

        response = login(client, "operator", totp_code=totp.generate_code(secret))
        assert response.status_code == 200
        assert response.json()["access_token"]

    def test_totp_code_cannot_be_replayed(self, client, db, regular_user):
        manager = UserManager(db)
        secret, _ = manager.setup_totp(regular_user)
        manager.enable_totp(regular_user, previous_code(secret))
        db.commit()
        code = totp.generate_code(secret)

        assert login(client, "operator", totp_code=code).status_code == 200

        replayed = login(client, "operator", totp_code=code)
        assert replayed.status_code == 401


@pytest.mark.integration
class TestTokens:
    """Test refresh rotation, logout and token validation."""

    def test_refresh_rotates_token(self, client, admin_user):
        refresh_token = login(client, "admin").json()["refresh_token"]

        response = client.post("/api/auth/refresh", json={"refresh_token": refresh_token})
        assert response.status_code == 200
        rotated = response.json()["refresh_token"]
        assert rotated != refresh_token

        reused = client.post("/api/auth/refresh", json={"refresh_token": refresh_token})
        assert reused.status_code == 401

        assert client.post("/api/auth/refresh", json={"refresh_token": rotated}).status_code == 200

    def test_refresh_for_inactive_user(self, client, db, regular_user):
        refresh_token = login(client, "operator").json()["refresh_token"]
        UserManager(db).deactivate(regular_user)
        db.commit()

        response = client.post("/api/auth/refresh", json={"refresh_token": refresh_token})
        assert response.status_code == 401

    def test_logout_revokes_tokens(self, client, db, admin_user):
        tokens = login(client, "admin").json()
        headers = {"Authorization": f"Bearer {tokens['access_token']}"}

        response = client.post("/api/auth/logout", json={"refresh_token": tokens["refresh_token"]}, headers=headers)
        assert response.status_code == 200

        assert client.get("/api/auth/me", headers=headers).status_code == 401
        refreshed = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert refreshed.status_code == 401
        assert "USER_LOGOUT" in actions(db)

    def test_missing_token(self, client, db):
        response = client.get("/api/auth/me")
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    def test_garbage_token(self, client, db):
        response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_expired_token(self, client, db, admin_user):
        token, _ = create_access_token(admin_user, ["Admin"], expires_delta=timedelta(seconds=-1))
        response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_token_of_deleted_user(self, client, db, make_user, headers_for):
        user = make_user("temp")
        headers = headers_for(user)
        UserManager(db).delete(user)
        db.commit()

        assert client.get("/api/auth/me", headers=headers).status_code == 401


@pytest.mark.integration
class TestAccount:
    """Test profile, registration and password endpoints."""

    def test_me_includes_permissions(self, client, admin_headers):
        response = client.get("/api/auth/me", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["username"] == "admin"
        assert data["first_name"] == "Ada"
        assert "audit.manage" in data["permissions"]
        assert data["permissions"] == sorted(data["permissions"])

    def test_register(self, client, db):
        response = client.post("/api/auth/register", json={
            "username": "newbie",
            "email": "newbie@example.com",
            "password": "Str0ngPassword",
        })

        assert response.status_code == 201
        assert response.json()["roles"] == ["User"]
        assert "USER_REGISTERED" in actions(db)
        assert login(client, "newbie", "Str0ngPassword").status_code == 200

    def test_register_duplicate(self, client, regular_user):
        response = client.post("/api/auth/register", json={
            "username": "operator",
            "email": "another@example.com",
            "password": "Str0ngPassword",
        })
        assert response.status_code == 409

    def test_register_weak_password(self, client, db):
        response = client.post("/api/auth/register", json={
            "username": "newbie",
            "email": "newbie@example.com",
            "password": "onlyletters",
        })
        assert response.status_code == 422

    def test_change_password(self, client, db, regular_user, user_headers):
        refresh_token = login(client, "operator").json()["refresh_token"]

        response = client.post("/api/auth/change-password", headers=user_headers, json={
            "current_password": TEST_PASSWORD,
            "new_password": "Changed12345",
        })
        assert response.status_code == 200

        assert login(client, "operator").status_code == 401
        assert login(client, "operator", "Changed12345").status_code == 200
        assert client.post("/api/auth/refresh", json={"refresh_token": refresh_token}).status_code == 401

    def test_change_password_wrong_current(self, client, user_headers):
        response = client.post("/api/auth/change-password", headers=user_headers, json={
            "current_password": "not-it",
            "new_password": "Changed12345",
        })
        assert response.status_code == 400

    def test_forgot_password_does_not_leak(self, client, db, regular_user):
        known = client.post("/api/auth/forgot-password", json={"email": "operator@example.com"})
        unknown = client.post("/api/auth/forgot-password", json={"email": "nobody@example.com"})

        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()
        assert actions(db).count("PASSWORD_RESET_REQUESTED") == 1

    def test_reset_password_requires_admin(self, client, regular_user, user_headers):
        response = client.post("/api/auth/reset-password", headers=user_headers, json={
            "email": "operator@example.com",
            "new_password": "Reset123456",
        })
        assert response.status_code == 403

    def test_reset_password(self, client, db, regular_user, admin_headers):
        response = client.post("/api/auth/reset-password", headers=admin_headers, json={
            "email": "operator@example.com",
            "new_password": "Reset123456",
        })
        assert response.status_code == 200
        assert login(client, "operator", "Reset123456").status_code == 200
        assert "PASSWORD_RESET" in actions(db)

    def test_reset_password_unknown_email(self, client, admin_headers):
        response = client.post("/api/auth/reset-password", headers=admin_headers, json={
            "email": "nobody@example.com",
            "new_password": "Reset123456",
        })
        assert response.status_code == 404
