"""Integration tests for console user administration."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from radius_console.core import totp
from radius_console.db.models import AuditLog

from tests.utils.helpers import TEST_PASSWORD


def audit_actions(db, entity_id: str) -> list[str]:
    return [
        log.action
        for log in db.execute(
            select(AuditLog).where(AuditLog.entity_id == entity_id).order_by(AuditLog.id)
        ).scalars()
    ]


@pytest.mark.integration
class TestUserListing:
    def test_list_users_paginated(self, client, admin_headers, manager_user, regular_user):
        response = client.get("/api/users?page=1&page_size=2", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert data["pages"] == 2
        assert data["has_next"] is True
        assert data["has_previous"] is False
        assert [u["username"] for u in data["items"]] == ["admin", "manager"]

    def test_search(self, client, admin_headers, regular_user):
        data = client.get("/api/users?search=oper", headers=admin_headers).json()
        assert [u["username"] for u in data["items"]] == ["operator"]

    def test_regular_user_forbidden(self, client, user_headers):
        assert client.get("/api/users", headers=user_headers).status_code == 403

    def test_manager_allowed(self, client, manager_headers):
        assert client.get("/api/users", headers=manager_headers).status_code == 200

    def test_list_roles(self, client, manager_headers):
        roles = client.get("/api/users/roles", headers=manager_headers).json()
        assert [r["name"] for r in roles] == ["Admin", "Manager", "User"]

    def test_get_user(self, client, admin_headers, regular_user):
        response = client.get(f"/api/users/{regular_user.id}", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["roles"] == ["User"]

    def test_get_missing_user(self, client, admin_headers):
        assert client.get("/api/users/does-not-exist", headers=admin_headers).status_code == 404


@pytest.mark.integration
class TestUserMutations:
    """Test create, update, delete and status changes with auditing."""

    def test_create_user(self, client, db, admin_headers):
        response = client.post("/api/users", headers=admin_headers, json={
            "username": "helpdesk",
            "email": "helpdesk@example.com",
            "password": "Helpdesk123",
            "roles": ["Manager"],
        })

        assert response.status_code == 201
        created = response.json()
        assert created["roles"] == ["Manager"]
        assert audit_actions(db, created["id"]) == ["USER_CREATED"]

    def test_create_duplicate(self, client, admin_headers, regular_user):
        response = client.post("/api/users", headers=admin_headers, json={
            "username": "operator",
            "email": "x@example.com",
            "password": "Helpdesk123",
        })
        assert response.status_code == 409

    def test_create_unknown_role(self, client, admin_headers):
        response = client.post("/api/users", headers=admin_headers, json={
            "username": "helpdesk",
            "email": "helpdesk@example.com",
            "password": "Helpdesk123",
            "roles": ["Root"],
        })
        assert response.status_code == 400

    def test_create_invalid_username(self, client, admin_headers):
        response = client.post("/api/users", headers=admin_headers, json={
            "username": "bad name!",
            "email": "helpdesk@example.com",
            "password": "Helpdesk123",
        })
        assert response.status_code == 422

    def test_update_user_records_before_and_after(self, client, db, admin_headers, regular_user):
        response = client.put(f"/api/users/{regular_user.id}", headers=admin_headers, json={
            "first_name": "Opal",
            "roles": ["Manager"],
        })

        assert response.status_code == 200
        assert response.json()["first_name"] == "Opal"
        assert response.json()["roles"] == ["Manager"]

        log = db.execute(select(AuditLog).where(AuditLog.action == "USER_UPDATED")).scalar_one()
        assert log.before_data["roles"] == ["User"]
        assert log.after_data["roles"] == ["Manager"]

    def test_update_email_conflict(self, client, admin_headers, regular_user, manager_user):
        response = client.put(f"/api/users/{regular_user.id}", headers=admin_headers, json={
            "email": "manager@example.com",
        })
        assert response.status_code == 409

    def test_delete_requires_admin(self, client, manager_headers, regular_user):
        response = client.delete(f"/api/users/{regular_user.id}", headers=manager_headers)
        assert response.status_code == 403

    def test_delete_user(self, client, db, admin_headers, regular_user):
        user_id = regular_user.id
        response = client.delete(f"/api/users/{user_id}", headers=admin_headers)

        assert response.status_code == 204
        assert client.get(f"/api/users/{user_id}", headers=admin_headers).status_code == 404
        assert audit_actions(db, user_id) == ["USER_DELETED"]

    def test_cannot_delete_self(self, client, admin_headers, admin_user):
        response = client.delete(f"/api/users/{admin_user.id}", headers=admin_headers)
        assert response.status_code == 400

    def test_deactivate_and_activate(self, client, db, admin_headers, regular_user, user_headers):
        response = client.post(f"/api/users/{regular_user.id}/deactivate", headers=admin_headers)
        assert response.status_code == 200

        assert client.get("/api/auth/me", headers=user_headers).status_code == 401
        again = client.post(f"/api/users/{regular_user.id}/deactivate", headers=admin_headers)
        assert again.status_code == 400

        assert client.post(f"/api/users/{regular_user.id}/activate", headers=admin_headers).status_code == 200
        assert audit_actions(db, regular_user.id) == ["USER_DEACTIVATED", "USER_ACTIVATED"]

    def test_cannot_deactivate_self(self, client, admin_headers, admin_user):
        response = client.post(f"/api/users/{admin_user.id}/deactivate", headers=admin_headers)
        assert response.status_code == 400


@pytest.mark.integration
class TestRoleAssignment:
    def test_assign_and_remove(self, client, db, admin_headers, regular_user):
        url = f"/api/users/{regular_user.id}"

        assigned = client.post(f"{url}/assign-role", headers=admin_headers, json={"role": "Manager"})
        assert assigned.status_code == 200
        assert assigned.json()["roles"] == ["Manager", "User"]

        removed = client.post(f"{url}/remove-role", headers=admin_headers, json={"role": "Manager"})
        assert removed.json()["roles"] == ["User"]
        assert audit_actions(db, regular_user.id) == ["ROLE_ASSIGNED", "ROLE_REMOVED"]

    def test_assign_existing_role_is_not_audited(self, client, db, admin_headers, regular_user):
        response = client.post(f"/api/users/{regular_user.id}/assign-role", headers=admin_headers,
                               json={"role": "User"})
        assert response.status_code == 200
        assert audit_actions(db, regular_user.id) == []

    def test_assign_unknown_role(self, client, admin_headers, regular_user):
        response = client.post(f"/api/users/{regular_user.id}/assign-role", headers=admin_headers,
                               json={"role": "Root"})
        assert response.status_code == 400

    def test_manager_cannot_assign(self, client, manager_headers, regular_user):
        response = client.post(f"/api/users/{regular_user.id}/assign-role", headers=manager_headers,
                               json={"role": "Admin"})
        assert response.status_code == 403

    def test_manager_cannot_promote_self_through_update(self, client, db, manager_headers, manager_user):
        response = client.put(f"/api/users/{manager_user.id}", headers=manager_headers,
                              json={"roles": ["Admin"]})

        assert response.status_code == 403
        me = client.get("/api/auth/me", headers=manager_headers).json()
        assert me["roles"] == ["Manager"]
        assert audit_actions(db, manager_user.id) == []

    def test_manager_cannot_create_user_with_roles(self, client, db, manager_headers):
        response = client.post("/api/users", headers=manager_headers, json={
            "username": "shadow",
            "email": "shadow@example.com",
            "password": "Shadow12345",
            "roles": ["Admin"],
        })

        assert response.status_code == 403
        assert client.get("/api/users?search=shadow", headers=manager_headers).json()["total"] == 0

    def test_manager_creates_user_with_default_role(self, client, manager_headers):
        response = client.post("/api/users", headers=manager_headers, json={
            "username": "helpdesk",
            "email": "helpdesk@example.com",
            "password": "Helpdesk123",
        })

        assert response.status_code == 201
        assert response.json()["roles"] == ["User"]

    def test_manager_updates_profile_without_roles(self, client, manager_headers, regular_user):
        response = client.put(f"/api/users/{regular_user.id}", headers=manager_headers,
                              json={"first_name": "Opal"})

        assert response.status_code == 200
        assert response.json()["roles"] == ["User"]


@pytest.mark.integration
class TestTwoFactorEndpoints:
    """Test TOTP enrollment through the API."""

    def test_enroll_and_disable_own_account(self, client, db, regular_user, user_headers):
        url = f"/api/users/{regular_user.id}/totp"

        setup = client.get(f"{url}/setup", headers=user_headers)
        assert setup.status_code == 200
        data = setup.json()
        assert data["qr_code"].startswith("data:image/png;base64,")
        assert data["provisioning_uri"].startswith("otpauth://totp/")

        code = totp.generate_code(data["secret"])
        assert client.post(f"{url}/enable", headers=user_headers, json={"code": code}).status_code == 200

        assert client.get(f"{url}/setup", headers=user_headers).status_code == 400

        wrong = client.post(f"{url}/disable", headers=user_headers, json={"password": "wrong"})
        assert wrong.status_code == 400

        disabled = client.post(f"{url}/disable", headers=user_headers, json={"password": TEST_PASSWORD})
        assert disabled.status_code == 200
        assert audit_actions(db, regular_user.id) == ["TOTP_ENABLED", "TOTP_DISABLED"]

    def test_enable_with_bad_code(self, client, regular_user, user_headers):
        url = f"/api/users/{regular_user.id}/totp"
        secret = client.get(f"{url}/setup", headers=user_headers).json()["secret"]
        bad = totp.generate_code(secret, datetime.now(timezone.utc) - timedelta(minutes=10))

        response = client.post(f"{url}/enable", headers=user_headers, json={"code": bad})
        assert response.status_code == 400

    def test_cannot_manage_other_users_totp(self, client, admin_user, user_headers):
        response = client.get(f"/api/users/{admin_user.id}/totp/setup", headers=user_headers)
        assert response.status_code == 403

    def test_admin_can_set_up_for_others(self, client, regular_user, admin_headers):
        response = client.get(f"/api/users/{regular_user.id}/totp/setup", headers=admin_headers)
        assert response.status_code == 200
