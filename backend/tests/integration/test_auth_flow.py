"""Integration tests for authentication flow

Tests cover:
- Login with valid/invalid credentials and the resulting token payload
- Tiered lockout after repeated failures, and admin unlock
- Refresh token rotation and logout
- /auth/me, switch-tenant and switch-company
- Forgot / reset / change password
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from erp_backoffice.auth.jwt import decode_token
from erp_backoffice.auth.service import AuthService
from erp_backoffice.models import RefreshToken

from conftest import TEST_PASSWORD
from fixtures.factories import audit_entries, make_tenant, make_user, link_tenant

pytestmark = pytest.mark.integration

LOGIN = "/api/v1/auth/login"


def login(client: TestClient, email: str, password: str = TEST_PASSWORD):
    return client.post(LOGIN, json={"email": email, "password": password})


class TestLoginEndpoint:
    """Test POST /api/v1/auth/login"""

    def test_login_with_valid_credentials(self, client, world):
        response = login(client, "owner@tokomaju.co.id")

        assert response.status_code == 200
        data = response.json()
        assert data["token_type"] == "bearer"
        assert data["expires_in"] == 30 * 60
        assert data["refresh_token"]
        assert data["user"]["email"] == "owner@tokomaju.co.id"
        assert "password_hash" not in data["user"]
        assert data["tenant_id"] == str(world.tenant_a.id)
        assert data["role"] == "OWNER"
        assert [item["company_id"] for item in data["company_access"]] == [
            str(world.company_a1.id), str(world.company_a2.id)
        ]

        claims = decode_token(data["access_token"])
        assert claims["sub"] == str(world.owner_a.id)
        assert claims["tenant_id"] == str(world.tenant_a.id)
        assert claims["type"] == "access"

    def test_email_is_case_insensitive(self, client, world):
        assert login(client, "Owner@TokoMaju.co.id").status_code == 200

    def test_company_level_user_sees_only_granted_company(self, client, world):
        data = login(client, "finance@tokomaju.co.id").json()

        assert data["role"] == "STAFF"
        assert data["company_access"] == [{"company_id": str(world.company_a1.id), "role": "FINANCE"}]

    def test_login_with_wrong_password(self, client, world):
        response = login(client, "owner@tokomaju.co.id", "Wr0ng!Password")

        assert response.status_code == 401
        error = response.json()["error"]
        assert error["code"] == "AUTHENTICATION_ERROR"
        assert error["message"] == "Invalid email or password"

    def test_unknown_email_gets_same_answer(self, client, world):
        response = login(client, "nobody@tokomaju.co.id")

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid email or password"

    def test_inactive_user(self, client, db_session, world):
        world.staff_a1.is_active = False
        db_session.commit()

        response = login(client, "staff@tokomaju.co.id")

        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Account is inactive"

    def test_user_without_tenant(self, client, db_session, world, password_hash):
        make_user(db_session, "lepas@tokomaju.co.id", password_hash)

        response = login(client, "lepas@tokomaju.co.id")

        assert response.status_code == 403
        assert response.json()["error"]["message"] == "User has no active tenant access"

    @pytest.mark.parametrize("status", ["SUSPENDED", "CANCELLED", "EXPIRED"])
    def test_inactive_tenant(self, client, db_session, password_hash, status):
        tenant = make_tenant(db_session, "Toko Tutup", status=status)
        user = make_user(db_session, "owner@tokotutup.co.id", password_hash)
        link_tenant(db_session, user, tenant, "OWNER")

        response = login(client, "owner@tokotutup.co.id")

        assert response.status_code == 402
        assert response.json()["error"]["code"] == "SUBSCRIPTION_ERROR"

    def test_missing_fields_rejected(self, client):
        response = client.post(LOGIN, json={"email": "owner@tokomaju.co.id"})

        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"

    def test_success_is_audited(self, client, db_session, world):
        login(client, "owner@tokomaju.co.id")

        entry = audit_entries(db_session, "LOGIN_SUCCESS")[0]
        assert entry.tenant_id == world.tenant_a.id
        assert entry.user_id == world.owner_a.id


class TestLockout:
    def test_third_failure_locks_account(self, client, world):
        for _ in range(3):
            assert login(client, "staff@tokomaju.co.id", "Wr0ng!Password").status_code == 401

        response = login(client, "staff@tokomaju.co.id")

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "ACCOUNT_LOCKED"
        assert int(response.headers["Retry-After"]) > 0

    def test_admin_unlocks_account(self, client, world, auth_headers):
        for _ in range(3):
            login(client, "staff@tokomaju.co.id", "Wr0ng!Password")

        status = client.get(
            "/api/v1/auth/lock-status",
            params={"email": "staff@tokomaju.co.id"},
            headers=auth_headers(world.admin_a),
        ).json()
        assert status["is_locked"] is True
        assert status["lock_tier"] == 1
        assert status["failed_attempts"] == 3

        response = client.post(
            "/api/v1/auth/unlock-account",
            json={"email": "staff@tokomaju.co.id", "reason": "Verified by phone"},
            headers=auth_headers(world.admin_a),
        )
        assert response.status_code == 200
        assert response.json()["message"] == "Account unlocked (3 failed attempts cleared)"

        assert login(client, "staff@tokomaju.co.id").status_code == 200

    def test_unlock_requires_tenant_admin(self, client, world, auth_headers):
        response = client.post(
            "/api/v1/auth/unlock-account",
            json={"email": "finance@tokomaju.co.id"},
            headers=auth_headers(world.staff_a1),
        )
        assert response.status_code == 403

    def test_unlock_without_lock(self, client, world, auth_headers):
        response = client.post(
            "/api/v1/auth/unlock-account",
            json={"email": "staff@tokomaju.co.id"},
            headers=auth_headers(world.owner_a),
        )
        assert response.status_code == 404


class TestRefreshAndLogout:
    def test_refresh_rotates_token(self, client, world):
        first = login(client, "owner@tokomaju.co.id").json()

        response = client.post("/api/v1/auth/refresh", json={"refresh_token": first["refresh_token"]})

        assert response.status_code == 200
        second = response.json()
        assert second["refresh_token"] != first["refresh_token"]
        assert second["tenant_id"] == str(world.tenant_a.id)

        reused = client.post("/api/v1/auth/refresh", json={"refresh_token": first["refresh_token"]})
        assert reused.status_code == 401
        assert reused.json()["error"]["message"] == "Refresh token not found or revoked"

    def test_logout_revokes_refresh_token(self, client, world):
        tokens = login(client, "owner@tokomaju.co.id").json()

        response = client.post("/api/v1/auth/logout", json={"refresh_token": tokens["refresh_token"]})
        assert response.status_code == 200
        assert response.json()["message"] == "Logged out successfully"

        refreshed = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert refreshed.status_code == 401

    def test_logout_with_unknown_token_is_ok(self, client, world):
        response = client.post("/api/v1/auth/logout", json={"refresh_token": "never-issued"})
        assert response.status_code == 200

    def test_active_refresh_tokens_are_capped(self, client, db_session, world):
        for _ in range(3):
            assert login(client, "owner@tokomaju.co.id").status_code == 200

        active = db_session.execute(
            select(RefreshToken).where(
                RefreshToken.user_id == world.owner_a.id,
                RefreshToken.is_revoked.is_(False),
            )
        ).scalars().all()
        assert len(active) == 2


class TestMe:
    def test_me(self, client, world, auth_headers):
        response = client.get("/api/v1/auth/me", headers=auth_headers(world.finance_a1))

        assert response.status_code == 200
        data = response.json()
        assert data["user"]["email"] == "finance@tokomaju.co.id"
        assert data["tenant_id"] == str(world.tenant_a.id)
        assert [t["name"] for t in data["tenants"]] == ["Toko Maju"]
        assert data["company_access"] == [{"company_id": str(world.company_a1.id), "role": "FINANCE"}]

    def test_me_requires_token(self, client, world):
        response = client.get("/api/v1/auth/me")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"


class TestSwitching:
    def test_switch_company(self, client, world, auth_headers):
        response = client.post(
            "/api/v1/auth/switch-company",
            json={"company_id": str(world.company_a1.id)},
            headers=auth_headers(world.finance_a1),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["active_company_id"] == str(world.company_a1.id)
        assert data["role"] == "FINANCE"
        assert data["refresh_token"] is None
        assert decode_token(data["access_token"])["active_company_id"] == str(world.company_a1.id)

    def test_switch_to_ungranted_company(self, client, world, auth_headers):
        response = client.post(
            "/api/v1/auth/switch-company",
            json={"company_id": str(world.company_a2.id)},
            headers=auth_headers(world.finance_a1),
        )
        assert response.status_code == 403

    def test_switch_to_company_of_other_tenant(self, client, world, auth_headers):
        response = client.post(
            "/api/v1/auth/switch-company",
            json={"company_id": str(world.company_b1.id)},
            headers=auth_headers(world.owner_a),
        )
        assert response.status_code == 404

    def test_switch_tenant(self, client, db_session, world, auth_headers):
        link_tenant(db_session, world.owner_a, world.tenant_b, "TENANT_ADMIN")

        response = client.post(
            "/api/v1/auth/switch-tenant",
            json={"tenant_id": str(world.tenant_b.id)},
            headers=auth_headers(world.owner_a),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["tenant_id"] == str(world.tenant_b.id)
        assert data["role"] == "TENANT_ADMIN"
        assert [item["company_id"] for item in data["company_access"]] == [str(world.company_b1.id)]

    def test_switch_to_foreign_tenant(self, client, world, auth_headers):
        response = client.post(
            "/api/v1/auth/switch-tenant",
            json={"tenant_id": str(world.tenant_b.id)},
            headers=auth_headers(world.owner_a),
        )

        assert response.status_code == 403
        assert response.json()["error"]["message"] == "You don't have access to this tenant"


class TestPasswordFlows:
    def test_forgot_password_answers_identically(self, client, world):
        known = client.post("/api/v1/auth/forgot-password", json={"email": "owner@tokomaju.co.id"})
        unknown = client.post("/api/v1/auth/forgot-password", json={"email": "nobody@tokomaju.co.id"})

        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json()

    def test_reset_password(self, client, db_session, world):
        token = AuthService(db_session).forgot_password("owner@tokomaju.co.id")
        db_session.commit()

        response = client.post(
            "/api/v1/auth/reset-password",
            json={"token": token, "new_password": "N3w!Passw0rd"},
        )
        assert response.status_code == 200

        assert login(client, "owner@tokomaju.co.id").status_code == 401
        assert login(client, "owner@tokomaju.co.id", "N3w!Passw0rd").status_code == 200

        again = client.post(
            "/api/v1/auth/reset-password",
            json={"token": token, "new_password": "An0ther!Passw0rd"},
        )
        assert again.status_code == 401
        assert again.json()["error"]["message"] == "Reset token has already been used"

    def test_reset_password_rejects_weak_password(self, client, db_session, world):
        token = AuthService(db_session).forgot_password("owner@tokomaju.co.id")
        db_session.commit()

        response = client.post(
            "/api/v1/auth/reset-password",
            json={"token": token, "new_password": "alllowercase1!"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    def test_change_password_revokes_sessions(self, client, world, auth_headers):
        tokens = login(client, "staff@tokomaju.co.id").json()

        response = client.post(
            "/api/v1/auth/change-password",
            json={"old_password": TEST_PASSWORD, "new_password": "N3w!Passw0rd"},
            headers=auth_headers(world.staff_a1),
        )
        assert response.status_code == 200

        refreshed = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert refreshed.status_code == 401

    def test_change_password_with_wrong_old_password(self, client, world, auth_headers):
        response = client.post(
            "/api/v1/auth/change-password",
            json={"old_password": "Wr0ng!Password", "new_password": "N3w!Passw0rd"},
            headers=auth_headers(world.staff_a1),
        )
        assert response.status_code == 401
