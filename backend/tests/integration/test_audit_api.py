"""Integration tests for /api/v1/audit-logs

Tests cover:
- Tier 1 reads the whole tenant trail, company admins their company's
- Entity filtering and limit/offset pagination
- Roles without MANAGE_SETTINGS are refused
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from erp_backoffice.audit.service import log_audit_event
from erp_backoffice.models.base import utcnow

from fixtures.factories import grant_company, link_tenant, make_user, token_for

pytestmark = pytest.mark.integration

AUDIT_LOGS = "/api/v1/audit-logs"


@pytest.fixture
def trail(db_session, world):
    """Two events on one warehouse of a1, one on a company of a2, one in tenant B."""
    warehouse_id = uuid4()
    started = utcnow() - timedelta(minutes=10)

    def log(tenant, company, action, entity_type, entity_id, minutes):
        entry = log_audit_event(
            db_session,
            tenant_id=tenant.id,
            company_id=company.id if company else None,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
        )
        entry.created_at = started + timedelta(minutes=minutes)

    log(world.tenant_a, world.company_a1, "WAREHOUSE_CREATED", "warehouse", warehouse_id, 1)
    log(world.tenant_a, world.company_a1, "WAREHOUSE_UPDATED", "warehouse", warehouse_id, 2)
    log(world.tenant_a, world.company_a2, "COMPANY_UPDATED", "company", world.company_a2.id, 3)
    log(world.tenant_a, None, "USER_TENANT_ADDED", "user_tenant", uuid4(), 4)
    log(world.tenant_b, world.company_b1, "WAREHOUSE_CREATED", "warehouse", warehouse_id, 5)
    db_session.commit()
    return warehouse_id


@pytest.fixture
def company_admin_headers(db_session, world, password_hash):
    """ADMIN of company a1 only."""
    user = make_user(db_session, "admin.jaya@tokomaju.co.id", password_hash, "Rina Kusuma")
    link_tenant(db_session, user, world.tenant_a, "STAFF")
    grant_company(db_session, user, world.company_a1, "ADMIN")
    return {
        "Authorization": f"Bearer {token_for(user, world.tenant_a, 'STAFF')}",
        "X-Company-ID": str(world.company_a1.id),
    }


def actions(response):
    return [entry["action"] for entry in response.json()["data"]]


class TestTenantTrail:
    def test_owner_sees_own_tenant_newest_first(self, client, world, auth_headers, trail):
        response = client.get(AUDIT_LOGS, headers=auth_headers(world.owner_a))

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert actions(response) == [
            "USER_TENANT_ADDED", "COMPANY_UPDATED", "WAREHOUSE_UPDATED", "WAREHOUSE_CREATED",
        ]
        assert body["pagination"] == {"limit": 20, "offset": 0, "total": 4}
        assert {entry["tenant_id"] for entry in body["data"]} == {str(world.tenant_a.id)}

    def test_filter_by_entity(self, client, world, auth_headers, trail):
        response = client.get(
            AUDIT_LOGS,
            params={"entity_type": "WAREHOUSE", "entity_id": str(trail)},
            headers=auth_headers(world.admin_a),
        )

        assert response.status_code == 200
        assert actions(response) == ["WAREHOUSE_UPDATED", "WAREHOUSE_CREATED"]
        assert response.json()["data"][0]["entity_id"] == str(trail)

    def test_pagination(self, client, world, auth_headers, trail):
        response = client.get(AUDIT_LOGS, params={"limit": 2, "offset": 1}, headers=auth_headers(world.owner_a))

        assert actions(response) == ["COMPANY_UPDATED", "WAREHOUSE_UPDATED"]
        assert response.json()["pagination"] == {"limit": 2, "offset": 1, "total": 4}

    @pytest.mark.parametrize("params", [{"limit": 0}, {"limit": 101}, {"offset": -1}])
    def test_invalid_pagination(self, client, world, auth_headers, params):
        response = client.get(AUDIT_LOGS, params=params, headers=auth_headers(world.owner_a))

        assert response.status_code == 422

    def test_tier2_user_needs_company_header(self, client, world, auth_headers, trail):
        response = client.get(AUDIT_LOGS, headers=auth_headers(world.finance_a1))

        assert response.status_code == 403


class TestCompanyTrail:
    def test_company_admin_sees_only_their_company(self, client, world, company_admin_headers, trail):
        response = client.get(AUDIT_LOGS, headers=company_admin_headers)

        assert response.status_code == 200
        assert actions(response) == ["WAREHOUSE_UPDATED", "WAREHOUSE_CREATED"]
        assert {entry["company_id"] for entry in response.json()["data"]} == {str(world.company_a1.id)}

    def test_owner_with_company_header_is_narrowed(self, client, world, auth_headers, trail):
        response = client.get(AUDIT_LOGS, headers=auth_headers(world.owner_a, world.company_a2))

        assert actions(response) == ["COMPANY_UPDATED"]

    @pytest.mark.parametrize("user", ["finance_a1", "staff_a1"])
    def test_without_manage_settings(self, client, world, auth_headers, trail, user):
        response = client.get(AUDIT_LOGS, headers=auth_headers(getattr(world, user), world.company_a1))

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "AUTHORIZATION_ERROR"

    def test_unauthenticated(self, client):
        assert client.get(AUDIT_LOGS).status_code == 401
