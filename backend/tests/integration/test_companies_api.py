"""Integration tests for /api/v1/companies

Tests cover:
- Listing across tiers and tenants
- Create / update / deactivate with validation and audit
- Company user management and the caller's effective permissions
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from fixtures.factories import audit_entries, grant_company, link_tenant, make_company, make_user, token_for

pytestmark = pytest.mark.integration

COMPANIES = "/api/v1/companies"


def company_payload(**overrides):
    payload = {
        "name": "Maju Sentosa",
        "legal_name": "PT Maju Sentosa",
        "entity_type": "PT",
        "address": "Jl. Gatot Subroto No. 5",
        "city": "Bandung",
        "province": "Jawa Barat",
        "phone": "+62225550199",
        "email": "info@majusentosa.co.id",
    }
    payload.update(overrides)
    return payload


class TestListCompanies:
    def test_owner_sees_all_tenant_companies(self, client, world, auth_headers):
        response = client.get(COMPANIES, headers=auth_headers(world.owner_a))

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert [c["name"] for c in data["items"]] == ["Maju Jaya", "Maju Makmur"]

    def test_company_level_user_sees_granted_company(self, client, world, auth_headers):
        data = client.get(COMPANIES, headers=auth_headers(world.finance_a1)).json()
        assert [c["id"] for c in data["items"]] == [str(world.company_a1.id)]

    def test_listing_spans_tenants(self, client, db_session, world, auth_headers):
        grant_company(db_session, world.owner_a, world.company_b1, "SALES")

        data = client.get(COMPANIES, headers=auth_headers(world.owner_a)).json()

        assert {c["name"] for c in data["items"]} == {"Maju Jaya", "Maju Makmur", "Rejeki Abadi"}

    def test_inactive_companies_hidden(self, client, db_session, world, auth_headers):
        world.company_a2.is_active = False
        db_session.commit()

        data = client.get(COMPANIES, headers=auth_headers(world.owner_a)).json()
        assert [c["name"] for c in data["items"]] == ["Maju Jaya"]


class TestCreateCompany:
    def test_create(self, client, db_session, world, auth_headers):
        response = client.post(COMPANIES, json=company_payload(), headers=auth_headers(world.admin_a))

        assert response.status_code == 201
        data = response.json()
        assert data["tenant_id"] == str(world.tenant_a.id)
        assert data["entity_type"] == "PT"
        assert Decimal(data["ppn_rate"]) == Decimal("11")
        assert data["currency"] == "IDR"
        assert data["is_active"] is True

        entry = audit_entries(db_session, "COMPANY_CREATED")[0]
        assert str(entry.entity_id) == data["id"]
        assert entry.user_id == world.admin_a.id

    def test_staff_cannot_create(self, client, world, auth_headers):
        response = client.post(COMPANIES, json=company_payload(), headers=auth_headers(world.staff_a1))
        assert response.status_code == 403

    def test_duplicate_name_in_tenant(self, client, world, auth_headers):
        response = client.post(COMPANIES, json=company_payload(name="Maju Jaya"), headers=auth_headers(world.owner_a))

        assert response.status_code == 409
        assert response.json()["error"]["message"] == "Company name already exists in this tenant"

    def test_same_name_in_other_tenant_is_fine(self, client, world, auth_headers):
        response = client.post(COMPANIES, json=company_payload(name="Maju Jaya"), headers=auth_headers(world.owner_b))
        assert response.status_code == 201

    def test_npwp_unique_across_tenants(self, client, db_session, world, auth_headers):
        make_company(db_session, world.tenant_b, "Rejeki Baru", npwp="012345678901234")

        response = client.post(
            COMPANIES, json=company_payload(npwp="012345678901234"), headers=auth_headers(world.owner_a)
        )

        assert response.status_code == 400
        assert response.json()["error"]["message"] == "NPWP already registered to another company"

    def test_field_validation(self, client, world, auth_headers):
        response = client.post(
            COMPANIES,
            json=company_payload(entity_type="LLC", npwp="123", city="  "),
            headers=auth_headers(world.owner_a),
        )

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert {d["field"]: d["message"] for d in error["details"]} == {
            "city": "city is required",
            "entity_type": "entity type must be PT, CV, UD, or Firma",
            "npwp": "NPWP must be exactly 15 characters",
        }


class TestGetUpdateDeactivate:
    def test_get_with_company_grant(self, client, world, auth_headers):
        response = client.get(f"{COMPANIES}/{world.company_a1.id}", headers=auth_headers(world.staff_a1))

        assert response.status_code == 200
        assert response.json()["name"] == "Maju Jaya"

    def test_get_without_grant(self, client, world, auth_headers):
        response = client.get(f"{COMPANIES}/{world.company_a2.id}", headers=auth_headers(world.staff_a1))
        assert response.status_code == 403

    def test_get_unknown(self, client, world, auth_headers):
        response = client.get(f"{COMPANIES}/{uuid4()}", headers=auth_headers(world.owner_a))
        assert response.status_code == 404

    def test_update(self, client, db_session, world, auth_headers):
        response = client.patch(
            f"{COMPANIES}/{world.company_a1.id}",
            json={"city": "Surabaya", "ppn_rate": "12.00"},
            headers=auth_headers(world.owner_a),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["city"] == "Surabaya"
        assert Decimal(data["ppn_rate"]) == Decimal("12")
        assert data["name"] == "Maju Jaya"

        entry = audit_entries(db_session, "COMPANY_UPDATED")[0]
        assert entry.new_values["city"] == "Surabaya"

    def test_update_needs_manage_settings(self, client, world, auth_headers):
        response = client.patch(
            f"{COMPANIES}/{world.company_a1.id}",
            json={"city": "Surabaya"},
            headers=auth_headers(world.finance_a1),
        )
        assert response.status_code == 403

    def test_company_admin_may_update(self, client, db_session, world, auth_headers, password_hash):
        manager = make_user(db_session, "manajer@tokomaju.co.id", password_hash)
        link_tenant(db_session, manager, world.tenant_a, "STAFF")
        grant_company(db_session, manager, world.company_a1, "ADMIN")

        headers = {"Authorization": f"Bearer {token_for(manager, world.tenant_a, 'STAFF')}"}
        response = client.patch(
            f"{COMPANIES}/{world.company_a1.id}", json={"phone": "+62215550111"}, headers=headers
        )
        assert response.status_code == 200

    def test_deactivate(self, client, world, auth_headers):
        response = client.delete(f"{COMPANIES}/{world.company_a2.id}", headers=auth_headers(world.owner_a))
        assert response.status_code == 204

        listing = client.get(COMPANIES, headers=auth_headers(world.owner_a)).json()
        assert [c["name"] for c in listing["items"]] == ["Maju Jaya"]

        again = client.get(f"{COMPANIES}/{world.company_a2.id}", headers=auth_headers(world.owner_a))
        assert again.status_code == 404

    def test_deactivate_other_tenants_company(self, client, world, auth_headers):
        response = client.delete(f"{COMPANIES}/{world.company_b1.id}", headers=auth_headers(world.owner_a))
        assert response.status_code == 404


class TestCompanyUsers:
    def test_list_users(self, client, world, auth_headers):
        response = client.get(f"{COMPANIES}/{world.company_a1.id}/users", headers=auth_headers(world.admin_a))

        assert response.status_code == 200
        assert {(u["email"], u["role"]) for u in response.json()["items"]} == {
            ("finance@tokomaju.co.id", "FINANCE"),
            ("staff@tokomaju.co.id", "STAFF"),
        }

    def test_finance_cannot_manage_users(self, client, world, auth_headers):
        response = client.get(f"{COMPANIES}/{world.company_a1.id}/users", headers=auth_headers(world.finance_a1))
        assert response.status_code == 403

    def test_assign_update_remove(self, client, db_session, world, auth_headers):
        headers = auth_headers(world.owner_a)
        url = f"{COMPANIES}/{world.company_a2.id}/users"

        assigned = client.post(url, json={"user_id": str(world.staff_a1.id), "role": "SALES"}, headers=headers)
        assert assigned.status_code == 201
        assert assigned.json()["role"] == "SALES"

        changed = client.patch(f"{url}/{world.staff_a1.id}", json={"role": "WAREHOUSE"}, headers=headers)
        assert changed.status_code == 200
        assert changed.json()["role"] == "WAREHOUSE"

        removed = client.delete(f"{url}/{world.staff_a1.id}", headers=headers)
        assert removed.status_code == 204

        actions = [entry.action for entry in audit_entries(db_session) if entry.company_id == world.company_a2.id]
        assert actions == ["USER_COMPANY_ASSIGNED", "USER_COMPANY_ROLE_CHANGED", "USER_COMPANY_REMOVED"]

    def test_tier1_role_rejected(self, client, world, auth_headers):
        response = client.post(
            f"{COMPANIES}/{world.company_a2.id}/users",
            json={"user_id": str(world.staff_a1.id), "role": "OWNER"},
            headers=auth_headers(world.owner_a),
        )

        assert response.status_code == 400
        assert "only company-level roles allowed" in response.json()["error"]["message"]


class TestMyPermissions:
    def test_tier2_permissions(self, client, world, auth_headers):
        response = client.get(
            f"{COMPANIES}/{world.company_a1.id}/permissions/me", headers=auth_headers(world.finance_a1)
        )

        assert response.status_code == 200
        data = response.json()
        assert data["access_tier"] == 2
        assert data["role"] == "FINANCE"
        assert set(data["permissions"]) == {
            "VIEW_DATA", "CREATE_DATA", "EDIT_DATA", "APPROVE_TRANSACTIONS", "VIEW_REPORTS"
        }

    def test_tier1_has_everything(self, client, world, auth_headers):
        data = client.get(
            f"{COMPANIES}/{world.company_a2.id}/permissions/me", headers=auth_headers(world.admin_a)
        ).json()

        assert data["access_tier"] == 1
        assert data["role"] == "TENANT_ADMIN"
        assert len(data["permissions"]) == 8
