"""Unit tests for MultiCompanyService

Tests cover:
- Company field validation messages
- Creation under a tenant, uniqueness of name (per tenant) and NPWP (global)
- Partial updates and soft deactivation
- Tier 1 / Tier 2 access resolution
- Listing companies per tenant and per user
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from erp_backoffice.companies.service import MultiCompanyService, validate_company_fields
from erp_backoffice.errors import BadRequestError, ConflictError, NotFoundError, ValidationAppError
from erp_backoffice.tenancy.isolation import set_tenant_context

from fixtures.factories import grant_company, make_company


def company_data(**overrides):
    data = {
        "name": "Toko Baru Jaya",
        "legal_name": "PT Toko Baru Jaya",
        "entity_type": "PT",
        "address": "Jl. Gatot Subroto No. 10",
        "city": "Bandung",
        "province": "Jawa Barat",
        "phone": "+62225550100",
        "email": "finance@tokobaru.co.id",
    }
    data.update(overrides)
    return data


class TestValidateCompanyFields:
    def test_valid_data_passes(self):
        validate_company_fields(company_data())

    def test_reports_every_failing_field(self):
        with pytest.raises(ValidationAppError) as exc_info:
            validate_company_fields(company_data(name="", city="   ", entity_type="LLC"))

        fields = {d["field"]: d["message"] for d in exc_info.value.details}
        assert fields == {
            "name": "company name is required",
            "city": "city is required",
            "entity_type": "entity type must be PT, CV, UD, or Firma",
        }

    @pytest.mark.parametrize("npwp", ["12345", "0123456789012345"])
    def test_npwp_must_be_15_characters(self, npwp):
        with pytest.raises(ValidationAppError) as exc_info:
            validate_company_fields(company_data(npwp=npwp))
        assert exc_info.value.details == [{"field": "npwp", "message": "NPWP must be exactly 15 characters"}]

    def test_partial_skips_missing_fields(self):
        validate_company_fields({"city": "Medan"}, partial=True)

    def test_partial_still_rejects_blank_values(self):
        with pytest.raises(ValidationAppError):
            validate_company_fields({"phone": ""}, partial=True)

    def test_error_string_lists_fields(self):
        with pytest.raises(ValidationAppError) as exc_info:
            validate_company_fields(company_data(email=""))
        assert str(exc_info.value) == "Validation failed: email - email is required"


class TestCreateCompany:
    def test_create_with_defaults(self, scoped_session, world):
        company = MultiCompanyService(scoped_session).create_company(world.tenant_a.id, company_data())

        assert company.id is not None
        assert company.tenant_id == world.tenant_a.id
        assert company.ppn_rate == Decimal("11.00")
        assert company.currency == "IDR"
        assert company.timezone == "Asia/Jakarta"
        assert company.is_active is True

    def test_context_restored_after_create(self, scoped_session, world):
        set_tenant_context(scoped_session, world.tenant_b.id)
        MultiCompanyService(scoped_session).create_company(world.tenant_a.id, company_data())
        assert scoped_session.info["tenant_id"] == world.tenant_b.id

    def test_unknown_tenant(self, scoped_session, world):
        with pytest.raises(NotFoundError, match="Tenant not found"):
            MultiCompanyService(scoped_session).create_company(uuid4(), company_data())

    def test_duplicate_name_in_same_tenant(self, scoped_session, world):
        with pytest.raises(ConflictError, match="already exists in this tenant"):
            MultiCompanyService(scoped_session).create_company(
                world.tenant_a.id, company_data(name="Maju Jaya")
            )

    def test_same_name_in_other_tenant_allowed(self, scoped_session, world):
        company = MultiCompanyService(scoped_session).create_company(
            world.tenant_b.id, company_data(name="Maju Jaya")
        )
        assert company.tenant_id == world.tenant_b.id

    def test_npwp_unique_across_tenants(self, db_session, scoped_session, world):
        make_company(db_session, world.tenant_b, "Rejeki Dua", npwp="012345678901234")

        with pytest.raises(BadRequestError, match="NPWP already registered"):
            MultiCompanyService(scoped_session).create_company(
                world.tenant_a.id, company_data(npwp="012345678901234")
            )


class TestUpdateAndDeactivate:
    def test_partial_update(self, scoped_session, world):
        set_tenant_context(scoped_session, world.tenant_a.id)
        company = MultiCompanyService(scoped_session).update_company(
            world.company_a1.id, {"city": "Surabaya", "ppn_rate": "12", "is_pkp": True}
        )

        assert company.city == "Surabaya"
        assert company.ppn_rate == Decimal("12")
        assert company.is_pkp is True
        assert company.name == "Maju Jaya"

    def test_unknown_fields_ignored(self, scoped_session, world):
        set_tenant_context(scoped_session, world.tenant_a.id)
        company = MultiCompanyService(scoped_session).update_company(
            world.company_a1.id, {"tenant_id": world.tenant_b.id, "city": "Medan"}
        )
        assert company.tenant_id == world.tenant_a.id

    def test_rename_to_existing_name(self, scoped_session, world):
        set_tenant_context(scoped_session, world.tenant_a.id)
        with pytest.raises(ConflictError):
            MultiCompanyService(scoped_session).update_company(world.company_a1.id, {"name": "Maju Makmur"})

    def test_update_other_tenant_company_not_found(self, scoped_session, world):
        set_tenant_context(scoped_session, world.tenant_a.id)
        with pytest.raises(NotFoundError):
            MultiCompanyService(scoped_session).update_company(world.company_b1.id, {"city": "Medan"})

    def test_deactivate_is_soft(self, scoped_session, world):
        set_tenant_context(scoped_session, world.tenant_a.id)
        service = MultiCompanyService(scoped_session)

        company = service.deactivate_company(world.company_a2.id)

        assert company.is_active is False
        with pytest.raises(NotFoundError):
            service.get_company_by_id(world.company_a2.id)
        assert [c.name for c in service.get_companies_by_tenant(world.tenant_a.id)] == ["Maju Jaya"]


class TestAccessResolution:
    def test_owner_is_tier1(self, scoped_session, world):
        access = MultiCompanyService(scoped_session).check_user_company_access(
            world.owner_a.id, world.company_a2.id
        )
        assert (access.has_access, access.access_tier, access.role) == (True, 1, "OWNER")
        assert access.tenant_id == world.tenant_a.id

    def test_tenant_admin_is_tier1(self, scoped_session, world):
        access = MultiCompanyService(scoped_session).check_user_company_access(
            world.admin_a.id, world.company_a1.id
        )
        assert (access.access_tier, access.role) == (1, "TENANT_ADMIN")

    def test_company_grant_is_tier2(self, scoped_session, world):
        access = MultiCompanyService(scoped_session).check_user_company_access(
            world.finance_a1.id, world.company_a1.id
        )
        assert (access.has_access, access.access_tier, access.role) == (True, 2, "FINANCE")

    def test_staff_tenant_link_is_not_tier1(self, scoped_session, world):
        access = MultiCompanyService(scoped_session).check_user_company_access(
            world.finance_a1.id, world.company_a2.id
        )
        assert (access.has_access, access.access_tier, access.role) == (False, 0, None)

    def test_other_tenant_has_no_access(self, scoped_session, world):
        access = MultiCompanyService(scoped_session).check_user_company_access(
            world.owner_b.id, world.company_a1.id
        )
        assert access.has_access is False

    def test_inactive_grant_has_no_access(self, db_session, scoped_session, world):
        grant_company(db_session, world.owner_b, world.company_a2, "SALES", is_active=False)
        access = MultiCompanyService(scoped_session).check_user_company_access(
            world.owner_b.id, world.company_a2.id
        )
        assert access.has_access is False

    def test_unknown_company(self, scoped_session, world):
        with pytest.raises(NotFoundError):
            MultiCompanyService(scoped_session).check_user_company_access(world.owner_a.id, uuid4())


class TestListing:
    def test_companies_by_tenant(self, scoped_session, world):
        names = [c.name for c in MultiCompanyService(scoped_session).get_companies_by_tenant(world.tenant_a.id)]
        assert names == ["Maju Jaya", "Maju Makmur"]

    def test_companies_by_tier1_user(self, scoped_session, world):
        names = [c.name for c in MultiCompanyService(scoped_session).get_companies_by_user(world.owner_a.id)]
        assert names == ["Maju Jaya", "Maju Makmur"]

    def test_companies_by_tier2_user(self, scoped_session, world):
        names = [c.name for c in MultiCompanyService(scoped_session).get_companies_by_user(world.finance_a1.id)]
        assert names == ["Maju Jaya"]

    def test_companies_span_tenants(self, db_session, scoped_session, world):
        grant_company(db_session, world.owner_b, world.company_a2, "SALES")
        names = [c.name for c in MultiCompanyService(scoped_session).get_companies_by_user(world.owner_b.id)]
        assert names == ["Maju Makmur", "Rejeki Abadi"]
