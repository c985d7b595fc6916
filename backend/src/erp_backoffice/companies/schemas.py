"""Pydantic schemas for company and company-user endpoints.

Field-level business rules (entity type, NPWP length, required text) are
checked by validate_company_fields so the API and service report the same
messages; these schemas only fix the shape of the payload.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class CompanyCreate(BaseModel):
    """Request schema for POST /companies (tenant admins only)."""
    name: str = Field(..., max_length=255, examples=["Toko Baru Jaya"])
    legal_name: str = Field(..., max_length=255, examples=["PT Toko Baru Jaya"])
    entity_type: str = Field("CV", description="PT, CV, UD or Firma", examples=["PT"])
    address: str = Field(..., examples=["Jl. Sudirman No. 1"])
    city: str = Field(..., max_length=255, examples=["Jakarta"])
    province: str = Field(..., max_length=255, examples=["DKI Jakarta"])
    postal_code: Optional[str] = Field(None, max_length=50)
    country: Optional[str] = Field(None, max_length=100)
    phone: str = Field(..., max_length=50, examples=["+62215550100"])
    email: str = Field(..., max_length=255, examples=["finance@tokobaru.co.id"])
    npwp: Optional[str] = Field(None, description="Tax ID, exactly 15 characters", examples=["012345678901234"])
    nib: Optional[str] = Field(None, max_length=50)
    is_pkp: bool = False
    ppn_rate: Optional[Decimal] = Field(None, ge=0, le=100, examples=["11.00"])
    invoice_prefix: Optional[str] = Field(None, max_length=20)
    so_prefix: Optional[str] = Field(None, max_length=20)
    po_prefix: Optional[str] = Field(None, max_length=20)
    currency: Optional[str] = Field(None, max_length=10)
    timezone: Optional[str] = Field(None, max_length=50)


class CompanyUpdate(BaseModel):
    """Request schema for PATCH /companies/{id}. Only sent fields change."""
    name: Optional[str] = Field(None, max_length=255)
    legal_name: Optional[str] = Field(None, max_length=255)
    entity_type: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = Field(None, max_length=255)
    province: Optional[str] = Field(None, max_length=255)
    postal_code: Optional[str] = Field(None, max_length=50)
    country: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)
    email: Optional[str] = Field(None, max_length=255)
    npwp: Optional[str] = None
    nib: Optional[str] = Field(None, max_length=50)
    is_pkp: Optional[bool] = None
    ppn_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    invoice_prefix: Optional[str] = Field(None, max_length=20)
    so_prefix: Optional[str] = Field(None, max_length=20)
    po_prefix: Optional[str] = Field(None, max_length=20)
    currency: Optional[str] = Field(None, max_length=10)
    timezone: Optional[str] = Field(None, max_length=50)


class CompanyResponse(BaseModel):
    id: UUID
    tenant_id: UUID
    name: str
    legal_name: str
    entity_type: str
    address: str
    city: str
    province: str
    postal_code: Optional[str] = None
    country: str
    phone: str
    email: str
    npwp: Optional[str] = None
    nib: Optional[str] = None
    is_pkp: bool
    ppn_rate: Decimal
    invoice_prefix: str
    so_prefix: str
    po_prefix: str
    currency: str
    timezone: str
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CompanyListResponse(BaseModel):
    items: List[CompanyResponse]
    total: int


class CompanyUserAssign(BaseModel):
    """Request schema for POST /companies/{id}/users.

    Only company-level roles are accepted; tenant-level access is granted
    through /tenants/current/users.
    """
    user_id: UUID
    role: str = Field(..., examples=["FINANCE"])


class CompanyUserRoleUpdate(BaseModel):
    role: str = Field(..., examples=["SALES"])


class CompanyUserResponse(BaseModel):
    user_id: UUID
    company_id: UUID
    email: str
    name: str
    role: str
    is_active: bool
    assigned_at: Optional[datetime] = None

    @classmethod
    def from_grant(cls, grant, user) -> "CompanyUserResponse":
        return cls(
            user_id=user.id,
            company_id=grant.company_id,
            email=user.email,
            name=user.name,
            role=grant.role,
            is_active=grant.is_active,
            assigned_at=grant.created_at,
        )


class CompanyUserListResponse(BaseModel):
    items: List[CompanyUserResponse]
    total: int


class CompanyPermissionsResponse(BaseModel):
    company_id: UUID
    tenant_id: UUID
    role: Optional[str]
    access_tier: int
    permissions: List[str]
