"""Pydantic schemas for tenant user management (/tenants/current/users)."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

TENANT_ROLE_PATTERN = "^(TENANT_ADMIN|ADMIN|FINANCE|SALES|WAREHOUSE|STAFF)$"


class TenantUserAdd(BaseModel):
    """Request schema for POST /tenants/current/users.

    OWNER cannot be granted here; ownership transfer is a separate process.
    """
    user_id: UUID = Field(..., description="Existing user to link to the tenant")
    role: str = Field(
        ...,
        pattern=TENANT_ROLE_PATTERN,
        description="Tenant-level role",
        examples=["TENANT_ADMIN"]
    )


class TenantUserRoleUpdate(BaseModel):
    role: str = Field(..., pattern=TENANT_ROLE_PATTERN, examples=["STAFF"])


class TenantUserResponse(BaseModel):
    link_id: UUID
    user_id: UUID
    email: str
    name: str
    role: str
    is_active: bool
    created_at: Optional[datetime] = None

    @classmethod
    def from_link(cls, link, user) -> "TenantUserResponse":
        return cls(
            link_id=link.id,
            user_id=user.id,
            email=user.email,
            name=user.name,
            role=link.role,
            is_active=link.is_active,
            created_at=link.created_at,
        )


class TenantUserListResponse(BaseModel):
    items: List[TenantUserResponse]
    total: int
