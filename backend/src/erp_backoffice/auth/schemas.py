"""Pydantic schemas for authentication endpoints"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class LoginRequest(BaseModel):
    """Request schema for user login.

    Attributes:
        email: User's email address (case-insensitive)
        password: Plain text password, verified against the Argon2id hash
        device_info: Optional client label stored with the refresh token
    """
    email: EmailStr = Field(..., examples=["owner@tokobaru.co.id"])
    password: str = Field(..., min_length=1)
    device_info: Optional[str] = Field(None, max_length=255, examples=["Chrome on Windows"])


class CompanyAccessItem(BaseModel):
    company_id: UUID
    role: str


class UserResponse(BaseModel):
    """User information (never includes password_hash)."""
    id: UUID
    email: str
    name: str
    phone: Optional[str] = None
    is_active: bool
    email_verified: bool
    last_login_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TenantSummary(BaseModel):
    id: UUID
    name: str
    status: str
    role: str


class TokenResponse(BaseModel):
    """Response schema for login, refresh and switch endpoints.

    Attributes:
        access_token: JWT access token
        refresh_token: Opaque refresh token (login and refresh only)
        token_type: Token type (always "bearer")
        expires_in: Access token lifetime in seconds
        tenant_id: Tenant the access token is bound to
        role: Caller's role in that tenant (or in the active company)
        active_company_id: Set by switch-company
        company_access: Companies of the tenant the caller can reach
    """
    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse
    tenant_id: UUID
    role: str
    active_company_id: Optional[UUID] = None
    company_access: List[CompanyAccessItem] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result) -> "TokenResponse":
        return cls(
            access_token=result.access_token,
            refresh_token=result.refresh_token,
            expires_in=result.expires_in,
            user=UserResponse.model_validate(result.user),
            tenant_id=result.tenant.id,
            role=result.role,
            active_company_id=result.active_company.id if result.active_company else None,
            company_access=[CompanyAccessItem(**item) for item in result.company_access],
        )


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class LogoutRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(
        ...,
        min_length=8,
        description="At least 8 characters with upper case, lower case, digit and special character",
    )


class ChangePasswordRequest(BaseModel):
    old_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8)


class VerifyEmailRequest(BaseModel):
    token: str = Field(..., min_length=1)


class SwitchTenantRequest(BaseModel):
    tenant_id: UUID


class SwitchCompanyRequest(BaseModel):
    company_id: UUID


class UnlockAccountRequest(BaseModel):
    email: EmailStr
    reason: Optional[str] = Field(None, max_length=500, examples=["Verified identity by phone"])


class LockStatusResponse(BaseModel):
    email: str
    is_locked: bool
    lock_tier: int
    failed_attempts: int
    retry_after_seconds: int
    last_attempt_at: Optional[datetime] = None
    locked_until: Optional[datetime] = None


class MessageResponse(BaseModel):
    message: str


class MeResponse(BaseModel):
    """Current user plus what the access token grants.

    Attributes:
        user: The authenticated user
        tenant_id: Tenant from the access token
        role: Role from the access token
        active_company_id: Company selected with switch-company, if any
        tenants: Every tenant the user is an active member of
        company_access: Accessible companies of the current tenant
    """
    user: UserResponse
    tenant_id: UUID
    role: str
    active_company_id: Optional[UUID] = None
    tenants: List[TenantSummary]
    company_access: List[CompanyAccessItem]
