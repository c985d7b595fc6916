"""Authentication endpoints.

Login issues a short-lived JWT access token plus an opaque refresh token.
Refresh rotates the refresh token; logout revokes it. Password reset and
email verification use single-use hashed tokens.

Security measures:
- Sliding-window rate limit on login, refresh and forgot-password
- Tiered account lockout on repeated failed logins
- Generic responses where an answer would reveal whether an email exists
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..permissions.dependencies import TenantAdmin, require_tenant_admin
from .dependencies import CurrentClaims, CurrentUser
from .rate_limit import get_client_ip, rate_limit
from .schemas import (
    ChangePasswordRequest,
    CompanyAccessItem,
    ForgotPasswordRequest,
    LockStatusResponse,
    LoginRequest,
    LogoutRequest,
    MeResponse,
    MessageResponse,
    RefreshRequest,
    ResetPasswordRequest,
    SwitchCompanyRequest,
    SwitchTenantRequest,
    TenantSummary,
    TokenResponse,
    UnlockAccountRequest,
    UserResponse,
    VerifyEmailRequest,
)
from .service import AuthService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

FORGOT_PASSWORD_MESSAGE = "If an account with that email exists, a password reset link has been sent"


@router.post(
    "/login",
    response_model=TokenResponse,
    dependencies=[Depends(rate_limit("login"))],
)
def login(
    credentials: LoginRequest,
    request: Request,
    db: Annotated[Session, Depends(get_db)],
) -> TokenResponse:
    """Authenticate with email and password.

    Raises:
        401: Invalid credentials or inactive account
        402: Tenant subscription not active / trial expired
        403: Account locked, or user has no tenant access
        429: Rate limit exceeded
    """
    result = AuthService(db).login(
        email=credentials.email,
        password=credentials.password,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
        device_info=credentials.device_info,
    )
    db.commit()
    return TokenResponse.from_result(result)


@router.post(
    "/refresh",
    response_model=TokenResponse,
    dependencies=[Depends(rate_limit("refresh"))],
)
def refresh(data: RefreshRequest, db: Annotated[Session, Depends(get_db)]) -> TokenResponse:
    """Rotate the refresh token. The old token is revoked even if the new one is never used."""
    result = AuthService(db).refresh(data.refresh_token)
    db.commit()
    return TokenResponse.from_result(result)


@router.post("/logout", response_model=MessageResponse)
def logout(data: LogoutRequest, db: Annotated[Session, Depends(get_db)]) -> MessageResponse:
    AuthService(db).logout(data.refresh_token)
    db.commit()
    return MessageResponse(message="Logged out successfully")


@router.post(
    "/forgot-password",
    response_model=MessageResponse,
    dependencies=[Depends(rate_limit("forgot_password"))],
)
def forgot_password(
    data: ForgotPasswordRequest,
    request: Request,
    db: Annotated[Session, Depends(get_db)],
) -> MessageResponse:
    """Always answers 200 with the same message, whether or not the email exists."""
    token = AuthService(db).forgot_password(
        data.email,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )
    db.commit()
    if token is not None:
        logger.info("Password reset token issued", extra={"email": data.email.lower()})
    return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)


@router.post("/reset-password", response_model=MessageResponse)
def reset_password(data: ResetPasswordRequest, db: Annotated[Session, Depends(get_db)]) -> MessageResponse:
    AuthService(db).reset_password(data.token, data.new_password)
    db.commit()
    return MessageResponse(message="Password has been reset successfully")


@router.post("/change-password", response_model=MessageResponse)
def change_password(
    data: ChangePasswordRequest,
    user: CurrentUser,
    db: Annotated[Session, Depends(get_db)],
) -> MessageResponse:
    """Change the caller's password. All refresh tokens are revoked."""
    AuthService(db).change_password(user.id, data.old_password, data.new_password)
    db.commit()
    return MessageResponse(message="Password changed successfully")


@router.post("/verify-email", response_model=MessageResponse)
def verify_email(data: VerifyEmailRequest, db: Annotated[Session, Depends(get_db)]) -> MessageResponse:
    AuthService(db).verify_email(data.token)
    db.commit()
    return MessageResponse(message="Email verified successfully")


@router.get("/me", response_model=MeResponse)
def me(
    user: CurrentUser,
    claims: CurrentClaims,
    db: Annotated[Session, Depends(get_db)],
) -> MeResponse:
    service = AuthService(db)
    tenants = [
        TenantSummary(id=tenant.id, name=tenant.name, status=tenant.status, role=link.role)
        for link, tenant in service.get_user_tenants(user.id)
    ]
    company_access = service.build_company_access(user.id, claims.tenant_id)
    return MeResponse(
        user=UserResponse.model_validate(user),
        tenant_id=claims.tenant_id,
        role=claims.role,
        active_company_id=claims.active_company_id,
        tenants=tenants,
        company_access=[CompanyAccessItem(**item) for item in company_access],
    )


@router.post("/switch-tenant", response_model=TokenResponse)
def switch_tenant(
    data: SwitchTenantRequest,
    user: CurrentUser,
    db: Annotated[Session, Depends(get_db)],
) -> TokenResponse:
    """Issue an access token for another tenant the caller belongs to."""
    result = AuthService(db).switch_tenant(user.id, data.tenant_id)
    return TokenResponse.from_result(result)


@router.post("/switch-company", response_model=TokenResponse)
def switch_company(
    data: SwitchCompanyRequest,
    user: CurrentUser,
    claims: CurrentClaims,
    db: Annotated[Session, Depends(get_db)],
) -> TokenResponse:
    """Issue an access token with active_company_id set (same tenant)."""
    result = AuthService(db).switch_company(user.id, claims.tenant_id, data.company_id)
    return TokenResponse.from_result(result)


@router.post("/unlock-account", response_model=MessageResponse, status_code=status.HTTP_200_OK)
def unlock_account(
    data: UnlockAccountRequest,
    db: Annotated[Session, Depends(get_db)],
    admin: TenantAdmin = Depends(require_tenant_admin),
) -> MessageResponse:
    """Soft-unlock an account locked by failed logins (tenant admins only)."""
    cleared = AuthService(db).unlock_account(data.email, admin.user.id, admin.tenant_id, data.reason)
    db.commit()
    return MessageResponse(message=f"Account unlocked ({cleared} failed attempts cleared)")


@router.get("/lock-status", response_model=LockStatusResponse)
def lock_status(
    db: Annotated[Session, Depends(get_db)],
    email: str = Query(..., min_length=3),
    admin: TenantAdmin = Depends(require_tenant_admin),
) -> LockStatusResponse:
    status_ = AuthService(db).get_account_lock_status(email, admin.tenant_id)
    return LockStatusResponse(
        email=status_.email,
        is_locked=status_.is_locked,
        lock_tier=status_.tier,
        failed_attempts=status_.failed_attempts,
        retry_after_seconds=status_.retry_after_seconds,
        last_attempt_at=status_.last_attempt_at,
        locked_until=status_.locked_until,
    )
