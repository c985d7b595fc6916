"""Authentication service.

Login, token refresh and rotation, logout, password reset/change, email
verification and tenant/company switching.

Transaction handling follows the routers' convention: the service flushes,
the caller commits. The exceptions are failed login attempts, which
LockoutService commits immediately so they count even though the request
itself fails.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from ..audit.service import log_audit_event
from ..config import get_settings
from ..errors import (
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    SubscriptionError,
    ValidationAppError,
)
from ..models.auth_tokens import EmailVerification, PasswordReset, RefreshToken
from ..models.base import utcnow
from ..models.company import Company
from ..models.tenant import Tenant, TenantStatus
from ..models.user import User, UserTenant
from ..models.user_company_role import UserCompanyRole
from ..observability.metrics import login_attempts_total
from ..permissions.roles import TIER1_ROLES
from .jwt import create_access_token, generate_opaque_token, hash_token
from .lockout import (
    FAILURE_ACCOUNT_INACTIVE,
    FAILURE_INVALID_PASSWORD,
    FAILURE_USER_NOT_FOUND,
    LockoutService,
    LockStatus,
)
from .password import hash_password, validate_password_strength, verify_password

logger = logging.getLogger(__name__)

FAILURE_NO_TENANT_ACCESS = "NO_TENANT_ACCESS"
FAILURE_TENANT_INACTIVE = "TENANT_INACTIVE"
FAILURE_TRIAL_EXPIRED = "TRIAL_EXPIRED"

TIER1_ROLE_VALUES = [role.value for role in TIER1_ROLES]
LOGIN_STATUSES = (TenantStatus.ACTIVE.value, TenantStatus.TRIAL.value)


@dataclass
class AuthResult:
    """Tokens plus the identity they were issued for."""
    access_token: str
    user: User
    tenant: Tenant
    role: str
    company_access: List[Dict[str, str]]
    refresh_token: Optional[str] = None
    active_company: Optional[Company] = None
    expires_in: int = field(default_factory=lambda: get_settings().ACCESS_TOKEN_EXPIRE_MINUTES * 60)


class AuthService:
    def __init__(self, db: Session):
        self.db = db
        self.lockout = LockoutService(db)

    # ------------------------------------------------------------------
    # Login / refresh / logout
    # ------------------------------------------------------------------

    def login(
        self,
        email: str,
        password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        device_info: Optional[str] = None,
    ) -> AuthResult:
        """Authenticate with email and password.

        Raises:
            AccountLockedError: Email or IP inside a lockout window
            AuthenticationError: Unknown user, inactive account, bad password
            AuthorizationError: User has no tenant access
            SubscriptionError: Tenant not active or trial expired
        """
        email = email.strip().lower()
        self.lockout.check(email, ip_address)

        user = self.db.execute(select(User).where(User.email == email)).scalar_one_or_none()
        if user is None:
            self._fail(email, ip_address, user_agent, FAILURE_USER_NOT_FOUND,
                       AuthenticationError("Invalid email or password"))

        if not user.is_active:
            self._fail(email, ip_address, user_agent, FAILURE_ACCOUNT_INACTIVE,
                       AuthenticationError("Account is inactive"))

        if not verify_password(password, user.password_hash):
            self._fail(email, ip_address, user_agent, FAILURE_INVALID_PASSWORD,
                       AuthenticationError("Invalid email or password"))

        resolved = self._resolve_tenant(user.id)
        if resolved is None:
            self._fail(email, ip_address, user_agent, FAILURE_NO_TENANT_ACCESS,
                       AuthorizationError("User has no active tenant access"))
        tenant, role = resolved

        try:
            ensure_tenant_can_login(tenant)
        except SubscriptionError as e:
            reason = FAILURE_TRIAL_EXPIRED if tenant.status == TenantStatus.TRIAL.value else FAILURE_TENANT_INACTIVE
            self._fail(email, ip_address, user_agent, reason, e)

        self.lockout.record_attempt(email, ip_address, user_agent, success=True)
        user.last_login_at = utcnow()

        company_access = self.build_company_access(user.id, tenant.id)
        access_token = create_access_token(
            user_id=user.id,
            email=user.email,
            tenant_id=tenant.id,
            role=role,
            company_access=company_access,
        )
        refresh_token = self._store_refresh_token(user.id, device_info, ip_address, user_agent)

        log_audit_event(
            self.db,
            tenant_id=tenant.id,
            action="LOGIN_SUCCESS",
            user_id=user.id,
            entity_type="user",
            entity_id=user.id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        login_attempts_total.labels(outcome="success").inc()
        logger.info("Login successful", extra={"user_id": str(user.id), "tenant_id": str(tenant.id)})

        return AuthResult(
            access_token=access_token,
            refresh_token=refresh_token,
            user=user,
            tenant=tenant,
            role=role,
            company_access=company_access,
        )

    def refresh(self, refresh_token: str) -> AuthResult:
        """Rotate a refresh token and issue a new access token.

        The token row is locked (SELECT ... FOR UPDATE) so two concurrent
        refreshes of the same token serialize; the second sees it revoked.
        """
        token_hash = hash_token(refresh_token)
        record = self.db.execute(
            select(RefreshToken)
            .where(RefreshToken.token_hash == token_hash, RefreshToken.is_revoked.is_(False))
            .with_for_update()
        ).scalar_one_or_none()
        if record is None:
            raise AuthenticationError("Refresh token not found or revoked")

        if record.expires_at <= utcnow():
            raise AuthenticationError("Refresh token expired")

        user = self.db.get(User, record.user_id)
        if user is None:
            raise AuthenticationError("User not found")
        if not user.is_active:
            raise AuthenticationError("Account is inactive")

        resolved = self._resolve_tenant(user.id)
        if resolved is None:
            raise AuthorizationError("User has no active tenant access")
        tenant, role = resolved
        ensure_tenant_can_login(tenant)

        now = utcnow()
        record.is_revoked = True
        record.revoked_at = now
        self.db.flush()

        company_access = self.build_company_access(user.id, tenant.id)
        access_token = create_access_token(
            user_id=user.id,
            email=user.email,
            tenant_id=tenant.id,
            role=role,
            company_access=company_access,
        )
        new_refresh_token = self._store_refresh_token(
            user.id, record.device_info, record.ip_address, record.user_agent
        )

        return AuthResult(
            access_token=access_token,
            refresh_token=new_refresh_token,
            user=user,
            tenant=tenant,
            role=role,
            company_access=company_access,
        )

    def logout(self, refresh_token: str) -> None:
        """Revoke a refresh token. Unknown or already revoked tokens are ignored."""
        now = utcnow()
        self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.token_hash == hash_token(refresh_token), RefreshToken.is_revoked.is_(False))
            .values(is_revoked=True, revoked_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )

    # ------------------------------------------------------------------
    # Passwords and email verification
    # ------------------------------------------------------------------

    def forgot_password(self, email: str, ip_address: Optional[str] = None,
                        user_agent: Optional[str] = None) -> Optional[str]:
        """Create a password reset token.

        Returns the raw token for delivery, or None when the email is unknown,
        the account is inactive or the hourly limit is reached. Callers must
        respond identically in every case.
        """
        cfg = get_settings()
        user = self.db.execute(
            select(User).where(User.email == email.strip().lower())
        ).scalar_one_or_none()
        if user is None or not user.is_active:
            return None

        recent = self.db.execute(
            select(func.count(PasswordReset.id)).where(
                PasswordReset.user_id == user.id,
                PasswordReset.created_at > utcnow() - timedelta(hours=1),
            )
        ).scalar_one()
        if recent >= cfg.PASSWORD_RESET_MAX_PER_HOUR:
            logger.warning("Password reset limit reached", extra={"user_id": str(user.id)})
            return None

        token = generate_opaque_token()
        self.db.add(PasswordReset(
            user_id=user.id,
            token_hash=hash_token(token),
            ip_address=ip_address,
            user_agent=user_agent,
            expires_at=utcnow() + timedelta(hours=cfg.PASSWORD_RESET_EXPIRE_HOURS),
        ))
        self.db.flush()
        return token

    def reset_password(self, token: str, new_password: str) -> User:
        """Consume a reset token, set the new password, revoke all sessions."""
        reset = self.db.execute(
            select(PasswordReset).where(PasswordReset.token_hash == hash_token(token))
        ).scalar_one_or_none()
        if reset is None:
            raise AuthenticationError("Invalid or expired reset token")
        if reset.expires_at <= utcnow():
            raise AuthenticationError("Reset token has expired")
        if reset.used_at is not None:
            raise AuthenticationError("Reset token has already been used")

        user = self.db.get(User, reset.user_id)
        if user is None:
            raise AuthenticationError("User not found")
        if not user.is_active:
            raise AuthenticationError("Account is inactive")

        _require_strong_password(new_password)

        user.password_hash = hash_password(new_password)
        reset.used_at = utcnow()
        self.revoke_all_refresh_tokens(user.id)

        resolved = self._resolve_tenant(user.id)
        if resolved is not None:
            log_audit_event(
                self.db,
                tenant_id=resolved[0].id,
                action="PASSWORD_RESET",
                user_id=user.id,
                entity_type="user",
                entity_id=user.id,
            )
        self.db.flush()
        return user

    def change_password(self, user_id: UUID, old_password: str, new_password: str) -> None:
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User")
        if not verify_password(old_password, user.password_hash):
            raise AuthenticationError("Current password is incorrect")

        _require_strong_password(new_password)

        user.password_hash = hash_password(new_password)
        self.revoke_all_refresh_tokens(user.id)
        self.db.flush()

    def issue_email_verification(self, user_id: UUID) -> str:
        """Create an email verification token for the user's current email."""
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User")

        token = generate_opaque_token()
        self.db.add(EmailVerification(
            user_id=user.id,
            email=user.email,
            token_hash=hash_token(token),
            expires_at=utcnow() + timedelta(hours=get_settings().EMAIL_VERIFICATION_EXPIRE_HOURS),
        ))
        self.db.flush()
        return token

    def verify_email(self, token: str) -> User:
        verification = self.db.execute(
            select(EmailVerification).where(EmailVerification.token_hash == hash_token(token))
        ).scalar_one_or_none()
        if verification is None:
            raise ValidationAppError([{"field": "token", "message": "Invalid or expired verification token"}])
        if verification.is_used or verification.used_at is not None:
            raise ValidationAppError([{"field": "token", "message": "Email already verified"}])
        if verification.expires_at <= utcnow():
            raise ValidationAppError(
                [{"field": "token", "message": "Verification link expired. Please request a new one"}]
            )

        user = self.db.get(User, verification.user_id)
        if user is None:
            raise NotFoundError("User")

        now = utcnow()
        user.email_verified = True
        user.email_verified_at = now
        verification.is_used = True
        verification.used_at = now
        self.db.flush()
        return user

    # ------------------------------------------------------------------
    # Tenant / company switching
    # ------------------------------------------------------------------

    def switch_tenant(self, user_id: UUID, tenant_id: UUID) -> AuthResult:
        link = self.db.execute(
            select(UserTenant).where(
                UserTenant.user_id == user_id,
                UserTenant.tenant_id == tenant_id,
                UserTenant.is_active.is_(True),
            )
        ).scalar_one_or_none()
        if link is None:
            raise AuthorizationError("You don't have access to this tenant")

        tenant = self.db.get(Tenant, tenant_id)
        if tenant is None:
            raise NotFoundError("Tenant")
        ensure_tenant_can_login(tenant)

        user = self._get_user(user_id)
        company_access = self.build_company_access(user.id, tenant.id)
        access_token = create_access_token(
            user_id=user.id,
            email=user.email,
            tenant_id=tenant.id,
            role=link.role,
            company_access=company_access,
        )
        return AuthResult(
            access_token=access_token,
            user=user,
            tenant=tenant,
            role=link.role,
            company_access=company_access,
        )

    def switch_company(self, user_id: UUID, tenant_id: UUID, company_id: UUID) -> AuthResult:
        """Issue an access token with active_company_id set.

        Raises:
            NotFoundError: Company missing, inactive or outside the tenant
            AuthorizationError: No Tier 1 or Tier 2 access to the company
        """
        company = self.db.execute(
            select(Company).where(
                Company.id == company_id,
                Company.tenant_id == tenant_id,
                Company.is_active.is_(True),
            ),
            execution_options={"tenant_id": tenant_id},
        ).scalar_one_or_none()
        if company is None:
            raise NotFoundError("Company")

        tier1 = self._tier1_link(user_id, tenant_id)
        if tier1 is not None:
            role = tier1.role
        else:
            grant = self.db.execute(
                select(UserCompanyRole).where(
                    UserCompanyRole.user_id == user_id,
                    UserCompanyRole.company_id == company_id,
                    UserCompanyRole.is_active.is_(True),
                )
            ).scalar_one_or_none()
            if grant is None:
                raise AuthorizationError("You don't have access to this company")
            role = grant.role

        user = self._get_user(user_id)
        tenant = self.db.get(Tenant, tenant_id)
        company_access = self.build_company_access(user.id, tenant_id)
        access_token = create_access_token(
            user_id=user.id,
            email=user.email,
            tenant_id=tenant_id,
            role=role,
            company_access=company_access,
            active_company_id=company.id,
        )
        return AuthResult(
            access_token=access_token,
            user=user,
            tenant=tenant,
            role=role,
            company_access=company_access,
            active_company=company,
        )

    def get_user_tenants(self, user_id: UUID) -> List[Tuple[UserTenant, Tenant]]:
        stmt = (
            select(UserTenant, Tenant)
            .join(Tenant, Tenant.id == UserTenant.tenant_id)
            .where(UserTenant.user_id == user_id, UserTenant.is_active.is_(True))
            .order_by(Tenant.name)
        )
        return [(link, tenant) for link, tenant in self.db.execute(stmt).all()]

    def build_company_access(self, user_id: UUID, tenant_id: UUID) -> List[Dict[str, str]]:
        """Companies of one tenant the user can reach, with the role for each.

        Tier 1 users get every active company with their tenant role;
        otherwise only companies with an active Tier 2 grant are listed.
        """
        tier1 = self._tier1_link(user_id, tenant_id)
        if tier1 is not None:
            companies = self.db.execute(
                select(Company)
                .where(Company.tenant_id == tenant_id, Company.is_active.is_(True))
                .order_by(Company.name),
                execution_options={"tenant_id": tenant_id},
            ).scalars()
            return [{"company_id": str(c.id), "role": tier1.role} for c in companies]

        rows = self.db.execute(
            select(UserCompanyRole.company_id, UserCompanyRole.role)
            .join(Company, Company.id == UserCompanyRole.company_id)
            .where(
                UserCompanyRole.user_id == user_id,
                UserCompanyRole.is_active.is_(True),
                Company.tenant_id == tenant_id,
                Company.is_active.is_(True),
            )
            .order_by(Company.name),
            execution_options={"tenant_id": tenant_id},
        ).all()
        return [{"company_id": str(company_id), "role": role} for company_id, role in rows]

    # ------------------------------------------------------------------
    # Lockout administration
    # ------------------------------------------------------------------

    def _require_tenant_member(self, email: str, tenant_id: UUID) -> User:
        """The account behind email, provided it belongs to tenant_id.

        Accounts of other tenants are reported as missing rather than
        forbidden so their existence is not disclosed.
        """
        user = self.db.execute(
            select(User).where(func.lower(User.email) == email.strip().lower())
        ).scalar_one_or_none()
        if user is not None:
            linked = self.db.execute(
                select(UserTenant.id).where(
                    UserTenant.user_id == user.id,
                    UserTenant.tenant_id == tenant_id,
                    UserTenant.is_active.is_(True),
                )
            ).first() or self.db.execute(
                select(UserCompanyRole.id).where(
                    UserCompanyRole.user_id == user.id,
                    UserCompanyRole.tenant_id == tenant_id,
                    UserCompanyRole.is_active.is_(True),
                )
            ).first()
            if linked:
                return user
        raise NotFoundError("Account")

    def unlock_account(self, email: str, admin_user_id: UUID, tenant_id: UUID,
                       reason: Optional[str] = None) -> int:
        self._require_tenant_member(email, tenant_id)
        cleared = self.lockout.unlock(email, admin_user_id, reason)
        log_audit_event(
            self.db,
            tenant_id=tenant_id,
            action="ACCOUNT_UNLOCKED",
            user_id=admin_user_id,
            entity_type="login_attempt",
            metadata={"email": email.lower(), "attempts_cleared": cleared, "reason": reason},
        )
        return cleared

    def get_account_lock_status(self, email: str, tenant_id: Optional[UUID] = None) -> LockStatus:
        """Lock status for email; with tenant_id, only for members of that tenant."""
        if tenant_id is not None:
            self._require_tenant_member(email, tenant_id)
        return self.lockout.get_status(email)

    # ------------------------------------------------------------------
    # Refresh token storage
    # ------------------------------------------------------------------

    def revoke_all_refresh_tokens(self, user_id: UUID) -> None:
        now = utcnow()
        self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id, RefreshToken.is_revoked.is_(False))
            .values(is_revoked=True, revoked_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )

    def _store_refresh_token(self, user_id: UUID, device_info: Optional[str],
                             ip_address: Optional[str], user_agent: Optional[str]) -> str:
        """Persist a new refresh token and enforce the per-user active limit.

        Expired tokens are revoked first; then, if the user already holds
        MAX_ACTIVE_REFRESH_TOKENS or more, the oldest are revoked so that
        max - 1 remain before the new one is added.
        """
        cfg = get_settings()
        now = utcnow()

        self.db.execute(
            update(RefreshToken)
            .where(
                RefreshToken.user_id == user_id,
                RefreshToken.is_revoked.is_(False),
                RefreshToken.expires_at < now,
            )
            .values(is_revoked=True, revoked_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )

        active = list(self.db.execute(
            select(RefreshToken)
            .where(
                RefreshToken.user_id == user_id,
                RefreshToken.is_revoked.is_(False),
                RefreshToken.expires_at > now,
            )
            .order_by(RefreshToken.created_at.asc())
        ).scalars())

        keep = max(cfg.MAX_ACTIVE_REFRESH_TOKENS - 1, 0)
        if len(active) >= cfg.MAX_ACTIVE_REFRESH_TOKENS:
            surplus = active[:len(active) - keep]
            for old in surplus:
                old.is_revoked = True
                old.revoked_at = now
            logger.info(
                "Revoked oldest refresh tokens",
                extra={"user_id": str(user_id), "revoked": len(surplus)}
            )

        token = generate_opaque_token()
        self.db.add(RefreshToken(
            user_id=user_id,
            token_hash=hash_token(token),
            device_info=device_info,
            ip_address=ip_address,
            user_agent=user_agent,
            expires_at=now + timedelta(days=cfg.REFRESH_TOKEN_EXPIRE_DAYS),
            created_at=now,
            updated_at=now,
        ))
        self.db.flush()
        return token

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _fail(self, email: str, ip_address: Optional[str], user_agent: Optional[str],
              reason: str, error: Exception) -> None:
        self.lockout.record_attempt(email, ip_address, user_agent, success=False, failure_reason=reason)
        login_attempts_total.labels(outcome=reason.lower()).inc()
        logger.info("Login failed", extra={"email": email, "reason": reason, "ip_address": ip_address})
        raise error

    def _get_user(self, user_id: UUID) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError("User")
        return user

    def _tier1_link(self, user_id: UUID, tenant_id: UUID) -> Optional[UserTenant]:
        return self.db.execute(
            select(UserTenant).where(
                UserTenant.user_id == user_id,
                UserTenant.tenant_id == tenant_id,
                UserTenant.is_active.is_(True),
                UserTenant.role.in_(TIER1_ROLE_VALUES),
            )
        ).scalars().first()

    def _resolve_tenant(self, user_id: UUID) -> Optional[Tuple[Tenant, str]]:
        """Pick the tenant a fresh session starts in.

        Tenant links come first (Tier 1 roles before others, oldest first);
        a user with only company grants lands in the tenant of the oldest
        grant and carries that grant's role.
        """
        links = list(self.db.execute(
            select(UserTenant)
            .where(UserTenant.user_id == user_id, UserTenant.is_active.is_(True))
            .order_by(UserTenant.created_at.asc())
        ).scalars())
        if links:
            links.sort(key=lambda link: link.role not in TIER1_ROLE_VALUES)
            link = links[0]
            return self.db.get(Tenant, link.tenant_id), link.role

        grant = self.db.execute(
            select(UserCompanyRole)
            .where(UserCompanyRole.user_id == user_id, UserCompanyRole.is_active.is_(True))
            .order_by(UserCompanyRole.created_at.asc())
            .limit(1)
        ).scalar_one_or_none()
        if grant is None:
            return None
        return self.db.get(Tenant, grant.tenant_id), grant.role


def ensure_tenant_can_login(tenant: Tenant) -> None:
    """Only ACTIVE and unexpired TRIAL tenants may start sessions.

    Raises:
        SubscriptionError: 402 with the reason
    """
    if tenant.status not in LOGIN_STATUSES:
        raise SubscriptionError("Tenant subscription is not active")
    if (
        tenant.status == TenantStatus.TRIAL.value
        and tenant.trial_ends_at is not None
        and tenant.trial_ends_at <= utcnow()
    ):
        raise SubscriptionError("Trial period has expired")


def _require_strong_password(password: str) -> None:
    ok, message = validate_password_strength(password)
    if not ok:
        raise ValidationAppError([{"field": "new_password", "message": message}])
