"""Persistent authentication artifacts: refresh tokens, password resets,
email verifications and login attempts.
"""

from sqlalchemy import Boolean, Column, ForeignKey, Index, String, Uuid

from .base import Base, TimestampMixin, UTCDateTime, utcnow, uuid_pk


class RefreshToken(Base, TimestampMixin):
    """Refresh token; only the SHA-256 hash of the opaque token is stored."""
    __tablename__ = "refresh_tokens"

    id = uuid_pk()
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(64), nullable=False, unique=True)
    device_info = Column(String(500), nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)
    is_revoked = Column(Boolean, nullable=False, default=False)
    revoked_at = Column(UTCDateTime, nullable=True)
    expires_at = Column(UTCDateTime, nullable=False, index=True)

    __table_args__ = (
        Index("ix_refresh_tokens_user_active", "user_id", "is_revoked"),
    )


class PasswordReset(Base):
    __tablename__ = "password_resets"

    id = uuid_pk()
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(64), nullable=False, unique=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)
    expires_at = Column(UTCDateTime, nullable=False)
    used_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)


class EmailVerification(Base, TimestampMixin):
    __tablename__ = "email_verifications"

    id = uuid_pk()
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    email = Column(String(255), nullable=False)
    token_hash = Column(String(64), nullable=False, unique=True)
    is_used = Column(Boolean, nullable=False, default=False)
    used_at = Column(UTCDateTime, nullable=True)
    expires_at = Column(UTCDateTime, nullable=False, index=True)


class LoginAttempt(Base):
    """One login attempt. Failed rows drive the tiered lockout until they
    age out or an administrator soft-unlocks them (unlocked_at).
    """
    __tablename__ = "login_attempts"

    id = uuid_pk()
    email = Column(String(255), nullable=False, index=True)
    ip_address = Column(String(45), nullable=True, index=True)
    user_agent = Column(String(500), nullable=True)
    is_success = Column(Boolean, nullable=False, default=False)
    failure_reason = Column(String(50), nullable=True)
    attempted_at = Column(UTCDateTime, nullable=False, default=utcnow)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow, index=True)
    unlocked_at = Column(UTCDateTime, nullable=True)
    unlocked_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    unlock_reason = Column(String(500), nullable=True)
