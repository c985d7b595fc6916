"""Access tokens (JWT) and opaque refresh / one-time tokens.

Access token claims:

- sub / user_id: user UUID
- email
- tenant_id: the tenant the session operates in
- role: Tier 1 role in that tenant, or the Tier 2 role that granted entry
- active_company_id: optional, set by switch-company
- company_access: [{"company_id": "...", "role": "..."}] for the tenant
- iat, nbf, exp
- type: always "access"

Refresh, password-reset and email-verification tokens are 64 hex
characters of randomness. Only their SHA-256 hex digest is stored.
"""

import hashlib
import os
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, Optional
from uuid import UUID

import jwt

from ..config import get_settings

ACCESS_TOKEN_TYPE = "access"


def _get_jwt_secret() -> str:
    """Read JWT_SECRET from the environment.

    Raises:
        ValueError: If JWT_SECRET is not set
    """
    secret = os.getenv('JWT_SECRET')
    if not secret:
        raise ValueError("JWT_SECRET environment variable is not set")
    return secret


def create_access_token(
    user_id: UUID,
    email: str,
    tenant_id: UUID,
    role: str,
    company_access: Optional[Iterable[Dict[str, str]]] = None,
    active_company_id: Optional[UUID] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Sign an access token for a user operating in one tenant."""
    cfg = get_settings()
    now = datetime.now(timezone.utc)
    expiration = now + (expires_delta or timedelta(minutes=cfg.ACCESS_TOKEN_EXPIRE_MINUTES))

    payload: Dict[str, Any] = {
        'sub': str(user_id),
        'user_id': str(user_id),
        'email': email,
        'tenant_id': str(tenant_id),
        'role': role,
        'company_access': [
            {'company_id': str(entry['company_id']), 'role': entry['role']}
            for entry in (company_access or [])
        ],
        'iat': int(now.timestamp()),
        'nbf': int(now.timestamp()),
        'exp': int(expiration.timestamp()),
        'type': ACCESS_TOKEN_TYPE,
    }
    if active_company_id is not None:
        payload['active_company_id'] = str(active_company_id)

    return jwt.encode(payload, _get_jwt_secret(), algorithm=cfg.JWT_ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """Decode and validate an access token.

    Raises:
        jwt.ExpiredSignatureError: Token has expired
        jwt.InvalidTokenError: Bad signature, malformed, or not an access token
        ValueError: JWT_SECRET is not set
    """
    cfg = get_settings()
    payload = jwt.decode(
        token,
        _get_jwt_secret(),
        algorithms=[cfg.JWT_ALGORITHM],
        options={"require": ["exp", "iat", "sub"]},
    )
    if payload.get('type') != ACCESS_TOKEN_TYPE:
        raise jwt.InvalidTokenError("Invalid token type")
    return payload


def generate_opaque_token() -> str:
    """64 hex characters (256 bits) from the OS CSPRNG."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
