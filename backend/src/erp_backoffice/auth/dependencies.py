"""FastAPI dependencies for authentication.

Usage:
    @router.get("/me")
    def me(user: CurrentUser, claims: CurrentClaims):
        ...
"""

from dataclasses import dataclass, field
from typing import Annotated, Any, Dict, List, Optional
from uuid import UUID

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import AuthenticationError
from ..models.user import User
from ..observability.request_context import bind_log_context
from .jwt import decode_token

# auto_error=False so a missing header yields our 401 body instead of FastAPI's.
security = HTTPBearer(auto_error=False)

_BEARER = {"WWW-Authenticate": "Bearer"}


@dataclass
class TokenClaims:
    """Validated access token claims."""
    user_id: UUID
    email: str
    tenant_id: UUID
    role: str
    active_company_id: Optional[UUID] = None
    company_access: List[Dict[str, str]] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "TokenClaims":
        active = payload.get("active_company_id")
        return cls(
            user_id=UUID(payload["sub"]),
            email=payload.get("email", ""),
            tenant_id=UUID(payload["tenant_id"]),
            role=payload["role"],
            active_company_id=UUID(active) if active else None,
            company_access=list(payload.get("company_access") or []),
        )


def get_token_claims(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> TokenClaims:
    """Validate the Bearer token and return its claims.

    Raises:
        AuthenticationError 401: Missing, expired, malformed or tampered token
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Authorization header required", headers=_BEARER)

    try:
        payload = decode_token(credentials.credentials)
        claims = TokenClaims.from_payload(payload)
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token has expired", headers=_BEARER)
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token", headers=_BEARER)
    except (KeyError, ValueError):
        raise AuthenticationError("Invalid token claims", headers=_BEARER)

    request.state.token_claims = claims
    bind_log_context(user_id=claims.user_id, tenant_id=claims.tenant_id)
    return claims


def get_current_user(
    claims: TokenClaims = Depends(get_token_claims),
    db: Session = Depends(get_db),
) -> User:
    """Load the authenticated user; inactive users are rejected."""
    user = db.get(User, claims.user_id)
    if user is None:
        raise AuthenticationError("User not found", headers=_BEARER)
    if not user.is_active:
        raise AuthenticationError("Account is inactive", headers=_BEARER)
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentClaims = Annotated[TokenClaims, Depends(get_token_claims)]
