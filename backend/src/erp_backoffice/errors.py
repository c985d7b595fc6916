"""Application error hierarchy.

Services raise these instead of HTTPException so they can be used from
Celery tasks and tests without a request. main.py registers a handler
that renders every AppError as:

    {"success": false, "error": {"code": ..., "message": ..., "details": [...]}}
"""

from typing import Any, Dict, List, Optional

from fastapi import status


class AppError(Exception):
    """Base class for errors that map onto an HTTP response."""

    code: str = "INTERNAL_ERROR"
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[List[Dict[str, str]]] = None,
        headers: Optional[Dict[str, str]] = None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details or []
        self.headers = headers
        self.extra = extra or {}

    def __str__(self) -> str:
        if self.details:
            parts = "; ".join(f"{d['field']} - {d['message']}" for d in self.details)
            return f"{self.message}: {parts}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        body.update(self.extra)
        return body


class ValidationAppError(AppError):
    code = "VALIDATION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, details: List[Dict[str, str]], message: str = "Validation failed"):
        super().__init__(message, details=details)


class AuthenticationError(AppError):
    code = "AUTHENTICATION_ERROR"
    status_code = status.HTTP_401_UNAUTHORIZED


class AuthorizationError(AppError):
    code = "AUTHORIZATION_ERROR"
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(AppError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str):
        super().__init__(f"{resource} not found")
        self.resource = resource


class ConflictError(AppError):
    code = "CONFLICT"
    status_code = status.HTTP_409_CONFLICT


class BadRequestError(AppError):
    code = "BAD_REQUEST"
    status_code = status.HTTP_400_BAD_REQUEST


class RateLimitError(AppError):
    code = "RATE_LIMIT_EXCEEDED"
    status_code = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, retry_after: int, message: str = "Too many requests"):
        super().__init__(message, headers={"Retry-After": str(retry_after)})
        self.retry_after = retry_after


class AccountLockedError(AppError):
    code = "ACCOUNT_LOCKED"
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, tier: int, retry_after_seconds: int, attempts_count: int):
        if tier > 0:
            message = (
                f"Account locked (Tier {tier}). Too many failed login attempts "
                f"({attempts_count}). Please try again in {retry_after_seconds} seconds."
            )
        else:
            message = (
                "Account temporarily locked due to multiple failed login attempts. "
                f"Please try again in {retry_after_seconds} seconds."
            )
        super().__init__(message, headers={"Retry-After": str(retry_after_seconds)})
        self.tier = tier
        self.retry_after_seconds = retry_after_seconds
        self.attempts_count = attempts_count


class SubscriptionError(AppError):
    """Tenant subscription does not allow the operation.

    Login-time failures use the generic SUBSCRIPTION_ERROR / 402. The
    request-time validator raises 403 with a specific code such as
    TRIAL_EXPIRED or PAYMENT_OVERDUE.
    """

    code = "SUBSCRIPTION_ERROR"
    status_code = status.HTTP_402_PAYMENT_REQUIRED


class TenantIsolationError(Exception):
    """Raised by the ORM tenant hook. Always a programming error, never user input."""

    code = "TENANT_ISOLATION_VIOLATION"


class TenantContextError(TenantIsolationError):
    """A tenant-scoped statement ran without tenant context."""


class TenantImmutableError(TenantIsolationError):
    """A flush tried to move a row to another tenant."""
