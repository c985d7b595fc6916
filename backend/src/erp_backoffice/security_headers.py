"""OWASP secure response headers.

The baseline headers go on every response. Strict-Transport-Security and
Content-Security-Policy are added in production, or elsewhere when enabled
through SECURITY_HSTS_ENABLED / SECURITY_CSP_ENABLED. The API serves JSON
only, so the policy denies every resource type.
"""

from typing import Callable, Dict, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from .config import Settings, get_settings

BASELINE_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=(), payment=()",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-Download-Options": "noopen",
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
}

CONTENT_SECURITY_POLICY = "; ".join([
    "default-src 'none'",
    "frame-ancestors 'none'",
    "form-action 'none'",
    "base-uri 'none'",
])


def build_security_headers(cfg: Settings) -> Dict[str, str]:
    headers = dict(BASELINE_HEADERS)

    if cfg.is_production or cfg.SECURITY_HSTS_ENABLED:
        hsts = f"max-age={cfg.SECURITY_HSTS_MAX_AGE}"
        if cfg.SECURITY_HSTS_INCLUDE_SUBDOMAINS:
            hsts += "; includeSubDomains"
        headers["Strict-Transport-Security"] = hsts

    if cfg.is_production or cfg.SECURITY_CSP_ENABLED:
        # Report-only is a rollout aid and never applies in production.
        if cfg.SECURITY_CSP_REPORT_ONLY and not cfg.is_production:
            headers["Content-Security-Policy-Report-Only"] = CONTENT_SECURITY_POLICY
        else:
            headers["Content-Security-Policy"] = CONTENT_SECURITY_POLICY

    return headers


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Set the secure headers without overriding ones a handler already set."""

    def __init__(self, app, settings: Optional[Settings] = None):
        super().__init__(app)
        self.headers = build_security_headers(settings or get_settings())

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        for name, value in self.headers.items():
            response.headers.setdefault(name, value)
        return response
