"""
Security Middleware
====================

Adds security headers and HTTPS enforcement.

Consent links carry a bearer token in the URL path, so public consent
responses are never cached and never leak the URL through Referer.
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response, RedirectResponse

from ..config import get_settings

PUBLIC_CONSENT_PREFIX = "/api/v1/public/consent"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Add security headers to all responses.

    Headers added:
    - Strict-Transport-Security (HSTS, on HTTPS only)
    - X-Content-Type-Options
    - X-Frame-Options
    - Referrer-Policy (no-referrer on consent routes)
    - Cache-Control: no-store (consent routes)
    - Content-Security-Policy (API responses only serve JSON)
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        settings = get_settings()
        forwarded_proto = request.headers.get("x-forwarded-proto", "")
        is_https = request.url.scheme == "https" or forwarded_proto == "https"

        if settings.enforce_https and not is_https:
            url = str(request.url).replace("http://", "https://", 1)
            return RedirectResponse(url, status_code=301)

        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"

        if request.url.path.startswith(PUBLIC_CONSENT_PREFIX):
            response.headers["Referrer-Policy"] = "no-referrer"
            response.headers["Cache-Control"] = "no-store"
        else:
            response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        if is_https:
            response.headers["Strict-Transport-Security"] = f"max-age={settings.hsts_max_age}; includeSubDomains"

        if not request.url.path.startswith(("/docs", "/redoc")):
            response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

        return response
