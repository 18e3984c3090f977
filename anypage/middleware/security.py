"""Security related middleware for HTTP responses."""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

DEFAULT_CSP = "default-src 'self'; frame-ancestors 'none'; form-action 'self'"
EMBEDDABLE_CSP = "default-src 'self'; frame-ancestors 'self'"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Attach a hardened set of default security headers.

    Responses under ``embeddable_prefixes`` (document content served to the
    in-page viewer) may be framed by the application's own origin; every
    other response refuses framing entirely.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        content_security_policy: str | None = DEFAULT_CSP,
        embeddable_prefixes: tuple[str, ...] = ("/api/content/",),
    ) -> None:
        super().__init__(app)
        self._content_security_policy = content_security_policy
        self._embeddable_prefixes = embeddable_prefixes

    async def dispatch(self, request, call_next):
        response = await call_next(request)
        headers = response.headers
        embeddable = request.url.path.startswith(self._embeddable_prefixes)
        headers.setdefault("X-Content-Type-Options", "nosniff")
        headers.setdefault("X-Frame-Options", "SAMEORIGIN" if embeddable else "DENY")
        headers.setdefault("Referrer-Policy", "no-referrer")
        headers.setdefault(
            "Permissions-Policy",
            "geolocation=(), microphone=(), camera=(), fullscreen=(self)",
        )
        headers.setdefault(
            "Strict-Transport-Security", "max-age=63072000; includeSubDomains"
        )
        if embeddable:
            headers.setdefault("Content-Security-Policy", EMBEDDABLE_CSP)
        elif self._content_security_policy:
            headers.setdefault("Content-Security-Policy", self._content_security_policy)
        return response


__all__ = ["SecurityHeadersMiddleware"]
