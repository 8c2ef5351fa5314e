"""
HTTP hardening middleware shared by gateway services.
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request


PRODUCTION_CSP = (
    "default-src 'self'; "
    "style-src 'self' 'unsafe-inline'; "
    "script-src 'self'; "
    "img-src 'self' data: https:; "
    "frame-ancestors 'none'; "
    "base-uri 'self'; "
    "object-src 'none';"
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Attach standard security headers to every response.

    The Content-Security-Policy is only sent in production so local tooling
    (interactive docs, hot reload) keeps working.
    """

    def __init__(self, app, enable_csp: bool = False):
        super().__init__(app)
        self.enable_csp = enable_csp

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        if self.enable_csp:
            response.headers.setdefault("Content-Security-Policy", PRODUCTION_CSP)
        response.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-DNS-Prefetch-Control", "off")
        response.headers.setdefault("X-Download-Options", "noopen")
        response.headers.setdefault("X-Permitted-Cross-Domain-Policies", "none")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        response.headers.setdefault("Cross-Origin-Opener-Policy", "same-origin")
        response.headers.setdefault("Cross-Origin-Resource-Policy", "same-origin")

        if request.url.scheme == "https":
            response.headers.setdefault(
                "Strict-Transport-Security",
                "max-age=31536000; includeSubDomains",
            )

        return response
