"""
CRUD App: Security Headers Middleware
=====================================

Sets on every response:
    Content-Security-Policy     configurable (CSP_POLICY)
    X-Frame-Options             DENY
    X-Content-Type-Options      nosniff
    X-XSS-Protection            1; mode=block
    Referrer-Policy             strict-origin-when-cross-origin
    Strict-Transport-Security   max-age=31536000; includeSubDomains  (HTTPS only)

Removes Server and X-Powered-By. Uvicorn's own Server header is disabled
separately (``server_header=False`` in crud/__main__.py).

RecoveryMiddleware sits outside this middleware and calls
``apply_security_headers`` itself for the 500 it builds.
"""

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

HSTS_VALUE = "max-age=31536000; includeSubDomains"

STATIC_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}

REMOVED_HEADERS = ("server", "x-powered-by")


def apply_security_headers(response: Response, request: Request, csp_policy: str) -> None:
    if csp_policy:
        response.headers["Content-Security-Policy"] = csp_policy
    response.headers.update(STATIC_HEADERS)
    if request.url.scheme == "https":
        response.headers["Strict-Transport-Security"] = HSTS_VALUE

    for name in REMOVED_HEADERS:
        if name in response.headers:
            del response.headers[name]


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, csp_policy: str):
        super().__init__(app)
        self.csp_policy = csp_policy

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        response = await call_next(request)
        apply_security_headers(response, request, self.csp_policy)
        return response
