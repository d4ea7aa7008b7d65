"""
CRUD App: Recovery Middleware
=============================

What:  Last line of defence. Turns any exception that escaped the route,
       the exception handlers and the inner middleware into a generic 500.
Who:   Outermost user middleware, so it also covers logging, headers,
       CORS, rate limiting, timeout and session handling.

Security: the stack trace is logged server-side only; the client gets
``{"error": "Internal server error"}`` and nothing else.

The 500 is built after the inner middleware has unwound, so it gets the
security headers and the request's X-RateLimit-* headers stamped here.
"""

import logging

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from crud.middleware.client_ip import client_ip_from_app
from crud.middleware.rate_limit import apply_rate_limit_headers
from crud.middleware.security_headers import apply_security_headers

logger = logging.getLogger(__name__)


class RecoveryMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except Exception:
            logger.error(
                "Unhandled error on %s %s from IP: %s",
                request.method,
                request.url.path,
                client_ip_from_app(request),
                exc_info=True,
            )
            response = JSONResponse(status_code=500, content={"error": "Internal server error"})
            apply_rate_limit_headers(response, request)
            apply_security_headers(response, request, request.app.state.settings.csp_policy)
            return response
