"""
CRUD App: Request Logging Middleware
====================================

What:  One access-log line per HTTP request.
How:   Measures from middleware entry to response return and logs on the
       ``crud.access`` logger. Never aborts a request.

Log line:
    [2024-01-15 12:00:00] 10.0.0.7 GET 200 3.2ms /users

Level follows the status class: 5xx ERROR, 4xx WARNING, everything else INFO.
Requests that end in an unhandled exception are logged as 500.

What we DON'T log: request bodies, cookies, Authorization headers.
"""

import logging
import time
from datetime import datetime, timezone

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from crud.middleware.client_ip import client_ip_from_app

logger = logging.getLogger("crud.access")


def level_for_status(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start_time = time.perf_counter()
        timestamp = datetime.now(timezone.utc)
        client_ip = client_ip_from_app(request)
        method = request.method
        path = request.url.path

        try:
            response = await call_next(request)
        except Exception:
            # RecoveryMiddleware turns this into the 500 the client sees
            self._log(timestamp, start_time, client_ip, method, 500, path)
            raise

        self._log(timestamp, start_time, client_ip, method, response.status_code, path)
        return response

    @staticmethod
    def _log(timestamp, start_time, client_ip, method, status, path) -> None:
        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.log(
            level_for_status(status),
            "[%s] %s %s %d %.1fms %s",
            timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            client_ip,
            method,
            status,
            duration_ms,
            path,
            extra={
                "method": method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
            },
        )
