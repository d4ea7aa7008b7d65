"""
CRUD App: Request Timeout Middleware
====================================

What:  Bounds the time a request may spend in the layers below it.
How:   Pure ASGI middleware. The downstream app runs under asyncio.wait_for;
       on deadline its task is cancelled and, if it has not started a
       response yet, a 408 is sent in its place.

Write-once guard:
    Every send from the downstream app goes through ``guarded_send``. Once the
    deadline has fired, further downstream sends are dropped, so the client
    never sees a late handler response mixed into the 408.

A handler that finishes before the deadline passes through untouched.
"""

import asyncio
import json
import logging
from typing import List, Optional

from starlette.requests import HTTPConnection
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from crud.middleware.client_ip import IPNetwork, get_client_ip

logger = logging.getLogger(__name__)

TIMEOUT_BODY = json.dumps({"error": "Request timeout"}).encode("utf-8")


class TimeoutMiddleware:
    def __init__(
        self,
        app: ASGIApp,
        timeout: float,
        trusted_proxies: Optional[List[IPNetwork]] = None,
    ):
        self.app = app
        self.timeout = timeout
        self.trusted_proxies = trusted_proxies or []

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or self.timeout <= 0:
            await self.app(scope, receive, send)
            return

        response_started = False
        response_finished = False
        timed_out = False

        async def guarded_send(message: Message) -> None:
            nonlocal response_started, response_finished
            if timed_out:
                return
            if message["type"] == "http.response.start":
                response_started = True
            elif message["type"] == "http.response.body" and not message.get("more_body", False):
                response_finished = True
            await send(message)

        try:
            await asyncio.wait_for(self.app(scope, receive, guarded_send), timeout=self.timeout)
        except asyncio.TimeoutError:
            timed_out = True
            conn = HTTPConnection(scope)
            logger.warning(
                "Request timeout for %s from IP: %s",
                conn.url.path,
                get_client_ip(conn, self.trusted_proxies),
            )
            if not response_started:
                await send({
                    "type": "http.response.start",
                    "status": 408,
                    "headers": [
                        (b"content-type", b"application/json"),
                        (b"content-length", str(len(TIMEOUT_BODY)).encode("latin-1")),
                    ],
                })
                await send({"type": "http.response.body", "body": TIMEOUT_BODY})
            elif not response_finished:
                # Headers already went out; close the body so the client is not left hanging
                await send({"type": "http.response.body", "body": b"", "more_body": False})
