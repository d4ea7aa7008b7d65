"""
CRUD App: Middleware Chain Tests
================================

What:  Each middleware observed through the real app (ASGITransport), plus
       unit tests for client IP resolution.

What we test:
    ✅ Security headers on every response; HSTS only over HTTPS
    ✅ X-RateLimit-* headers and the 429 body
    ✅ Slow handler → 408, fast handler untouched
    ✅ Unhandled exception → generic 500
    ✅ 429, 408 and 500 still carry the headers of the layers around them
    ✅ CORS preflight
    ✅ Authentication gate: 302 /login, handler never runs
    ✅ X-Forwarded-For honoured only from trusted proxies
"""

import asyncio
import logging
from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient
from starlette.requests import Request

from crud.main import create_app
from crud.middleware.client_ip import UNKNOWN_CLIENT, get_client_ip, parse_trusted_proxies
from crud.middleware.logging import level_for_status
from crud.middleware.rate_limit import RateLimiter
from crud.middleware.security_headers import HSTS_VALUE


def _request(client=("203.0.113.5", 50000), headers=None) -> Request:
    raw_headers = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
    return Request({
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": raw_headers,
        "client": client,
    })


class TestSecurityHeaders:

    @pytest.mark.asyncio
    async def test_headers_present(self, test_client):
        response = await test_client.get("/health/live")
        assert response.status_code == 200
        assert response.headers["x-frame-options"] == "DENY"
        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["x-xss-protection"] == "1; mode=block"
        assert response.headers["referrer-policy"] == "strict-origin-when-cross-origin"
        assert "default-src 'self'" in response.headers["content-security-policy"]
        assert "server" not in response.headers
        assert "x-powered-by" not in response.headers

    @pytest.mark.asyncio
    async def test_no_hsts_over_plain_http(self, test_client):
        response = await test_client.get("/health/live")
        assert "strict-transport-security" not in response.headers

    @pytest.mark.asyncio
    async def test_hsts_over_https(self, app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="https://test") as client:
            response = await client.get("/health/live")
        assert response.headers["strict-transport-security"] == HSTS_VALUE

    @pytest.mark.asyncio
    async def test_headers_on_error_responses(self, test_client):
        """Redirects and errors carry the headers too."""
        response = await test_client.get("/users")
        assert response.status_code == 302
        assert response.headers["x-frame-options"] == "DENY"


class TestRateLimitMiddleware:

    @pytest.fixture
    def rate_limiter(self):
        return RateLimiter(limit=3)

    @pytest.mark.asyncio
    async def test_headers_count_down(self, test_client):
        first = await test_client.get("/health/live")
        second = await test_client.get("/health/live")

        assert first.headers["x-ratelimit-limit"] == "3"
        assert first.headers["x-ratelimit-remaining"] == "2"
        assert second.headers["x-ratelimit-remaining"] == "1"
        assert int(first.headers["x-ratelimit-reset"]) > 0

    @pytest.mark.asyncio
    async def test_limit_exceeded(self, test_client):
        for _ in range(3):
            assert (await test_client.get("/health/live")).status_code == 200

        response = await test_client.get("/health/live")
        assert response.status_code == 429
        body = response.json()
        assert body["error"] == "Rate limit exceeded"
        assert 0 < body["retry_after"] <= 60
        assert response.headers["retry-after"] == str(body["retry_after"])
        assert response.headers["x-ratelimit-remaining"] == "0"

    @pytest.mark.asyncio
    async def test_rejected_request_never_reaches_handler(self, test_client):
        for _ in range(3):
            await test_client.get("/health/live")

        with patch(
            "crud.services.user_service.user_service.list_users",
            new_callable=AsyncMock,
        ) as mock_list:
            response = await test_client.get("/users")
        assert response.status_code == 429
        mock_list.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejection_carries_security_headers(self, test_client):
        for _ in range(3):
            await test_client.get("/health/live")

        response = await test_client.get("/health/live")
        assert response.status_code == 429
        assert response.headers["x-frame-options"] == "DENY"
        assert "default-src 'self'" in response.headers["content-security-policy"]

    @pytest.mark.asyncio
    async def test_fresh_limiter_passed_to_factory_is_used(self, test_settings, db_engine):
        """An empty limiter is still the one create_app() wires in."""
        limiter = RateLimiter(limit=2)
        assert limiter.active_windows() == 0

        application = create_app(test_settings, db_engine=db_engine, rate_limiter=limiter)
        transport = ASGITransport(app=application)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/health/live")

        assert response.headers["x-ratelimit-limit"] == "2"
        assert response.headers["x-ratelimit-remaining"] == "1"
        assert limiter.active_windows() == 1


class TestTimeoutMiddleware:

    @pytest.fixture
    def test_settings(self, test_settings):
        return test_settings.model_copy(update={"read_timeout": 0.1})

    @pytest.mark.asyncio
    async def test_slow_handler_gets_408(self, app, test_client):
        async def slow():
            await asyncio.sleep(5)
            return {"done": True}

        app.add_api_route("/slow", slow)
        response = await test_client.get("/slow")
        assert response.status_code == 408
        assert response.json() == {"error": "Request timeout"}

    @pytest.mark.asyncio
    async def test_timeout_carries_rate_limit_and_security_headers(self, app, test_client):
        async def slow():
            await asyncio.sleep(5)
            return {"done": True}

        app.add_api_route("/slow", slow)
        response = await test_client.get("/slow")
        assert response.status_code == 408
        assert response.headers["x-ratelimit-limit"] == "1000"
        assert response.headers["x-ratelimit-remaining"] == "999"
        assert response.headers["x-frame-options"] == "DENY"

    @pytest.mark.asyncio
    async def test_fast_handler_untouched(self, app, test_client):
        async def fast():
            return {"done": True}

        app.add_api_route("/fast", fast)
        response = await test_client.get("/fast")
        assert response.status_code == 200
        assert response.json() == {"done": True}


class TestRecoveryMiddleware:

    @pytest.mark.asyncio
    async def test_unhandled_exception_becomes_500(self, app, test_client, caplog):
        async def explode():
            raise RuntimeError("kaboom: secret internals")

        app.add_api_route("/explode", explode)
        with caplog.at_level(logging.ERROR, logger="crud.middleware.recovery"):
            response = await test_client.get("/explode")

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}
        assert "secret internals" not in response.text
        assert "Unhandled error on GET /explode" in caplog.text

    @pytest.mark.asyncio
    async def test_500_carries_security_and_rate_limit_headers(self, app, test_client):
        async def explode():
            raise RuntimeError("kaboom")

        app.add_api_route("/explode", explode)
        response = await test_client.get("/explode")

        assert response.status_code == 500
        assert response.headers["x-frame-options"] == "DENY"
        assert response.headers["x-content-type-options"] == "nosniff"
        assert "default-src 'self'" in response.headers["content-security-policy"]
        assert response.headers["x-ratelimit-limit"] == "1000"
        assert response.headers["x-ratelimit-remaining"] == "999"
        assert int(response.headers["x-ratelimit-reset"]) > 0


class TestCors:

    @pytest.mark.asyncio
    async def test_preflight_from_allowed_origin(self, test_client):
        response = await test_client.options(
            "/users",
            headers={
                "Origin": "http://localhost:8080",
                "Access-Control-Request-Method": "GET",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "http://localhost:8080"
        assert response.headers["access-control-allow-credentials"] == "true"
        assert response.headers["access-control-max-age"] == "43200"

    @pytest.mark.asyncio
    async def test_preflight_from_unknown_origin(self, test_client):
        response = await test_client.options(
            "/users",
            headers={
                "Origin": "https://evil.example",
                "Access-Control-Request-Method": "GET",
            },
        )
        assert response.status_code == 400
        assert "access-control-allow-origin" not in response.headers


class TestAuthGate:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method, path", [
        ("GET", "/"),
        ("GET", "/accounts"),
        ("GET", "/users"),
        ("GET", "/users/12345"),
        ("DELETE", "/users/12345"),
        ("POST", "/accounts"),
    ])
    async def test_anonymous_redirected_to_login(self, test_client, method, path):
        response = await test_client.request(method, path)
        assert response.status_code == 302
        assert response.headers["location"] == "/login"

    @pytest.mark.asyncio
    async def test_handler_not_invoked(self, test_client):
        with patch(
            "crud.services.user_service.user_service.list_users",
            new_callable=AsyncMock,
        ) as mock_list:
            response = await test_client.get("/users")
        assert response.status_code == 302
        mock_list.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_public_paths_open(self, test_client):
        assert (await test_client.get("/login")).status_code == 200
        assert (await test_client.get("/health/live")).status_code == 200


class TestClientIp:

    def test_peer_address_without_trusted_proxies(self):
        request = _request(headers={"X-Forwarded-For": "1.2.3.4"})
        assert get_client_ip(request) == "203.0.113.5"

    def test_forwarded_for_ignored_from_untrusted_peer(self):
        trusted = parse_trusted_proxies(["10.0.0.0/8"])
        request = _request(headers={"X-Forwarded-For": "1.2.3.4"})
        assert get_client_ip(request, trusted) == "203.0.113.5"

    def test_rightmost_untrusted_forwarded_entry(self):
        trusted = parse_trusted_proxies(["10.0.0.0/8"])
        request = _request(
            client=("10.0.0.2", 443),
            headers={"X-Forwarded-For": "6.6.6.6, 1.2.3.4, 10.0.0.9"},
        )
        assert get_client_ip(request, trusted) == "1.2.3.4"

    def test_real_ip_fallback(self):
        trusted = parse_trusted_proxies(["10.0.0.2"])
        request = _request(client=("10.0.0.2", 443), headers={"X-Real-IP": "1.2.3.4"})
        assert get_client_ip(request, trusted) == "1.2.3.4"

    def test_garbage_headers_fall_back_to_peer(self):
        trusted = parse_trusted_proxies(["10.0.0.2"])
        request = _request(
            client=("10.0.0.2", 443),
            headers={"X-Forwarded-For": "not-an-ip", "X-Real-IP": "also-bad"},
        )
        assert get_client_ip(request, trusted) == "10.0.0.2"

    def test_missing_client(self):
        assert get_client_ip(_request(client=None)) == UNKNOWN_CLIENT

    def test_invalid_proxy_entry(self):
        with pytest.raises(ValueError):
            parse_trusted_proxies(["10.0.0.0/8", "nope"])


class TestAccessLog:

    @pytest.mark.parametrize("status, level", [
        (200, logging.INFO),
        (302, logging.INFO),
        (404, logging.WARNING),
        (429, logging.WARNING),
        (500, logging.ERROR),
    ])
    def test_level_for_status(self, status, level):
        assert level_for_status(status) == level

    @pytest.mark.asyncio
    async def test_one_line_per_request(self, test_client, caplog):
        with caplog.at_level(logging.INFO, logger="crud.access"):
            await test_client.get("/health/live")
        lines = [r for r in caplog.records if r.name == "crud.access"]
        assert len(lines) == 1
        assert "GET 200" in lines[0].getMessage()
        assert lines[0].getMessage().endswith("/health/live")

    @pytest.mark.asyncio
    async def test_unhandled_exception_logged_as_500(self, app, test_client, caplog):
        async def explode():
            raise RuntimeError("kaboom")

        app.add_api_route("/explode", explode)
        with caplog.at_level(logging.INFO, logger="crud.access"):
            await test_client.get("/explode")

        lines = [r for r in caplog.records if r.name == "crud.access"]
        assert len(lines) == 1
        assert lines[0].levelno == logging.ERROR
        assert "GET 500" in lines[0].getMessage()
        assert lines[0].status == 500
