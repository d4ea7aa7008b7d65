"""
CRUD App: FastAPI Application Factory
=====================================

What:  Creates and configures the FastAPI application instance.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   uvicorn (``crud.main:app`` or ``python -m crud``) and the test suite.
When:  Once at server startup; the returned app handles all later requests.

Application Architecture:
    ┌─────────────────────────────────────────────────────────────┐
    │                        FastAPI App                          │
    │                                                             │
    │  Middleware Chain (outermost first):                        │
    │  Recovery → Logging → SecurityHeaders → CORS                │
    │           → RateLimit → Timeout → Session                   │
    │                                                             │
    │  Routes:                                                    │
    │  /login /auth/* /logout          (public)                   │
    │  /health/*                       (public)                   │
    │  / /accounts /users* /accounts/* (auth gate)                │
    │                                                             │
    │  Exception Handlers:                                        │
    │  Validation→400 │ NotFound→404 │ Conflict→409 │ DB→500      │
    │  OAuthState→400 │ LoginRequired→302 /login │ Session→500    │
    └─────────────────────────────────────────────────────────────┘

Lifecycle:
    Construction: session secret validated (ConfigurationError is fatal)
    Startup:      logging, OAuth credential warnings, table creation
    Shutdown:     OAuth HTTP client closed, database engine disposed
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.ext.asyncio import AsyncEngine
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from crud import __version__
from crud import database
from crud.auth.oauth import build_provider_registry
from crud.config import Settings, settings as default_settings
from crud.exceptions import (
    ConfigurationError,
    ConflictError,
    CrudAppError,
    DatabaseError,
    LoginRequiredError,
    NotFoundError,
    OAuthStateError,
    SessionError,
    ValidationError,
)
from crud.middleware.client_ip import parse_trusted_proxies
from crud.middleware.cors import cors_options
from crud.middleware.logging import RequestLoggingMiddleware
from crud.middleware.rate_limit import RateLimiter, RateLimitMiddleware
from crud.middleware.recovery import RecoveryMiddleware
from crud.middleware.security_headers import SecurityHeadersMiddleware
from crud.middleware.timeout import TimeoutMiddleware
from crud.routes import accounts, auth, health, pages, users
from crud.services.health_service import HealthChecker

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "INFO") -> None:
    """
    Configure logging for the entire application.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    Called once during app startup, before anything else logs.
    """
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # crud.access replaces uvicorn's access log
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    config: Settings = app.state.settings

    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging(config.log_level)
    logger.info("=" * 60)
    logger.info("CRUD app %s starting up (environment=%s)", __version__, config.environment)
    config.warn_missing_oauth()

    try:
        await database.init_models(app.state.db_engine)
    except Exception as e:
        # Keep serving: /health/ready reports not_ready until the DB is back
        logger.error("Database initialization failed: %s", str(e))

    owns_http_client = app.state.oauth_http_client is None
    if owns_http_client:
        app.state.oauth_http_client = httpx.AsyncClient(timeout=config.oauth_http_timeout)

    logger.info("Server ready at http://%s:%d", config.host, config.port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("CRUD app shutting down...")
    if owns_http_client:
        await app.state.oauth_http_client.aclose()
        app.state.oauth_http_client = None
    await app.state.db_engine.dispose()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exception types to HTTP responses.

    Every error body is ``{"error": "..."}``. Exceptions without a handler
    here propagate to RecoveryMiddleware and become a generic 500.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("Validation error on %s: %s", request.url.path, exc.message)
        return JSONResponse(status_code=400, content={"error": exc.message})

    @app.exception_handler(OAuthStateError)
    async def handle_oauth_state(request: Request, exc: OAuthStateError):
        return JSONResponse(status_code=400, content={"error": exc.message})

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"error": exc.message})

    @app.exception_handler(ConflictError)
    async def handle_conflict(request: Request, exc: ConflictError):
        logger.warning("Conflict on %s: %s", request.url.path, exc.message)
        return JSONResponse(status_code=409, content={"error": exc.message})

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        # Full context server-side only
        logger.error("Database error: %s | Context: %s", exc.message, exc.context)
        return JSONResponse(status_code=500, content={"error": exc.message})

    @app.exception_handler(SessionError)
    async def handle_session_error(request: Request, exc: SessionError):
        logger.error("Session error on %s: %s", request.url.path, exc.message)
        return JSONResponse(status_code=500, content={"error": exc.message})

    @app.exception_handler(LoginRequiredError)
    async def handle_login_required(request: Request, exc: LoginRequiredError):
        return RedirectResponse(url="/login", status_code=302)

    @app.exception_handler(CrudAppError)
    async def handle_app_error(request: Request, exc: CrudAppError):
        logger.error(
            "Unhandled %s: %s | Context: %s", type(exc).__name__, exc.message, exc.context
        )
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        """Malformed ids, bad JSON bodies: 400 instead of FastAPI's default 422."""
        errors = exc.errors()
        message = "Invalid request"
        if errors:
            first = errors[0]
            field = ".".join(str(part) for part in first.get("loc", ())[1:])
            message = f"{field}: {first.get('msg', 'invalid value')}" if field else first.get("msg", message)
        logger.warning("Request validation failed on %s: %s", request.url.path, message)
        return JSONResponse(status_code=400, content={"error": message})

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    config: Optional[Settings] = None,
    *,
    db_engine: Optional[AsyncEngine] = None,
    oauth_http_client: Optional[httpx.AsyncClient] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Settings to use (defaults to the module singleton)
        db_engine: Engine behind request sessions, health checks and startup
            table creation (defaults to the module engine)
        oauth_http_client: Shared httpx client for provider calls; when None,
            one is opened at startup and closed at shutdown
        rate_limiter: Pre-built limiter (tests inject one with a fake clock)

    Raises:
        ConfigurationError: unusable session secret or trusted proxy list
    """
    config = config or default_settings
    secret = config.validate_session_secret()

    try:
        trusted_proxies = parse_trusted_proxies(config.trusted_proxies_list)
    except ValueError as e:
        raise ConfigurationError(f"Invalid TRUSTED_PROXIES entry: {e}") from e

    app = FastAPI(
        title="CRUD App",
        description="Session-authenticated CRUD service for users and accounts.",
        version=__version__,
        debug=config.debug,
        lifespan=lifespan,
    )

    # ── Application State ─────────────────────────────────────────────────
    engine = db_engine if db_engine is not None else database.engine
    app.state.settings = config
    app.state.db_engine = engine
    app.state.session_factory = database.build_session_factory(engine)
    app.state.trusted_proxies = trusted_proxies
    app.state.oauth_providers = build_provider_registry(config)
    app.state.oauth_http_client = oauth_http_client
    app.state.templates = Jinja2Templates(directory=config.templates_dir)
    app.state.health_checker = HealthChecker(engine, __version__, config)

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added runs first: added innermost → outermost
    if not config.session_http_only:
        logger.warning(
            "SESSION_HTTP_ONLY=false is ignored; session cookies are always HttpOnly"
        )
    app.add_middleware(
        SessionMiddleware,
        secret_key=secret,
        session_cookie=config.session_cookie_name,
        max_age=config.session_max_age or None,
        same_site=config.session_same_site,
        https_only=config.session_cookie_secure,
    )
    app.add_middleware(
        TimeoutMiddleware,
        timeout=config.read_timeout,
        trusted_proxies=trusted_proxies,
    )
    app.add_middleware(
        RateLimitMiddleware,
        limiter=(
            rate_limiter if rate_limiter is not None
            else RateLimiter(limit=config.rate_limit_per_minute)
        ),
        trusted_proxies=trusted_proxies,
    )
    app.add_middleware(CORSMiddleware, **cors_options(config))
    app.add_middleware(SecurityHeadersMiddleware, csp_policy=config.csp_policy)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RecoveryMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(auth.router)
    app.include_router(health.router)
    app.include_router(pages.router)
    app.include_router(users.router)
    app.include_router(accounts.router)

    return app


# ── Application Instance ─────────────────────────────────────────────────
# uvicorn expects `crud.main:app` to be importable
app = create_app()
