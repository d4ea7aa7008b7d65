"""
CRUD App: Login, OAuth and Logout Routes
========================================

What:  The three-step OAuth login handshake plus the login page and logout.

Flow:
    GET /auth/{provider}/login
        1. generate a state token, store it (and the provider) in the session
        2. 302 → provider consent page carrying the token as ``state``
    GET /auth/callback?state=...&code=...
        3. state missing or different from the stored one → 400, session untouched
        4. state matches → stored token deleted at once (single use)
        5. exchange code → fetch profile → store as logged-in user → 302 /
           Any failure in step 5 → flash error, 302 /login

Security:
    The state comparison uses secrets.compare_digest. A rejected callback is a
    CSRF rejection and is never retried.
"""

import logging
import secrets

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, RedirectResponse, Response

from crud.auth.oauth import OAuthClient, generate_state_token
from crud.exceptions import OAuthError, OAuthStateError, SessionError
from crud.middleware.client_ip import client_ip_from_app
from crud.schemas.common import ErrorResponse
from crud.session import FlashKind, SessionStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Auth"])

DEFAULT_PROVIDER = "google"
LOGIN_FAILED_MESSAGE = "Login failed. Please try again."


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=302)


@router.get("/login", summary="Login page", response_model=None)
async def login_page(request: Request) -> Response:
    """Logged-in users go straight home; everyone else gets the login page."""
    store = SessionStore.from_request(request)
    if store.is_logged_in():
        return _redirect("/")

    templates = request.app.state.templates
    return templates.TemplateResponse(
        request,
        "login.html",
        {"title": "Login", "flash": store.get_all_flash_messages()},
    )


async def _begin_login(request: Request, provider: str) -> Response:
    config = request.app.state.oauth_providers.get(provider)
    if config is None:
        return JSONResponse(status_code=404, content={"error": "Unknown OAuth provider"})

    state = generate_state_token()
    SessionStore.from_request(request).set_state_token(state, provider)

    client = OAuthClient(config, http_client=request.app.state.oauth_http_client)
    return _redirect(client.authorization_url(state))


@router.get(
    "/auth/google",
    summary="Start Google login",
    response_model=None,
)
async def google_login(request: Request) -> Response:
    return await _begin_login(request, DEFAULT_PROVIDER)


@router.get(
    "/auth/{provider}/login",
    summary="Start OAuth login",
    response_model=None,
    responses={404: {"model": ErrorResponse, "description": "Unknown provider"}},
)
async def provider_login(request: Request, provider: str) -> Response:
    return await _begin_login(request, provider)


@router.get(
    "/auth/callback",
    summary="OAuth redirect target",
    response_model=None,
    responses={400: {"model": ErrorResponse, "description": "Invalid state token"}},
)
async def oauth_callback(request: Request) -> Response:
    """
    Validate ``state``, consume the stored token, then finish the login.

    Raises:
        OAuthStateError: state missing, nothing stored, or mismatch (400)
    """
    client_ip = client_ip_from_app(request)
    store = SessionStore.from_request(request)

    received_state = request.query_params.get("state", "")
    stored_state = store.get_state_token()
    if (
        not received_state
        or not stored_state
        or not secrets.compare_digest(received_state.encode(), stored_state.encode())
    ):
        logger.warning("OAuth state token mismatch or missing from IP: %s", client_ip)
        raise OAuthStateError(context={"client_ip": client_ip})

    provider = store.get_oauth_provider() or DEFAULT_PROVIDER
    store.delete_state_token()

    code = request.query_params.get("code", "")
    if not code:
        logger.warning("Missing authorization code from IP: %s", client_ip)
        return _redirect("/login")

    config = request.app.state.oauth_providers.get(provider)
    if config is None:
        logger.warning("State token issued for unknown provider %r from IP: %s", provider, client_ip)
        return _redirect("/login")

    client = OAuthClient(config, http_client=request.app.state.oauth_http_client)
    try:
        access_token = await client.exchange_code(code)
        profile = await client.fetch_profile(access_token)
    except OAuthError as e:
        logger.warning(
            "OAuth login failed from IP %s: %s | Context: %s", client_ip, e.message, e.context
        )
        store.set_flash(FlashKind.ERROR, LOGIN_FAILED_MESSAGE)
        return _redirect("/login")

    store.set_logged_in_user(profile)
    logger.info("User %s (%s) logged in from IP: %s", profile.name, profile.email, client_ip)
    return _redirect("/")


@router.get(
    "/logout",
    summary="Log out",
    response_model=None,
    responses={500: {"model": ErrorResponse, "description": "Session unavailable"}},
)
async def logout(request: Request) -> Response:
    try:
        store = SessionStore.from_request(request)
        store.delete_logged_in_user()
    except SessionError as e:
        logger.error("Could not clear session: %s", e.message)
        return JSONResponse(status_code=500, content={"error": "Could not delete user"})

    store.set_flash(FlashKind.INFO, "You have been logged out.")
    return _redirect("/")
