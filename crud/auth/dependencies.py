"""
CRUD App: Authentication Gate
=============================

What:  FastAPI dependency guarding the protected route groups.
How:   Declared as a router-level dependency (``dependencies=[Depends(...)]``)
       and also usable per-handler to receive the user.

States:
    Anonymous      → LoginRequiredError → 302 Location: /login (handler never runs)
    Authenticated  → LoggedInUser attached to request.state.logged_in_user

Being logged in means the signed session holds a user with a non-empty id.
There is no refresh and no expiry check beyond the cookie's max-age.
"""

import logging

from fastapi import Request

from crud.exceptions import LoginRequiredError
from crud.middleware.client_ip import client_ip_from_app
from crud.schemas.auth import LoggedInUser
from crud.session import SessionStore

logger = logging.getLogger(__name__)


async def require_login(request: Request) -> LoggedInUser:
    """Return the logged-in user or reject the request with a redirect to /login."""
    cached = getattr(request.state, "logged_in_user", None)
    if isinstance(cached, LoggedInUser):
        return cached

    user = SessionStore.from_request(request).get_logged_in_user()
    if not user.id:
        client_ip = client_ip_from_app(request)
        logger.info(
            "Unauthorized access attempt from IP: %s to path: %s",
            client_ip,
            request.url.path,
        )
        raise LoginRequiredError(path=request.url.path, client_ip=client_ip)

    request.state.logged_in_user = user
    return user

