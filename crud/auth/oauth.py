"""
CRUD App: OAuth Provider Client
===============================

What:  Authorization-code flow against an OAuth 2.0 identity provider.
How:   ``OAuthProviderConfig`` describes the provider (built explicitly from
       settings at app construction, never read from module globals).
       ``OAuthClient`` builds the authorization URL, exchanges the code for an
       access token and fetches the user profile over httpx.
Who:   routes/auth.py.

Flow:
    /auth/{provider}/login    generate_state_token() → session → authorization_url()
    /auth/callback            exchange_code() → fetch_profile() → session

Failures of the last two steps raise OAuthExchangeError / OAuthProfileError,
which the callback route turns into a redirect back to /login.
"""

import logging
import secrets
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode

import httpx
from pydantic import ValidationError as PydanticValidationError

from crud.config import Settings
from crud.exceptions import OAuthExchangeError, OAuthProfileError
from crud.schemas.auth import LoggedInUser

logger = logging.getLogger(__name__)

# Random bytes in a state token; hex encoding doubles the length
STATE_TOKEN_BYTES = 32

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_SCOPES = (
    "https://www.googleapis.com/auth/userinfo.profile",
    "https://www.googleapis.com/auth/userinfo.email",
)


def generate_state_token() -> str:
    """64 hex characters from a CSPRNG."""
    return secrets.token_hex(STATE_TOKEN_BYTES)


@dataclass(frozen=True)
class OAuthProviderConfig:
    """Everything needed to run the authorization-code flow for one provider."""

    name: str
    client_id: str
    client_secret: str
    redirect_url: str
    auth_url: str
    token_url: str
    userinfo_url: str
    scopes: Tuple[str, ...]
    request_timeout: float = 10.0

    @classmethod
    def google(cls, config: Settings) -> "OAuthProviderConfig":
        return cls(
            name="google",
            client_id=config.google_client_id,
            client_secret=config.google_client_secret,
            redirect_url=config.oauth_redirect_url,
            auth_url=GOOGLE_AUTH_URL,
            token_url=GOOGLE_TOKEN_URL,
            userinfo_url=GOOGLE_USERINFO_URL,
            scopes=GOOGLE_SCOPES,
            request_timeout=config.oauth_http_timeout,
        )


def build_provider_registry(config: Settings) -> Dict[str, OAuthProviderConfig]:
    """Providers available under /auth/{provider}/login, keyed by name."""
    google = OAuthProviderConfig.google(config)
    return {google.name: google}


class OAuthClient:
    """
    OAuth client for one provider.

    Reuses ``http_client`` when one is supplied (connection pooling, test
    transports); otherwise opens a short-lived client per call.
    """

    def __init__(
        self,
        config: OAuthProviderConfig,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config
        self._shared_client = http_client

    def authorization_url(self, state: str) -> str:
        """Provider consent URL carrying ``state`` and requesting offline access."""
        params = {
            "access_type": "offline",
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_url,
            "response_type": "code",
            "scope": " ".join(self.config.scopes),
            "state": state,
        }
        return f"{self.config.auth_url}?{urlencode(params)}"

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        if self._shared_client is not None:
            return await self._shared_client.request(method, url, **kwargs)
        async with httpx.AsyncClient(timeout=self.config.request_timeout) as client:
            return await client.request(method, url, **kwargs)

    async def exchange_code(self, code: str) -> str:
        """
        Exchange an authorization code for an access token.

        Raises:
            OAuthExchangeError: transport failure, non-200 status, or a
                response without ``access_token``.
        """
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.config.redirect_url,
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
        }
        try:
            response = await self._send(
                "POST",
                self.config.token_url,
                data=data,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise OAuthExchangeError(
                context={"provider": self.config.name, "error": type(e).__name__}
            ) from e

        if response.status_code != 200:
            raise OAuthExchangeError(
                context={"provider": self.config.name, "status_code": response.status_code}
            )

        try:
            token = response.json().get("access_token")
        except (ValueError, AttributeError) as e:
            raise OAuthExchangeError(
                message="OAuth token response was not valid JSON",
                context={"provider": self.config.name},
            ) from e

        if not token or not isinstance(token, str):
            raise OAuthExchangeError(
                message="OAuth token response had no access_token",
                context={"provider": self.config.name},
            )
        return token

    async def fetch_profile(self, access_token: str) -> LoggedInUser:
        """
        Fetch the user profile with a bearer token.

        Raises:
            OAuthProfileError: transport failure, non-200 status, unparseable
                body, or a profile missing its id or email.
        """
        try:
            response = await self._send(
                "GET",
                self.config.userinfo_url,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as e:
            raise OAuthProfileError(
                context={"provider": self.config.name, "error": type(e).__name__}
            ) from e

        if response.status_code != 200:
            raise OAuthProfileError(
                message=f"Userinfo endpoint returned status {response.status_code}",
                context={"provider": self.config.name, "status_code": response.status_code},
            )

        try:
            profile = LoggedInUser.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            raise OAuthProfileError(
                message="Could not parse user profile",
                context={"provider": self.config.name},
            ) from e

        if not profile.id or not profile.email:
            raise OAuthProfileError(
                message="User profile missing required fields",
                context={"provider": self.config.name},
            )
        return profile
