"""
CRUD App: Session Store
=======================

What:  Typed accessor over the signed cookie session.
How:   Starlette's SessionMiddleware decodes the cookie into ``request.session``
       (a plain dict) and re-signs it on the way out. SessionStore wraps that
       dict so the rest of the code never touches raw keys.
Who:   Auth routes (login, callback, logout), the authentication gate, pages.

Session keys:
    loggedInUser    LoggedInUser as a JSON object
    stateToken      OAuth state token, single use
    oauthProvider   provider the state token was issued for
    flashError / flashSuccess / flashWarning / flashInfo
                    one-shot messages, removed when read

Every write is persisted when the response is sent; there is no explicit save.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Any, MutableMapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from starlette.requests import HTTPConnection

from crud.exceptions import SessionError
from crud.schemas.auth import LoggedInUser

logger = logging.getLogger(__name__)

LOGGED_IN_USER_KEY = "loggedInUser"
STATE_TOKEN_KEY = "stateToken"
OAUTH_PROVIDER_KEY = "oauthProvider"


class FlashKind(str, enum.Enum):
    ERROR = "flashError"
    SUCCESS = "flashSuccess"
    WARNING = "flashWarning"
    INFO = "flashInfo"


@dataclass(frozen=True)
class FlashMessages:
    """All pending flash messages; empty string when a kind has none."""
    error: str = ""
    success: str = ""
    warning: str = ""
    info: str = ""


class SessionStore:
    """
    Typed view of one client's session.

    Example:
        store = SessionStore.from_request(request)
        store.set_logged_in_user({"id": "u1", "email": "a@b.com"})
        assert store.is_logged_in()
    """

    def __init__(self, data: MutableMapping[str, Any]):
        self._data = data

    @classmethod
    def from_request(cls, request: HTTPConnection) -> "SessionStore":
        """
        Raises:
            SessionError: SessionMiddleware is not installed for this request.
        """
        if "session" not in request.scope:
            raise SessionError(
                "Session unavailable",
                context={"path": request.url.path},
            )
        return cls(request.session)

    # ── Logged-in User ────────────────────────────────────────────────────

    def set_logged_in_user(self, user: Union[LoggedInUser, dict]) -> None:
        if not isinstance(user, LoggedInUser):
            user = LoggedInUser.model_validate(user)
        self._data[LOGGED_IN_USER_KEY] = user.model_dump()

    def get_logged_in_user(self) -> LoggedInUser:
        """
        The stored identity, or an empty LoggedInUser when nobody is logged in.

        A stored value that no longer decodes is dropped and treated as absent.
        """
        raw = self._data.get(LOGGED_IN_USER_KEY)
        if raw is None:
            return LoggedInUser()
        try:
            return LoggedInUser.model_validate(raw)
        except PydanticValidationError:
            logger.warning("Discarding undecodable session user entry")
            self._data.pop(LOGGED_IN_USER_KEY, None)
            return LoggedInUser()

    def delete_logged_in_user(self) -> None:
        self._data.pop(LOGGED_IN_USER_KEY, None)

    def is_logged_in(self) -> bool:
        return self.get_logged_in_user().id != ""

    # ── OAuth State Token ─────────────────────────────────────────────────

    def set_state_token(self, token: str, provider: Optional[str] = None) -> None:
        self._data[STATE_TOKEN_KEY] = token
        if provider:
            self._data[OAUTH_PROVIDER_KEY] = provider
        else:
            self._data.pop(OAUTH_PROVIDER_KEY, None)

    def get_state_token(self) -> str:
        token = self._data.get(STATE_TOKEN_KEY)
        return token if isinstance(token, str) else ""

    def get_oauth_provider(self) -> str:
        provider = self._data.get(OAUTH_PROVIDER_KEY)
        return provider if isinstance(provider, str) else ""

    def delete_state_token(self) -> None:
        self._data.pop(STATE_TOKEN_KEY, None)
        self._data.pop(OAUTH_PROVIDER_KEY, None)

    # ── Flash Messages ────────────────────────────────────────────────────

    def set_flash(self, kind: FlashKind, message: str) -> None:
        self._data[FlashKind(kind).value] = message

    def get_flash(self, kind: FlashKind) -> str:
        """Read and remove one flash message ("" when none is pending)."""
        message = self._data.pop(FlashKind(kind).value, None)
        return message if isinstance(message, str) else ""

    def get_all_flash_messages(self) -> FlashMessages:
        return FlashMessages(
            error=self.get_flash(FlashKind.ERROR),
            success=self.get_flash(FlashKind.SUCCESS),
            warning=self.get_flash(FlashKind.WARNING),
            info=self.get_flash(FlashKind.INFO),
        )
