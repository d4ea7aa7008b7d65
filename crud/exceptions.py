"""
CRUD App: Custom Exception Hierarchy
====================================

What:  Application-specific exceptions for every failure the request path knows about.
How:   Each exception carries a client-safe message and an optional context dict.
       Global handlers (registered in main.py) turn them into JSON responses.
Who:   Raised by services, the session store, the OAuth client and the auth gate.

Exception Hierarchy:
    CrudAppError (base)
    ├── ValidationError          → 400 Bad Request
    ├── OAuthStateError          → 400 Bad Request (CSRF rejection, never retried)
    ├── NotFoundError            → 404 Not Found
    ├── ConflictError            → 409 Conflict (unique email)
    ├── DatabaseError            → 500 Internal Server Error
    ├── SessionError             → 500 Internal Server Error
    ├── LoginRequiredError       → 302 redirect to /login
    ├── OAuthError               → soft failure, route redirects to /login
    │   ├── OAuthExchangeError
    │   └── OAuthProfileError
    └── ConfigurationError       → fatal at startup

Security:
    ``message`` may be returned to the client. ``context`` is only ever logged.
"""

from typing import Any, Dict, Optional


class CrudAppError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message:  Client-safe error description
        context:  Extra debug info (logged, NOT returned to client)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(CrudAppError):
    """
    Raised when client input fails validation.

    When:    Missing or oversized name/email/phone, malformed ids, negative balance.
    HTTP:    400 Bad Request
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NotFoundError(CrudAppError):
    """
    Raised when a requested record does not exist (or is soft-deleted).

    HTTP:    404 Not Found, body ``{"error": "User not found"}``
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"{resource.capitalize()} not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class ConflictError(CrudAppError):
    """
    Raised when a write violates a unique constraint.

    When:    Creating or updating a user with an email that already exists.
    HTTP:    409 Conflict
    """

    def __init__(
        self,
        message: str = "Record already exists",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(CrudAppError):
    """
    Raised when a database operation fails unexpectedly.

    HTTP:    500 Internal Server Error

    The message returned to the client is always generic; SQL, constraint names
    and driver errors are logged server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class SessionError(CrudAppError):
    """
    Raised when the cookie session cannot be read or modified.

    When:    Session middleware missing from the stack, so there is no
             session to read or modify.
    HTTP:    500 Internal Server Error
    """

    def __init__(
        self,
        message: str = "Session unavailable",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class LoginRequiredError(CrudAppError):
    """
    Raised by the authentication gate for anonymous requests to protected routes.

    HTTP:    302 Found, ``Location: /login``. The route handler never runs.
    """

    def __init__(self, path: str = "", client_ip: str = ""):
        super().__init__(
            message="Login required",
            context={"path": path, "client_ip": client_ip},
        )


class OAuthStateError(CrudAppError):
    """
    Raised when the OAuth callback state does not match the session's state token.

    This is a CSRF rejection: fatal for the request and never retried.
    HTTP:    400 Bad Request, body ``{"error": "Invalid state token"}``
    """

    def __init__(self, context: Optional[Dict[str, Any]] = None):
        super().__init__(message="Invalid state token", context=context)


class OAuthError(CrudAppError):
    """
    Base class for recoverable identity-provider failures.

    The callback route catches these and sends the user back to /login;
    the user can restart the whole flow.
    """


class OAuthExchangeError(OAuthError):
    """Authorization code could not be exchanged for an access token."""

    def __init__(
        self,
        message: str = "OAuth token exchange failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class OAuthProfileError(OAuthError):
    """User profile could not be fetched, parsed, or lacks required fields."""

    def __init__(
        self,
        message: str = "OAuth profile fetch failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class ConfigurationError(CrudAppError):
    """
    Raised when configuration is unusable (e.g. session secret too short).

    Fatal to process startup: the app factory refuses to build the app.
    """

    def __init__(
        self,
        message: str = "Configuration validation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
