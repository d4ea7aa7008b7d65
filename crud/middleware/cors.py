"""
CORS policy for Starlette's CORSMiddleware.

Debug shortcut: when DEBUG is on and the allow-list is exactly the default
single entry, every origin is allowed. Any explicit ALLOWED_ORIGINS setting
turns the shortcut off.
"""

from typing import Any, Dict

from crud.config import DEFAULT_ALLOWED_ORIGIN, Settings

ALLOWED_METHODS = ["GET", "POST", "PUT", "DELETE", "OPTIONS"]
ALLOWED_HEADERS = ["Origin", "Content-Type", "Authorization", "X-Requested-With"]
EXPOSED_HEADERS = [
    "Content-Length",
    "X-RateLimit-Limit",
    "X-RateLimit-Remaining",
    "X-RateLimit-Reset",
]
PREFLIGHT_MAX_AGE = 12 * 60 * 60


def cors_options(config: Settings) -> Dict[str, Any]:
    """Keyword arguments for ``app.add_middleware(CORSMiddleware, ...)``."""
    origins = config.allowed_origins_list
    if config.debug and origins == [DEFAULT_ALLOWED_ORIGIN]:
        origins = ["*"]

    return {
        "allow_origins": origins,
        "allow_methods": ALLOWED_METHODS,
        "allow_headers": ALLOWED_HEADERS,
        "expose_headers": EXPOSED_HEADERS,
        "allow_credentials": True,
        "max_age": PREFLIGHT_MAX_AGE,
    }
