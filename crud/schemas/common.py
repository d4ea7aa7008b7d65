"""
CRUD App: Shared Response Schemas
=================================

Every error body is ``{"error": "..."}``; every confirmation is
``{"message": "..."}``. Used as ``responses=`` documentation on routes.
"""

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Example:
        {"error": "User not found"}
    """
    error: str = Field(description="Human-readable error description")


class MessageResponse(BaseModel):
    message: str


class RateLimitResponse(ErrorResponse):
    """Body of a 429 response."""
    retry_after: int = Field(description="Seconds until the current window resets")
