"""
CRUD App: User Request/Response Schemas
=======================================

What:  Pydantic models for the JSON side of the users resource.
Who:   Route handlers (response serialization, PUT body parsing).

Creation arrives as an HTML form and is validated by UserService; only the
JSON update body needs a request model here.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class UserResponse(BaseModel):
    """
    What:  Public representation of a user row.
    Who:   GET /users, GET /users/{id}, PUT /users/{id}.
    """
    id: int = Field(description="Random 5-digit user number")
    name: str
    email: str
    phone: str
    created_at: datetime = Field(description="Creation timestamp (UTC)")
    updated_at: datetime = Field(description="Last modification timestamp (UTC)")

    model_config = {"from_attributes": True}


class UserUpdate(BaseModel):
    """
    Partial update body for PUT /users/{id}.

    A field that is absent, null or an empty string leaves the stored value
    unchanged. Non-empty values are trimmed and validated by UserService.
    """
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
