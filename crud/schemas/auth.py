"""
CRUD App: Authentication Schemas
================================

What:  The identity stored in the session after a successful OAuth login.
Who:   SessionStore (serialization), OAuthClient (profile parsing),
       the authentication gate (handed to protected handlers).

The identity provider's userinfo payload is parsed straight into
``LoggedInUser``; unknown provider fields are ignored.
"""

from pydantic import BaseModel, Field, field_validator


class LoggedInUser(BaseModel):
    """
    Identity of the logged-in user.

    Stored in the session under ``loggedInUser`` as a JSON object.
    A user counts as logged in only when ``id`` is non-empty.
    """
    id: str = Field(default="", description="Provider subject identifier")
    name: str = Field(default="")
    email: str = Field(default="")
    phone: str = Field(default="")
    picture: str = Field(default="", description="Avatar URL")

    model_config = {"extra": "ignore"}

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: object) -> str:
        """Some providers send numeric subject ids."""
        if v is None:
            return ""
        return str(v)

    @field_validator("name", "email", "phone", "picture", mode="before")
    @classmethod
    def none_to_empty(cls, v: object) -> object:
        return "" if v is None else v
