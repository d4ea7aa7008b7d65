"""Account response schema (rendered on the accounts page)."""

from datetime import datetime

from pydantic import BaseModel


class AccountResponse(BaseModel):
    id: int
    user_id: int
    name: str
    balance: float
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
