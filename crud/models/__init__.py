"""ORM models. Importing this package registers every table on ``Base.metadata``."""

from crud.models.account import Account
from crud.models.user import User

__all__ = ["Account", "User"]
