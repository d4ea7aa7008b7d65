"""
CRUD App: User SQLAlchemy Model
===============================

What:  ORM model for the ``users`` table.
Who:   UserService for CRUD operations, Alembic for schema management.

Table Design:
    - Integer primary key chosen by the service: a random 5-digit
      "account number" (10000-99999) rather than a sequence.
    - email is unique; a duplicate insert surfaces as ConflictError.
    - deleted_at implements soft delete. Reads filter ``deleted_at IS NULL``.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from crud.database import Base

# Bounds of the random public user id
USER_ID_MIN = 10000
USER_ID_MAX = 99999

NAME_MAX_LENGTH = 100
EMAIL_MAX_LENGTH = 255
PHONE_MAX_LENGTH = 20


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """A person who owns zero or more accounts."""

    __tablename__ = "users"

    # Assigned explicitly by UserService; never autoincremented
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)

    name: Mapped[str] = mapped_column(String(NAME_MAX_LENGTH), nullable=False)
    email: Mapped[str] = mapped_column(
        String(EMAIL_MAX_LENGTH), nullable=False, unique=True, index=True
    )
    phone: Mapped[str] = mapped_column(String(PHONE_MAX_LENGTH), nullable=False)

    # ── Timestamps ────────────────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email!r})>"
