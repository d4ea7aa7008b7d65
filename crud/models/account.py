"""
CRUD App: Account SQLAlchemy Model
==================================

What:  ORM model for the ``accounts`` table.

Constraints:
    - user_id references users.id with ON UPDATE / ON DELETE CASCADE
    - 0 <= balance <= 999999999.99 (CHECK constraint, mirrored in AccountService)

No ORM relationship is declared to User: async sessions cannot lazy-load,
and the views only ever need the foreign key value.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from crud.database import Base
from crud.models.user import NAME_MAX_LENGTH, utcnow

BALANCE_MAX = 999999999.99


class Account(Base):
    """A named balance held by a user."""

    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", onupdate="CASCADE", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(NAME_MAX_LENGTH), nullable=False)
    # asdecimal=False: handlers and templates work with plain floats
    balance: Mapped[float] = mapped_column(
        Numeric(12, 2, asdecimal=False),
        nullable=False,
        default=0.0,
        server_default=text("0.00"),
    )

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
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        CheckConstraint(
            f"balance >= 0 AND balance <= {BALANCE_MAX}",
            name="ck_accounts_balance_range",
        ),
    )

    def __repr__(self) -> str:
        return f"<Account(id={self.id}, user_id={self.user_id}, balance={self.balance})>"
