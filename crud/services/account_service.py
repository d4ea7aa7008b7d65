"""
CRUD App: Account Service
=========================

What:  Business logic for accounts submitted from the accounts page forms.
How:   Form fields arrive as raw strings; parsing and validation happen here
       so every route gets identical error messages.
Who:   routes/accounts.py and routes/pages.py.

Form contract:
    user-id   positive integer of an existing, non-deleted user
    name      required, at most 100 characters
    balance   decimal in [0, 999999999.99]; blank means 0 on create only
"""

import logging
import math
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from crud.exceptions import DatabaseError, NotFoundError, ValidationError
from crud.models.account import BALANCE_MAX, Account
from crud.models.user import User
from crud.services.integrity import classify_integrity_error
from crud.services.user_service import validate_name

logger = logging.getLogger(__name__)


def parse_positive_id(raw: Optional[str], message: str, field: str) -> int:
    try:
        value = int((raw or "").strip())
    except ValueError:
        raise ValidationError(message, field=field)
    if value <= 0:
        raise ValidationError(message, field=field)
    return value


def parse_balance(raw: Optional[str], required: bool) -> float:
    """
    Parse and range-check a balance form value.

    Args:
        raw: The submitted string (may be None or blank)
        required: When False, a blank value means 0.00
    """
    text = (raw or "").strip()
    if not text:
        if required:
            raise ValidationError("Invalid balance data", field="balance")
        return 0.0

    try:
        balance = float(text)
    except ValueError:
        raise ValidationError("Invalid balance data", field="balance")
    if not math.isfinite(balance):
        raise ValidationError("Invalid balance data", field="balance")

    if balance < 0:
        raise ValidationError("balance cannot be negative", field="balance")
    if balance > BALANCE_MAX:
        raise ValidationError(f"balance cannot exceed {BALANCE_MAX:.2f}", field="balance")
    return round(balance, 2)


class AccountService:
    """Business logic layer for account records."""

    async def _require_user(self, db: AsyncSession, user_id: int) -> None:
        user = await db.get(User, user_id)
        if user is None or user.deleted_at is not None:
            raise ValidationError("Invalid user id", field="user_id")

    async def create_account(
        self,
        db: AsyncSession,
        raw_user_id: Optional[str],
        name: Optional[str],
        raw_balance: Optional[str],
    ) -> Account:
        """
        Raises:
            ValidationError: bad user id, unknown user, bad name or balance
            DatabaseError: any other persistence failure
        """
        user_id = parse_positive_id(raw_user_id, "Invalid user id", "user_id")
        name = validate_name(name)
        balance = parse_balance(raw_balance, required=False)
        await self._require_user(db, user_id)

        account = Account(user_id=user_id, name=name, balance=balance)
        try:
            db.add(account)
            await db.flush()
        except IntegrityError as e:
            await db.rollback()
            raise classify_integrity_error(e, "create account") from e
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Failed to create account: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not create account",
                context={"original_error": type(e).__name__},
            ) from e

        logger.info("Account created: id=%d user_id=%d", account.id, user_id)
        return account

    async def list_accounts(self, db: AsyncSession) -> List[Account]:
        """Non-deleted accounts, newest first."""
        try:
            result = await db.execute(
                select(Account)
                .where(Account.deleted_at.is_(None))
                .order_by(Account.created_at.desc(), Account.id.desc())
            )
        except SQLAlchemyError as e:
            logger.error("Failed to list accounts: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not retrieve accounts",
                context={"original_error": type(e).__name__},
            ) from e
        return list(result.scalars().all())

    async def update_account(
        self,
        db: AsyncSession,
        account_id: int,
        raw_user_id: Optional[str],
        name: Optional[str],
        raw_balance: Optional[str],
    ) -> Account:
        """
        Replace owner, name and balance of an existing account.

        Unlike create, balance is mandatory here.
        """
        if account_id <= 0:
            raise ValidationError("Invalid account id", field="id")
        user_id = parse_positive_id(raw_user_id, "Invalid user id", "user_id")
        name = validate_name(name)
        balance = parse_balance(raw_balance, required=True)

        account = await db.get(Account, account_id)
        if account is None or account.deleted_at is not None:
            raise NotFoundError(resource="account", resource_id=str(account_id))
        await self._require_user(db, user_id)

        account.user_id = user_id
        account.name = name
        account.balance = balance
        try:
            await db.flush()
        except IntegrityError as e:
            await db.rollback()
            raise classify_integrity_error(e, "update account") from e

        logger.info("Account updated: id=%d user_id=%d", account.id, user_id)
        return account


# Singleton instance
account_service = AccountService()
