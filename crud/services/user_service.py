"""
CRUD App: User Service
======================

What:  Business logic for the users resource: validation, random id
       assignment, partial updates and soft delete.
How:   Stateless methods receiving the request's AsyncSession. Writes are
       flushed here and committed by the get_db_session dependency.
Who:   routes/users.py and routes/pages.py.

Validation rules (after trimming whitespace):
    name   required, at most 100 characters
    email  required, at most 255 characters, contains "@" and "."
    phone  required, at most 20 characters
"""

import logging
import secrets
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from crud.exceptions import DatabaseError, NotFoundError, ValidationError
from crud.models.user import (
    EMAIL_MAX_LENGTH,
    NAME_MAX_LENGTH,
    PHONE_MAX_LENGTH,
    USER_ID_MAX,
    USER_ID_MIN,
    User,
)
from crud.schemas.user import UserUpdate
from crud.services.integrity import classify_integrity_error

logger = logging.getLogger(__name__)

# Attempts at drawing an unused random id before giving up
MAX_ID_ATTEMPTS = 10


# ── Input Validation ──────────────────────────────────────────────────────

def validate_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required", field="name")
    if len(name) > NAME_MAX_LENGTH:
        raise ValidationError(
            f"name must be less than {NAME_MAX_LENGTH} characters", field="name"
        )
    return name


def validate_email(email: str) -> str:
    email = (email or "").strip()
    if not email:
        raise ValidationError("email is required", field="email")
    if len(email) > EMAIL_MAX_LENGTH:
        raise ValidationError(
            f"email must be less than {EMAIL_MAX_LENGTH} characters", field="email"
        )
    if "@" not in email or "." not in email:
        raise ValidationError("invalid email format", field="email")
    return email


def validate_phone(phone: str) -> str:
    phone = (phone or "").strip()
    if not phone:
        raise ValidationError("phone is required", field="phone")
    if len(phone) > PHONE_MAX_LENGTH:
        raise ValidationError(
            f"phone must be less than {PHONE_MAX_LENGTH} characters", field="phone"
        )
    return phone


def new_user_id() -> int:
    """Random id in [USER_ID_MIN, USER_ID_MAX], drawn from a CSPRNG."""
    return USER_ID_MIN + secrets.randbelow(USER_ID_MAX - USER_ID_MIN + 1)


class UserService:
    """
    Business logic layer for user records.

    Soft-deleted users are invisible to every read; their ids and emails stay
    reserved.
    """

    async def _allocate_id(self, db: AsyncSession) -> int:
        for _ in range(MAX_ID_ATTEMPTS):
            candidate = new_user_id()
            if await db.get(User, candidate) is None:
                return candidate
            logger.debug("User id %d already taken, drawing another", candidate)
        raise DatabaseError(
            message="Could not create user",
            context={"reason": "user id space exhausted", "attempts": MAX_ID_ATTEMPTS},
        )

    async def create_user(
        self, db: AsyncSession, name: str, email: str, phone: str
    ) -> User:
        """
        Validate and insert a new user.

        Raises:
            ValidationError: a field fails validation
            ConflictError: the email is already registered
            DatabaseError: any other persistence failure
        """
        name = validate_name(name)
        email = validate_email(email)
        phone = validate_phone(phone)

        try:
            user = User(id=await self._allocate_id(db), name=name, email=email, phone=phone)
            db.add(user)
            await db.flush()
        except IntegrityError as e:
            await db.rollback()
            raise classify_integrity_error(e, "create user") from e
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Failed to create user: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not create user",
                context={"original_error": type(e).__name__},
            ) from e

        logger.info("User created: %s (%s) id=%d", user.name, user.email, user.id)
        return user

    async def list_users(self, db: AsyncSession) -> List[User]:
        try:
            result = await db.execute(
                select(User).where(User.deleted_at.is_(None)).order_by(User.created_at, User.id)
            )
        except SQLAlchemyError as e:
            logger.error("Failed to list users: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not retrieve users",
                context={"original_error": type(e).__name__},
            ) from e
        return list(result.scalars().all())

    async def get_user(self, db: AsyncSession, user_id: int) -> User:
        """Raises NotFoundError for unknown and soft-deleted ids."""
        user: Optional[User] = await db.get(User, user_id)
        if user is None or user.deleted_at is not None:
            raise NotFoundError(resource="user", resource_id=str(user_id))
        return user

    async def update_user(self, db: AsyncSession, user_id: int, data: UserUpdate) -> User:
        """
        Apply a partial update. Empty or missing fields are left unchanged;
        the others are validated exactly as on create.
        """
        user = await self.get_user(db, user_id)

        if data.name:
            user.name = validate_name(data.name)
        if data.email:
            user.email = validate_email(data.email)
        if data.phone:
            user.phone = validate_phone(data.phone)

        try:
            await db.flush()
        except IntegrityError as e:
            await db.rollback()
            raise classify_integrity_error(e, "update user") from e

        logger.info("User updated: %s (%s) id=%d", user.name, user.email, user.id)
        return user

    async def delete_user(self, db: AsyncSession, user_id: int) -> None:
        """Soft delete: stamps deleted_at, keeps the row."""
        user = await self.get_user(db, user_id)
        user.deleted_at = datetime.now(timezone.utc)
        await db.flush()
        logger.info("User deleted: id=%d", user_id)


# Singleton instance
user_service = UserService()
