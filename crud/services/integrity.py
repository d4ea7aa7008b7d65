"""
Translation of database constraint violations into application exceptions.

Drivers word their errors differently (asyncpg: "duplicate key value violates
unique constraint", SQLite: "UNIQUE constraint failed"), so classification is
by lower-cased substring of the driver message.
"""

import logging

from sqlalchemy.exc import IntegrityError

from crud.exceptions import ConflictError, CrudAppError, DatabaseError, ValidationError

logger = logging.getLogger(__name__)


def classify_integrity_error(exc: IntegrityError, operation: str) -> CrudAppError:
    """
    Map an IntegrityError to the exception the client should see.

        unique / duplicate   → ConflictError (409)
        foreign key          → ValidationError "Invalid user id" (400)
        check constraint     → ValidationError (400)
        anything else        → DatabaseError (500, detail logged only)
    """
    detail = str(exc.orig if exc.orig is not None else exc).lower()

    if "unique" in detail or "duplicate" in detail:
        return ConflictError(
            message="User with this email already exists",
            context={"operation": operation},
        )
    if "foreign key" in detail:
        return ValidationError(message="Invalid user id", field="user_id")
    if "check constraint" in detail or "ck_accounts_balance_range" in detail:
        return ValidationError(message="Balance out of range", field="balance")

    logger.error("Unclassified integrity error during %s: %s", operation, detail)
    return DatabaseError(
        message=f"Could not {operation}",
        context={"operation": operation, "original_error": type(exc.orig).__name__},
    )
