"""
CRUD App: Account Form Handlers
===============================

Both endpoints receive the accounts page forms and redirect back to
/accounts on success. Field names follow the HTML form (``user-id``).
Parsing and validation live in AccountService.
"""

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from crud.auth.dependencies import require_login
from crud.database import get_db_session
from crud.schemas.common import ErrorResponse
from crud.services.account_service import account_service
from crud.session import FlashKind, SessionStore

router = APIRouter(tags=["Accounts"], dependencies=[Depends(require_login)])

FORM_ERRORS = {
    400: {"description": "Invalid form data", "model": ErrorResponse},
}


@router.post(
    "/accounts",
    status_code=302,
    response_class=RedirectResponse,
    responses=FORM_ERRORS,
    summary="Create an account",
)
async def create_account(
    request: Request,
    user_id: str = Form(default="", alias="user-id"),
    name: str = Form(default=""),
    balance: str = Form(default=""),
    db: AsyncSession = Depends(get_db_session),
) -> RedirectResponse:
    await account_service.create_account(db, user_id, name, balance)
    SessionStore.from_request(request).set_flash(FlashKind.SUCCESS, "Account created")
    return RedirectResponse(url="/accounts", status_code=302)


@router.post(
    "/accounts/update/{account_id}",
    status_code=302,
    response_class=RedirectResponse,
    responses={**FORM_ERRORS, 404: {"description": "Account not found", "model": ErrorResponse}},
    summary="Update an account",
)
async def update_account(
    request: Request,
    account_id: int,
    user_id: str = Form(default="", alias="user-id"),
    name: str = Form(default=""),
    balance: str = Form(default=""),
    db: AsyncSession = Depends(get_db_session),
) -> RedirectResponse:
    await account_service.update_account(db, account_id, user_id, name, balance)
    SessionStore.from_request(request).set_flash(FlashKind.SUCCESS, "Account updated")
    return RedirectResponse(url="/accounts", status_code=302)
