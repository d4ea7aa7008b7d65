"""
CRUD App: HTML Pages
====================

GET /          users table and "new user" form
GET /accounts  accounts table with create/update forms

Both pages require a session; the logged-in user's profile fills the layout
header and any pending flash messages are shown once.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from sqlalchemy.ext.asyncio import AsyncSession

from crud.auth.dependencies import require_login
from crud.database import get_db_session
from crud.schemas.account import AccountResponse
from crud.schemas.auth import LoggedInUser
from crud.schemas.user import UserResponse
from crud.services.account_service import account_service
from crud.services.user_service import user_service
from crud.session import SessionStore

router = APIRouter(tags=["Pages"], dependencies=[Depends(require_login)])


def _page_context(request: Request, user: LoggedInUser, title: str) -> dict:
    return {
        "title": title,
        "is_logged_in": True,
        "profile": user,
        "flash": SessionStore.from_request(request).get_all_flash_messages(),
    }


@router.get("/", response_class=HTMLResponse, summary="Users page")
async def index(
    request: Request,
    user: LoggedInUser = Depends(require_login),
    db: AsyncSession = Depends(get_db_session),
) -> HTMLResponse:
    users = await user_service.list_users(db)
    context = _page_context(request, user, "Users")
    context["records"] = [UserResponse.model_validate(u) for u in users]
    return request.app.state.templates.TemplateResponse(request, "index.html", context)


@router.get("/accounts", response_class=HTMLResponse, summary="Accounts page")
async def accounts(
    request: Request,
    user: LoggedInUser = Depends(require_login),
    db: AsyncSession = Depends(get_db_session),
) -> HTMLResponse:
    rows = await account_service.list_accounts(db)
    context = _page_context(request, user, "Accounts")
    context["accounts"] = [AccountResponse.model_validate(a) for a in rows]
    return request.app.state.templates.TemplateResponse(request, "accounts.html", context)
