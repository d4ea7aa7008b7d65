"""
CRUD App: Users Route Handlers
==============================

What:  The users resource. Creation comes from the HTML form on the index
       page; everything else is JSON.
Who:   Browser form posts and API clients holding a session cookie.

All routes sit behind the authentication gate (router-level dependency).
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from crud.auth.dependencies import require_login
from crud.database import get_db_session
from crud.schemas.common import ErrorResponse, MessageResponse
from crud.schemas.user import UserResponse, UserUpdate
from crud.services.user_service import user_service
from crud.session import FlashKind, SessionStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Users"], dependencies=[Depends(require_login)])


@router.post(
    "/users",
    status_code=302,
    response_class=RedirectResponse,
    responses={
        400: {"description": "Invalid form data", "model": ErrorResponse},
        409: {"description": "Email already registered", "model": ErrorResponse},
    },
    summary="Create a user from the index page form",
)
async def create_user(
    request: Request,
    name: str = Form(default=""),
    email: str = Form(default=""),
    phone: str = Form(default=""),
    db: AsyncSession = Depends(get_db_session),
) -> RedirectResponse:
    user = await user_service.create_user(db, name=name, email=email, phone=phone)
    SessionStore.from_request(request).set_flash(FlashKind.SUCCESS, f"User {user.name} created")
    return RedirectResponse(url="/", status_code=302)


@router.get("/users", response_model=List[UserResponse], summary="List users")
async def list_users(db: AsyncSession = Depends(get_db_session)) -> List[UserResponse]:
    users = await user_service.list_users(db)
    return [UserResponse.model_validate(u) for u in users]


@router.get(
    "/users/{user_id}",
    response_model=UserResponse,
    responses={404: {"description": "User not found", "model": ErrorResponse}},
    summary="Get one user",
)
async def get_user(user_id: int, db: AsyncSession = Depends(get_db_session)) -> UserResponse:
    user = await user_service.get_user(db, user_id)
    return UserResponse.model_validate(user)


@router.put(
    "/users/{user_id}",
    response_model=UserResponse,
    responses={
        400: {"description": "Invalid field value", "model": ErrorResponse},
        404: {"description": "User not found", "model": ErrorResponse},
        409: {"description": "Email already registered", "model": ErrorResponse},
    },
    summary="Partially update a user",
    description="Fields that are omitted or empty keep their current value.",
)
async def update_user(
    user_id: int,
    payload: UserUpdate,
    db: AsyncSession = Depends(get_db_session),
) -> UserResponse:
    user = await user_service.update_user(db, user_id, payload)
    return UserResponse.model_validate(user)


@router.delete(
    "/users/{user_id}",
    response_model=MessageResponse,
    responses={404: {"description": "User not found", "model": ErrorResponse}},
    summary="Soft-delete a user",
)
async def delete_user(user_id: int, db: AsyncSession = Depends(get_db_session)) -> MessageResponse:
    await user_service.delete_user(db, user_id)
    return MessageResponse(message="User deleted")
