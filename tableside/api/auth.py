"""
Authentication endpoints: sign-up, sign-in and "who am I".
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from tableside.api.deps import get_current_user
from tableside.database import get_db
from tableside.models import User
from tableside.schemas import (
    AuthResponse,
    ErrorResponse,
    SignInRequest,
    SignUpRequest,
    UserResponse,
)
from tableside.services.users import AuthService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post(
    "/signup",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Create Account",
)
async def sign_up(body: SignUpRequest, db: AsyncSession = Depends(get_db)) -> AuthResponse:
    result = await AuthService(db).sign_up(body.name, body.email, body.password)
    return AuthResponse(token=result.token, user=UserResponse.model_validate(result.user))


@router.post(
    "/signin",
    response_model=AuthResponse,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
    summary="Sign In",
)
async def sign_in(body: SignInRequest, db: AsyncSession = Depends(get_db)) -> AuthResponse:
    result = await AuthService(db).sign_in(body.email, body.password)
    return AuthResponse(token=result.token, user=UserResponse.model_validate(result.user))


@router.get("/me", response_model=UserResponse, responses={401: {"model": ErrorResponse}})
async def me(user: User = Depends(get_current_user)) -> UserResponse:
    return UserResponse.model_validate(user)
