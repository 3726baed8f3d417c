from datetime import timedelta

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.ext.asyncio import AsyncSession

from nomadly.api.deps import limiter, settings
from nomadly.api.schemas import RegisterRequest, Token, UserRead
from nomadly.core.security import (
    authenticate_user,
    create_access_token,
    get_password_hash,
    password_problems,
)
from nomadly.db.crud import create_user, get_user_by_email
from nomadly.db.session import get_session

# Set up logging
logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Weak password or email already registered"},
    },
    summary="User registration",
)
@limiter.limit(settings.RATE_LIMIT_WRITE)
async def register(
    request: Request,
    user_data: RegisterRequest,
    session: AsyncSession = Depends(get_session),
):
    problems = password_problems(user_data.password)
    if problems:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=problems[0])

    if await get_user_by_email(session, user_data.email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")

    user = await create_user(
        session,
        email=user_data.email,
        password_hash=get_password_hash(user_data.password),
        name=user_data.name,
    )
    logger.info(
        "user_registration_success",
        user_id=str(user.id),
        ip_address=request.client.host if request.client else None,
    )
    return user


@router.post("/login",
    response_model=Token,
    responses={
        401: {"description": "Invalid credentials"},
        429: {"description": "Rate limit exceeded"},
    },
    summary="User login",
    description="Exchange email (sent as the OAuth2 username) and password for a bearer token",
)
@limiter.limit(settings.RATE_LIMIT_WRITE)
async def login(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    session: AsyncSession = Depends(get_session),
):
    user = await authenticate_user(form_data.username, form_data.password, session)
    if not user:
        logger.warning("user_login_failed")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token = create_access_token(
        {"sub": str(user.id)},
        expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    logger.info("user_login_success", user_id=str(user.id))
    return Token(access_token=access_token, expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60)
