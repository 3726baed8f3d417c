import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from nomadly.core.settings import Settings
from nomadly.db.crud import get_user_by_email, get_user_by_id
from nomadly.db.models import User
from nomadly.db.session import get_session

logger = logging.getLogger(__name__)

settings = Settings()

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return pwd_context.verify(plain, hashed)
    except (ValueError, TypeError) as e:
        logger.error(f"Password verification error: {e}")
        return False


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def password_problems(password: str) -> list:
    """Reasons a password is too weak; empty when acceptable"""
    problems = []
    if len(password) < settings.PASSWORD_MIN_LENGTH:
        problems.append(f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters")
    if not any(c.isupper() for c in password):
        problems.append("Password must contain at least one uppercase letter")
    if not any(c.isdigit() for c in password):
        problems.append("Password must contain at least one number")
    return problems


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[UUID]:
    """User id carried by a valid access token, else None"""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT decode error: {e}")
        return None

    if payload.get("type") != "access" or not payload.get("sub"):
        logger.warning("Invalid token payload")
        return None
    try:
        return UUID(payload["sub"])
    except (ValueError, TypeError):
        return None


async def authenticate_user(email: str, password: str, session: AsyncSession) -> Optional[User]:
    user = await get_user_by_email(session, email)
    if not user:
        logger.warning("Authentication failed: user not found")
        return None
    if not verify_password(password, user.password_hash):
        logger.warning(f"Authentication failed: invalid password for user {user.id}")
        return None
    return user


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    session: AsyncSession = Depends(get_session),
) -> User:
    """Resolve the bearer token into a user"""
    credentials_exc = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Authentication required",
        headers={"WWW-Authenticate": "Bearer"},
    )

    user_id = decode_access_token(token)
    if user_id is None:
        raise credentials_exc

    user = await get_user_by_id(session, user_id)
    if not user:
        logger.warning(f"User not found for token: {user_id}")
        raise credentials_exc
    return user
