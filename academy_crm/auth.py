import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from jose import jwt as jose_jwt
from sqlalchemy.orm import Session, joinedload

from .config import ACCESS_TOKEN_EXPIRE_MINUTES, JWT_ALGORITHM, SECRET_KEY
from .database import get_db
from .errors import ForbiddenError, UnauthorizedError
from .models import User

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def create_access_token(user: User, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a signed access token for a user

    Args:
        user: The authenticated user
        expires_delta: Token lifetime (default ACCESS_TOKEN_EXPIRE_MINUTES)
    """
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {"sub": user.id, "role": user.role, "email": user.email, "exp": expire}
    return jose_jwt.encode(to_encode, SECRET_KEY, algorithm=JWT_ALGORITHM)


def verify_access_token(token: str) -> Optional[dict[str, Any]]:
    """
    Verify and decode an access token

    Returns:
        Decoded payload if valid, None if invalid or expired
    """
    try:
        return jose_jwt.decode(token, SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        return None


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    if not credentials:
        raise UnauthorizedError()

    payload = verify_access_token(credentials.credentials)
    if not payload or not payload.get("sub"):
        raise UnauthorizedError("Invalid or expired token")

    user = (
        db.query(User)
        .options(joinedload(User.instructor))
        .filter(User.id == payload["sub"])
        .first()
    )
    if not user or not user.is_active:
        logger.warning(f"⚠️ Token for unknown or inactive user: {payload['sub']}")
        raise UnauthorizedError("User not found or inactive")

    return user


def require_roles(*roles: str):
    """Dependency factory restricting an endpoint to the given roles"""

    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            logger.warning(f"⚠️ User {current_user.id} ({current_user.role}) denied, requires {roles}")
            raise ForbiddenError()
        return current_user

    return role_checker


manager_or_admin = require_roles("admin", "manager")
admin_only = require_roles("admin")


def is_instructor(user: User) -> bool:
    return user.role == "instructor"


def instructor_id_for(user: User) -> Optional[str]:
    """Instructor record linked to a user, if any"""
    return user.instructor.id if user.instructor else None
