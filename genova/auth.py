# genova/auth.py
"""
Bearer token verification.

Tokens are HS256 JWTs whose ``sub`` claim is the user id. Issuing tokens
belongs to the account service; ``create_access_token`` exists for
internal tooling and tests.
"""

from datetime import datetime, timedelta, timezone
import logging
from typing import Any, Dict, Optional, cast

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import jwt
from jwt import PyJWTError
from sqlalchemy.orm import Session

from .core.config import settings
from .database import get_db
from .models.user import User
from .repositories import RepositoryFactory

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def _credentials_exception(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"message": detail, "code": "UNAUTHORIZED"},
        headers={"WWW-Authenticate": "Bearer"},
    )


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Args:
        data: The claims to encode; ``sub`` must be the user id
        expires_delta: Optional expiration time delta

    Returns:
        str: The encoded JWT token
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode.update({"exp": expire})
    return cast(
        str,
        jwt.encode(
            to_encode,
            settings.secret_key.get_secret_value(),
            algorithm=settings.algorithm,
        ),
    )


def decode_access_token(token: str) -> Dict[str, Any]:
    """Decode and verify a JWT access token; raises ``PyJWTError`` when invalid."""
    payload = jwt.decode(
        token,
        settings.secret_key.get_secret_value(),
        algorithms=[settings.algorithm],
    )
    return cast(Dict[str, Any], payload)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the bearer token to a user row."""
    if credentials is None or not credentials.credentials:
        raise _credentials_exception("Not authenticated")
    try:
        payload = decode_access_token(credentials.credentials)
    except PyJWTError as exc:
        logger.info(f"Rejected bearer token: {exc}")
        raise _credentials_exception()

    user_id = payload.get("sub")
    if not user_id:
        raise _credentials_exception()
    user = RepositoryFactory.create_user_repository(db).get_by_id(user_id, load_relationships=False)
    if user is None:
        raise _credentials_exception()
    return user


def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_active:
        raise _credentials_exception("Inactive user")
    return current_user
