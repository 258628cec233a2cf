# genova/api/dependencies/auth.py
"""
Authentication dependencies.

Routes depend on ``get_current_active_user``; the bearer token is
resolved against the request's own database session.
"""

from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from ...auth import (
    bearer_scheme,
    get_current_active_user as auth_get_current_active_user,
    get_current_user as auth_get_current_user,
)
from ...models.user import User
from .database import get_db


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    return auth_get_current_user(credentials, db)


def get_current_active_user(current_user: User = Depends(get_current_user)) -> User:
    return auth_get_current_active_user(current_user)
