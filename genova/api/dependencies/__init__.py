# genova/api/dependencies/__init__.py
"""
Central export point for all dependencies.
"""

from .auth import get_current_active_user, get_current_user
from .database import get_db
from .services import (
    get_attendance_service,
    get_clock,
    get_code_store,
    get_consortium_service,
    get_notification_service,
    get_session_service,
    get_settlement_service,
    get_wallet_service,
)

__all__ = [
    # Auth
    "get_current_user",
    "get_current_active_user",
    # Database
    "get_db",
    # Services
    "get_attendance_service",
    "get_clock",
    "get_code_store",
    "get_consortium_service",
    "get_notification_service",
    "get_session_service",
    "get_settlement_service",
    "get_wallet_service",
]
