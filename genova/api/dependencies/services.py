# genova/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

This module provides factory functions that create service instances
with their required dependencies properly injected. Tests override
``get_clock`` and ``get_code_store`` to pin time and isolate credentials.
"""

import logging

from fastapi import Depends
from sqlalchemy.orm import Session

from ...core.timezone_utils import Clock, utc_now
from ...services.attendance_service import AttendanceService
from ...services.availability_checker import AvailabilityChecker
from ...services.checkin_codes import CheckInCodeStore, get_checkin_code_store
from ...services.consortium_service import ConsortiumService
from ...services.notification_service import NotificationService
from ...services.session_service import SessionService
from ...services.settlement_service import SettlementService
from ...services.wallet_service import WalletService
from .database import get_db

logger = logging.getLogger(__name__)


def get_clock() -> Clock:
    """Wall clock used by every service; overridden in tests."""
    return utc_now


def get_code_store() -> CheckInCodeStore:
    """Process-wide check-in credential store."""
    return get_checkin_code_store()


def get_notification_service(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> NotificationService:
    return NotificationService(db, clock)


def get_wallet_service(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> WalletService:
    return WalletService(db, clock)


def get_settlement_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    wallet_service: WalletService = Depends(get_wallet_service),
    notification_service: NotificationService = Depends(get_notification_service),
) -> SettlementService:
    """
    Get settlement service instance with all dependencies.

    Args:
        db: Database session
        clock: Time source for refund tiers
        wallet_service: Wallet used for holds, payouts and refunds
        notification_service: Payment notifications

    Returns:
        SettlementService instance
    """
    return SettlementService(db, clock, wallet_service, notification_service)


def get_availability_checker(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> AvailabilityChecker:
    return AvailabilityChecker(db, clock=clock)


def get_session_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    availability_checker: AvailabilityChecker = Depends(get_availability_checker),
    notification_service: NotificationService = Depends(get_notification_service),
    settlement_service: SettlementService = Depends(get_settlement_service),
) -> SessionService:
    """
    Get session service instance with all dependencies.

    Args:
        db: Database session
        clock: Time source
        availability_checker: Tutor conflict detection
        notification_service: Session notifications
        settlement_service: Refunds on cancellation, settlement on completion

    Returns:
        SessionService instance
    """
    return SessionService(
        db,
        clock,
        availability_checker=availability_checker,
        notification_service=notification_service,
        settlement_service=settlement_service,
    )


def get_attendance_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    code_store: CheckInCodeStore = Depends(get_code_store),
    settlement_service: SettlementService = Depends(get_settlement_service),
) -> AttendanceService:
    return AttendanceService(
        db,
        clock,
        code_store=code_store,
        settlement_service=settlement_service,
    )


def get_consortium_service(
    db: Session = Depends(get_db), clock: Clock = Depends(get_clock)
) -> ConsortiumService:
    return ConsortiumService(db, clock)
