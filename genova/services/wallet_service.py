# genova/services/wallet_service.py
"""
Internal wallet.

Credits and debits are single conditional UPDATEs and only flush; the
caller owns the transaction so a payout and the hold it settles commit
together.
"""

from decimal import Decimal
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.exceptions import NotFoundException, ValidationException
from ..core.money import Number, quantize_money
from ..core.timezone_utils import Clock
from ..repositories import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


class WalletService(BaseService):
    def __init__(self, db: Session, clock: Optional[Clock] = None):
        super().__init__(db, clock)
        self.user_repository = RepositoryFactory.create_user_repository(db)

    def credit(self, user_id: str, amount: Number) -> Decimal:
        """Add ``amount`` to the user's wallet and return the credited value."""
        value = quantize_money(amount)
        if value <= 0:
            raise ValidationException("Credit amount must be greater than zero")
        if not self.user_repository.increment_wallet(user_id, value):
            raise NotFoundException(f"User {user_id} not found")
        logger.debug("Credited %s to wallet of %s", value, user_id)
        return value

    def debit(self, user_id: str, amount: Number) -> Decimal:
        """
        Remove ``amount`` from the user's wallet.

        Raises:
            ValidationException: If the amount is not positive or the balance is insufficient
            NotFoundException: If the user does not exist
        """
        value = quantize_money(amount)
        if value <= 0:
            raise ValidationException("Debit amount must be greater than zero")
        if self.user_repository.decrement_wallet_if_sufficient(user_id, value):
            logger.debug("Debited %s from wallet of %s", value, user_id)
            return value
        if self.user_repository.get_wallet_balance(user_id) is None:
            raise NotFoundException(f"User {user_id} not found")
        raise ValidationException(
            "Insufficient wallet balance",
            code="INSUFFICIENT_FUNDS",
            details={"required": str(value)},
        )

    @BaseService.measure_operation("get_wallet_balance")
    def get_balance(self, user_id: str) -> Decimal:
        balance = self.user_repository.get_wallet_balance(user_id)
        if balance is None:
            raise NotFoundException(f"User {user_id} not found")
        return quantize_money(balance)
