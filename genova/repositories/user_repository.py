# genova/repositories/user_repository.py
"""User, tutor profile and wallet balance access."""

from decimal import Decimal
import logging
from typing import Optional, cast

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.user import TutorProfile, User
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class UserRepository(BaseRepository[User]):
    def __init__(self, db: Session):
        super().__init__(db, User)

    def get_tutor_profile(self, user_id: str) -> Optional[TutorProfile]:
        return cast(
            Optional[TutorProfile],
            self.db.query(TutorProfile).filter(TutorProfile.user_id == user_id).first(),
        )

    def increment_wallet(self, user_id: str, amount: Decimal) -> bool:
        """Atomically add ``amount`` to the wallet. Returns False if the user is missing."""
        try:
            result = self.db.execute(
                update(User)
                .where(User.id == user_id)
                .values(wallet_balance=User.wallet_balance + amount)
                .execution_options(synchronize_session=False)
            )
            self.db.flush()
            return bool(result.rowcount)
        except SQLAlchemyError as e:
            self.logger.error(f"Error crediting wallet of {user_id}: {str(e)}")
            raise RepositoryException(f"Failed to credit wallet: {str(e)}")

    def decrement_wallet_if_sufficient(self, user_id: str, amount: Decimal) -> bool:
        """Atomically subtract ``amount`` when the balance covers it."""
        try:
            result = self.db.execute(
                update(User)
                .where(User.id == user_id, User.wallet_balance >= amount)
                .values(wallet_balance=User.wallet_balance - amount)
                .execution_options(synchronize_session=False)
            )
            self.db.flush()
            return bool(result.rowcount)
        except SQLAlchemyError as e:
            self.logger.error(f"Error debiting wallet of {user_id}: {str(e)}")
            raise RepositoryException(f"Failed to debit wallet: {str(e)}")

    def get_wallet_balance(self, user_id: str) -> Optional[Decimal]:
        value = self.db.query(User.wallet_balance).filter(User.id == user_id).scalar()
        return Decimal(str(value)) if value is not None else None

    def add_loyalty_points(self, user_id: str, points: int) -> None:
        self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(loyalty_points=User.loyalty_points + points)
            .execution_options(synchronize_session=False)
        )
        self.db.flush()
