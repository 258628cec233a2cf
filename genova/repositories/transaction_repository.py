# genova/repositories/transaction_repository.py
"""Payment hold and wallet transaction access."""

from datetime import datetime
import logging
from typing import List, Optional, cast

from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..core.exceptions import RepositoryException
from ..models.transaction import Transaction, TransactionStatus, TransactionType
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class TransactionRepository(BaseRepository[Transaction]):
    def __init__(self, db: Session):
        super().__init__(db, Transaction)

    def get_pending_hold(self, session_id: str, payer_id: str) -> Optional[Transaction]:
        return cast(
            Optional[Transaction],
            self.db.query(Transaction)
            .filter(
                Transaction.session_id == session_id,
                Transaction.payer_id == payer_id,
                Transaction.transaction_type == TransactionType.SESSION_PAYMENT.value,
                Transaction.status == TransactionStatus.PENDING.value,
            )
            .order_by(Transaction.created_at.asc(), Transaction.id.asc())
            .first(),
        )

    def list_pending_holds(self, session_id: str) -> List[Transaction]:
        query = (
            self.db.query(Transaction)
            .filter(
                Transaction.session_id == session_id,
                Transaction.transaction_type == TransactionType.SESSION_PAYMENT.value,
                Transaction.status == TransactionStatus.PENDING.value,
            )
            .order_by(Transaction.created_at.asc(), Transaction.id.asc())
        )
        return self._execute_query(query)

    def list_for_user(self, user_id: str, limit: int = 50) -> List[Transaction]:
        query = (
            self.db.query(Transaction)
            .options(joinedload(Transaction.session))
            .filter(or_(Transaction.payer_id == user_id, Transaction.payee_id == user_id))
            .order_by(Transaction.created_at.desc(), Transaction.id.desc())
            .limit(limit)
        )
        return self._execute_query(query)

    def transition_if_pending(
        self, transaction_id: str, status: TransactionStatus, settled_at: datetime
    ) -> bool:
        """
        Move a PENDING transaction to ``status``.

        Returns False if it was already settled by another writer.
        """
        try:
            result = self.db.execute(
                update(Transaction)
                .where(
                    Transaction.id == transaction_id,
                    Transaction.status == TransactionStatus.PENDING.value,
                )
                .values(status=status.value, settled_at=settled_at)
                .execution_options(synchronize_session=False)
            )
            self.db.flush()
            return bool(result.rowcount)
        except SQLAlchemyError as e:
            self.logger.error(f"Error settling transaction {transaction_id}: {str(e)}")
            raise RepositoryException(f"Failed to settle transaction: {str(e)}")
