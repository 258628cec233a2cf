# genova/repositories/notification_repository.py
"""In-app notification persistence."""

from typing import Any, Dict, Iterable, List

from sqlalchemy.orm import Session

from ..models.notification import Notification
from .base_repository import BaseRepository


class NotificationRepository(BaseRepository[Notification]):
    def __init__(self, db: Session):
        super().__init__(db, Notification)

    def bulk_create(self, rows: Iterable[Dict[str, Any]]) -> List[Notification]:
        entities = [Notification(**row) for row in rows]
        if entities:
            self.db.add_all(entities)
            self.db.flush()
        return entities

    def list_for_user(self, user_id: str, limit: int = 50) -> List[Notification]:
        query = (
            self._build_query()
            .filter(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
        )
        return self._execute_query(query)
