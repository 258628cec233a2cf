# genova/repositories/badge_repository.py
"""Badge catalog and award access."""

from typing import Optional, cast

from sqlalchemy.orm import Session

from ..models.badge import Badge, UserBadge
from .base_repository import BaseRepository


class BadgeRepository(BaseRepository[Badge]):
    def __init__(self, db: Session):
        super().__init__(db, Badge)

    def get_by_code(self, code: str) -> Optional[Badge]:
        return cast(Optional[Badge], self.db.query(Badge).filter(Badge.code == code).first())

    def get_award(self, user_id: str, badge_id: str) -> Optional[UserBadge]:
        return cast(
            Optional[UserBadge],
            self.db.query(UserBadge)
            .filter(UserBadge.user_id == user_id, UserBadge.badge_id == badge_id)
            .first(),
        )

    def create_award(self, user_id: str, badge_id: str) -> UserBadge:
        award = UserBadge(user_id=user_id, badge_id=badge_id)
        self.db.add(award)
        self.db.flush()
        return award
