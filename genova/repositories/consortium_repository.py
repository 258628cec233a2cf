# genova/repositories/consortium_repository.py
"""Consortium membership access."""

import logging
from typing import List

from sqlalchemy.orm import Session

from ..models.consortium import Consortium, ConsortiumMember
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ConsortiumRepository(BaseRepository[Consortium]):
    def __init__(self, db: Session):
        super().__init__(db, Consortium)

    def get_members(self, consortium_id: str) -> List[ConsortiumMember]:
        query = (
            self.db.query(ConsortiumMember)
            .filter(ConsortiumMember.consortium_id == consortium_id)
            .order_by(ConsortiumMember.joined_at.asc(), ConsortiumMember.id.asc())
        )
        return self._execute_query(query)

    def is_member(self, consortium_id: str, tutor_id: str) -> bool:
        return (
            self.db.query(ConsortiumMember.id)
            .filter(
                ConsortiumMember.consortium_id == consortium_id,
                ConsortiumMember.tutor_id == tutor_id,
            )
            .first()
            is not None
        )
