# genova/repositories/class_repository.py
"""Study class and membership lookups."""

import logging
from typing import List, Optional, Set

from sqlalchemy.orm import Session

from ..models.study_class import ClassMember, StudyClass
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ClassRepository(BaseRepository[StudyClass]):
    def __init__(self, db: Session):
        super().__init__(db, StudyClass)

    def get_membership(self, class_id: str, student_id: str) -> Optional[ClassMember]:
        return (
            self.db.query(ClassMember)
            .filter(ClassMember.class_id == class_id, ClassMember.student_id == student_id)
            .first()
        )

    def is_active_member(self, class_id: str, student_id: str) -> bool:
        membership = self.get_membership(class_id, student_id)
        return bool(membership and membership.is_active)

    def get_active_member_ids(self, class_id: str) -> List[str]:
        rows = (
            self.db.query(ClassMember.student_id)
            .filter(ClassMember.class_id == class_id, ClassMember.is_active.is_(True))
            .order_by(ClassMember.joined_at.asc(), ClassMember.student_id.asc())
            .all()
        )
        return [row[0] for row in rows]

    def get_class_ids_for_user(self, user_id: str) -> Set[str]:
        """Classes the user belongs to (active membership) or created."""
        member_rows = (
            self.db.query(ClassMember.class_id)
            .filter(ClassMember.student_id == user_id, ClassMember.is_active.is_(True))
            .all()
        )
        created_rows = self.db.query(StudyClass.id).filter(StudyClass.created_by == user_id).all()
        return {row[0] for row in member_rows} | {row[0] for row in created_rows}

    def get_active_class_ids_for_student(self, student_id: str) -> List[str]:
        rows = (
            self.db.query(ClassMember.class_id)
            .filter(ClassMember.student_id == student_id, ClassMember.is_active.is_(True))
            .all()
        )
        return [row[0] for row in rows]
