# genova/models/study_class.py
"""Study classes and their student memberships."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..core.ulid_helper import generate_ulid
from ..database import Base


class StudyClass(Base):
    """A persistent study group; the booking unit for sessions."""

    __tablename__ = "classes"

    id = Column(String(26), primary_key=True, index=True, default=generate_ulid)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    subject = Column(String(100), nullable=True)
    education_level = Column(String(50), nullable=True)
    created_by = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    creator = relationship("User", foreign_keys=[created_by])
    members = relationship("ClassMember", back_populates="study_class")

    def __repr__(self) -> str:
        return f"<StudyClass {self.id} {self.name!r}>"


class ClassMember(Base):
    __tablename__ = "class_members"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    class_id = Column(String(26), ForeignKey("classes.id"), nullable=False, index=True)
    student_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    joined_at = Column(DateTime(timezone=True), server_default=func.now())

    study_class = relationship("StudyClass", back_populates="members")
    student = relationship("User", foreign_keys=[student_id])

    __table_args__ = (
        UniqueConstraint("class_id", "student_id", name="uq_class_members_class_student"),
    )
