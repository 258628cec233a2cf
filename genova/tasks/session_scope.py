"""Transactional session scope shared by the task modules."""

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session

from genova.database import SessionLocal


@contextmanager
def session_scope() -> Iterator[Session]:
    """Provide transactional scope for use in tasks."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
