# tests/conftest.py
"""
Shared fixtures.

Every test gets a fresh in-memory SQLite database, a pinned clock and
an in-memory check-in code store driven by that clock. Factories build
the users, classes, consortiums and sessions a scenario needs.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
import os
from typing import Any, Dict, Iterator, Optional

os.environ.setdefault("ENVIRONMENT", "test")
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["CHECKIN_CODE_BACKEND"] = "memory"

import pytest  # noqa: E402
from sqlalchemy import create_engine, event  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from genova.database import Base  # noqa: E402
from genova.models import (  # noqa: E402
    ClassMember,
    Consortium,
    ConsortiumMember,
    SessionStatus,
    StudyClass,
    TutoringSession,
    TutorProfile,
    User,
    UserRole,
)
from genova.services.checkin_codes import InMemoryCheckInCodeStore  # noqa: E402

BASE_TIME = datetime(2030, 1, 7, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock pinned to ``now`` until moved."""

    def __init__(self, now: datetime = BASE_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now

    def set(self, value: datetime) -> datetime:
        self.now = value
        return self.now


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    # pysqlite's own transaction handling breaks SAVEPOINT
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine) -> Iterator[Session]:
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def code_store(clock) -> InMemoryCheckInCodeStore:
    return InMemoryCheckInCodeStore(ttl_seconds=300, clock=clock)


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


class Factory:
    """Builders for the rows a scenario needs; everything is committed."""

    def __init__(self, db: Session, clock: FakeClock):
        self.db = db
        self.clock = clock
        self._counter = 0

    def _next(self) -> int:
        self._counter += 1
        return self._counter

    def user(
        self,
        role: UserRole = UserRole.STUDENT,
        balance: Decimal = Decimal("0"),
        first_name: Optional[str] = None,
        **kwargs: Any,
    ) -> User:
        n = self._next()
        user = User(
            email=f"{role.value.lower()}{n}@genova.test",
            first_name=first_name or f"{role.value.title()}{n}",
            last_name="Test",
            role=role.value,
            wallet_balance=balance,
            **kwargs,
        )
        self.db.add(user)
        self.db.commit()
        return user

    def student(self, balance: Decimal = Decimal("100.00"), **kwargs: Any) -> User:
        return self.user(UserRole.STUDENT, balance=balance, **kwargs)

    def tutor(
        self,
        hourly_rate: Decimal = Decimal("40.00"),
        total_hours_taught: float = 0.0,
        average_rating: float = 0.0,
        total_reviews: int = 0,
        **kwargs: Any,
    ) -> User:
        user = self.user(UserRole.TUTOR, **kwargs)
        self.db.add(
            TutorProfile(
                user_id=user.id,
                hourly_rate=hourly_rate,
                total_hours_taught=total_hours_taught,
                average_rating=average_rating,
                total_reviews=total_reviews,
            )
        )
        self.db.commit()
        return user

    def study_class(self, creator: User, *members: User, is_active: bool = True) -> StudyClass:
        study_class = StudyClass(
            name=f"Class {self._next()}",
            subject="Mathematics",
            created_by=creator.id,
            is_active=is_active,
        )
        self.db.add(study_class)
        self.db.flush()
        for member in members:
            self.db.add(ClassMember(class_id=study_class.id, student_id=member.id))
        self.db.commit()
        return study_class

    def consortium(self, creator: User, shares: Dict[User, Decimal]) -> Consortium:
        consortium = Consortium(name=f"Consortium {self._next()}", created_by=creator.id)
        self.db.add(consortium)
        self.db.flush()
        for tutor, share in shares.items():
            self.db.add(
                ConsortiumMember(
                    consortium_id=consortium.id, tutor_id=tutor.id, revenue_share=share
                )
            )
        self.db.commit()
        return consortium

    def session(
        self,
        study_class: StudyClass,
        tutor: Optional[User] = None,
        *,
        consortium: Optional[Consortium] = None,
        start: Optional[datetime] = None,
        minutes: int = 60,
        price: Decimal = Decimal("20.00"),
        status: SessionStatus = SessionStatus.CONFIRMED,
        description: Optional[str] = None,
    ) -> TutoringSession:
        start = start or self.clock.now + timedelta(days=2)
        session = TutoringSession(
            class_id=study_class.id,
            tutor_id=tutor.id if tutor else None,
            consortium_id=consortium.id if consortium else None,
            scheduled_start=start,
            scheduled_end=start + timedelta(minutes=minutes),
            subject="Algebra",
            description=description,
            price=price,
            status=status.value,
            created_by=study_class.created_by,
        )
        self.db.add(session)
        self.db.commit()
        return session


@pytest.fixture
def factory(db, clock) -> Factory:
    return Factory(db, clock)


# ---------------------------------------------------------------------------
# API
# ---------------------------------------------------------------------------


@pytest.fixture
def client(db, clock, code_store):
    """TestClient bound to the test database, clock and credential store."""
    from fastapi.testclient import TestClient

    from genova.api.dependencies import get_clock, get_code_store, get_db
    from genova.main import create_app

    app = create_app()
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_code_store] = lambda: code_store
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def auth_headers(user: User) -> Dict[str, str]:
    from genova.auth import create_access_token

    return {"Authorization": f"Bearer {create_access_token({'sub': user.id})}"}


@pytest.fixture
def auth():
    return auth_headers
