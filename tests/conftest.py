from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tutor_availability.database import Base

# Import models so Base.metadata is populated for create_all.
import tutor_availability.models  # noqa: F401
from tutor_availability.schemas.availability import WeeklyTemplate

from .helpers import FrozenClock


@pytest.fixture(scope="function")
def _unit_engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(_unit_engine) -> Session:
    """Session on a fresh in-memory database for each test."""
    SessionLocal = sessionmaker(bind=_unit_engine, expire_on_commit=False, future=True)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock() -> FrozenClock:
    # A week before the Monday used throughout, so test dates are in the future
    return FrozenClock(datetime(2029, 12, 31, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def nine_to_five_monday() -> WeeklyTemplate:
    return WeeklyTemplate.from_document({"Monday": [{"startTime": "9 am", "endTime": "5 pm"}]})
