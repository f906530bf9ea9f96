"""
Pytest Configuration and Fixtures.

Every test gets its own in-memory SQLite database.
"""
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from spaced_review.database import init_db
from spaced_review.service import ReviewService
from spaced_review.sm2 import SM2Algorithm
from spaced_review.store import SQLReviewStore


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def algorithm():
    return SM2Algorithm()


@pytest.fixture
def store(session_factory, algorithm):
    return SQLReviewStore(session_factory, algorithm=algorithm)


@pytest.fixture
def service(store, algorithm):
    return ReviewService(store, algorithm=algorithm)


@pytest.fixture
def t0():
    """Fixed review instant"""
    return datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
