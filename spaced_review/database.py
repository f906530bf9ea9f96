from datetime import datetime, timezone

from loguru import logger
from sqlalchemy import create_engine, DateTime
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.types import TypeDecorator

from spaced_review.config import settings


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}

engine = create_engine(settings.database_url, **_engine_kwargs(settings.database_url))
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)

Base = declarative_base()


def as_utc(value: datetime) -> datetime:
    """Normalize a timestamp to timezone-aware UTC (naive values are taken as UTC)"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Stores naive UTC, returns aware UTC"""
    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return as_utc(value).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


def init_db(bind=None):
    """Create all tables"""
    # Import models so they register with Base.metadata
    import spaced_review.models  # noqa: F401
    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database tables initialized")


def reset_db(bind=None):
    """Drop and recreate all tables (irreversible)"""
    import spaced_review.models  # noqa: F401
    target = bind or engine
    Base.metadata.drop_all(bind=target)
    Base.metadata.create_all(bind=target)
    logger.warning("Database reset; all review records and events deleted")
