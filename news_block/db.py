"""Durable key-value storage on top of SQLAlchemy."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import Column, DateTime, String, Text, create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class KeyValueModel(Base):
    """A value with its own expiry, keyed by string."""

    __tablename__ = "kv_entries"

    key = Column(String(255), primary_key=True)
    value = Column(Text, nullable=False)
    expires_at = Column(DateTime, nullable=False)


def init_engine(connection_string: Optional[str]) -> Optional[Engine]:
    """Initialize the database engine."""
    if not connection_string:
        return None

    logger.info("Initializing database connection: %s", connection_string)
    engine = create_engine(connection_string)
    Base.metadata.create_all(engine)
    return engine


def get_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Return a session factory for the given engine."""
    return sessionmaker(bind=engine)


def _utc(timestamp: float) -> datetime:
    # SQLite drops tzinfo, so expiries are stored as naive UTC.
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).replace(tzinfo=None)


class SqlStore:
    """Persistent store; survives restarts and enforces its own TTL."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock

    def get(self, key: str) -> Optional[str]:
        with self._session_factory() as session:
            stmt = select(KeyValueModel).where(KeyValueModel.key == key)
            row = session.execute(stmt).scalar_one_or_none()
            if row is None:
                return None
            if row.expires_at <= _utc(self._clock()):
                logger.debug("Durable entry %s expired; removing", key)
                session.delete(row)
                session.commit()
                return None
            return row.value

    def set(self, key: str, value: str, ttl_seconds: int) -> None:
        expires_at = _utc(self._clock() + ttl_seconds)
        with self._session_factory() as session:
            stmt = select(KeyValueModel).where(KeyValueModel.key == key)
            existing = session.execute(stmt).scalar_one_or_none()
            if existing:
                existing.value = value
                existing.expires_at = expires_at
            else:
                session.add(KeyValueModel(key=key, value=value, expires_at=expires_at))
            try:
                session.commit()
            except Exception:
                session.rollback()
                raise
