"""
Database setup and key-value storage on SQLite
"""

import json
import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy import create_engine, Column, Integer, String, Text, DateTime
from sqlalchemy.orm import sessionmaker, declarative_base, Session
from sqlalchemy.pool import StaticPool

from geo_tracker.config import DATABASE_URL

logger = logging.getLogger(__name__)

Base = declarative_base()


class PreferenceDB(Base):
    """Database model for a single key-value preference"""
    __tablename__ = "preferences"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class NotificationDB(Base):
    """Database model for notifications shown to the user"""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    timestamp = Column(DateTime, index=True)
    title = Column(String)
    content = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)


def make_engine(url: str = DATABASE_URL):
    """Create an engine. In-memory SQLite shares one connection across sessions."""
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url == "sqlite://":
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url)


# Create engine and session
engine = make_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(bind=None):
    """Initialize the database - create all tables"""
    Base.metadata.create_all(bind=bind or engine)
    logger.info("Database initialized successfully")


class KeyValueStore:
    """
    Durable string key-value storage.
    Strings and booleans are stored as-is; ordered string lists are
    stored as one JSON array per key.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def _get(self, key: str) -> Optional[str]:
        db = self.session_factory()
        try:
            row = db.get(PreferenceDB, key)
            return row.value if row else None
        finally:
            db.close()

    def _set(self, key: str, value: str):
        db = self.session_factory()
        try:
            row = db.get(PreferenceDB, key)
            if row is None:
                db.add(PreferenceDB(key=key, value=value))
            else:
                row.value = value
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def get_string(self, key: str) -> Optional[str]:
        return self._get(key)

    def set_string(self, key: str, value: str):
        self._set(key, value)

    def get_bool(self, key: str) -> Optional[bool]:
        raw = self._get(key)
        if raw is None:
            return None
        return raw == "true"

    def set_bool(self, key: str, value: bool):
        self._set(key, "true" if value else "false")

    def get_string_list(self, key: str) -> Optional[List[str]]:
        raw = self._get(key)
        if raw is None:
            return None
        try:
            decoded = json.loads(raw)
        except ValueError:
            logger.warning("Stored list %s is not valid JSON, ignoring it", key)
            return None
        if not isinstance(decoded, list):
            logger.warning("Stored value %s is not a list, ignoring it", key)
            return None
        return [entry for entry in decoded if isinstance(entry, str)]

    def set_string_list(self, key: str, values: List[str]):
        self._set(key, json.dumps(list(values), ensure_ascii=False))

    def remove(self, key: str):
        db = self.session_factory()
        try:
            row = db.get(PreferenceDB, key)
            if row is not None:
                db.delete(row)
                db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
