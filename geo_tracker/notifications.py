"""
Notification facility
"""

import logging
from datetime import datetime
from typing import Callable, List, Protocol

from sqlalchemy.orm import Session

from geo_tracker.database import NotificationDB, SessionLocal
from geo_tracker.models import NotificationRecord
from geo_tracker.utils import from_naive_utc

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def show(self, title: str, content: str) -> None: ...


class DatabaseNotifier:
    """
    Logs each notification and records it so clients can poll for it.
    Storage failures are logged, never raised: showing is fire-and-forget.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def show(self, title: str, content: str) -> None:
        logger.info("Notification: %s | %s", title, content)
        db = self.session_factory()
        try:
            db.add(NotificationDB(timestamp=datetime.utcnow(), title=title, content=content))
            db.commit()
        except Exception as e:
            logger.error("Error storing notification: %s", e)
            db.rollback()
        finally:
            db.close()

    def recent(self, limit: int = 20) -> List[NotificationRecord]:
        db = self.session_factory()
        try:
            rows = db.query(NotificationDB).order_by(
                NotificationDB.id.desc()
            ).limit(limit).all()
            return [
                NotificationRecord(
                    id=r.id,
                    timestamp=from_naive_utc(r.timestamp),
                    title=r.title,
                    content=r.content,
                )
                for r in rows
            ]
        finally:
            db.close()
