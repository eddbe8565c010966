"""
Notification Service
In-app notifications with a denormalised unread counter per user

Author: Back Office Team
Date: 2025-11-06
"""
import logging
from datetime import timedelta
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from backoffice.core.database import utcnow
from backoffice.core.responses import build_pagination, page_offset
from backoffice.models import Notification, NotificationCounter

logger = logging.getLogger(__name__)

RETENTION_DAYS = 90


def _serialize(n: Notification) -> Dict:
    return {
        "id": n.id,
        "type": n.type,
        "title": n.title,
        "body": n.body,
        "link": n.link,
        "is_read": n.is_read,
        "read_at": n.read_at,
        "created_at": n.created_at,
    }


class NotificationService:

    def __init__(self, db: Session):
        self.db = db

    def _counter(self, user_id: str) -> NotificationCounter:
        counter = self.db.get(NotificationCounter, user_id)
        if counter is None:
            counter = NotificationCounter(user_id=user_id, unread_count=0)
            self.db.add(counter)
            self.db.flush()
        return counter

    def notify(
        self,
        user_ids: Iterable[str],
        type: str,
        title: str,
        body: Optional[str] = None,
        link: Optional[str] = None,
        commit: bool = False,
    ) -> List[str]:
        """
        Create one unread notification per distinct user id.

        By default rows are only added to the session so they commit with
        the caller's change. Returns the ids that were notified.
        """
        recipients = [uid for uid in dict.fromkeys(user_ids) if uid]
        for user_id in recipients:
            self.db.add(Notification(user_id=user_id, type=type, title=title, body=body, link=link))
            counter = self._counter(user_id)
            counter.unread_count = (counter.unread_count or 0) + 1

        if commit:
            self.db.commit()
        if recipients:
            logger.debug(f"Queued {type} notification for {len(recipients)} user(s)")
        return recipients

    def list_for_user(self, user_id: str, unread_only: bool = False, page: int = 1, page_size: int = 20) -> Dict:
        query = self.db.query(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.is_read.is_(False))

        total = query.count()
        rows = (
            query.order_by(Notification.created_at.desc())
            .offset(page_offset(page, page_size))
            .limit(page_size)
            .all()
        )
        return {
            "notifications": [_serialize(n) for n in rows],
            "unread_count": self.unread_count(user_id),
            "pagination": build_pagination(page, page_size, total),
        }

    def unread_count(self, user_id: str) -> int:
        counter = self.db.get(NotificationCounter, user_id)
        return counter.unread_count if counter else 0

    def mark_as_read(self, user_id: str, notification_ids: List[str]) -> int:
        rows = (
            self.db.query(Notification)
            .filter(
                Notification.user_id == user_id,
                Notification.id.in_(notification_ids),
                Notification.is_read.is_(False),
            )
            .all()
        )
        now = utcnow()
        for row in rows:
            row.is_read = True
            row.read_at = now

        counter = self._counter(user_id)
        counter.unread_count = max((counter.unread_count or 0) - len(rows), 0)
        self.db.commit()
        return len(rows)

    def mark_all_as_read(self, user_id: str) -> int:
        updated = (
            self.db.query(Notification)
            .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
            .update({Notification.is_read: True, Notification.read_at: utcnow()}, synchronize_session=False)
        )
        self._counter(user_id).unread_count = 0
        self.db.commit()
        return updated

    def delete_old(self, days: int = RETENTION_DAYS) -> int:
        """Remove notifications older than `days`; unread counters are recomputed"""
        cutoff = utcnow() - timedelta(days=days)
        affected_users = [
            row[0]
            for row in self.db.query(Notification.user_id)
            .filter(Notification.created_at < cutoff)
            .distinct()
            .all()
        ]
        deleted = (
            self.db.query(Notification)
            .filter(Notification.created_at < cutoff)
            .delete(synchronize_session=False)
        )
        for user_id in affected_users:
            unread = (
                self.db.query(Notification)
                .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
                .count()
            )
            self._counter(user_id).unread_count = unread

        self.db.commit()
        logger.info(f"Deleted {deleted} notifications older than {days} days")
        return deleted
