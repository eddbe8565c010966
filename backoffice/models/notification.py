"""
In-app notifications for staff
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, ForeignKey

from backoffice.core.database import Base, new_id, utcnow


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("admin_users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    body = Column(Text)
    link = Column(String(500))
    is_read = Column(Boolean, nullable=False, default=False, index=True)
    read_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow, index=True)


class NotificationCounter(Base):
    """Denormalised unread count per user"""
    __tablename__ = "notification_counters"

    user_id = Column(String(36), ForeignKey("admin_users.id", ondelete="CASCADE"), primary_key=True)
    unread_count = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
