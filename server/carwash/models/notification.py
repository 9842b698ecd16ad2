"""Notification model."""

import enum

from carwash.models.base import Base, TimestampMixin, generate_id
from sqlalchemy import Boolean, Column
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship


class NotificationType(str, enum.Enum):
    """Notification category enum."""

    BOOKING = "BOOKING"
    TASK = "TASK"
    PAYMENT = "PAYMENT"
    ORDER = "ORDER"
    SYSTEM = "SYSTEM"


class Notification(Base, TimestampMixin):
    """In-app notification, also pushed over the realtime channel."""

    __tablename__ = "notifications"
    __table_args__ = (Index("ix_notifications_user_read", "user_id", "is_read"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(SQLEnum(NotificationType), default=NotificationType.SYSTEM, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)

    user = relationship("User", back_populates="notifications")
