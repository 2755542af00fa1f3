from __future__ import annotations
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, Boolean, DateTime
from marina.utils.clock import utcnow
from .user import Base


class RepairNotification(Base):
    __tablename__ = 'repair_notifications'
    TYPE_INVOICE = 'repair_invoice'
    TYPE_PAYMENT_RECEIVED = 'payment_received'
    TYPE_CANCELLED = 'repair_cancelled'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(128), nullable=False)
    message: Mapped[str] = mapped_column(String(512), nullable=False)
    repair_booking_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

__all__ = ["RepairNotification"]
