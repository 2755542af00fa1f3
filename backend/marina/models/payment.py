from __future__ import annotations
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, DateTime
from marina.utils.clock import utcnow
from .user import Base


class Payment(Base):
    __tablename__ = 'payments'
    # Ledger row lifecycle: pending -> succeeded | failed
    STATUS_PENDING = 'pending'
    STATUS_SUCCEEDED = 'succeeded'
    STATUS_FAILED = 'failed'
    ALL_STATUSES = (STATUS_PENDING, STATUS_SUCCEEDED, STATUS_FAILED)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    payment_id: Mapped[str] = mapped_column(String(48), unique=True, nullable=False, index=True)
    # Gateway idempotency key (payment intent id); one ledger row per key
    external_transaction_ref: Mapped[str] = mapped_column(String(128), unique=True, nullable=False, index=True)
    service_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    service_type: Mapped[str] = mapped_column(String(32), nullable=False, default='boat_repair')
    service_description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default='lkr')
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_PENDING, index=True)
    payment_method: Mapped[str] = mapped_column(String(16), nullable=False, default='card')
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

__all__ = ["Payment"]
