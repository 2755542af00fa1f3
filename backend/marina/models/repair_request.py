from __future__ import annotations
from datetime import datetime
from typing import Optional, List, Dict, Any
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, Float, DateTime, JSON, ForeignKey
from marina.utils.clock import utcnow
from .user import Base


class RepairRequest(Base):
    __tablename__ = 'repair_requests'
    # Status constants
    STATUS_PENDING = 'pending'
    STATUS_ASSIGNED = 'assigned'
    STATUS_IN_PROGRESS = 'in_progress'
    STATUS_COMPLETED = 'completed'
    STATUS_CANCELLED = 'cancelled'
    ALL_STATUSES = (STATUS_PENDING, STATUS_ASSIGNED, STATUS_IN_PROGRESS, STATUS_COMPLETED, STATUS_CANCELLED)
    TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED)
    PRIORITIES = ('low', 'medium', 'high', 'urgent')

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    booking_id: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    customer_id: Mapped[int] = mapped_column(ForeignKey('users.id'), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default=STATUS_PENDING, index=True)

    assigned_technician_id: Mapped[Optional[int]] = mapped_column(ForeignKey('users.id'), nullable=True, index=True)
    assigned_by_id: Mapped[Optional[int]] = mapped_column(ForeignKey('users.id'), nullable=True)
    assigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    scheduled_date_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    calendly_event_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    calendly_event_uri: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    service_type: Mapped[str] = mapped_column(String(64), nullable=False)
    problem_description: Mapped[str] = mapped_column(Text, nullable=False)
    service_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    boat_details: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    photos: Mapped[List[Any]] = mapped_column(JSON, default=list)
    service_location: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    customer_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    internal_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default='medium')
    work_performed: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    parts_used: Mapped[List[Any]] = mapped_column(JSON, default=list)
    labor_hours: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    labor_rate: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    # Optimistic concurrency token; every UPDATE checks and bumps it
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    customer = relationship('User', foreign_keys=[customer_id])
    assigned_technician = relationship('User', foreign_keys=[assigned_technician_id])
    assigned_by = relationship('User', foreign_keys=[assigned_by_id])
    repair_costs = relationship('RepairCosts', back_populates='repair', uselist=False, cascade='all, delete-orphan')

    __mapper_args__ = {'version_id_col': version_id}

    @property
    def is_terminal(self) -> bool:
        return self.status in self.TERMINAL_STATUSES

    @property
    def has_external_schedule(self) -> bool:
        return bool(self.calendly_event_uri or self.calendly_event_id)


class RepairCosts(Base):
    """Cost and payment sub-record, one per repair request."""
    __tablename__ = 'repair_costs'
    PAYMENT_ADVANCE_PAID = 'advance_paid'
    PAYMENT_INVOICE_SENT = 'invoice_sent'
    PAYMENT_FULLY_PAID = 'fully_paid'
    ALL_PAYMENT_STATUSES = (PAYMENT_ADVANCE_PAID, PAYMENT_INVOICE_SENT, PAYMENT_FULLY_PAID)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    repair_id: Mapped[int] = mapped_column(ForeignKey('repair_requests.id', ondelete='CASCADE'), unique=True, nullable=False)
    advance_payment: Mapped[int] = mapped_column(Integer, nullable=False)
    estimated_cost: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    final_cost: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    payment_status: Mapped[str] = mapped_column(String(16), nullable=False, default=PAYMENT_ADVANCE_PAID)
    invoice_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    final_payment_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    repair = relationship('RepairRequest', back_populates='repair_costs')

    __mapper_args__ = {'version_id_col': version_id}

    @property
    def remaining_amount(self) -> Optional[int]:
        # Derived on every read; may be negative when the advance exceeds the final cost
        if self.final_cost is None:
            return None
        return self.final_cost - self.advance_payment

    @property
    def is_fully_paid(self) -> bool:
        return self.payment_status == self.PAYMENT_FULLY_PAID

# Status flow: pending -> assigned -> in_progress -> completed (cancelled as alternative terminal)
# Staff may reorder non-terminal statuses freely; customers can only cancel.

__all__ = ['RepairRequest', 'RepairCosts']
