from __future__ import annotations
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import declarative_base, Mapped, mapped_column
from sqlalchemy import String, Integer, Boolean, DateTime
from marina.utils.clock import utcnow

Base = declarative_base()


class User(Base):
    """Account mirrored from the identity service. Only the fields repairs need are kept."""
    __tablename__ = 'users'
    ROLE_CUSTOMER = 'customer'
    ROLE_EMPLOYEE = 'employee'
    ROLE_ADMIN = 'admin'
    ALL_ROLES = (ROLE_CUSTOMER, ROLE_EMPLOYEE, ROLE_ADMIN)
    STAFF_ROLES = (ROLE_EMPLOYEE, ROLE_ADMIN)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[str] = mapped_column(String(128), unique=True, index=True, nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(32))
    role: Mapped[str] = mapped_column(String(16), nullable=False, default=ROLE_CUSTOMER, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    @property
    def is_technician(self) -> bool:
        # Only employees are assignable as technicians
        return self.role == self.ROLE_EMPLOYEE and bool(self.is_active)


def user_brief(u: Optional[User], with_phone: bool = False):
    if u is None:
        return None
    out = {'id': u.id, 'name': u.name, 'email': u.email}
    if with_phone:
        out['phone'] = u.phone
    return out

__all__ = ['Base', 'User', 'user_brief']
