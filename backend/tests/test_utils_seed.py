"""Test seeding utilities to reduce duplication.

Users are created idempotently by email; repairs are created directly in the
database so tests can start from any lifecycle state.
"""
from datetime import datetime, timedelta
from typing import Optional
from flask_jwt_extended import create_access_token
from marina import get_db
from marina.models.user import User
from marina.models.repair_request import RepairRequest, RepairCosts
from marina.services.lifecycle import generate_booking_id
from marina.utils.clock import utcnow


def ensure_user(email: str, role: str = User.ROLE_CUSTOMER, name: Optional[str] = None) -> User:
    session = get_db()
    u = session.query(User).filter_by(email=email).one_or_none()
    if not u:
        u = User(name=name or email.split('@')[0], email=email, role=role, phone='+94 77 123 4567')
        session.add(u); session.commit(); session.refresh(u)
    return u


def jwt_headers(user: User, role: Optional[str] = None):
    token = create_access_token(identity=str(user.id), additional_claims={'role': role or user.role})
    return {'Authorization': f'Bearer {token}'}


def create_repair(customer: User, status: str = RepairRequest.STATUS_PENDING,
                  scheduled: Optional[datetime] = None, advance: int = 5000,
                  final_cost: Optional[int] = None, payment_status: str = RepairCosts.PAYMENT_ADVANCE_PAID,
                  with_costs: bool = True, **fields) -> RepairRequest:
    """Insert a repair request in an arbitrary state. Not idempotent."""
    session = get_db()
    repair = RepairRequest(
        booking_id=generate_booking_id(session),
        customer_id=customer.id,
        status=status,
        service_type=fields.pop('service_type', 'engine_repair'),
        problem_description=fields.pop('problem_description', 'Outboard will not start'),
        boat_details=fields.pop('boat_details', {'boatType': 'motorboat', 'boatMake': 'Yamaha', 'boatModel': 'F150'}),
        service_location=fields.pop('service_location', {'type': 'marina', 'address': 'Pier 4'}),
        scheduled_date_time=scheduled,
        **fields,
    )
    if with_costs:
        repair.repair_costs = RepairCosts(advance_payment=advance, estimated_cost=0, final_cost=final_cost,
                                          payment_status=payment_status)
    session.add(repair); session.commit()
    return repair


def in_days(days: float) -> datetime:
    return utcnow() + timedelta(days=days)


def in_hours(hours: float) -> datetime:
    return utcnow() + timedelta(hours=hours)


def repair_payload(**overrides):
    payload = {
        'serviceType': 'engine_repair',
        'problemDescription': 'Engine overheats after 20 minutes',
        'serviceDescription': 'Check cooling system',
        'boatDetails': {'boatType': 'motorboat', 'boatMake': 'Bayliner', 'boatModel': 'VR5', 'boatYear': 2019},
        'photos': ['https://media.example.com/p/1.jpg'],
        'scheduledDateTime': in_days(10).isoformat().replace('+00:00', 'Z'),
        'serviceLocation': {'type': 'marina', 'address': 'Colombo Port', 'city': 'Colombo'},
        'customerNotes': 'Call before arrival',
    }
    payload.update(overrides)
    return payload


__all__ = ['ensure_user', 'jwt_headers', 'create_repair', 'in_days', 'in_hours', 'repair_payload']
