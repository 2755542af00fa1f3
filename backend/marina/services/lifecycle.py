"""Repair request lifecycle: transition table, time windows and per-transition side effects.

Callers are expected to have passed the authorization policy already; the
engine re-checks status and window preconditions itself so it is safe to
call directly. Every mutating operation commits exactly once. External side
effects (scheduler, notifications) run after the commit and never undo it.
"""
from __future__ import annotations
import logging
import secrets
import string
from datetime import datetime, timedelta
from typing import Any, Dict, Optional
from flask import current_app, has_app_context
from sqlalchemy import select
from marina.errors import AlreadyPaid, AlreadyTerminal, InvalidAssignee, ValidationError, WindowExpired
from marina.models.repair_request import RepairRequest
from marina.models.notification import RepairNotification
from marina.models.user import User
from marina.services.notifications import notify
from marina.services.payments import ensure_cost_record, new_cost_record
from marina.utils.clock import ensure_utc, utcnow
from marina.utils.fsm import TransitionValidator
from marina.utils.validation import (
    merge_nested, require_fields, validate_amount, validate_datetime, validate_list,
    validate_mapping, validate_number, validate_status, validate_text,
)

logger = logging.getLogger(__name__)

DEFAULT_CANCELLATION_WINDOW = timedelta(hours=72)
BOOKING_ID_PREFIX = 'BR'

_OPEN = (RepairRequest.STATUS_PENDING, RepairRequest.STATUS_ASSIGNED, RepairRequest.STATUS_IN_PROGRESS)

# Staff may move freely between open statuses and into either terminal one.
REPAIR_FSM = TransitionValidator({
    **{s: set(RepairRequest.ALL_STATUSES) - {s} for s in _OPEN},
    RepairRequest.STATUS_COMPLETED: set(),
    RepairRequest.STATUS_CANCELLED: set(),
})

CUSTOMER_EDITABLE_FIELDS = (
    'problemDescription', 'serviceDescription', 'boatDetails', 'photos', 'serviceLocation', 'customerNotes',
)
STAFF_UPDATABLE_FIELDS = (
    'status', 'assignedTechnician', 'estimatedCost', 'finalCost', 'internalNotes', 'priority',
    'workPerformed', 'partsUsed', 'laborHours', 'laborRate',
)


# ---------- Windows (pure) ---------- #

def cancellation_window() -> timedelta:
    if has_app_context():
        return timedelta(hours=int(current_app.config.get('CANCELLATION_WINDOW_HOURS', 72)))
    return DEFAULT_CANCELLATION_WINDOW


def cancel_window_open(repair: RepairRequest, now: datetime, window: Optional[timedelta] = None) -> bool:
    """True while customer cancellation/deletion is allowed.

    Unscheduled requests are always inside the window. Otherwise the window
    closes at scheduled - 72h (inclusive), so exactly 72h before is too late.
    """
    scheduled = ensure_utc(repair.scheduled_date_time)
    if scheduled is None:
        return True
    return ensure_utc(now) < scheduled - (window or cancellation_window())


def edit_window_open(repair: RepairRequest, now: datetime) -> bool:
    scheduled = ensure_utc(repair.scheduled_date_time)
    if scheduled is None:
        return True
    return ensure_utc(now) < scheduled


# ---------- Creation ---------- #

def generate_booking_id(session) -> str:
    while True:
        suffix = ''.join(secrets.choice(string.digits) for _ in range(8))
        booking_id = f"{BOOKING_ID_PREFIX}-{suffix}"
        taken = session.execute(select(RepairRequest.id).where(RepairRequest.booking_id == booking_id)).first()
        if not taken:
            return booking_id


def create_repair(session, actor, data: Dict[str, Any], now: Optional[datetime] = None) -> RepairRequest:
    now = now or utcnow()
    require_fields(data, 'serviceType', 'problemDescription', 'boatDetails')
    scheduled = validate_datetime(data.get('scheduledDateTime'), 'scheduledDateTime')
    repair = RepairRequest(
        booking_id=generate_booking_id(session),
        customer_id=actor.user_id,
        status=RepairRequest.STATUS_PENDING,
        service_type=validate_text(data['serviceType'], 'serviceType', allow_none=False),
        problem_description=validate_text(data['problemDescription'], 'problemDescription', allow_none=False),
        service_description=validate_text(data.get('serviceDescription'), 'serviceDescription'),
        boat_details=validate_mapping(data['boatDetails'], 'boatDetails'),
        photos=validate_list(data.get('photos'), 'photos'),
        scheduled_date_time=scheduled,
        calendly_event_id=validate_text(data.get('calendlyEventId'), 'calendlyEventId'),
        calendly_event_uri=validate_text(data.get('calendlyEventUri'), 'calendlyEventUri'),
        service_location=validate_mapping(data.get('serviceLocation') or {}, 'serviceLocation'),
        customer_notes=validate_text(data.get('customerNotes'), 'customerNotes'),
        created_at=now,
        updated_at=now,
    )
    repair.repair_costs = new_cost_record()
    session.add(repair)
    session.commit()
    logger.info('Repair %s created by customer %s', repair.booking_id, actor.user_id)
    return repair


# ---------- Staff updates ---------- #

def resolve_technician(session, raw_id) -> User:
    try:
        tech_id = int(raw_id)
    except (TypeError, ValueError):
        raise InvalidAssignee('Assigned technician must be an employee')
    tech = session.execute(select(User).where(User.id == tech_id)).scalar_one_or_none()
    if tech is None or not tech.is_technician:
        raise InvalidAssignee('Assigned technician must be an employee')
    return tech


def apply_staff_update(session, actor, repair: RepairRequest, data: Dict[str, Any],
                       now: Optional[datetime] = None) -> RepairRequest:
    """Apply a partial staff update. All input is validated before anything is written."""
    now = now or utcnow()
    unknown = sorted(set(data) - set(STAFF_UPDATABLE_FIELDS))
    if unknown:
        raise ValidationError(f"fields not updatable: {', '.join(unknown)}")

    target = data.get('status') or None
    if target is not None and not isinstance(target, str):
        raise ValidationError('status must be a string')
    if target is not None and target != repair.status:
        REPAIR_FSM.assert_can_transition(repair.status, target)
    technician = None
    if data.get('assignedTechnician') not in (None, ''):
        if repair.is_terminal:
            raise AlreadyTerminal('Cannot reassign a completed or cancelled repair')
        technician = resolve_technician(session, data['assignedTechnician'])
        if target is None and repair.status == RepairRequest.STATUS_PENDING:
            target = RepairRequest.STATUS_ASSIGNED
    estimated = validate_amount(data['estimatedCost'], 'estimatedCost') if 'estimatedCost' in data else None
    final = validate_amount(data['finalCost'], 'finalCost', allow_none=True) if 'finalCost' in data else None
    priority = validate_status(data['priority'], RepairRequest.PRIORITIES, 'priority') if 'priority' in data else None
    parts = validate_list(data['partsUsed'], 'partsUsed') if 'partsUsed' in data else None
    hours = validate_number(data.get('laborHours'), 'laborHours')
    notes = {key: validate_text(data[key], key) for key in ('internalNotes', 'workPerformed') if key in data}
    rate = validate_number(data.get('laborRate'), 'laborRate')

    costs = ensure_cost_record(repair)
    if 'finalCost' in data and costs.is_fully_paid and final != costs.final_cost:
        raise AlreadyPaid('Final cost cannot change after full payment')

    if technician is not None:
        repair.assigned_technician_id = technician.id
        repair.assigned_by_id = actor.user_id
        repair.assigned_at = now
    if target is not None and target != repair.status:
        logger.info('Repair %s status %s -> %s by %s', repair.booking_id, repair.status, target, actor.user_id)
        repair.status = target
    if estimated is not None:
        costs.estimated_cost = estimated
    if 'finalCost' in data:
        costs.final_cost = final
    if priority is not None:
        repair.priority = priority
    if parts is not None:
        repair.parts_used = parts
    if 'internalNotes' in notes:
        repair.internal_notes = notes['internalNotes']
    if 'workPerformed' in notes:
        repair.work_performed = notes['workPerformed']
    if hours is not None:
        repair.labor_hours = hours
    if rate is not None:
        repair.labor_rate = rate
    repair.updated_at = now
    session.commit()
    return repair


# ---------- Customer actions ---------- #

def apply_customer_edit(session, actor, repair: RepairRequest, data: Dict[str, Any],
                        now: Optional[datetime] = None) -> RepairRequest:
    now = now or utcnow()
    if repair.status == RepairRequest.STATUS_CANCELLED:
        raise AlreadyTerminal('Cancelled repair requests cannot be edited')
    if not edit_window_open(repair, now):
        raise WindowExpired('Repair request can no longer be edited')
    unknown = sorted(set(data) - set(CUSTOMER_EDITABLE_FIELDS))
    if unknown:
        raise ValidationError(f"fields not editable: {', '.join(unknown)}")
    if not data:
        raise ValidationError('no editable fields supplied')

    boat_patch = validate_mapping(data['boatDetails'], 'boatDetails') if 'boatDetails' in data else None
    location_patch = validate_mapping(data['serviceLocation'], 'serviceLocation') if 'serviceLocation' in data else None
    photos = validate_list(data['photos'], 'photos') if 'photos' in data else None
    texts = {key: validate_text(data[key], key) for key in ('problemDescription', 'serviceDescription', 'customerNotes')
             if key in data}
    if 'problemDescription' in texts and not texts['problemDescription']:
        raise ValidationError('problemDescription required')

    # Nested objects are patched, never replaced wholesale
    if boat_patch is not None:
        repair.boat_details = merge_nested(repair.boat_details, boat_patch)
    if location_patch is not None:
        repair.service_location = merge_nested(repair.service_location, location_patch)
    if photos is not None:
        repair.photos = photos
    for key, attr in (('problemDescription', 'problem_description'),
                      ('serviceDescription', 'service_description'),
                      ('customerNotes', 'customer_notes')):
        if key in texts:
            setattr(repair, attr, texts[key])
    repair.updated_at = now
    session.commit()
    return repair


def cancel_by_customer(session, actor, repair: RepairRequest, now: Optional[datetime] = None) -> RepairRequest:
    now = now or utcnow()
    if repair.is_terminal:
        raise AlreadyTerminal(f'Repair request is already {repair.status}')
    if not cancel_window_open(repair, now):
        raise WindowExpired('Too close to the scheduled appointment to cancel')
    repair.status = RepairRequest.STATUS_CANCELLED
    repair.updated_at = now
    session.commit()
    logger.info('Repair %s cancelled by customer %s', repair.booking_id, actor.user_id)
    release_external_schedule(repair, reason='Cancelled by customer')
    notify(repair.customer_id, RepairNotification.TYPE_CANCELLED, 'Repair Cancelled',
           f'Your repair request {repair.booking_id} has been cancelled', repair.booking_id)
    return repair


def delete_by_customer(session, actor, repair: RepairRequest, now: Optional[datetime] = None) -> None:
    now = now or utcnow()
    if repair.status == RepairRequest.STATUS_COMPLETED:
        raise AlreadyTerminal('Completed repair requests cannot be deleted')
    if not cancel_window_open(repair, now):
        raise WindowExpired('Too close to the scheduled appointment to delete')
    booking_id = repair.booking_id
    release_slot = repair.status != RepairRequest.STATUS_CANCELLED
    session.delete(repair)
    session.commit()
    logger.info('Repair %s deleted by customer %s', booking_id, actor.user_id)
    if release_slot:
        release_external_schedule(repair, reason='Deleted by customer')


def delete_any(session, actor, repair: RepairRequest) -> None:
    booking_id = repair.booking_id
    session.delete(repair)
    session.commit()
    logger.info('Repair %s deleted by admin %s', booking_id, actor.user_id)


# ---------- Side effects ---------- #

def release_external_schedule(repair: RepairRequest, reason: Optional[str] = None) -> bool:
    """Best-effort cancellation of the external scheduler booking.

    Failures are logged and reported as False; the committed transition stands.
    """
    if not repair.has_external_schedule:
        return False
    scheduler = current_app.extensions.get('marina.scheduler') if has_app_context() else None
    if scheduler is None:
        return False
    ref = repair.calendly_event_uri or repair.calendly_event_id
    try:
        return bool(scheduler.cancel_event(ref, reason=reason))
    except Exception:
        logger.warning('Scheduler cancellation failed for repair %s (%s)', repair.booking_id, ref, exc_info=True)
        return False


__all__ = [
    'REPAIR_FSM', 'CUSTOMER_EDITABLE_FIELDS', 'STAFF_UPDATABLE_FIELDS', 'cancellation_window',
    'cancel_window_open', 'edit_window_open', 'generate_booking_id', 'create_repair', 'resolve_technician',
    'apply_staff_update', 'apply_customer_edit', 'cancel_by_customer', 'delete_by_customer', 'delete_any',
    'release_external_schedule',
]
