from __future__ import annotations
from typing import Optional
from flask import Blueprint, request, g
from sqlalchemy import select
from marina.constants import permissions as P
from marina.decorators.auth import require_action
from marina.decorators.audit import audit_log
from marina.errors import NotFound, NotOwner, ValidationError
from marina.services.policy import assert_can_perform
from marina.services import lifecycle, payments
from marina import get_db
from marina.models.repair_request import RepairRequest
from marina.models.user import user_brief
from marina.utils.clock import isoformat_z, utcnow

rpr_bp = Blueprint('repairs', __name__)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('request body must be a JSON object')
    return data


def _load_repair(actor, repair_id: Optional[int] = None, booking_id: Optional[str] = None) -> RepairRequest:
    """Fetch the target request. Customers are never told whether a foreign id exists."""
    session = get_db()
    stmt = select(RepairRequest)
    if repair_id is not None:
        stmt = stmt.where(RepairRequest.id == repair_id)
    else:
        stmt = stmt.where(RepairRequest.booking_id == booking_id)
    repair = session.execute(stmt).scalar_one_or_none()
    if repair is None:
        if actor.is_staff:
            raise NotFound()
        raise NotOwner()
    return repair


def _costs_json(r: RepairRequest):
    c = r.repair_costs
    if c is None:
        return None
    return {
        'advancePayment': c.advance_payment,
        'estimatedCost': c.estimated_cost,
        'finalCost': c.final_cost,
        'remainingAmount': c.remaining_amount,
        'paymentStatus': c.payment_status,
        'invoiceSentAt': isoformat_z(c.invoice_sent_at),
        'finalPaymentAt': isoformat_z(c.final_payment_at),
    }


def _repair_json(r: RepairRequest, staff_view: bool = True):
    out = {
        'id': r.id,
        'bookingId': r.booking_id,
        'customerId': r.customer_id,
        'customer': user_brief(r.customer, with_phone=True),
        'status': r.status,
        'assignedTechnicianId': r.assigned_technician_id,
        'assignedTechnician': user_brief(r.assigned_technician),
        'assignedBy': user_brief(r.assigned_by),
        'assignedAt': isoformat_z(r.assigned_at),
        'scheduledDateTime': isoformat_z(r.scheduled_date_time),
        'calendlyEventId': r.calendly_event_id,
        'calendlyEventUri': r.calendly_event_uri,
        'serviceType': r.service_type,
        'problemDescription': r.problem_description,
        'serviceDescription': r.service_description,
        'boatDetails': r.boat_details or {},
        'photos': r.photos or [],
        'serviceLocation': r.service_location or {},
        'customerNotes': r.customer_notes,
        'priority': r.priority,
        'workPerformed': r.work_performed,
        'partsUsed': r.parts_used or [],
        'laborHours': r.labor_hours,
        'laborRate': r.labor_rate,
        'repairCosts': _costs_json(r),
        'createdAt': isoformat_z(r.created_at),
        'updatedAt': isoformat_z(r.updated_at),
    }
    if staff_view:
        out['internalNotes'] = r.internal_notes
    return out


def _prefetch_repair(repair_id: Optional[int] = None, booking_id: Optional[str] = None):
    session = get_db()
    stmt = select(RepairRequest)
    stmt = stmt.where(RepairRequest.id == repair_id) if repair_id is not None else stmt.where(RepairRequest.booking_id == booking_id)
    r = session.execute(stmt).scalar_one_or_none()
    if not r:
        return {}
    costs = r.repair_costs
    return {
        'status': r.status,
        'assignedTechnicianId': r.assigned_technician_id,
        'paymentStatus': costs.payment_status if costs else None,
        'finalCost': costs.final_cost if costs else None,
    }


# ---------- Customer ---------- #

@rpr_bp.post('')
@require_action(P.CREATE)
@audit_log('RPR.REQUEST.CREATE', entity='RepairRequest', entity_id_key='bookingId', meta_keys=['serviceType', 'status'])
def create_repair():
    repair = lifecycle.create_repair(get_db(), g.actor, _json_body())
    return {
        'success': True,
        'message': 'Boat repair request created successfully',
        'data': _repair_json(repair, staff_view=False),
        'bookingId': repair.booking_id,
    }, 201


@rpr_bp.get('/mine')
@require_action(P.VIEW_MINE)
def my_repairs():
    session = get_db()
    rows = session.execute(
        select(RepairRequest)
        .where(RepairRequest.customer_id == g.actor.user_id)
        .order_by(RepairRequest.created_at.desc(), RepairRequest.id.desc())
    ).scalars().all()
    return {'success': True, 'count': len(rows), 'data': [_repair_json(r, staff_view=False) for r in rows]}


@rpr_bp.put('/<int:repair_id>/customer-edit')
@require_action(P.EDIT_OWN_FIELDS)
@audit_log('RPR.REQUEST.CUSTOMER_EDIT', entity='RepairRequest', entity_id_key='bookingId')
def customer_edit(repair_id: int):
    now = utcnow()
    repair = _load_repair(g.actor, repair_id=repair_id)
    assert_can_perform(g.actor, P.EDIT_OWN_FIELDS, repair, now=now)
    repair = lifecycle.apply_customer_edit(get_db(), g.actor, repair, _json_body(), now=now)
    return {'success': True, 'message': 'Repair request updated successfully', 'data': _repair_json(repair, staff_view=False)}


@rpr_bp.patch('/<int:repair_id>/cancel')
@require_action(P.CANCEL_OWN)
@audit_log('RPR.REQUEST.CANCEL', entity='RepairRequest', entity_id_key='bookingId', diff_keys=['status'],
           pre_fetch=lambda a, kw: _prefetch_repair(kw.get('repair_id')), meta_keys=['status'])
def cancel_repair(repair_id: int):
    now = utcnow()
    repair = _load_repair(g.actor, repair_id=repair_id)
    assert_can_perform(g.actor, P.CANCEL_OWN, repair, now=now)
    repair = lifecycle.cancel_by_customer(get_db(), g.actor, repair, now=now)
    return {'success': True, 'message': 'Repair request cancelled successfully', 'data': _repair_json(repair, staff_view=False)}


@rpr_bp.delete('/<int:repair_id>/customer-delete')
@require_action(P.DELETE_OWN)
@audit_log('RPR.REQUEST.CUSTOMER_DELETE', entity='RepairRequest', entity_id_arg='repair_id')
def customer_delete(repair_id: int):
    now = utcnow()
    repair = _load_repair(g.actor, repair_id=repair_id)
    assert_can_perform(g.actor, P.DELETE_OWN, repair, now=now)
    lifecycle.delete_by_customer(get_db(), g.actor, repair, now=now)
    return {'success': True, 'message': 'Repair request deleted successfully'}


# ---------- Shared reads ---------- #

@rpr_bp.get('/<int:repair_id>')
@require_action(P.VIEW_ONE)
def get_repair(repair_id: int):
    repair = _load_repair(g.actor, repair_id=repair_id)
    assert_can_perform(g.actor, P.VIEW_ONE, repair)
    return {'success': True, 'data': _repair_json(repair, staff_view=g.actor.is_staff)}


@rpr_bp.get('/booking/<booking_id>')
@require_action(P.VIEW_ONE)
def get_repair_by_booking(booking_id: str):
    repair = _load_repair(g.actor, booking_id=booking_id)
    assert_can_perform(g.actor, P.VIEW_ONE, repair)
    return {'success': True, 'data': _repair_json(repair, staff_view=g.actor.is_staff)}


@rpr_bp.get('/<booking_id>/costs')
@require_action(P.VIEW_ONE)
def get_cost_breakdown(booking_id: str):
    repair = _load_repair(g.actor, booking_id=booking_id)
    assert_can_perform(g.actor, P.VIEW_ONE, repair)
    return {'success': True, 'data': payments.cost_breakdown(repair)}


# ---------- Staff ---------- #

@rpr_bp.get('')
@require_action(P.VIEW_ALL)
def list_repairs():
    session = get_db()
    stmt = select(RepairRequest)
    status = request.args.get('status')
    if status:
        if status not in RepairRequest.ALL_STATUSES:
            raise ValidationError('status invalid')
        stmt = stmt.where(RepairRequest.status == status)
    rows = session.execute(stmt.order_by(RepairRequest.created_at.desc(), RepairRequest.id.desc())).scalars().all()
    return {'success': True, 'count': len(rows), 'data': [_repair_json(r) for r in rows]}


@rpr_bp.put('/<int:repair_id>')
@require_action(P.UPDATE_STAFF_FIELDS)
@audit_log('RPR.REQUEST.UPDATE', entity='RepairRequest', entity_id_key='bookingId',
           diff_keys=['status', 'assignedTechnicianId'], pre_fetch=lambda a, kw: _prefetch_repair(kw.get('repair_id')),
           meta_keys=['status', 'assignedTechnicianId'])
def update_repair(repair_id: int):
    repair = _load_repair(g.actor, repair_id=repair_id)
    repair = lifecycle.apply_staff_update(get_db(), g.actor, repair, _json_body())
    return {'success': True, 'message': 'Boat repair updated successfully', 'data': _repair_json(repair)}


@rpr_bp.delete('/<int:repair_id>')
@require_action(P.DELETE_ANY)
@audit_log('RPR.REQUEST.DELETE', entity='RepairRequest', entity_id_arg='repair_id')
def delete_repair(repair_id: int):
    repair = _load_repair(g.actor, repair_id=repair_id)
    lifecycle.delete_any(get_db(), g.actor, repair)
    return {'success': True, 'message': 'Boat repair request deleted successfully'}


@rpr_bp.get('/cost-options/<service_type>')
@require_action(P.VIEW_COST_OPTIONS)
def list_cost_options(service_type: str):
    rows = payments.cost_options(get_db(), service_type)
    return {
        'success': True,
        'count': len(rows),
        'data': [
            {'id': o.id, 'serviceType': o.service_type, 'name': o.name,
             'description': o.description, 'cost': o.cost}
            for o in rows
        ],
    }


@rpr_bp.post('/<booking_id>/invoice')
@require_action(P.SEND_INVOICE)
@audit_log('RPR.INVOICE.SEND', entity='RepairRequest', entity_id_key='repairId', meta_keys=['finalCost', 'remainingAmount'])
def send_invoice(booking_id: str):
    data = _json_body()
    repair = _load_repair(g.actor, booking_id=booking_id)
    repair = payments.send_invoice(get_db(), repair, data.get('finalCost'))
    return {
        'success': True,
        'message': 'Invoice sent to customer successfully',
        'data': payments.cost_breakdown(repair),
    }


@rpr_bp.post('/<booking_id>/final-payment')
@require_action(P.RECORD_PAYMENT)
@audit_log('RPR.PAYMENT.FINAL', entity='RepairRequest', entity_id_key='bookingId', meta_keys=['paymentId', 'amount'])
def final_payment(booking_id: str):
    data = _json_body()
    repair, payment = payments.record_final_payment(get_db(), booking_id, data.get('paymentIntentId'), data.get('amount'))
    return {
        'success': True,
        'message': 'Payment processed successfully',
        'data': {
            'bookingId': repair.booking_id,
            'paymentId': payment.payment_id,
            'amount': payment.amount,
            'amountCents': payment.amount_cents,
            'currency': payment.currency,
            'paymentStatus': repair.repair_costs.payment_status,
        },
    }
