"""Payment reconciliation for repair requests.

Owns the cost sub-record: invoicing sets the final cost and the derived
remaining balance, and the final payment is applied exactly once per
booking. A gateway callback may arrive more than once, or twice at the same
time; the ledger row is keyed by the gateway reference and the repair row is
read under lock and written with an optimistic version check, so a second
writer re-evaluates and is told AlreadyPaid instead of paying again.
"""
from __future__ import annotations
import logging
import secrets
import string
import time
from datetime import datetime
from typing import Any, Dict, Optional, Tuple
from flask import current_app, has_app_context
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError
from marina.errors import AlreadyPaid, InternalError, NotCompleted, NotFound, RepairServiceError, ValidationError
from marina.models.cost_option import RepairCostOption
from marina.models.notification import RepairNotification
from marina.models.payment import Payment
from marina.models.repair_request import RepairRequest, RepairCosts
from marina.services.notifications import notify
from marina.utils.clock import utcnow
from marina.utils.validation import validate_amount

logger = logging.getLogger(__name__)

DEFAULT_ADVANCE_PAYMENT = 5000
DEFAULT_CURRENCY = 'lkr'
DEFAULT_MAX_ATTEMPTS = 3


def _config(key: str, default):
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def advance_payment_amount() -> int:
    return int(_config('ADVANCE_PAYMENT_AMOUNT', DEFAULT_ADVANCE_PAYMENT))


def currency() -> str:
    return _config('PAYMENT_CURRENCY', DEFAULT_CURRENCY)


def new_cost_record() -> RepairCosts:
    return RepairCosts(
        advance_payment=advance_payment_amount(),
        estimated_cost=0,
        final_cost=None,
        payment_status=RepairCosts.PAYMENT_ADVANCE_PAID,
    )


def ensure_cost_record(repair: RepairRequest) -> RepairCosts:
    """Return the repair's cost record, creating a default one for legacy rows that lack it."""
    if repair.repair_costs is None:
        logger.warning('Repair %s has no cost record; initialising defaults', repair.booking_id)
        repair.repair_costs = new_cost_record()
    return repair.repair_costs


def generate_payment_id() -> str:
    suffix = ''.join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(9))
    return f"PAY-{int(time.time() * 1000)}-{suffix}"


# ---------- Invoice ---------- #

def send_invoice(session, repair: RepairRequest, final_cost: Any, now: Optional[datetime] = None) -> RepairRequest:
    now = now or utcnow()
    final_cost = validate_amount(final_cost, 'finalCost')
    costs = ensure_cost_record(repair)
    if costs.is_fully_paid:
        raise AlreadyPaid('Repair is already fully paid')
    costs.final_cost = final_cost
    costs.payment_status = RepairCosts.PAYMENT_INVOICE_SENT
    if costs.invoice_sent_at is None:
        costs.invoice_sent_at = now
    repair.updated_at = now
    session.commit()
    cur = currency().upper()
    logger.info('Invoice sent for repair %s: final %s, remaining %s', repair.booking_id, final_cost, costs.remaining_amount)
    notify(repair.customer_id, RepairNotification.TYPE_INVOICE, 'Repair Invoice Ready',
           f'Your repair {repair.booking_id} is complete. Cost: {final_cost} {cur}, '
           f'Remaining: {costs.remaining_amount} {cur}', repair.booking_id)
    return repair


# ---------- Final payment ---------- #

def _load_for_update(session, booking_id: str) -> Optional[RepairRequest]:
    stmt = (
        select(RepairRequest)
        .where(RepairRequest.booking_id == booking_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return session.execute(stmt).scalar_one_or_none()


def _apply_final_payment(session, booking_id: str, gateway_ref: str, amount: Optional[int],
                         now: datetime) -> Tuple[RepairRequest, Payment]:
    repair = _load_for_update(session, booking_id)
    if repair is None:
        raise NotFound('Repair not found')
    if repair.repair_costs is None:
        ensure_cost_record(repair)
        session.flush()
    else:
        session.refresh(repair.repair_costs, with_for_update=True)
    costs = repair.repair_costs
    if repair.status != RepairRequest.STATUS_COMPLETED:
        raise NotCompleted()
    if costs.is_fully_paid:
        raise AlreadyPaid()

    description = f'{repair.service_type} - Final Payment'
    payment = session.execute(
        select(Payment).where(Payment.external_transaction_ref == gateway_ref)
    ).scalar_one_or_none()
    if payment is not None:
        if payment.service_id != repair.booking_id:
            raise ValidationError('paymentIntentId belongs to another booking')
        payment.status = Payment.STATUS_SUCCEEDED
        payment.paid_at = now
        payment.service_description = description
    else:
        charge = amount if amount else costs.remaining_amount
        if charge is None:
            raise ValidationError('amount required before an invoice has been sent')
        charge = max(charge, 0)
        payment = Payment(
            payment_id=generate_payment_id(),
            external_transaction_ref=gateway_ref,
            service_id=repair.booking_id,
            service_type='boat_repair',
            service_description=description,
            amount=charge,
            amount_cents=charge * 100,
            currency=currency(),
            status=Payment.STATUS_SUCCEEDED,
            payment_method='card',
            paid_at=now,
            created_at=now,
        )
        session.add(payment)
    costs.payment_status = RepairCosts.PAYMENT_FULLY_PAID
    costs.final_payment_at = now
    # Touch the parent so its version token is checked as well
    repair.updated_at = now
    session.commit()
    return repair, payment


def record_final_payment(session, booking_id: str, gateway_ref: Any, amount: Any = None,
                         now: Optional[datetime] = None) -> Tuple[RepairRequest, Payment]:
    """Apply the final payment for booking_id exactly once.

    Returns (repair, payment). Raises NotFound, NotCompleted, AlreadyPaid or
    ValidationError before any ledger write.
    """
    now = now or utcnow()
    if not gateway_ref or not isinstance(gateway_ref, str):
        raise ValidationError('paymentIntentId required')
    amount = validate_amount(amount, 'amount', allow_none=True)
    attempts = int(_config('PAYMENT_MAX_ATTEMPTS', DEFAULT_MAX_ATTEMPTS))
    for attempt in range(1, attempts + 1):
        try:
            repair, payment = _apply_final_payment(session, booking_id, gateway_ref, amount, now)
            break
        except (StaleDataError, IntegrityError) as e:
            session.rollback()
            logger.warning('Concurrent payment write for %s (attempt %d/%d): %s', booking_id, attempt, attempts, e)
        except RepairServiceError:
            # Rejected calls must not keep the row lock
            session.rollback()
            raise
    else:
        raise InternalError('Payment could not be applied')
    logger.info('Final payment %s applied to repair %s (%s)', payment.payment_id, booking_id, payment.amount)
    notify(repair.customer_id, RepairNotification.TYPE_PAYMENT_RECEIVED, 'Payment Received',
           f'Your payment of {payment.amount} {currency().upper()} has been received for repair {booking_id}',
           booking_id)
    return repair, payment


def cost_options(session, service_type: str):
    """Active price list entries for a service type, cheapest first."""
    stmt = (
        select(RepairCostOption)
        .where(RepairCostOption.service_type == service_type, RepairCostOption.is_active.is_(True))
        .order_by(RepairCostOption.cost, RepairCostOption.id)
    )
    return session.execute(stmt).scalars().all()


def cost_breakdown(repair: RepairRequest) -> Dict[str, Any]:
    costs = repair.repair_costs
    return {
        'repairId': repair.booking_id,
        'advancePayment': costs.advance_payment if costs else None,
        'estimatedCost': costs.estimated_cost if costs else None,
        'finalCost': costs.final_cost if costs else None,
        'remainingAmount': costs.remaining_amount if costs else None,
        'paymentStatus': costs.payment_status if costs else None,
        'serviceType': repair.service_type,
        'problemDescription': repair.problem_description,
        'status': repair.status,
    }


__all__ = [
    'advance_payment_amount', 'currency', 'new_cost_record', 'ensure_cost_record', 'generate_payment_id',
    'send_invoice', 'record_final_payment', 'cost_options', 'cost_breakdown',
]
