import uuid
import pytest
from sqlalchemy import select, func
from sqlalchemy.orm.exc import StaleDataError
from marina import get_db
from marina.errors import AlreadyPaid, InternalError, NotCompleted, ValidationError
from marina.models.cost_option import RepairCostOption
from marina.models.notification import RepairNotification
from marina.models.payment import Payment
from marina.models.repair_request import RepairRequest, RepairCosts
from marina.models.user import User
from marina.services import payments
from tests.test_utils_seed import ensure_user, jwt_headers, create_repair


def _ref():
    return f"pi_{uuid.uuid4().hex[:16]}"


def _payments_for(booking_id):
    return get_db().execute(select(func.count(Payment.id)).where(Payment.service_id == booking_id)).scalar_one()


@pytest.fixture()
def people(app_context):
    return {
        'customer': ensure_user('payer@example.com'),
        'other': ensure_user('not.payer@example.com'),
        'employee': ensure_user('cashier@example.com', role=User.ROLE_EMPLOYEE),
    }


def test_invoice_sets_final_cost_and_remaining(people, client):
    repair = create_repair(people['customer'], status=RepairRequest.STATUS_COMPLETED)
    resp = client.post(f'/repairs/{repair.booking_id}/invoice', json={'finalCost': 20000},
                       headers=jwt_headers(people['employee']))
    assert resp.status_code == 200, resp.get_json()
    data = resp.get_json()['data']
    assert data['repairId'] == repair.booking_id
    assert data['advancePayment'] == 5000
    assert data['finalCost'] == 20000
    assert data['remainingAmount'] == 15000
    assert data['paymentStatus'] == 'invoice_sent'
    note = get_db().execute(
        select(RepairNotification).where(RepairNotification.repair_booking_id == repair.booking_id)
    ).scalars().one()
    assert note.type == RepairNotification.TYPE_INVOICE
    assert note.user_id == people['customer'].id
    assert 'Cost: 20000 LKR, Remaining: 15000 LKR' in note.message


def test_invoice_allows_negative_remaining(app_context, people):
    repair = create_repair(people['customer'], status=RepairRequest.STATUS_COMPLETED)
    payments.send_invoice(get_db(), repair, 3000)
    assert repair.repair_costs.remaining_amount == -2000


def test_reinvoice_keeps_first_sent_time(app_context, people):
    repair = create_repair(people['customer'], status=RepairRequest.STATUS_COMPLETED)
    payments.send_invoice(get_db(), repair, 10000)
    first = repair.repair_costs.invoice_sent_at
    payments.send_invoice(get_db(), repair, 12000)
    assert repair.repair_costs.invoice_sent_at == first
    assert repair.repair_costs.remaining_amount == 7000


def test_invoice_rejections(people, client):
    headers = jwt_headers(people['employee'])
    repair = create_repair(people['customer'], status=RepairRequest.STATUS_COMPLETED)
    for bad in (None, -5, 'lots', 10.5, True):
        resp = client.post(f'/repairs/{repair.booking_id}/invoice', json={'finalCost': bad}, headers=headers)
        assert resp.status_code == 400, bad
        assert resp.get_json()['error']['kind'] == 'ValidationError'
    paid = create_repair(people['customer'], status=RepairRequest.STATUS_COMPLETED, final_cost=9000,
                         payment_status=RepairCosts.PAYMENT_FULLY_PAID)
    resp = client.post(f'/repairs/{paid.booking_id}/invoice', json={'finalCost': 1}, headers=headers)
    assert resp.get_json()['error']['kind'] == 'AlreadyPaid'
    resp = client.post(f'/repairs/{repair.booking_id}/invoice', json={'finalCost': 100},
                       headers=jwt_headers(people['customer']))
    assert resp.status_code == 403


def test_final_payment_defaults_to_remaining(people, client):
    repair = create_repair(people['customer'], status=RepairRequest.STATUS_COMPLETED, final_cost=20000,
                           payment_status=RepairCosts.PAYMENT_INVOICE_SENT)
    resp = client.post(f'/repairs/{repair.booking_id}/final-payment', json={'paymentIntentId': _ref()},
                       headers=jwt_headers(people['employee']))
    assert resp.status_code == 200, resp.get_json()
    data = resp.get_json()['data']
    assert data['bookingId'] == repair.booking_id
    assert data['paymentId'].startswith('PAY-')
    assert data['amount'] == 15000
    assert data['amountCents'] == 1500000
    assert data['currency'] == 'lkr'
    assert data['paymentStatus'] == 'fully_paid'
    get_db().refresh(repair.repair_costs)
    assert repair.repair_costs.final_payment_at is not None
    payment = get_db().execute(select(Payment).where(Payment.service_id == repair.booking_id)).scalar_one()
    assert payment.status == Payment.STATUS_SUCCEEDED
    assert payment.service_type == 'boat_repair'
    assert payment.service_description == 'engine_repair - Final Payment'
    kinds = get_db().execute(
        select(RepairNotification.type).where(RepairNotification.repair_booking_id == repair.booking_id)
    ).scalars().all()
    assert RepairNotification.TYPE_PAYMENT_RECEIVED in kinds


def test_final_payment_with_explicit_amount(app_context, people):
    repair = create_repair(people['customer'], status=RepairRequest.STATUS_COMPLETED, final_cost=20000)
    _, payment = payments.record_final_payment(get_db(), repair.booking_id, _ref(), amount=14000)
    assert payment.amount == 14000
    assert payment.amount_cents == 1400000


def test_overpaid_invoice_charges_nothing(app_context, people):
    repair = create_repair(people['customer'], status=RepairRequest.STATUS_COMPLETED, final_cost=3000)
    _, payment = payments.record_final_payment(get_db(), repair.booking_id, _ref())
    assert payment.amount == 0
    assert repair.repair_costs.remaining_amount == -2000


def test_final_payment_is_applied_once(people, client):
    headers = jwt_headers(people['employee'])
    repair = create_repair(people['customer'], status=RepairRequest.STATUS_COMPLETED, final_cost=20000)
    ref = _ref()
    first = client.post(f'/repairs/{repair.booking_id}/final-payment', json={'paymentIntentId': ref}, headers=headers)
    assert first.status_code == 200
    # Gateway redelivery and a second intent are both refused
    for again in (ref, _ref()):
        resp = client.post(f'/repairs/{repair.booking_id}/final-payment', json={'paymentIntentId': again},
                           headers=headers)
        assert resp.status_code == 400
        assert resp.get_json()['error']['kind'] == 'AlreadyPaid'
    assert _payments_for(repair.booking_id) == 1


def test_final_payment_requires_completed(people, client):
    headers = jwt_headers(people['employee'])
    for status in (RepairRequest.STATUS_PENDING, RepairRequest.STATUS_IN_PROGRESS, RepairRequest.STATUS_CANCELLED):
        repair = create_repair(people['customer'], status=status, final_cost=20000)
        resp = client.post(f'/repairs/{repair.booking_id}/final-payment', json={'paymentIntentId': _ref()},
                           headers=headers)
        assert resp.status_code == 400
        assert resp.get_json()['error']['kind'] == 'NotCompleted'
        assert _payments_for(repair.booking_id) == 0


def test_final_payment_input_errors(people, client):
    headers = jwt_headers(people['employee'])
    resp = client.post('/repairs/BR-00000000/final-payment', json={'paymentIntentId': _ref()}, headers=headers)
    assert resp.status_code == 404
    repair = create_repair(people['customer'], status=RepairRequest.STATUS_COMPLETED, final_cost=20000)
    resp = client.post(f'/repairs/{repair.booking_id}/final-payment', json={}, headers=headers)
    assert resp.get_json()['error']['kind'] == 'ValidationError'
    resp = client.post(f'/repairs/{repair.booking_id}/final-payment', json={'paymentIntentId': _ref(), 'amount': -1},
                       headers=headers)
    assert resp.get_json()['error']['kind'] == 'ValidationError'
    resp = client.post(f'/repairs/{repair.booking_id}/final-payment', json={'paymentIntentId': _ref()},
                       headers=jwt_headers(people['customer']))
    assert resp.status_code == 403
    assert resp.get_json()['error']['kind'] == 'RoleNotPermitted'


def test_amount_required_before_invoice(app_context, people):
    repair = create_repair(people['customer'], status=RepairRequest.STATUS_COMPLETED)
    with pytest.raises(ValidationError):
        payments.record_final_payment(get_db(), repair.booking_id, _ref())
    assert _payments_for(repair.booking_id) == 0


def test_pending_ledger_row_is_completed_in_place(app_context, people):
    session = get_db()
    repair = create_repair(people['customer'], status=RepairRequest.STATUS_COMPLETED, final_cost=20000)
    ref = _ref()
    session.add(Payment(payment_id=payments.generate_payment_id(), external_transaction_ref=ref,
                        service_id=repair.booking_id, amount=15000, amount_cents=1500000,
                        status=Payment.STATUS_PENDING))
    session.commit()
    _, payment = payments.record_final_payment(session, repair.booking_id, ref)
    assert payment.status == Payment.STATUS_SUCCEEDED
    assert payment.paid_at is not None
    assert _payments_for(repair.booking_id) == 1


def test_foreign_gateway_ref_is_rejected(app_context, people):
    session = get_db()
    first = create_repair(people['customer'], status=RepairRequest.STATUS_COMPLETED, final_cost=8000)
    second = create_repair(people['customer'], status=RepairRequest.STATUS_COMPLETED, final_cost=8000)
    ref = _ref()
    payments.record_final_payment(session, first.booking_id, ref)
    with pytest.raises(ValidationError):
        payments.record_final_payment(session, second.booking_id, ref)
    get_db().refresh(second.repair_costs)
    assert second.repair_costs.payment_status == RepairCosts.PAYMENT_ADVANCE_PAID


def test_missing_cost_record_is_initialised(app_context, people):
    repair = create_repair(people['customer'], status=RepairRequest.STATUS_COMPLETED, with_costs=False)
    assert repair.repair_costs is None
    repair, payment = payments.record_final_payment(get_db(), repair.booking_id, _ref(), amount=12000)
    assert repair.repair_costs.advance_payment == 5000
    assert repair.repair_costs.payment_status == RepairCosts.PAYMENT_FULLY_PAID
    assert payment.amount == 12000


def test_failing_notifier_keeps_payment(app_instance, app_context, people, monkeypatch):
    class Broken:
        def emit(self, *args, **kwargs):
            raise RuntimeError('smtp down')

    monkeypatch.setitem(app_instance.extensions, 'marina.notifier', Broken())
    repair = create_repair(people['customer'], status=RepairRequest.STATUS_COMPLETED, final_cost=20000)
    _, payment = payments.record_final_payment(get_db(), repair.booking_id, _ref())
    stored = get_db().execute(
        select(RepairCosts).where(RepairCosts.repair_id == repair.id)
    ).scalar_one()
    assert stored.payment_status == RepairCosts.PAYMENT_FULLY_PAID
    assert payment.amount == 15000


def test_concurrent_write_is_retried(app_context, people, monkeypatch):
    original = payments._apply_final_payment
    calls = []

    def flaky(*args, **kwargs):
        calls.append(1)
        if len(calls) == 1:
            raise StaleDataError('row changed underneath')
        return original(*args, **kwargs)

    monkeypatch.setattr(payments, '_apply_final_payment', flaky)
    repair = create_repair(people['customer'], status=RepairRequest.STATUS_COMPLETED, final_cost=20000)
    _, payment = payments.record_final_payment(get_db(), repair.booking_id, _ref())
    assert len(calls) == 2
    assert payment.amount == 15000
    assert _payments_for(repair.booking_id) == 1


def test_retry_gives_up(app_context, people, monkeypatch):
    def always_stale(*args, **kwargs):
        raise StaleDataError('row changed underneath')

    monkeypatch.setattr(payments, '_apply_final_payment', always_stale)
    repair = create_repair(people['customer'], status=RepairRequest.STATUS_COMPLETED, final_cost=20000)
    with pytest.raises(InternalError):
        payments.record_final_payment(get_db(), repair.booking_id, _ref())


def test_loser_of_a_race_sees_already_paid(app_context, people):
    repair = create_repair(people['customer'], status=RepairRequest.STATUS_COMPLETED, final_cost=20000)
    payments.record_final_payment(get_db(), repair.booking_id, _ref())
    with pytest.raises(AlreadyPaid):
        payments.record_final_payment(get_db(), repair.booking_id, _ref())
    assert _payments_for(repair.booking_id) == 1


def test_not_completed_is_typed(app_context, people):
    repair = create_repair(people['customer'], status=RepairRequest.STATUS_ASSIGNED, final_cost=20000)
    with pytest.raises(NotCompleted):
        payments.record_final_payment(get_db(), repair.booking_id, _ref())


def test_cost_breakdown_visibility(people, client):
    repair = create_repair(people['customer'], status=RepairRequest.STATUS_COMPLETED, final_cost=20000)
    resp = client.get(f'/repairs/{repair.booking_id}/costs', headers=jwt_headers(people['customer']))
    assert resp.status_code == 200
    data = resp.get_json()['data']
    assert data['remainingAmount'] == 15000
    assert data['serviceType'] == 'engine_repair'
    assert data['status'] == 'completed'
    resp = client.get(f'/repairs/{repair.booking_id}/costs', headers=jwt_headers(people['other']))
    assert resp.status_code == 403
    resp = client.get(f'/repairs/{repair.booking_id}/costs', headers=jwt_headers(people['employee']))
    assert resp.status_code == 200


def test_staff_cannot_change_final_cost_after_payment(people, client):
    repair = create_repair(people['customer'], status=RepairRequest.STATUS_COMPLETED, final_cost=20000,
                           payment_status=RepairCosts.PAYMENT_FULLY_PAID)
    headers = jwt_headers(people['employee'])
    resp = client.put(f'/repairs/{repair.id}', json={'finalCost': 25000}, headers=headers)
    assert resp.status_code == 400
    assert resp.get_json()['error']['kind'] == 'AlreadyPaid'
    resp = client.put(f'/repairs/{repair.id}', json={'workPerformed': 'Hull polished'}, headers=headers)
    assert resp.status_code == 200


def test_rejected_payment_releases_transaction(app_context, people):
    session = get_db()
    paid = create_repair(people['customer'], status=RepairRequest.STATUS_COMPLETED, final_cost=9000,
                         payment_status=RepairCosts.PAYMENT_FULLY_PAID)
    with pytest.raises(AlreadyPaid):
        payments.record_final_payment(session, paid.booking_id, _ref())
    assert not session.in_transaction()


def test_rejected_payment_over_http_releases_transaction(people, client):
    repair = create_repair(people['customer'], status=RepairRequest.STATUS_IN_PROGRESS, final_cost=9000)
    resp = client.post(f'/repairs/{repair.booking_id}/final-payment', json={'paymentIntentId': _ref()},
                       headers=jwt_headers(people['employee']))
    assert resp.get_json()['error']['kind'] == 'NotCompleted'
    assert not get_db().in_transaction()


def test_cost_record_repair_is_not_kept_when_payment_is_refused(app_context, people):
    repair = create_repair(people['customer'], status=RepairRequest.STATUS_IN_PROGRESS, with_costs=False)
    with pytest.raises(NotCompleted):
        payments.record_final_payment(get_db(), repair.booking_id, _ref(), amount=1000)
    stored = get_db().execute(select(RepairCosts).where(RepairCosts.repair_id == repair.id)).scalar_one_or_none()
    assert stored is None


def test_cost_options_by_service_type(people, client):
    session = get_db()
    session.add_all([
        RepairCostOption(service_type='sail_repair', name='Seam restitch', cost=9000),
        RepairCostOption(service_type='sail_repair', name='Batten pocket', cost=4000, description='Per pocket'),
        RepairCostOption(service_type='sail_repair', name='Retired option', cost=1000, is_active=False),
        RepairCostOption(service_type='rigging', name='Shroud swap', cost=20000),
    ])
    session.commit()
    resp = client.get('/repairs/cost-options/sail_repair', headers=jwt_headers(people['employee']))
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['count'] == 2
    assert [o['name'] for o in body['data']] == ['Batten pocket', 'Seam restitch']
    assert body['data'][0] == {'id': body['data'][0]['id'], 'serviceType': 'sail_repair', 'name': 'Batten pocket',
                               'description': 'Per pocket', 'cost': 4000}
    resp = client.get('/repairs/cost-options/submarine', headers=jwt_headers(people['employee']))
    assert resp.get_json()['data'] == []
    resp = client.get('/repairs/cost-options/sail_repair', headers=jwt_headers(people['customer']))
    assert resp.status_code == 403
    assert resp.get_json()['error']['kind'] == 'RoleNotPermitted'
