import json
import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from urllib.parse import parse_qsl, urlparse

import pytest

from app.core.errors import InvalidStateError, NotFoundError, SignatureError, ValidationError
from app.models.audit_log import AuditLog
from app.models.booking import Booking
from app.models.booking_note import BookingNote
from app.models.payment import Payment
from app.services.payment_service import PaymentFailed, PaymentSucceeded
from app.services.stripe_gateway import StripeGateway, from_minor_units, parse_event, to_minor_units

from conftest import NOW, WEBHOOK_SECRET, TravelerInput, adults, ipn_params, make_item, stripe_signature, vnpay


@pytest.fixture
def booking(db, service, customer):
    item = make_item(db, base_price="50.00", capacity=10)
    travelers = [TravelerInput("Ann"), TravelerInput("Ben"), TravelerInput("Cy", type="child")]
    return service.create_booking(customer.id, item.id, NOW.date() + timedelta(days=10), travelers)


def notes(db, booking_id):
    db.expire_all()
    return [n.content for n in db.query(BookingNote).filter(BookingNote.booking_id == booking_id)]


def ledger(db, booking_id):
    return db.query(Payment).filter(Payment.booking_id == booking_id).all()


def intent_event(booking_id, event_type="payment_intent.succeeded", intent_id="pi_abc", amount=16500,
                 currency="usd", message=None):
    intent = {
        "id": intent_id,
        "object": "payment_intent",
        "amount": amount,
        "amount_received": amount if event_type == "payment_intent.succeeded" else 0,
        "currency": currency,
        "metadata": {"booking_id": booking_id},
        "payment_method_types": ["card"],
    }
    if message:
        intent["last_payment_error"] = {"message": message}
    return json.dumps({"id": "evt_1", "type": event_type, "data": {"object": intent}})


# -------------------------
# reconciliation
# -------------------------
def test_duplicate_success_is_applied_once(db, reconciler, notifier, booking):
    outcome = PaymentSucceeded(transaction_id="abc", amount=Decimal("165"), method="credit_card")

    first = reconciler.apply_payment_result(booking.id, outcome)
    second = reconciler.apply_payment_result(booking.id, outcome)

    assert first.applied and first.confirmed
    assert not second.applied
    b = db.get(Booking, booking.id)
    assert b.payment_status == "paid"
    assert b.paid_amount == Decimal("165.00")
    assert b.status == "confirmed"
    assert b.transaction_id == "abc"
    assert len(notes(db, booking.id)) == 1
    assert len(ledger(db, booking.id)) == 1
    assert notifier.kinds() == ["created", "confirmed"]


def test_failure_leaves_status_pending(db, reconciler, booking):
    reconciler.apply_payment_result(booking.id, PaymentFailed(reason="card declined", transaction_id="pi_1"))
    b = db.get(Booking, booking.id)
    assert b.payment_status == "failed"
    assert b.status == "pending"
    assert notes(db, booking.id) == ["Payment failed via stripe: card declined"]


def test_failure_then_success_confirms(db, reconciler, booking):
    reconciler.apply_payment_result(booking.id, PaymentFailed(reason="declined", transaction_id="pi_1"))
    reconciler.apply_payment_result(booking.id, PaymentSucceeded(transaction_id="pi_1", amount=Decimal("165")))
    b = db.get(Booking, booking.id)
    assert (b.payment_status, b.status) == ("paid", "confirmed")


def test_late_failure_after_success_is_ignored(db, reconciler, booking):
    reconciler.apply_payment_result(booking.id, PaymentSucceeded(transaction_id="pi_1", amount=Decimal("165")))
    result = reconciler.apply_payment_result(booking.id, PaymentFailed(reason="stale", transaction_id="pi_1"))
    assert not result.applied
    b = db.get(Booking, booking.id)
    assert (b.payment_status, b.status) == ("paid", "confirmed")
    assert len(notes(db, booking.id)) == 1


def test_second_distinct_success_is_recorded_not_applied(db, reconciler, booking):
    reconciler.apply_payment_result(booking.id, PaymentSucceeded(transaction_id="pi_1", amount=Decimal("165")))
    result = reconciler.apply_payment_result(booking.id, PaymentSucceeded(transaction_id="pi_2", amount=Decimal("165")))
    assert result.applied and not result.confirmed
    b = db.get(Booking, booking.id)
    assert b.transaction_id == "pi_1"
    assert len(ledger(db, booking.id)) == 2
    assert any("review for refund" in n for n in notes(db, booking.id))


def test_payment_on_cancelled_booking_keeps_it_cancelled(db, service, reconciler, customer, booking):
    service.cancel_booking(booking.id, customer)
    reconciler.apply_payment_result(booking.id, PaymentSucceeded(transaction_id="pi_1", amount=Decimal("165")))
    b = db.get(Booking, booking.id)
    assert (b.payment_status, b.status) == ("paid", "cancelled")
    assert any("refund required" in n for n in notes(db, booking.id))


def test_unknown_booking_is_not_found(reconciler):
    with pytest.raises(NotFoundError):
        reconciler.apply_payment_result("missing", PaymentSucceeded(transaction_id="x", amount=Decimal("1")))


@pytest.mark.parametrize("ref", ["0", None])
def test_failure_reference_shared_by_two_bookings_applies_to_both(db, service, reconciler, customer, booking, ref):
    # VNPay reports failed attempts with transaction number 0 or none at all
    item = make_item(db, base_price="50.00", capacity=10)
    other = service.create_booking(customer.id, item.id, NOW.date() + timedelta(days=10), adults(3))
    failure = PaymentFailed(reason="VNPay response code 24", transaction_id=ref)

    results = [reconciler.apply_payment_result(b.id, failure, provider="vnpay") for b in (booking, other)]

    assert [r.applied for r in results] == [True, True]
    db.expire_all()
    assert [db.get(Booking, b.id).payment_status for b in (booking, other)] == ["failed", "failed"]
    assert len(ledger(db, other.id)) == 1
    assert not reconciler.apply_payment_result(other.id, failure, provider="vnpay").applied


def test_manual_reference_shared_by_two_bookings_confirms_both(db, service, reconciler, customer, booking):
    item = make_item(db, base_price="50.00", capacity=10)
    other = service.create_booking(customer.id, item.id, NOW.date() + timedelta(days=10), adults(3))
    cash = PaymentSucceeded(transaction_id="cash", amount=Decimal("165"), method="cash")

    for b in (booking, other):
        result = reconciler.apply_payment_result(b.id, cash, provider="manual")
        assert result.applied and result.confirmed

    db.expire_all()
    assert [db.get(Booking, b.id).status for b in (booking, other)] == ["confirmed", "confirmed"]


def test_payment_sees_changes_committed_by_another_session(db, session_factory, reconciler, booking):
    assert db.get(Booking, booking.id).status == "pending"
    other = session_factory()
    try:
        other.get(Booking, booking.id).status = "cancelled"
        other.commit()
    finally:
        other.close()

    result = reconciler.apply_payment_result(booking.id, PaymentSucceeded(transaction_id="pi_1", amount=Decimal("165")))

    assert result.applied and not result.confirmed
    assert result.booking.status == "cancelled"
    assert any("refund required" in n for n in notes(db, booking.id))


def test_admin_recorded_payment_is_audited_once(db, reconciler, admin, booking):
    cash = PaymentSucceeded(transaction_id="BANK-9", amount=Decimal("165"), method="bank_transfer")

    assert reconciler.apply_payment_result(booking.id, cash, provider="manual", actor=admin).applied
    assert not reconciler.apply_payment_result(booking.id, cash, provider="manual", actor=admin).applied
    late = PaymentFailed(reason="bounced", transaction_id="BANK-9")
    assert not reconciler.apply_payment_result(booking.id, late, provider="manual", actor=admin).applied

    rows = db.query(AuditLog).filter(AuditLog.entity_id == booking.id).all()
    assert [r.action for r in rows] == ["booking.manual_payment"]
    assert rows[0].actor_id == admin.id


def test_refund_via_stripe(db, reconciler, stripe_gateway, admin, booking):
    reconciler.apply_payment_result(booking.id, PaymentSucceeded(transaction_id="pi_1", amount=Decimal("165")))
    b = reconciler.refund(booking.id, admin, gateway=stripe_gateway, amount=Decimal("100"))
    assert b.payment_status == "refunded"
    assert b.refund_amount == Decimal("100.00")
    assert stripe_gateway.refunds == [("pi_1", Decimal("100.00"), "USD")]
    with pytest.raises(InvalidStateError):
        reconciler.refund(booking.id, admin, gateway=stripe_gateway)


def test_refund_cannot_exceed_paid_amount(reconciler, stripe_gateway, admin, booking):
    reconciler.apply_payment_result(booking.id, PaymentSucceeded(transaction_id="pi_1", amount=Decimal("165")))
    with pytest.raises(ValidationError):
        reconciler.refund(booking.id, admin, gateway=stripe_gateway, amount=Decimal("200"))


def test_unpaid_booking_cannot_be_refunded(reconciler, stripe_gateway, admin, booking):
    with pytest.raises(InvalidStateError):
        reconciler.refund(booking.id, admin, gateway=stripe_gateway)


# -------------------------
# stripe webhook parsing
# -------------------------
def test_webhook_signature_verified_and_parsed(booking):
    gateway = StripeGateway("sk_test", WEBHOOK_SECRET)
    payload = intent_event(booking.id, intent_id="abc")
    event = gateway.verify_and_parse_webhook(payload.encode(), stripe_signature(payload))
    assert event.booking_id == booking.id
    assert event.outcome == PaymentSucceeded(transaction_id="abc", amount=Decimal("165"), method="credit_card")


@pytest.mark.parametrize("header", [
    None,
    "",
    "t=1,v1=deadbeef",
    "garbage",
])
def test_bad_signatures_rejected(booking, header):
    gateway = StripeGateway("sk_test", WEBHOOK_SECRET)
    with pytest.raises(SignatureError):
        gateway.verify_and_parse_webhook(intent_event(booking.id).encode(), header)


def test_signature_with_wrong_secret_rejected(booking):
    gateway = StripeGateway("sk_test", WEBHOOK_SECRET)
    payload = intent_event(booking.id)
    with pytest.raises(SignatureError):
        gateway.verify_and_parse_webhook(payload.encode(), stripe_signature(payload, secret="whsec_other"))


def test_expired_signature_rejected(booking):
    gateway = StripeGateway("sk_test", WEBHOOK_SECRET, tolerance=300)
    payload = intent_event(booking.id)
    old = int(time.time()) - 3600
    with pytest.raises(SignatureError):
        gateway.verify_and_parse_webhook(payload.encode(), stripe_signature(payload, ts=old))


def test_missing_webhook_secret_rejects_everything(booking):
    gateway = StripeGateway("sk_test", "")
    payload = intent_event(booking.id)
    with pytest.raises(SignatureError):
        gateway.verify_and_parse_webhook(payload.encode(), stripe_signature(payload))


def test_failed_and_unrelated_events():
    failed = json.loads(intent_event("b1", "payment_intent.payment_failed", message="Your card was declined."))
    event = parse_event(failed)
    assert event.outcome == PaymentFailed(reason="Your card was declined.", transaction_id="pi_abc")
    assert parse_event({"type": "charge.refunded", "data": {"object": {}}}) is None


def test_minor_unit_conversion():
    assert to_minor_units(Decimal("165.00"), "USD") == 16500
    assert to_minor_units(Decimal("250000"), "VND") == 250000
    assert from_minor_units(16550, "usd") == Decimal("165.5")
    assert from_minor_units(5000, "jpy") == Decimal("5000")


# -------------------------
# vnpay
# -------------------------
def vnd_booking(db, service, customer):
    item = make_item(db, base_price="500000", capacity=5, currency="VND")
    return service.create_booking(customer.id, item.id, NOW.date() + timedelta(days=10), adults(1))


def test_vnpay_payment_url_is_signed(db, service, customer):
    b = vnd_booking(db, service, customer)
    url = vnpay().build_payment_url(b, "10.0.0.1", now=datetime(2026, 6, 1, 5, 0, tzinfo=timezone.utc))
    params = dict(parse_qsl(urlparse(url).query))
    assert params["vnp_TxnRef"] == b.booking_number
    assert params["vnp_Amount"] == str(int(b.total_amount * 100))
    assert params["vnp_CreateDate"] == "20260601120000"
    received = params.pop("vnp_SecureHash")
    assert vnpay().sign(params) == received


def test_vnpay_rejects_non_vnd_booking(booking):
    with pytest.raises(ValidationError):
        vnpay().build_payment_url(booking, "10.0.0.1")


def test_vnpay_callback_round_trip():
    client = vnpay()
    number, outcome = client.verify_and_parse_callback(ipn_params(client, "TRV123456789", Decimal("550000")))
    assert number == "TRV123456789"
    assert outcome == PaymentSucceeded(transaction_id="14000001", amount=Decimal("550000"), method="vnpay")

    _, failed = client.verify_and_parse_callback(ipn_params(client, "TRV123456789", Decimal("550000"), code="24"))
    assert isinstance(failed, PaymentFailed)


def test_vnpay_tampered_callback_rejected():
    client = vnpay()
    params = ipn_params(client, "TRV123456789", Decimal("550000"))
    params["vnp_Amount"] = "100"
    with pytest.raises(SignatureError):
        client.verify_and_parse_callback(params)
