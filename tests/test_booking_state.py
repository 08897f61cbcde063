from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import update

from conftest import NOW, confirmed_booking, make_user, rental
from models import db
from models.audit_log import AuditLog
from models.booking import Booking, BookingStatus, PaymentStatus
from models.payment import Payment
from services import booking_state, events, payments
from services.errors import (
    ConcurrentModificationError,
    InvalidStateError,
    NotFoundError,
    PaymentDeclinedError,
    PaymentMismatchError,
    ValidationError,
)


# ---------- creation ----------

def test_without_driver_starts_license_required(customer, vehicle):
    pickup, ret = rental()
    booking = booking_state.create_booking(customer.id, vehicle.id, pickup, ret, "270.00", tax_amount="30", now=NOW)

    assert booking.status == BookingStatus.LICENSE_REQUIRED
    assert booking.payment_status == PaymentStatus.UNPAID
    assert booking.total_price == Decimal("300.00")
    assert booking.daily_mileage_allowance == 200
    assert booking.extra_mile_rate == Decimal("0.50")
    assert booking.cleaning_fee_rate == Decimal("75.00")


def test_with_driver_starts_pending(customer, vehicle, driver):
    pickup, ret = rental()
    booking = booking_state.create_booking(customer.id, vehicle.id, pickup, ret, 100, driver_id=driver.id, now=NOW)
    assert booking.status == BookingStatus.PENDING
    assert booking.driver_id == driver.id


def test_create_validation(customer, vehicle):
    pickup, ret = rental()
    with pytest.raises(ValidationError) as exc:
        booking_state.create_booking(customer.id, vehicle.id, ret, pickup, "-5", now=NOW)
    assert set(exc.value.fields) == {"return_date", "base_price"}

    with pytest.raises(ValidationError) as exc:
        booking_state.create_booking(customer.id, vehicle.id, NOW - timedelta(hours=1), ret, 100, now=NOW)
    assert exc.value.fields == {"pickup_date": "must be in the future"}

    with pytest.raises(ValidationError):
        booking_state.create_booking(customer.id, vehicle.id, "next tuesday", ret, 100, now=NOW)


def test_create_unknown_vehicle(customer):
    pickup, ret = rental()
    with pytest.raises(NotFoundError):
        booking_state.create_booking(customer.id, 404, pickup, ret, 100, now=NOW)


def test_attach_driver_needs_documents(customer, vehicle, driver):
    pickup, ret = rental()
    booking = booking_state.create_booking(customer.id, vehicle.id, pickup, ret, 100, now=NOW)

    with pytest.raises(ValidationError) as exc:
        booking_state.attach_driver(booking.id, driver.id, customer.id, now=NOW)
    assert exc.value.fields == {"license": "not submitted", "insurance": "not submitted"}
    assert booking_state.get_booking(booking.id).status == BookingStatus.LICENSE_REQUIRED


# ---------- cancellation ----------

def test_cancel_paid_booking_partial_refund(customer, vehicle, driver):
    booking = confirmed_booking(customer, vehicle, driver)
    at = booking.pickup_date - timedelta(hours=12)

    booking, decision = booking_state.request_cancellation(booking.id, "Flight moved", customer.id, now=at)

    assert decision.refund_percent == 50
    assert booking.status == BookingStatus.CANCELLED
    assert booking.refund_tier == "partial_refund"
    assert booking.refund_amount == Decimal("150.00")
    assert booking.cancelled_at == at
    assert booking.cancel_reason == "Flight moved"


def test_cancel_unpaid_booking_refunds_nothing(customer, vehicle):
    pickup, ret = rental()
    booking = booking_state.create_booking(customer.id, vehicle.id, pickup, ret, 100, now=NOW)

    booking, decision = booking_state.request_cancellation(booking.id, None, customer.id, now=NOW)

    assert decision.tier == "full_refund"
    assert booking.refund_amount == Decimal("0.00")


def test_quote_matches_cancel_and_stores_nothing(customer, vehicle, driver):
    booking = confirmed_booking(customer, vehicle, driver)
    at = booking.pickup_date - timedelta(hours=3)

    quote = booking_state.cancellation_quote(booking.id, now=at)
    assert quote.tier == "no_refund"
    assert booking_state.get_booking(booking.id).status == BookingStatus.CONFIRMED

    _, decision = booking_state.request_cancellation(booking.id, None, customer.id, now=at)
    assert decision == quote


def test_cannot_cancel_active_or_cancelled(customer, vehicle, driver, agent):
    booking = confirmed_booking(customer, vehicle, driver)
    booking_state.check_in(booking.id, 10000, "full", None, agent.id, now=booking.pickup_date)

    with pytest.raises(InvalidStateError) as exc:
        booking_state.request_cancellation(booking.id, None, customer.id, now=NOW)
    assert exc.value.current_status == "active"

    pickup, ret = rental()
    other = booking_state.create_booking(customer.id, vehicle.id, pickup, ret, 100, now=NOW)
    booking_state.request_cancellation(other.id, None, customer.id, now=NOW)
    with pytest.raises(InvalidStateError):
        booking_state.request_cancellation(other.id, None, customer.id, now=NOW)


# ---------- payment ----------

def test_payment_must_match_total(customer, vehicle, driver):
    pickup, ret = rental()
    booking = booking_state.create_booking(customer.id, vehicle.id, pickup, ret, 300, driver_id=driver.id, now=NOW)

    with pytest.raises(PaymentMismatchError) as exc:
        booking_state.record_payment(booking.id, "299.98", now=NOW)
    assert exc.value.details == {"expected": "300.00", "received": "299.98"}
    assert booking_state.get_booking(booking.id).status == BookingStatus.PENDING

    # a cent of rounding is accepted
    booking = booking_state.record_payment(booking.id, "300.01", method="cash", now=NOW)
    assert booking.status == BookingStatus.CONFIRMED
    assert booking.payment_status == PaymentStatus.PAID
    assert booking.amount_paid == Decimal("300.01")


def test_payment_not_accepted_before_verification(customer, vehicle):
    pickup, ret = rental()
    booking = booking_state.create_booking(customer.id, vehicle.id, pickup, ret, 300, now=NOW)

    with pytest.raises(InvalidStateError) as exc:
        booking_state.record_payment(booking.id, 300, now=NOW)
    assert exc.value.current_status == "license_required"


def test_same_charge_cannot_pay_twice(customer, vehicle, driver):
    first = confirmed_booking(customer, vehicle, driver)
    Payment.query.filter_by(booking_id=first.id).one().charge_id = "pi_dup"
    db.session.commit()

    pickup, ret = rental()
    second = booking_state.create_booking(customer.id, vehicle.id, pickup, ret, 300, driver_id=driver.id, now=NOW)
    with pytest.raises(InvalidStateError):
        booking_state.record_payment(second.id, 300, charge_id="pi_dup", now=NOW)
    assert booking_state.get_booking(second.id).status == BookingStatus.PENDING


def test_pay_declined_leaves_booking(monkeypatch, customer, vehicle, driver):
    pickup, ret = rental()
    booking = booking_state.create_booking(customer.id, vehicle.id, pickup, ret, 300, driver_id=driver.id, now=NOW)
    monkeypatch.setattr(payments, "charge_customer",
                        lambda *a, **kw: payments.ChargeResult(False, charge_id="pi_no", reason="Card declined"))

    with pytest.raises(PaymentDeclinedError) as exc:
        booking_state.pay(booking.id, customer.id, payment_method="pm_card_chargeDeclined")
    assert exc.value.status_code == 402
    assert exc.value.details == {"reason": "Card declined"}

    booking = booking_state.get_booking(booking.id)
    assert booking.status == BookingStatus.PENDING
    assert booking.payment_status == PaymentStatus.UNPAID
    failed = Payment.query.filter_by(booking_id=booking.id).one()
    assert failed.status == "FAILED"
    assert AuditLog.query.filter_by(action="PAYMENT_DECLINED").count() == 1


def test_pay_success_confirms(monkeypatch, customer, vehicle, driver):
    pickup, ret = rental()
    booking = booking_state.create_booking(customer.id, vehicle.id, pickup, ret, 300, driver_id=driver.id, now=NOW)
    monkeypatch.setattr(payments, "charge_customer",
                        lambda *a, **kw: payments.ChargeResult(True, charge_id="pi_ok", amount=Decimal("300.00")))

    booking = booking_state.pay(booking.id, customer.id, payment_method="pm_card_visa")

    assert booking.status == BookingStatus.CONFIRMED
    assert Payment.query.filter_by(charge_id="pi_ok").one().amount == Decimal("300.00")


def test_pay_without_stripe_key_is_declined(customer, vehicle, driver):
    pickup, ret = rental()
    booking = booking_state.create_booking(customer.id, vehicle.id, pickup, ret, 300, driver_id=driver.id, now=NOW)

    with pytest.raises(PaymentDeclinedError):
        booking_state.pay(booking.id, customer.id, payment_method="pm_card_visa")


# ---------- review ----------

def _completed(customer, vehicle, driver, agent):
    booking = confirmed_booking(customer, vehicle, driver)
    booking_state.check_in(booking.id, 10000, "full", None, agent.id, now=booking.pickup_date)
    booking_state.check_out(booking.id, 10100, "full", agent.id, now=booking.return_date)
    return booking_state.get_booking(booking.id)


def test_review_after_completion(customer, vehicle, driver, agent):
    booking = _completed(customer, vehicle, driver, agent)

    review = booking_state.leave_review(booking.id, customer.id, 5, "Spotless car")
    assert review.rating == 5
    assert review.vehicle_id == vehicle.id

    with pytest.raises(InvalidStateError):
        booking_state.leave_review(booking.id, customer.id, 4)


def test_review_rules(customer, vehicle, driver, agent):
    booking = _completed(customer, vehicle, driver, agent)
    stranger = make_user("sam@example.com")

    with pytest.raises(NotFoundError):
        booking_state.leave_review(booking.id, stranger.id, 5)
    with pytest.raises(ValidationError):
        booking_state.leave_review(booking.id, customer.id, 6)

    pickup, ret = rental()
    open_booking = booking_state.create_booking(customer.id, vehicle.id, pickup, ret, 100, now=NOW)
    with pytest.raises(InvalidStateError):
        booking_state.leave_review(open_booking.id, customer.id, 5)


# ---------- events and concurrency ----------

def test_status_changes_are_announced(customer, vehicle, driver):
    seen = []
    events.subscribe(seen.append)
    try:
        booking = confirmed_booking(customer, vehicle, driver)
    finally:
        events.unsubscribe(seen.append)

    assert [(e.from_status, e.to_status) for e in seen] == [(None, "pending"), ("pending", "confirmed")]
    assert all(e.booking_id == booking.id for e in seen)
    assert AuditLog.query.filter_by(action="BOOKING_STATUS_CHANGE", entity_id=str(booking.id)).count() == 2


def test_failing_subscriber_does_not_undo_change(customer, vehicle, driver):
    def broken(event):
        raise RuntimeError("mail server down")

    events.subscribe(broken)
    try:
        booking = confirmed_booking(customer, vehicle, driver)
    finally:
        events.unsubscribe(broken)

    assert booking_state.get_booking(booking.id).status == BookingStatus.CONFIRMED


def test_lost_race_raises_concurrent_modification(customer, vehicle, driver):
    booking = confirmed_booking(customer, vehicle, driver)
    booking = db.session.get(Booking, booking.id)
    assert booking.status == BookingStatus.CONFIRMED

    # another writer commits in between our read and our write
    db.session.execute(
        update(Booking)
        .where(Booking.id == booking.id)
        .values(version=Booking.version + 1)
        .execution_options(synchronize_session=False)
    )

    with pytest.raises(ConcurrentModificationError):
        booking_state.request_cancellation(booking.id, None, customer.id, now=NOW)

    assert booking_state.get_booking(booking.id).status == BookingStatus.CONFIRMED


# ---------- input edges ----------

def test_offset_timestamps_are_stored_as_utc(customer, vehicle):
    booking = booking_state.create_booking(
        customer.id, vehicle.id, "2030-01-20T20:00:00+02:00", "2030-01-23T18:00:00.000Z", 300, now=NOW
    )

    assert booking.pickup_date == datetime(2030, 1, 20, 18, 0)
    assert booking.return_date == datetime(2030, 1, 23, 18, 0)
    assert booking.pickup_date.tzinfo is None


def test_nan_amounts_are_validation_errors(customer, vehicle, driver):
    pickup, ret = rental()
    with pytest.raises(ValidationError) as exc:
        booking_state.create_booking(customer.id, vehicle.id, pickup, ret, "NaN", tax_amount="Infinity", now=NOW)
    assert exc.value.fields == {"base_price": "must be a number", "tax_amount": "must be a number"}

    booking = booking_state.create_booking(customer.id, vehicle.id, pickup, ret, 300, driver_id=driver.id, now=NOW)
    with pytest.raises(ValidationError) as exc:
        booking_state.record_payment(booking.id, "NaN", now=NOW)
    assert exc.value.fields == {"amount": "must be a number"}
    assert booking_state.get_booking(booking.id).status == BookingStatus.PENDING


def test_charge_kept_when_booking_cancelled_mid_payment(monkeypatch, customer, vehicle, driver):
    pickup, ret = rental()
    booking = booking_state.create_booking(customer.id, vehicle.id, pickup, ret, 300, driver_id=driver.id, now=NOW)

    def cancel_then_charge(*args, **kwargs):
        # the customer cancels in another tab while the card is being charged
        booking_state.request_cancellation(booking.id, "Changed plans", customer.id, now=NOW)
        return payments.ChargeResult(True, charge_id="pi_late", amount=Decimal("300.00"))

    monkeypatch.setattr(payments, "charge_customer", cancel_then_charge)

    with pytest.raises(InvalidStateError):
        booking_state.pay(booking.id, customer.id, payment_method="pm_card_visa")

    assert booking_state.get_booking(booking.id).status == BookingStatus.CANCELLED
    kept = Payment.query.filter_by(charge_id="pi_late").one()
    assert kept.status == "UNAPPLIED"
    assert kept.amount == Decimal("300.00")
    assert kept.booking_id == booking.id
    assert AuditLog.query.filter_by(action="PAYMENT_UNAPPLIED").count() == 1
