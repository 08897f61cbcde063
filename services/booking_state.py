"""
Booking lifecycle: the one place that decides which status a booking moves to.

    license_required -> verification_pending -> payment_pending -> confirmed
    pending -------------------------------------------------------> confirmed
    confirmed -> active (check-in) -> completed (check-out)
    anything before active -> cancelled

Every operation reads the persisted booking, checks the move against
``models.booking.TRANSITIONS`` and commits once. The booking row is
versioned, so of two requests racing on the same booking only the first
commit wins; the other gets ConcurrentModificationError.
"""
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from flask import current_app
from loguru import logger

from models import db
from models.booking import Booking, BookingStatus, PaymentStatus, CANCELLABLE, PAYABLE
from models.driver import Driver, DocumentType
from models.payment import Payment
from models.review import Review
from models.user import User
from models.vehicle import Vehicle
from services import cancellation, payments, verification
from services.checkin import check_in  # noqa: F401
from services.checkout import check_out  # noqa: F401
from services.common import atomic, get_or_404, money, utcnow
from services.errors import (
    BookingError,
    InvalidStateError,
    NotFoundError,
    PaymentDeclinedError,
    PaymentMismatchError,
    ValidationError,
)
from services.events import StatusChanged
from services.lifecycle import announce, move
from utils.audit import log_event


def _as_datetime(value, field):
    if not isinstance(value, datetime):
        text = str(value).strip()
        if text.endswith(("Z", "z")):
            # browsers send toISOString() values like "2026-01-20T18:00:00.000Z"
            text = text[:-1] + "+00:00"
        try:
            # Expect ISO format like "2026-01-20T18:00:00"
            value = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError(fields={field: "invalid datetime, use ISO e.g. 2026-01-20T18:00:00"}) from None
    if value.tzinfo is not None:
        # stored and compared as naive UTC
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _as_amount(value, field, errors):
    try:
        amount = money(value)
    except (InvalidOperation, ValueError):
        errors[field] = "must be a number"
        return None
    if amount < 0:
        errors[field] = "must not be negative"
        return None
    return amount


def _verification_flags(driver_id):
    if driver_id is None:
        return False, False
    docs = verification.documents_for(driver_id)
    lic = docs.get(DocumentType.LICENSE)
    ins = docs.get(DocumentType.INSURANCE)
    return bool(lic and lic.verified), bool(ins and ins.verified)


def get_booking(booking_id: int) -> Booking:
    return get_or_404(Booking, booking_id, "Booking")


def create_booking(customer_id: int, vehicle_id: int, pickup_date, return_date, base_price,
                   tax_amount=0, deposit_amount=0, pickup_location=None, return_location=None,
                   driver_id=None, unlimited_mileage=False, daily_mileage_allowance=None,
                   extra_mile_rate=None, cleaning_fee=None, now=None) -> Booking:
    now = now or utcnow()
    cfg = current_app.config

    pickup = _as_datetime(pickup_date, "pickup_date")
    ret = _as_datetime(return_date, "return_date")

    errors = {}
    if ret <= pickup:
        errors["return_date"] = "must be after pickup_date"
    if pickup <= now:
        errors["pickup_date"] = "must be in the future"
    base = _as_amount(base_price, "base_price", errors)
    tax = _as_amount(tax_amount, "tax_amount", errors)
    deposit = _as_amount(deposit_amount, "deposit_amount", errors)

    allowance = cfg.get("DEFAULT_DAILY_MILEAGE_ALLOWANCE", 200) if daily_mileage_allowance is None else daily_mileage_allowance
    if isinstance(allowance, bool) or not isinstance(allowance, int) or allowance < 0:
        errors["daily_mileage_allowance"] = "must be a non-negative whole number"
    rate = _as_amount(cfg.get("DEFAULT_EXTRA_MILE_RATE", 0.5) if extra_mile_rate is None else extra_mile_rate,
                      "extra_mile_rate", errors)
    cleaning = _as_amount(cfg.get("DEFAULT_CLEANING_FEE", 75) if cleaning_fee is None else cleaning_fee,
                          "cleaning_fee", errors)
    if errors:
        raise ValidationError("Invalid booking", fields=errors)

    get_or_404(User, customer_id, "Customer")
    get_or_404(Vehicle, vehicle_id, "Vehicle")
    if driver_id is not None:
        get_or_404(Driver, driver_id, "Driver")

    license_ok, insurance_ok = _verification_flags(driver_id)
    status = BookingStatus.PENDING if driver_id is not None else BookingStatus.LICENSE_REQUIRED

    with atomic("booking", None):
        booking = Booking(
            customer_id=customer_id,
            vehicle_id=vehicle_id,
            driver_id=driver_id,
            pickup_date=pickup,
            return_date=ret,
            pickup_location=(pickup_location or "").strip() or None,
            return_location=(return_location or "").strip() or None,
            base_price=base,
            tax_amount=tax,
            total_price=base + tax,
            deposit_amount=deposit,
            unlimited_mileage=bool(unlimited_mileage),
            daily_mileage_allowance=allowance,
            extra_mile_rate=rate,
            cleaning_fee_rate=cleaning,
            status=status,
            payment_status=PaymentStatus.UNPAID,
            license_verified=license_ok,
            insurance_verified=insurance_ok,
        )
        db.session.add(booking)

    log_event("BOOKING_CREATE", user_id=customer_id, entity="booking", entity_id=booking.id,
              metadata={"vehicle_id": vehicle_id, "driver_id": driver_id, "status": status.value})
    announce(StatusChanged(booking.id, None, status.value, customer_id, now))
    return booking


def attach_driver(booking_id: int, driver_id: int, actor_id=None, now=None) -> Booking:
    """Driver supplied license and insurance: hand the booking to the verifiers."""
    now = now or utcnow()
    booking = get_booking(booking_id)
    get_or_404(Driver, driver_id, "Driver")

    if booking.status != BookingStatus.LICENSE_REQUIRED:
        raise InvalidStateError("Driver documents are not expected for this booking", current_status=booking.status)

    docs = verification.documents_for(driver_id)
    missing = {t.value: "not submitted" for t in DocumentType if t not in docs}
    if missing:
        raise ValidationError("Driver documents missing", fields=missing)

    with atomic("booking", booking.id):
        booking.driver_id = driver_id
        booking.license_verified = docs[DocumentType.LICENSE].verified
        booking.insurance_verified = docs[DocumentType.INSURANCE].verified
        event = move(booking, BookingStatus.VERIFICATION_PENDING, actor_id, now)

    log_event("BOOKING_DRIVER_ATTACH", user_id=actor_id, entity="booking", entity_id=booking.id,
              metadata={"driver_id": driver_id})
    announce(event)

    # documents may have been verified for an earlier booking already
    return advance_on_verification(booking.id, actor_id, now)


def advance_on_verification(booking_id: int, actor_id=None, now=None) -> Booking:
    """
    Refresh the verification snapshot and move verification_pending ->
    payment_pending once license and insurance are both verified.
    A no-op in any other status; safe to call any number of times.
    """
    booking = get_booking(booking_id)
    if booking.status != BookingStatus.VERIFICATION_PENDING:
        return booking

    # locked so a reject cannot land between this read and the status write
    docs = verification.documents_for(booking.driver_id, lock=True)
    lic = docs.get(DocumentType.LICENSE)
    ins = docs.get(DocumentType.INSURANCE)
    license_ok = bool(lic and lic.verified)
    insurance_ok = bool(ins and ins.verified)

    ready = license_ok and insurance_ok
    if not ready and (booking.license_verified, booking.insurance_verified) == (license_ok, insurance_ok):
        db.session.rollback()
        return booking

    event = None
    with atomic("booking", booking.id):
        booking.license_verified = license_ok
        booking.insurance_verified = insurance_ok
        # a verify or reject committed since the read fails this write
        verification.assert_unchanged([d for d in (lic, ins) if d is not None])
        if ready:
            event = move(booking, BookingStatus.PAYMENT_PENDING, actor_id, now)

    announce(event)
    return booking


def sync_driver_bookings(driver_id: int, actor_id=None, now=None):
    """Re-evaluate every booking of this driver still waiting on verification."""
    waiting = [
        b.id for b in Booking.query.filter_by(driver_id=driver_id, status=BookingStatus.VERIFICATION_PENDING).all()
    ]
    return [advance_on_verification(booking_id, actor_id, now) for booking_id in waiting]


def _evaluate_cancellation(booking, now):
    cfg = current_app.config
    return cancellation.evaluate(
        now,
        booking.pickup_date,
        full_refund_hours=cfg.get("CANCEL_FULL_REFUND_HOURS", 24),
        partial_refund_hours=cfg.get("CANCEL_PARTIAL_REFUND_HOURS", 6),
        partial_percent=cfg.get("CANCEL_PARTIAL_REFUND_PERCENT", 50),
    )


def cancellation_quote(booking_id: int, now=None):
    """What cancelling right now would refund. Nothing is stored."""
    now = now or utcnow()
    booking = get_booking(booking_id)
    if booking.status not in CANCELLABLE:
        raise InvalidStateError("Booking not cancellable", current_status=booking.status)
    return _evaluate_cancellation(booking, now)


def request_cancellation(booking_id: int, reason, actor_id: int, now=None):
    now = now or utcnow()
    booking = get_booking(booking_id)
    if booking.status not in CANCELLABLE:
        raise InvalidStateError("Booking not cancellable", current_status=booking.status)

    # evaluated now, never reused from an earlier quote
    decision = _evaluate_cancellation(booking, now)
    refund = money(Decimal(booking.amount_paid or 0) * decision.refund_percent / 100)

    with atomic("booking", booking.id):
        booking.cancelled_at = now
        booking.cancelled_by = actor_id
        booking.cancel_reason = (reason or "").strip()[:255] or None
        booking.refund_tier = decision.tier
        booking.refund_percent = decision.refund_percent
        booking.refund_amount = refund
        event = move(booking, BookingStatus.CANCELLED, actor_id, now)

    log_event("BOOKING_CANCEL", user_id=actor_id, entity="booking", entity_id=booking.id, metadata={
        "reason": booking.cancel_reason,
        "tier": decision.tier,
        "refund_percent": decision.refund_percent,
        "refund_amount": str(refund),
    })
    announce(event)
    return booking, decision


def record_payment(booking_id: int, amount_charged, actor_id=None, method=None, charge_id=None, now=None) -> Booking:
    """Callback for the payment collaborator once a charge has definitely succeeded."""
    now = now or utcnow()
    booking = get_booking(booking_id)
    if booking.status not in PAYABLE:
        raise InvalidStateError("Booking is not awaiting payment", current_status=booking.status)

    try:
        amount = money(amount_charged)
    except (InvalidOperation, ValueError):
        raise ValidationError(fields={"amount": "must be a number"}) from None

    tolerance = Decimal(str(current_app.config.get("PAYMENT_TOLERANCE", 0.01)))
    if abs(amount - money(booking.total_price)) > tolerance:
        raise PaymentMismatchError(
            expected=str(money(booking.total_price)), received=str(amount)
        )

    duplicate = InvalidStateError("Charge already recorded", current_status=booking.status, charge_id=charge_id)
    with atomic("booking", booking.id, integrity_error=duplicate):
        booking.payment_status = PaymentStatus.PAID
        booking.payment_method = method
        booking.amount_paid = amount
        db.session.add(Payment(
            booking_id=booking.id,
            method=method,
            amount=amount,
            currency=current_app.config.get("PAYMENT_CURRENCY", "usd"),
            status="PAID",
            charge_id=charge_id,
            recorded_by=actor_id,
        ))
        event = move(booking, BookingStatus.CONFIRMED, actor_id, now)

    log_event("PAYMENT_RECORDED", user_id=actor_id, entity="booking", entity_id=booking.id,
              metadata={"amount": str(amount), "charge_id": charge_id, "method": method})
    announce(event)
    return booking


def pay(booking_id: int, actor_id: int, payment_method=None, method="card") -> Booking:
    """
    Charge the booking total through the payment collaborator, then record it.
    The charge runs before anything is written; a decline leaves the booking
    where it was.
    """
    booking = get_booking(booking_id)
    if booking.status not in PAYABLE:
        raise InvalidStateError("Booking is not awaiting payment", current_status=booking.status)
    amount = money(booking.total_price)
    db.session.rollback()

    result = payments.charge_customer(booking_id, amount, payment_method=payment_method)
    if not result.success:
        db.session.add(Payment(
            booking_id=booking_id,
            method=method,
            amount=amount,
            currency=current_app.config.get("PAYMENT_CURRENCY", "usd"),
            status="FAILED",
            charge_id=result.charge_id,
            failure_reason=(result.reason or "")[:255] or None,
            recorded_by=actor_id,
        ))
        db.session.commit()
        logger.info("Charge for booking #{} declined: {}", booking_id, result.reason)
        log_event("PAYMENT_DECLINED", user_id=actor_id, entity="booking", entity_id=booking_id,
                  metadata={"reason": result.reason, "charge_id": result.charge_id})
        raise PaymentDeclinedError(reason=result.reason)

    charged = result.amount if result.amount is not None else amount
    try:
        return record_payment(booking_id, charged, actor_id=actor_id, method=method, charge_id=result.charge_id)
    except BookingError as exc:
        # money was taken; keep it on file for refund even though the booking moved on
        record_unapplied_charge(booking_id, charged, result.charge_id, exc, actor_id=actor_id, method=method)
        raise


def record_unapplied_charge(booking_id: int, amount, charge_id, error, actor_id=None, method=None):
    """Store a captured charge that record_payment refused, as an UNAPPLIED payment."""
    if charge_id and Payment.query.filter_by(charge_id=charge_id).first():
        return None
    if db.session.get(Booking, booking_id) is None:
        return None

    payment = Payment(
        booking_id=booking_id,
        method=method,
        amount=money(amount),
        currency=current_app.config.get("PAYMENT_CURRENCY", "usd"),
        status="UNAPPLIED",
        charge_id=charge_id,
        failure_reason=(error.message or "")[:255] or None,
        recorded_by=actor_id,
    )
    db.session.add(payment)
    db.session.commit()

    logger.warning("Charge {} for booking #{} captured but not applied: {}", charge_id, booking_id, error.message)
    log_event("PAYMENT_UNAPPLIED", user_id=actor_id, entity="booking", entity_id=booking_id,
              metadata={"charge_id": charge_id, "amount": str(payment.amount), "code": error.code})
    return payment


def leave_review(booking_id: int, customer_id: int, rating, comment=None) -> Review:
    booking = get_booking(booking_id)
    if booking.customer_id != customer_id:
        raise NotFoundError("Booking not found", entity_id=booking_id)
    if booking.status != BookingStatus.COMPLETED:
        raise InvalidStateError("Only completed bookings can be reviewed", current_status=booking.status)
    if booking.review is not None:
        raise InvalidStateError("Booking already reviewed", current_status=booking.status)

    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError(fields={"rating": "must be a whole number from 1 to 5"})

    with atomic("review", booking.id, integrity_error=InvalidStateError(
            "Booking already reviewed", current_status=booking.status)):
        review = Review(
            booking_id=booking.id,
            customer_id=customer_id,
            vehicle_id=booking.vehicle_id,
            rating=rating,
            comment=(comment or "").strip() or None,
        )
        db.session.add(review)

    log_event("REVIEW_CREATE", user_id=customer_id, entity="booking", entity_id=booking.id,
              metadata={"rating": rating})
    return review
