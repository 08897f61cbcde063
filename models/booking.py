import enum
from datetime import datetime
from decimal import Decimal
from models.db import db


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    LICENSE_REQUIRED = "license_required"
    VERIFICATION_PENDING = "verification_pending"
    PAYMENT_PENDING = "payment_pending"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PAID = "paid"


# Every legal move of the booking lifecycle. Anything not listed here is rejected.
TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.LICENSE_REQUIRED: {BookingStatus.VERIFICATION_PENDING, BookingStatus.CANCELLED},
    BookingStatus.VERIFICATION_PENDING: {BookingStatus.PAYMENT_PENDING, BookingStatus.CANCELLED},
    BookingStatus.PAYMENT_PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.ACTIVE, BookingStatus.CANCELLED},
    BookingStatus.ACTIVE: {BookingStatus.COMPLETED},
    BookingStatus.COMPLETED: set(),
    BookingStatus.CANCELLED: set(),
}

CANCELLABLE = frozenset(s for s, targets in TRANSITIONS.items() if BookingStatus.CANCELLED in targets)
PAYABLE = frozenset({BookingStatus.PENDING, BookingStatus.PAYMENT_PENDING})


def _enum_column(enum_cls, length=30):
    return db.Enum(enum_cls, native_enum=False, length=length, values_callable=lambda e: [m.value for m in e])


class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    vehicle_id = db.Column(db.Integer, db.ForeignKey("vehicles.id"), nullable=False, index=True)
    driver_id = db.Column(db.Integer, db.ForeignKey("drivers.id"), nullable=True, index=True)

    pickup_date = db.Column(db.DateTime, nullable=False)
    return_date = db.Column(db.DateTime, nullable=False)
    pickup_location = db.Column(db.String(160), nullable=True)
    return_location = db.Column(db.String(160), nullable=True)

    base_price = db.Column(db.Numeric(10, 2), nullable=False)
    tax_amount = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0"))
    total_price = db.Column(db.Numeric(10, 2), nullable=False)
    deposit_amount = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0"))

    # post-rental charges; extra_charges is the running sum of everything billed at return
    cleaning_fee = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0"))
    damage_fee = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0"))
    extra_charges = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0"))

    payment_status = db.Column(_enum_column(PaymentStatus, 10), nullable=False, default=PaymentStatus.UNPAID)
    payment_method = db.Column(db.String(30), nullable=True)
    amount_paid = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0"))

    # rental terms captured when the booking is made
    unlimited_mileage = db.Column(db.Boolean, nullable=False, default=False)
    daily_mileage_allowance = db.Column(db.Integer, nullable=False)
    extra_mile_rate = db.Column(db.Numeric(10, 2), nullable=False)
    cleaning_fee_rate = db.Column(db.Numeric(10, 2), nullable=False)

    status = db.Column(_enum_column(BookingStatus), nullable=False, index=True)

    # copied from the driver's documents whenever verification is re-evaluated
    license_verified = db.Column(db.Boolean, nullable=False, default=False)
    insurance_verified = db.Column(db.Boolean, nullable=False, default=False)

    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancelled_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)
    refund_tier = db.Column(db.String(20), nullable=True)
    refund_percent = db.Column(db.Integer, nullable=True)
    refund_amount = db.Column(db.Numeric(10, 2), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    version = db.Column(db.Integer, nullable=False, default=1)

    check_in = db.relationship("CheckInRecord", uselist=False, back_populates="booking")
    check_out = db.relationship("CheckOutRecord", uselist=False, back_populates="booking")
    review = db.relationship("Review", uselist=False, back_populates="booking")

    __table_args__ = (
        db.CheckConstraint("return_date > pickup_date", name="ck_booking_dates"),
        db.CheckConstraint("total_price >= base_price", name="ck_booking_total"),
    )
    __mapper_args__ = {"version_id_col": version}

    @property
    def balance_due(self):
        due = Decimal(self.total_price or 0) + Decimal(self.extra_charges or 0) - Decimal(self.amount_paid or 0)
        return max(due, Decimal("0"))

    @property
    def rental_days(self):
        seconds = (self.return_date - self.pickup_date).total_seconds()
        days = int(seconds // 86400) + (1 if seconds % 86400 else 0)
        return max(1, days)
