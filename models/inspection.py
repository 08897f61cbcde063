import enum
from datetime import datetime
from decimal import Decimal
from models.db import db


class FuelLevel(str, enum.Enum):
    EMPTY = "empty"
    QUARTER = "quarter"
    HALF = "half"
    THREE_QUARTERS = "three_quarters"
    FULL = "full"

    @property
    def rank(self):
        return list(FuelLevel).index(self)


class DamageSeverity(str, enum.Enum):
    MINOR = "minor"
    MODERATE = "moderate"
    SEVERE = "severe"


def _enum_column(enum_cls):
    return db.Enum(enum_cls, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e])


class CheckInRecord(db.Model):
    __tablename__ = "check_in_records"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False)
    vehicle_id = db.Column(db.Integer, db.ForeignKey("vehicles.id"), nullable=False, index=True)

    checked_in_at = db.Column(db.DateTime, nullable=False)
    mileage = db.Column(db.Integer, nullable=False)
    fuel_level = db.Column(_enum_column(FuelLevel), nullable=False)
    notes = db.Column(db.Text, nullable=True)
    photo_refs = db.Column(db.JSON, nullable=True)

    agent_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    booking = db.relationship("Booking", back_populates="check_in")

    __table_args__ = (
        # a booking is handed over exactly once
        db.UniqueConstraint("booking_id", name="uq_check_in_booking_once"),
    )


class CheckOutRecord(db.Model):
    __tablename__ = "check_out_records"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False)

    checked_out_at = db.Column(db.DateTime, nullable=False)
    mileage = db.Column(db.Integer, nullable=False)
    fuel_level = db.Column(_enum_column(FuelLevel), nullable=False)

    miles_driven = db.Column(db.Integer, nullable=False)
    allowed_miles = db.Column(db.Integer, nullable=True)  # NULL = unlimited
    overage_miles = db.Column(db.Integer, nullable=False, default=0)
    mileage_fee = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0"))
    fuel_fee = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0"))
    cleaning_required = db.Column(db.Boolean, nullable=False, default=False)
    cleaning_fee = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0"))
    damage_fee = db.Column(db.Numeric(10, 2), nullable=False, default=Decimal("0"))

    notes = db.Column(db.Text, nullable=True)
    photo_refs = db.Column(db.JSON, nullable=True)

    agent_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    booking = db.relationship("Booking", back_populates="check_out")
    damages = db.relationship("DamageReport", back_populates="check_out", lazy="selectin")

    __table_args__ = (
        db.UniqueConstraint("booking_id", name="uq_check_out_booking_once"),
    )

    @property
    def total_fee(self):
        return self.mileage_fee + self.fuel_fee + self.cleaning_fee + self.damage_fee


class DamageReport(db.Model):
    __tablename__ = "damage_reports"

    id = db.Column(db.Integer, primary_key=True)
    check_out_id = db.Column(db.Integer, db.ForeignKey("check_out_records.id"), nullable=False, index=True)

    description = db.Column(db.String(255), nullable=False)
    location = db.Column(db.String(120), nullable=False)
    severity = db.Column(_enum_column(DamageSeverity), nullable=False, default=DamageSeverity.MINOR)
    photo_ref = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    check_out = db.relationship("CheckOutRecord", back_populates="damages")
