from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from flask import current_app

from models import db
from models.booking import Booking, BookingStatus
from models.inspection import CheckOutRecord, DamageReport, DamageSeverity, FuelLevel
from models.vehicle import Vehicle
from services.checkin import parse_fuel_level, parse_mileage
from services.common import atomic, get_or_404, money, utcnow
from services.errors import (
    InvalidMileageError,
    InvalidStateError,
    NoCheckInRecordError,
    ValidationError,
)
from services.lifecycle import announce, move
from utils.audit import log_event


@dataclass(frozen=True)
class ReturnCharges:
    miles_driven: int
    allowed_miles: Optional[int]  # None = unlimited
    overage_miles: int
    mileage_fee: Decimal
    fuel_levels_short: int
    fuel_fee: Decimal


def fuel_shortfall_levels(check_in_level: FuelLevel, check_out_level: FuelLevel) -> int:
    return max(0, check_in_level.rank - check_out_level.rank)


def compute_charges(start_mileage, end_mileage, check_in_level, check_out_level, rental_days,
                    unlimited_mileage, daily_allowance, extra_mile_rate, fuel_level_charge) -> ReturnCharges:
    miles_driven = end_mileage - start_mileage

    if unlimited_mileage:
        allowed = None
        overage = 0
    else:
        allowed = int(daily_allowance) * int(rental_days)
        overage = max(0, miles_driven - allowed)
    mileage_fee = money(Decimal(overage) * Decimal(str(extra_mile_rate)))

    # refuelling is billed whatever the mileage terms are
    short = fuel_shortfall_levels(check_in_level, check_out_level)
    fuel_fee = money(Decimal(short) * Decimal(str(fuel_level_charge)))

    return ReturnCharges(miles_driven, allowed, overage, mileage_fee, short, fuel_fee)


def _parse_damages(damages):
    reports = []
    errors = {}
    for i, item in enumerate(damages or []):
        item = item or {}
        description = (item.get("description") or "").strip()
        location = (item.get("location") or "").strip()
        if not description:
            errors[f"damages[{i}].description"] = "required"
        if not location:
            errors[f"damages[{i}].location"] = "required"
        try:
            severity = DamageSeverity(item.get("severity") or DamageSeverity.MINOR.value)
        except ValueError:
            errors[f"damages[{i}].severity"] = "must be one of: " + ", ".join(s.value for s in DamageSeverity)
            continue
        reports.append({
            "description": description[:255],
            "location": location[:120],
            "severity": severity,
            "photo_ref": (item.get("photo_ref") or "").strip() or None,
        })
    if errors:
        raise ValidationError("Invalid damage report", fields=errors)
    return reports


def _parse_fee(value, field):
    try:
        fee = money(value)
    except (ArithmeticError, ValueError):
        raise ValidationError(fields={field: "must be a number"}) from None
    if fee < 0:
        raise ValidationError(fields={field: "must not be negative"})
    return fee


def check_out(booking_id: int, mileage, fuel_level, agent_id: int, notes=None, cleaning_required=False,
              damages=None, damage_fee=0, photo_refs=None, now=None) -> CheckOutRecord:
    """
    Takes the vehicle back: records odometer and fuel, bills overage mileage,
    missing fuel, cleaning and damage onto the booking's extra charges and
    completes the booking.
    """
    now = now or utcnow()
    booking = get_or_404(Booking, booking_id, "Booking")

    start = booking.check_in
    if start is None:
        raise NoCheckInRecordError(current_status=booking.status)
    if booking.check_out is not None:
        raise InvalidStateError("Booking has already been checked out", current_status=booking.status)
    if booking.status != BookingStatus.ACTIVE:
        raise InvalidStateError("Only active bookings can be checked out", current_status=booking.status)

    mileage = parse_mileage(mileage)
    if mileage < start.mileage:
        raise InvalidMileageError(
            f"Mileage {mileage} is below the check-in reading {start.mileage}",
            fields={"mileage": f"must be at least {start.mileage}"},
        )
    vehicle = get_or_404(Vehicle, booking.vehicle_id, "Vehicle")
    if mileage < vehicle.current_mileage:
        raise InvalidMileageError(
            f"Mileage {mileage} is below the vehicle's last recorded {vehicle.current_mileage}",
            fields={"mileage": f"must be at least {vehicle.current_mileage}"},
        )
    level = parse_fuel_level(fuel_level)
    reports = _parse_damages(damages)
    damage_fee = _parse_fee(damage_fee, "damage_fee")

    charges = compute_charges(
        start.mileage, mileage, start.fuel_level, level,
        rental_days=booking.rental_days,
        unlimited_mileage=booking.unlimited_mileage,
        daily_allowance=booking.daily_mileage_allowance,
        extra_mile_rate=booking.extra_mile_rate,
        fuel_level_charge=current_app.config.get("FUEL_LEVEL_CHARGE", 15),
    )
    cleaning_fee = money(booking.cleaning_fee_rate) if cleaning_required else money(0)
    refs = [str(r) for r in (photo_refs or []) if r]

    with atomic("booking", booking.id, integrity_error=InvalidStateError(
            "Booking has already been checked out", current_status=booking.status)):
        record = CheckOutRecord(
            booking_id=booking.id,
            checked_out_at=now,
            mileage=mileage,
            fuel_level=level,
            miles_driven=charges.miles_driven,
            allowed_miles=charges.allowed_miles,
            overage_miles=charges.overage_miles,
            mileage_fee=charges.mileage_fee,
            fuel_fee=charges.fuel_fee,
            cleaning_required=bool(cleaning_required),
            cleaning_fee=cleaning_fee,
            damage_fee=damage_fee,
            notes=(notes or "").strip() or None,
            photo_refs=refs or None,
            agent_id=agent_id,
        )
        db.session.add(record)
        db.session.flush()
        for r in reports:
            db.session.add(DamageReport(check_out_id=record.id, **r))

        booking.cleaning_fee = money(booking.cleaning_fee) + cleaning_fee
        booking.damage_fee = money(booking.damage_fee) + damage_fee
        booking.extra_charges = (
            money(booking.extra_charges) + charges.mileage_fee + charges.fuel_fee + cleaning_fee + damage_fee
        )
        vehicle.current_mileage = mileage
        event = move(booking, BookingStatus.COMPLETED, agent_id, now)

    log_event("BOOKING_CHECK_OUT", user_id=agent_id, entity="booking", entity_id=booking_id, metadata={
        "mileage": mileage,
        "miles_driven": charges.miles_driven,
        "mileage_fee": str(charges.mileage_fee),
        "fuel_fee": str(charges.fuel_fee),
        "cleaning_fee": str(cleaning_fee),
        "damage_fee": str(damage_fee),
    })
    announce(event)
    return record
