from datetime import timedelta

from flask import current_app

from models import db
from models.booking import Booking, BookingStatus
from models.inspection import CheckInRecord, FuelLevel
from models.vehicle import Vehicle
from services.common import atomic, get_or_404, utcnow
from services.errors import (
    AlreadyCheckedInError,
    InvalidFuelLevelError,
    InvalidMileageError,
    InvalidStateError,
    OutOfWindowError,
)
from services.lifecycle import announce, move
from utils.audit import log_event


def parse_mileage(value, field="mileage") -> int:
    # bool is an int subclass; True is not a mileage
    if isinstance(value, bool):
        raise InvalidMileageError(fields={field: "must be a whole number"})
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int):
        raise InvalidMileageError(fields={field: "must be a whole number"})
    if value < 0:
        raise InvalidMileageError(fields={field: "must not be negative"})
    return value


def parse_fuel_level(value, field="fuel_level") -> FuelLevel:
    try:
        return FuelLevel(getattr(value, "value", value))
    except ValueError:
        raise InvalidFuelLevelError(
            fields={field: "must be one of: " + ", ".join(f.value for f in FuelLevel)}
        ) from None


def check_in_window(booking: Booking):
    early = timedelta(minutes=current_app.config.get("CHECKIN_EARLY_MINUTES", 60))
    return booking.pickup_date - early, booking.return_date


def check_in(booking_id: int, mileage, fuel_level, notes, agent_id: int, photo_refs=None, now=None) -> CheckInRecord:
    """
    Hands the vehicle over: records odometer and fuel, moves the vehicle's
    mileage forward and the booking from confirmed to active.
    """
    now = now or utcnow()
    booking = get_or_404(Booking, booking_id, "Booking")

    if booking.check_in is not None:
        raise AlreadyCheckedInError(current_status=booking.status)
    if booking.status != BookingStatus.CONFIRMED:
        raise InvalidStateError("Only confirmed bookings can be checked in", current_status=booking.status)

    opens_at, closes_at = check_in_window(booking)
    if now < opens_at:
        raise OutOfWindowError(
            "Too early to check in", current_status=booking.status, opens_at=opens_at.isoformat()
        )
    if now > closes_at:
        raise OutOfWindowError(
            "Too late to check in", current_status=booking.status, closed_at=closes_at.isoformat()
        )

    mileage = parse_mileage(mileage)
    level = parse_fuel_level(fuel_level)

    vehicle = get_or_404(Vehicle, booking.vehicle_id, "Vehicle")
    if mileage < vehicle.current_mileage:
        # odometers do not run backwards
        raise InvalidMileageError(
            f"Mileage {mileage} is below the vehicle's last recorded {vehicle.current_mileage}",
            fields={"mileage": f"must be at least {vehicle.current_mileage}"},
        )

    refs = [str(r) for r in (photo_refs or []) if r]
    with atomic("booking", booking.id, integrity_error=AlreadyCheckedInError(current_status=booking.status)):
        record = CheckInRecord(
            booking_id=booking.id,
            vehicle_id=vehicle.id,
            checked_in_at=now,
            mileage=mileage,
            fuel_level=level,
            notes=(notes or "").strip() or None,
            photo_refs=refs or None,
            agent_id=agent_id,
        )
        db.session.add(record)
        vehicle.current_mileage = mileage
        event = move(booking, BookingStatus.ACTIVE, agent_id, now)

    log_event("BOOKING_CHECK_IN", user_id=agent_id, entity="booking", entity_id=booking_id,
              metadata={"mileage": mileage, "fuel_level": level.value})
    announce(event)
    return record
