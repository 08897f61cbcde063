from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from conftest import confirmed_booking
from models import db
from models.booking import Booking, BookingStatus
from models.inspection import FuelLevel
from models.vehicle import Vehicle
from services import booking_state
from services.checkout import compute_charges
from services.errors import InvalidMileageError, InvalidStateError, NoCheckInRecordError, ValidationError


def _checked_in(customer, vehicle, driver, agent, level="full", **terms):
    booking = confirmed_booking(customer, vehicle, driver, **terms)
    booking_state.check_in(booking.id, 10000, level, None, agent.id, now=booking.pickup_date)
    return booking_state.get_booking(booking.id)


def test_overage_billed_past_daily_allowance(customer, vehicle, driver, agent):
    booking = _checked_in(customer, vehicle, driver, agent)

    record = booking_state.check_out(booking.id, 10700, "full", agent.id, now=booking.return_date)

    assert record.miles_driven == 700
    assert record.allowed_miles == 600
    assert record.overage_miles == 100
    assert record.mileage_fee == Decimal("50.00")
    assert record.fuel_fee == Decimal("0.00")

    booking = booking_state.get_booking(booking.id)
    assert booking.status == BookingStatus.COMPLETED
    assert booking.extra_charges == Decimal("50.00")
    assert booking.balance_due == Decimal("50.00")
    assert db.session.get(Vehicle, vehicle.id).current_mileage == 10700


def test_within_allowance_costs_nothing(customer, vehicle, driver, agent):
    booking = _checked_in(customer, vehicle, driver, agent)

    record = booking_state.check_out(booking.id, 10600, "full", agent.id, now=booking.return_date)

    assert record.overage_miles == 0
    assert record.total_fee == Decimal("0.00")
    assert booking_state.get_booking(booking.id).extra_charges == Decimal("0.00")


def test_fuel_cleaning_and_damage_add_up(customer, vehicle, driver, agent):
    booking = _checked_in(customer, vehicle, driver, agent)

    record = booking_state.check_out(
        booking.id, 10100, "half", agent.id,
        cleaning_required=True,
        damages=[{"description": "Dent", "location": "front left door", "severity": "moderate"}],
        damage_fee="120",
        now=booking.return_date,
    )

    assert record.fuel_fee == Decimal("30.00")
    assert record.cleaning_fee == Decimal("75.00")
    assert record.damage_fee == Decimal("120.00")
    assert [d.location for d in record.damages] == ["front left door"]

    booking = booking_state.get_booking(booking.id)
    assert booking.cleaning_fee == Decimal("75.00")
    assert booking.damage_fee == Decimal("120.00")
    assert booking.extra_charges == Decimal("225.00")


def test_unlimited_mileage_still_bills_fuel(customer, vehicle, driver, agent):
    booking = _checked_in(customer, vehicle, driver, agent, unlimited_mileage=True)

    record = booking_state.check_out(booking.id, 15000, "three_quarters", agent.id, now=booking.return_date)

    assert record.allowed_miles is None
    assert record.overage_miles == 0
    assert record.mileage_fee == Decimal("0.00")
    assert record.fuel_fee == Decimal("15.00")


def test_requires_check_in(customer, vehicle, driver, agent):
    booking = confirmed_booking(customer, vehicle, driver)

    with pytest.raises(NoCheckInRecordError) as exc:
        booking_state.check_out(booking.id, 10500, "full", agent.id, now=booking.return_date)
    assert exc.value.current_status == "confirmed"


def test_mileage_below_check_in(customer, vehicle, driver, agent):
    booking = _checked_in(customer, vehicle, driver, agent)

    with pytest.raises(InvalidMileageError) as exc:
        booking_state.check_out(booking.id, 9999, "full", agent.id, now=booking.return_date)
    assert exc.value.fields == {"mileage": "must be at least 10000"}
    assert booking_state.get_booking(booking.id).status == BookingStatus.ACTIVE


def test_second_check_out_rejected(customer, vehicle, driver, agent):
    booking = _checked_in(customer, vehicle, driver, agent)
    booking_state.check_out(booking.id, 10200, "full", agent.id, now=booking.return_date)

    with pytest.raises(InvalidStateError) as exc:
        booking_state.check_out(booking.id, 10300, "full", agent.id, now=booking.return_date)
    assert "already been checked out" in exc.value.message


def test_bad_damage_report(customer, vehicle, driver, agent):
    booking = _checked_in(customer, vehicle, driver, agent)

    with pytest.raises(ValidationError) as exc:
        booking_state.check_out(booking.id, 10200, "full", agent.id,
                                damages=[{"description": "Chip", "severity": "catastrophic"}],
                                now=booking.return_date)
    assert set(exc.value.fields) == {"damages[0].location", "damages[0].severity"}


def test_compute_charges_fuel_never_negative():
    charges = compute_charges(
        100, 150, FuelLevel.QUARTER, FuelLevel.FULL, rental_days=1,
        unlimited_mileage=False, daily_allowance=200, extra_mile_rate="0.50", fuel_level_charge=15,
    )
    assert charges.fuel_levels_short == 0
    assert charges.fuel_fee == Decimal("0.00")
    assert charges.overage_miles == 0


def test_partial_day_counts_as_full_day():
    pickup = datetime(2030, 5, 1, 10, 0)
    assert Booking(pickup_date=pickup, return_date=pickup + timedelta(days=3)).rental_days == 3
    assert Booking(pickup_date=pickup, return_date=pickup + timedelta(days=3, hours=1)).rental_days == 4
    assert Booking(pickup_date=pickup, return_date=pickup + timedelta(hours=5)).rental_days == 1


def test_next_rental_starts_from_last_return_reading(customer, vehicle, driver, agent):
    first = confirmed_booking(customer, vehicle, driver)
    booking_state.check_in(first.id, 10000, "full", None, agent.id, now=first.pickup_date)
    booking_state.check_out(first.id, 10700, "full", agent.id, now=first.return_date)
    assert db.session.get(Vehicle, vehicle.id).current_mileage == 10700

    second = confirmed_booking(customer, vehicle, driver, pickup_in=timedelta(days=10))
    with pytest.raises(InvalidMileageError) as exc:
        booking_state.check_in(second.id, 10600, "full", None, agent.id, now=second.pickup_date)
    assert exc.value.fields == {"mileage": "must be at least 10700"}
    assert booking_state.get_booking(second.id).status == BookingStatus.CONFIRMED

    record = booking_state.check_in(second.id, 10700, "full", None, agent.id, now=second.pickup_date)
    assert record.mileage == 10700
    assert booking_state.get_booking(second.id).status == BookingStatus.ACTIVE
