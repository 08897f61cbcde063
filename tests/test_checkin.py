from datetime import timedelta

import pytest

from conftest import NOW, confirmed_booking, rental
from models import db
from models.booking import BookingStatus
from models.inspection import FuelLevel
from models.vehicle import Vehicle
from services import booking_state
from services.checkin import parse_mileage
from services.errors import (
    AlreadyCheckedInError,
    InvalidFuelLevelError,
    InvalidMileageError,
    InvalidStateError,
    OutOfWindowError,
)


@pytest.fixture()
def booking(customer, vehicle, driver):
    return confirmed_booking(customer, vehicle, driver)


def test_check_in_activates_booking(booking, agent, vehicle):
    at = booking.pickup_date
    record = booking_state.check_in(booking.id, 10000, "full", "Small scratch rear bumper", agent.id,
                                    photo_refs=["img/1.jpg"], now=at)

    assert record.mileage == 10000
    assert record.fuel_level == FuelLevel.FULL
    assert record.checked_in_at == at
    assert record.photo_refs == ["img/1.jpg"]
    assert booking_state.get_booking(booking.id).status == BookingStatus.ACTIVE
    assert db.session.get(Vehicle, vehicle.id).current_mileage == 10000


def test_window_opens_an_hour_before_pickup(booking, agent):
    pickup = booking.pickup_date
    with pytest.raises(OutOfWindowError):
        booking_state.check_in(booking.id, 10000, "full", None, agent.id, now=pickup - timedelta(minutes=61))

    booking_state.check_in(booking.id, 10000, "full", None, agent.id, now=pickup - timedelta(minutes=60))
    assert booking_state.get_booking(booking.id).status == BookingStatus.ACTIVE


def test_window_closes_at_return(booking, agent):
    with pytest.raises(OutOfWindowError):
        booking_state.check_in(booking.id, 10000, "full", None, agent.id,
                               now=booking.return_date + timedelta(seconds=1))
    assert booking_state.get_booking(booking.id).status == BookingStatus.CONFIRMED


def test_double_check_in(booking, agent):
    at = booking.pickup_date
    booking_state.check_in(booking.id, 10000, "full", None, agent.id, now=at)

    with pytest.raises(AlreadyCheckedInError) as exc:
        booking_state.check_in(booking.id, 10001, "full", None, agent.id, now=at)
    assert exc.value.current_status == "active"


def test_only_confirmed_bookings(customer, vehicle, driver, agent):
    pickup, ret = rental()
    pending = booking_state.create_booking(customer.id, vehicle.id, pickup, ret, 100, driver_id=driver.id, now=NOW)

    with pytest.raises(InvalidStateError) as exc:
        booking_state.check_in(pending.id, 10000, "full", None, agent.id, now=pickup)
    assert exc.value.current_status == "pending"


def test_mileage_cannot_go_backwards(booking, agent, vehicle):
    with pytest.raises(InvalidMileageError) as exc:
        booking_state.check_in(booking.id, 9499, "full", None, agent.id, now=booking.pickup_date)
    assert exc.value.fields == {"mileage": "must be at least 9500"}
    assert booking_state.get_booking(booking.id).check_in is None


@pytest.mark.parametrize("value", [-1, 12.5, "abc", True, None])
def test_invalid_mileage_values(booking, agent, value):
    with pytest.raises(InvalidMileageError):
        booking_state.check_in(booking.id, value, "full", None, agent.id, now=booking.pickup_date)


def test_invalid_fuel_level(booking, agent):
    with pytest.raises(InvalidFuelLevelError) as exc:
        booking_state.check_in(booking.id, 10000, "brimming", None, agent.id, now=booking.pickup_date)
    assert "fuel_level" in exc.value.fields
    assert booking_state.get_booking(booking.id).status == BookingStatus.CONFIRMED


def test_parse_mileage_accepts_digit_strings():
    assert parse_mileage(" 12000 ") == 12000
