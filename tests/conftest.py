from datetime import datetime, timedelta

import pytest

from app import create_app
from config import Config
from models import db
from models.driver import Driver
from models.user import Role, User
from models.vehicle import Vehicle
from security.session import issue_token
from services import booking_state, verification

# fixed clock for service-level tests
NOW = datetime(2030, 1, 10, 9, 0)


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    CREATE_TABLES = True
    STRIPE_SECRET_KEY = None
    STRIPE_WEBHOOK_SECRET = None
    SMTP_HOST = None


@pytest.fixture()
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


def make_user(email, *roles):
    user = User(email=email, full_name=email.split("@")[0])
    for name in roles or ("CUSTOMER",):
        user.roles.append(Role.query.filter_by(name=name).one())
    db.session.add(user)
    db.session.commit()
    return user


def auth_header(user):
    return {"Authorization": f"Bearer {issue_token(user.id)}"}


@pytest.fixture()
def customer(app):
    return make_user("carol@example.com")


@pytest.fixture()
def agent(app):
    return make_user("andy@example.com", "AGENT")


@pytest.fixture()
def verifier(app):
    return make_user("vera@example.com", "VERIFIER")


@pytest.fixture()
def admin(app):
    return make_user("ada@example.com", "ADMIN")


@pytest.fixture()
def vehicle(app):
    v = Vehicle(name="Toyota Corolla", plate="ABC123", current_mileage=9500)
    db.session.add(v)
    db.session.commit()
    return v


@pytest.fixture()
def driver(customer):
    d = Driver(user_id=customer.id, full_name="Carol Driver")
    db.session.add(d)
    db.session.commit()
    return d


LICENSE = {"number": "D1234567", "issuing_authority": "DMV", "expiry_date": "2035-06-30"}
INSURANCE = {"policy_number": "POL-998", "provider": "Acme Mutual", "expiry_date": "2035-06-30"}


def submit_both(driver_id, now=NOW):
    verification.submit_document(driver_id, "license", dict(LICENSE), now=now)
    verification.submit_document(driver_id, "insurance", dict(INSURANCE), now=now)


def verify_both(driver_id, verifier_id, now=NOW):
    verification.verify(driver_id, "license", verifier_id, now=now)
    verification.verify(driver_id, "insurance", verifier_id, now=now)


def rental(pickup_in=timedelta(days=2), days=3, now=NOW):
    pickup = now + pickup_in
    return pickup, pickup + timedelta(days=days)


def confirmed_booking(customer, vehicle, driver, pickup_in=timedelta(days=2), days=3, now=NOW, **terms):
    """Booked with a driver and paid in full: ready to be checked in."""
    pickup, ret = rental(pickup_in, days, now)
    booking = booking_state.create_booking(
        customer.id, vehicle.id, pickup, ret, base_price=270, tax_amount=30,
        driver_id=driver.id, now=now, **terms
    )
    return booking_state.record_payment(booking.id, 300, actor_id=customer.id, method="cash", now=now)
