"""
Lifecycle events for anyone who wants to hear about status changes
(notifications, dashboards). Delivery is fire-and-forget: a failing
subscriber is logged and skipped, it never undoes the change.
"""
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Optional

from flask import current_app
from loguru import logger

from models import db
from models.booking import Booking
from models.user import User
from utils.emailer import send_email

_subscribers = []


@dataclass(frozen=True)
class StatusChanged:
    booking_id: int
    from_status: Optional[str]
    to_status: str
    actor_id: Optional[int]
    occurred_at: datetime

    def to_dict(self):
        out = asdict(self)
        out["occurred_at"] = self.occurred_at.isoformat()
        return out


def subscribe(handler):
    if handler not in _subscribers:
        _subscribers.append(handler)
    return handler


def unsubscribe(handler):
    if handler in _subscribers:
        _subscribers.remove(handler)


def emit(event):
    for handler in list(_subscribers):
        try:
            handler(event)
        except Exception:
            logger.exception("Subscriber {} failed for {}", getattr(handler, "__name__", handler), event)


_SUBJECTS = {
    "license_required": "Driver documents needed for your booking",
    "verification_pending": "Your documents are being reviewed",
    "payment_pending": "Your documents are verified - complete your payment",
    "confirmed": "Your booking is confirmed",
    "active": "Enjoy your trip",
    "completed": "Thanks for renting with us",
    "cancelled": "Your booking was cancelled",
}


def email_customer(event: StatusChanged):
    if not current_app.config.get("SMTP_HOST"):
        return

    booking = db.session.get(Booking, event.booking_id)
    customer = db.session.get(User, booking.customer_id) if booking else None
    if not customer:
        return

    subject = _SUBJECTS.get(event.to_status, "Booking update")
    body = (
        f"Hi {customer.full_name or customer.email},\n\n"
        f"Booking #{booking.id} moved from {event.from_status or 'new'} to {event.to_status}.\n\n"
        "Thank you,\nCar Rental"
    )
    ok, error = send_email(customer.email, subject, body)
    if not ok:
        logger.warning("Status email for booking #{} not sent: {}", booking.id, error)
