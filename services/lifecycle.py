from models.booking import TRANSITIONS, BookingStatus
from services.common import utcnow
from services.errors import InvalidStateError
from services.events import StatusChanged, emit
from utils.audit import log_event


def assert_transition(booking, target: BookingStatus):
    current = booking.status
    if target not in TRANSITIONS.get(current, set()):
        raise InvalidStateError(
            f"Cannot move booking from {current.value} to {target.value}",
            current_status=current,
        )


def move(booking, target: BookingStatus, actor_id=None, now=None) -> StatusChanged:
    """Sets the new status on the (uncommitted) booking and returns the event to announce after commit."""
    assert_transition(booking, target)
    event = StatusChanged(
        booking_id=booking.id,
        from_status=booking.status.value,
        to_status=target.value,
        actor_id=actor_id,
        occurred_at=now or utcnow(),
    )
    booking.status = target
    return event


def announce(*events):
    for event in events:
        if event is None:
            continue
        log_event(
            "BOOKING_STATUS_CHANGE",
            user_id=event.actor_id,
            entity="booking",
            entity_id=event.booking_id,
            metadata={"from": event.from_status, "to": event.to_status},
        )
        emit(event)
