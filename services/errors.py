"""Error values raised by the booking lifecycle services.

Each error knows its HTTP status and renders to a JSON-able dict, so the
Flask error handler can hand it to the client unchanged.
"""


class BookingError(Exception):
    code = "BOOKING_ERROR"
    status_code = 400
    message = "Booking operation failed"

    def __init__(self, message=None, **details):
        self.message = message or self.message
        self.details = {k: v for k, v in details.items() if v is not None}
        super().__init__(self.message)

    def to_dict(self):
        out = {"error": self.message, "code": self.code}
        out.update(self.details)
        return out


# ---------- validation: caller can correct the input ----------

class ValidationError(BookingError):
    code = "VALIDATION_ERROR"
    message = "Invalid input"

    def __init__(self, message=None, fields=None, **details):
        # fields: {field_name: problem}
        super().__init__(message, fields=fields or None, **details)

    @property
    def fields(self):
        return self.details.get("fields", {})


class InvalidMileageError(ValidationError):
    code = "INVALID_MILEAGE"
    message = "Invalid mileage"


class InvalidFuelLevelError(ValidationError):
    code = "INVALID_FUEL_LEVEL"
    message = "Invalid fuel level"


# ---------- state: not legal at this point of the lifecycle ----------

class InvalidStateError(BookingError):
    code = "INVALID_STATE"
    status_code = 409
    message = "Operation not allowed in the booking's current status"

    def __init__(self, message=None, current_status=None, **details):
        if current_status is not None:
            current_status = getattr(current_status, "value", current_status)
        super().__init__(message, current_status=current_status, **details)

    @property
    def current_status(self):
        return self.details.get("current_status")


class AlreadyCheckedInError(InvalidStateError):
    code = "ALREADY_CHECKED_IN"
    message = "Booking has already been checked in"


class NoCheckInRecordError(InvalidStateError):
    code = "NO_CHECK_IN_RECORD"
    message = "Booking has no check-in record"


class OutOfWindowError(InvalidStateError):
    code = "OUT_OF_WINDOW"
    message = "Check-in is outside the allowed window"


class StaleDocumentError(InvalidStateError):
    code = "STALE_DOCUMENT"
    message = "Document has expired"


# ---------- concurrency ----------

class ConcurrentModificationError(BookingError):
    code = "CONCURRENT_MODIFICATION"
    status_code = 409
    message = "Record was modified by another request; re-read and retry"


# ---------- payment ----------

class PaymentMismatchError(BookingError):
    code = "PAYMENT_MISMATCH"
    message = "Charged amount does not match the booking total"


class PaymentDeclinedError(BookingError):
    code = "PAYMENT_DECLINED"
    status_code = 402
    message = "Payment was declined"


# ---------- lookup ----------

class NotFoundError(BookingError):
    code = "NOT_FOUND"
    status_code = 404
    message = "Not found"
