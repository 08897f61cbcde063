from .db import db
from .user import User, Role, user_roles
from .audit_log import AuditLog
from .session import Session
from .vehicle import Vehicle
from .driver import Driver, DriverDocument, DocumentType
from .booking import Booking, BookingStatus, PaymentStatus
from .inspection import CheckInRecord, CheckOutRecord, DamageReport, FuelLevel, DamageSeverity
from .payment import Payment
from .review import Review
