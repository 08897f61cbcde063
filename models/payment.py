from datetime import datetime
from models.db import db

class Payment(db.Model):
    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)

    provider = db.Column(db.String(20), nullable=False, default="STRIPE")
    method = db.Column(db.String(30), nullable=True)  # card, cash, ...
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    currency = db.Column(db.String(10), nullable=False, default="usd")

    status = db.Column(db.String(20), nullable=False, default="PAID")  # PAID, FAILED, UNAPPLIED (captured but refused by the booking)
    charge_id = db.Column(db.String(255), nullable=True, unique=True, index=True)
    failure_reason = db.Column(db.String(255), nullable=True)

    recorded_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
