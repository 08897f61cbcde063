from datetime import datetime
from models.db import db

class Vehicle(db.Model):
    """Registry entry for a rentable vehicle.

    Model, pricing and images belong to the fleet catalogue; bookings only
    read and advance ``current_mileage``.
    """
    __tablename__ = "vehicles"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    plate = db.Column(db.String(20), nullable=True, unique=True)

    current_mileage = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    version = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version}
