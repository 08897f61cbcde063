from flask import Blueprint, jsonify

from .bookings import booking_bp
from .drivers import driver_bp
from .vehicles import vehicle_bp
from .stripe_webhook import webhook_bp
from .audit_logs import audit_bp

health_bp = Blueprint("health", __name__)


@health_bp.get("/health")
def health():
    return jsonify(status="ok"), 200
