from flask import Blueprint, request, jsonify, g
from sqlalchemy.exc import IntegrityError

from models import db
from models.vehicle import Vehicle
from security.rbac import require_roles
from services.common import get_or_404
from utils.audit import log_event
from utils.auth_context import login_required

vehicle_bp = Blueprint("vehicle", __name__, url_prefix="/vehicles")


def _vehicle_to_dict(v):
    return {"id": v.id, "name": v.name, "plate": v.plate, "current_mileage": v.current_mileage}


@vehicle_bp.post("")
@require_roles("ADMIN")
def register_vehicle():
    data = request.get_json(silent=True) or {}
    name = (data.get("name") or "").strip()
    plate = (data.get("plate") or "").strip().upper() or None
    mileage = data.get("current_mileage") or 0
    if not name:
        return jsonify(error="name required"), 400
    if isinstance(mileage, bool) or not isinstance(mileage, int) or mileage < 0:
        return jsonify(error="current_mileage must be a non-negative whole number"), 400

    v = Vehicle(name=name, plate=plate, current_mileage=mileage)
    db.session.add(v)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify(error="Plate already registered"), 409

    log_event("VEHICLE_REGISTER", user_id=g.user.id, entity="vehicle", entity_id=v.id)
    return jsonify(_vehicle_to_dict(v)), 201


@vehicle_bp.get("/<int:vehicle_id>")
@login_required
def get_vehicle(vehicle_id: int):
    return jsonify(_vehicle_to_dict(get_or_404(Vehicle, vehicle_id, "Vehicle"))), 200
