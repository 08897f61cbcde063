from flask import Blueprint, request, jsonify, g

from models import db
from models.driver import Driver
from security.rbac import require_roles, has_role, STAFF_ROLES
from services import booking_state, verification
from services.common import get_or_404
from services.errors import NotFoundError
from utils.audit import log_event
from utils.auth_context import login_required
from utils.serializers import booking_to_dict

driver_bp = Blueprint("driver", __name__, url_prefix="/drivers")


def _visible_driver(driver_id: int) -> Driver:
    driver = get_or_404(Driver, driver_id, "Driver")
    if driver.user_id != g.user.id and not has_role(*STAFF_ROLES):
        raise NotFoundError("Driver not found", entity_id=driver_id)
    return driver


@driver_bp.post("")
@login_required
def register_driver():
    data = request.get_json(silent=True) or {}
    full_name = (data.get("full_name") or "").strip()
    if not full_name:
        return jsonify(error="full_name required"), 400

    driver = Driver(
        user_id=g.user.id,
        full_name=full_name[:120],
        is_professional=bool(data.get("is_professional")),
    )
    db.session.add(driver)
    db.session.commit()

    log_event("DRIVER_REGISTER", user_id=g.user.id, entity="driver", entity_id=driver.id)
    return jsonify(id=driver.id, full_name=driver.full_name, is_professional=driver.is_professional), 201


@driver_bp.get("/<int:driver_id>/documents")
@login_required
def document_status(driver_id: int):
    _visible_driver(driver_id)
    return jsonify(verification.document_status(driver_id)), 200


# file upload happens elsewhere; only the stored file reference comes in here
@driver_bp.post("/<int:driver_id>/documents/<doc_type>")
@login_required
def submit_document(driver_id: int, doc_type: str):
    data = request.get_json(silent=True) or {}
    _visible_driver(driver_id)
    doc = verification.submit_document(driver_id, doc_type, data, actor_id=g.user.id)
    return jsonify(id=doc.id, doc_type=doc.doc_type.value, verified=doc.verified), 201


# ---------- VERIFIERS ----------
@driver_bp.post("/<int:driver_id>/documents/<doc_type>/verify")
@require_roles("VERIFIER")
def verify_document(driver_id: int, doc_type: str):
    doc = verification.verify(driver_id, doc_type, verifier_id=g.user.id)
    advanced = booking_state.sync_driver_bookings(driver_id, actor_id=g.user.id)
    return jsonify(
        id=doc.id,
        doc_type=doc.doc_type.value,
        verified=doc.verified,
        bookings=[booking_to_dict(b, detail=False) for b in advanced],
    ), 200


@driver_bp.post("/<int:driver_id>/documents/<doc_type>/reject")
@require_roles("VERIFIER")
def reject_document(driver_id: int, doc_type: str):
    data = request.get_json(silent=True) or {}
    doc = verification.reject(driver_id, doc_type, verifier_id=g.user.id, reason=data.get("reason"))
    synced = booking_state.sync_driver_bookings(driver_id, actor_id=g.user.id)
    return jsonify(
        id=doc.id,
        doc_type=doc.doc_type.value,
        verified=doc.verified,
        rejected_reason=doc.rejected_reason,
        bookings=[booking_to_dict(b, detail=False) for b in synced],
    ), 200
