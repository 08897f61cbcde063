from flask import Blueprint, request, jsonify, g

from models.booking import Booking, BookingStatus
from security.rbac import require_roles, has_role, STAFF_ROLES
from services import booking_state
from services.errors import NotFoundError
from utils.auth_context import login_required
from utils.serializers import booking_to_dict, check_in_to_dict, check_out_to_dict

booking_bp = Blueprint("booking", __name__, url_prefix="/bookings")


def _visible_booking(booking_id: int) -> Booking:
    booking = booking_state.get_booking(booking_id)
    if booking.customer_id != g.user.id and not has_role(*STAFF_ROLES):
        raise NotFoundError("Booking not found", entity_id=booking_id)
    return booking


# ---------- CUSTOMERS: create / view ----------
@booking_bp.post("")
@login_required
def create_booking():
    data = request.get_json(silent=True) or {}
    vehicle_id = data.get("vehicle_id")
    pickup_date = data.get("pickup_date")
    return_date = data.get("return_date")
    if not vehicle_id or not pickup_date or not return_date or data.get("base_price") is None:
        return jsonify(error="vehicle_id, pickup_date, return_date, base_price are required"), 400

    try:
        vehicle_id = int(vehicle_id)
        driver_id = int(data["driver_id"]) if data.get("driver_id") else None
        customer_id = g.user.id
        if data.get("customer_id") and has_role(*STAFF_ROLES):
            customer_id = int(data["customer_id"])
    except (TypeError, ValueError):
        return jsonify(error="vehicle_id, driver_id and customer_id must be integers"), 400

    booking = booking_state.create_booking(
        customer_id=customer_id,
        vehicle_id=vehicle_id,
        pickup_date=pickup_date,
        return_date=return_date,
        base_price=data.get("base_price"),
        tax_amount=data.get("tax_amount") or 0,
        deposit_amount=data.get("deposit_amount") or 0,
        pickup_location=data.get("pickup_location"),
        return_location=data.get("return_location"),
        driver_id=driver_id,
        unlimited_mileage=bool(data.get("unlimited_mileage")),
        daily_mileage_allowance=data.get("daily_mileage_allowance"),
        extra_mile_rate=data.get("extra_mile_rate"),
        cleaning_fee=data.get("cleaning_fee"),
    )
    return jsonify(booking_to_dict(booking)), 201


@booking_bp.get("/me")
@login_required
def my_bookings():
    status = request.args.get("status")
    q = Booking.query.filter_by(customer_id=g.user.id)
    if status:
        try:
            q = q.filter_by(status=BookingStatus(status))
        except ValueError:
            return jsonify(error="Unknown status"), 400

    rows = q.order_by(Booking.created_at.desc()).all()
    return jsonify([booking_to_dict(b, detail=False) for b in rows]), 200


@booking_bp.get("/<int:booking_id>")
@login_required
def get_booking(booking_id: int):
    return jsonify(booking_to_dict(_visible_booking(booking_id))), 200


# ---------- STAFF: list all bookings ----------
@booking_bp.get("")
@require_roles(*STAFF_ROLES)
def list_all_bookings():
    status = request.args.get("status")
    q = Booking.query
    if status:
        try:
            q = q.filter_by(status=BookingStatus(status))
        except ValueError:
            return jsonify(error="Unknown status"), 400

    rows = q.order_by(Booking.created_at.desc()).limit(200).all()
    return jsonify([booking_to_dict(b, detail=False) for b in rows]), 200


# ---------- verification ----------
@booking_bp.post("/<int:booking_id>/driver")
@login_required
def attach_driver(booking_id: int):
    data = request.get_json(silent=True) or {}
    driver_id = data.get("driver_id")
    if not driver_id:
        return jsonify(error="driver_id required"), 400
    try:
        driver_id = int(driver_id)
    except (TypeError, ValueError):
        return jsonify(error="driver_id must be an integer"), 400

    _visible_booking(booking_id)
    booking = booking_state.attach_driver(booking_id, driver_id, actor_id=g.user.id)
    return jsonify(booking_to_dict(booking)), 200


@booking_bp.post("/<int:booking_id>/advance")
@require_roles("VERIFIER")
def advance_on_verification(booking_id: int):
    booking = booking_state.advance_on_verification(booking_id, actor_id=g.user.id)
    return jsonify(booking_to_dict(booking)), 200


# ---------- cancellation (refund tier by time to pickup) ----------
@booking_bp.get("/<int:booking_id>/cancellation-quote")
@login_required
def cancellation_quote(booking_id: int):
    _visible_booking(booking_id)
    decision = booking_state.cancellation_quote(booking_id)
    return jsonify(decision.to_dict()), 200


@booking_bp.post("/<int:booking_id>/cancel")
@login_required
def cancel_booking(booking_id: int):
    data = request.get_json(silent=True) or {}
    reason = (data.get("reason") or "").strip() or None

    _visible_booking(booking_id)
    booking, decision = booking_state.request_cancellation(booking_id, reason, actor_id=g.user.id)
    return jsonify(booking=booking_to_dict(booking), refund=decision.to_dict()), 200


# ---------- payment ----------
@booking_bp.post("/<int:booking_id>/pay")
@login_required
def pay_booking(booking_id: int):
    data = request.get_json(silent=True) or {}
    payment_method = (data.get("payment_method") or "").strip()
    if not payment_method:
        return jsonify(error="payment_method required"), 400

    _visible_booking(booking_id)
    booking = booking_state.pay(booking_id, actor_id=g.user.id, payment_method=payment_method)
    return jsonify(booking_to_dict(booking)), 200


@booking_bp.post("/<int:booking_id>/payments")
@require_roles("ADMIN")
def record_payment(booking_id: int):
    # payments collected outside Stripe (desk, bank transfer)
    data = request.get_json(silent=True) or {}
    if data.get("amount") is None:
        return jsonify(error="amount required"), 400

    booking = booking_state.record_payment(
        booking_id,
        data.get("amount"),
        actor_id=g.user.id,
        method=(data.get("method") or "").strip() or "manual",
        charge_id=(data.get("reference") or "").strip() or None,
    )
    return jsonify(booking_to_dict(booking)), 200


# ---------- AGENTS: vehicle hand-off and return ----------
@booking_bp.post("/<int:booking_id>/check-in")
@require_roles("AGENT")
def check_in(booking_id: int):
    data = request.get_json(silent=True) or {}
    if data.get("mileage") is None or not data.get("fuel_level"):
        return jsonify(error="mileage and fuel_level are required"), 400

    record = booking_state.check_in(
        booking_id,
        data.get("mileage"),
        data.get("fuel_level"),
        data.get("notes"),
        agent_id=g.user.id,
        photo_refs=data.get("photo_refs"),
    )
    return jsonify(check_in_to_dict(record)), 201


@booking_bp.post("/<int:booking_id>/check-out")
@require_roles("AGENT")
def check_out(booking_id: int):
    data = request.get_json(silent=True) or {}
    if data.get("mileage") is None or not data.get("fuel_level"):
        return jsonify(error="mileage and fuel_level are required"), 400

    damages = data.get("damages") or []
    if not isinstance(damages, list):
        return jsonify(error="damages must be a list"), 400

    record = booking_state.check_out(
        booking_id,
        data.get("mileage"),
        data.get("fuel_level"),
        agent_id=g.user.id,
        notes=data.get("notes"),
        cleaning_required=bool(data.get("cleaning_required")),
        damages=damages,
        damage_fee=data.get("damage_fee") or 0,
        photo_refs=data.get("photo_refs"),
    )
    booking = booking_state.get_booking(booking_id)
    return jsonify(check_out=check_out_to_dict(record), booking=booking_to_dict(booking)), 201


# ---------- CUSTOMERS: review after return ----------
@booking_bp.post("/<int:booking_id>/review")
@login_required
def review_booking(booking_id: int):
    data = request.get_json(silent=True) or {}
    review = booking_state.leave_review(booking_id, g.user.id, data.get("rating"), data.get("comment"))
    return jsonify(id=review.id, rating=review.rating), 201
