from decimal import Decimal

import stripe
from flask import Blueprint, request, jsonify, current_app
from loguru import logger

from models.payment import Payment
from services import booking_state
from services.errors import BookingError
from utils.audit import log_event

webhook_bp = Blueprint("webhook", __name__, url_prefix="/webhooks")


@webhook_bp.post("/stripe")
def stripe_webhook():
    endpoint_secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    sig_header = request.headers.get("Stripe-Signature")
    payload = request.data

    if not endpoint_secret:
        return jsonify(error="Webhook secret not configured"), 500

    try:
        event = stripe.Webhook.construct_event(payload, sig_header, endpoint_secret)
    except (ValueError, stripe.SignatureVerificationError):
        return jsonify(error="Invalid webhook signature"), 400

    if event["type"] != "payment_intent.succeeded":
        return jsonify(received=True), 200

    intent = event["data"]["object"]
    charge_id = intent.get("id")
    meta = intent.get("metadata") or {}
    try:
        booking_id = int(meta.get("booking_id"))
    except (TypeError, ValueError):
        # not one of ours
        return jsonify(received=True), 200

    # the /pay request usually records the charge before the webhook lands
    if charge_id and Payment.query.filter_by(charge_id=charge_id).first():
        return jsonify(received=True), 200

    amount = Decimal(intent.get("amount_received") or 0) / 100
    try:
        booking_state.record_payment(booking_id, amount, method="card", charge_id=charge_id)
    except BookingError as exc:
        logger.warning("Stripe payment {} for booking #{} not applied: {}", charge_id, booking_id, exc.message)
        log_event("PAYMENT_WEBHOOK_REJECTED", entity="booking", entity_id=booking_id,
                  metadata={"charge_id": charge_id, "code": exc.code})
        booking_state.record_unapplied_charge(booking_id, amount, charge_id, exc, method="card")

    return jsonify(received=True), 200
