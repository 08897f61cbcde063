"""Stripe charge collaborator: one call, one definitive answer."""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import stripe
from flask import current_app
from loguru import logger


@dataclass(frozen=True)
class ChargeResult:
    success: bool
    charge_id: Optional[str] = None
    amount: Optional[Decimal] = None
    reason: Optional[str] = None


def _to_minor_units(amount) -> int:
    # Stripe expects the smallest currency unit (cents)
    return int((Decimal(str(amount)) * 100).to_integral_value())


def charge_customer(booking_id: int, amount, payment_method=None, currency=None) -> ChargeResult:
    stripe.api_key = current_app.config.get("STRIPE_SECRET_KEY")
    if not stripe.api_key:
        return ChargeResult(False, reason="Stripe secret key missing (STRIPE_SECRET_KEY)")
    if not payment_method:
        return ChargeResult(False, reason="payment_method required")

    currency = currency or current_app.config.get("PAYMENT_CURRENCY", "usd")
    try:
        intent = stripe.PaymentIntent.create(
            amount=_to_minor_units(amount),
            currency=currency,
            payment_method=payment_method,
            confirm=True,
            automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
            metadata={"booking_id": str(booking_id)},
        )
    except stripe.CardError as exc:
        return ChargeResult(False, reason=exc.user_message or str(exc))
    except stripe.StripeError as exc:
        logger.error("Stripe charge for booking #{} failed: {}", booking_id, exc)
        return ChargeResult(False, reason="Payment provider error")

    if intent["status"] != "succeeded":
        return ChargeResult(False, charge_id=intent["id"], reason=f"Payment {intent['status']}")

    return ChargeResult(
        True,
        charge_id=intent["id"],
        amount=Decimal(intent["amount_received"]) / 100,
    )
