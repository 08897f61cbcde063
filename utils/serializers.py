def _iso(value):
    return value.isoformat() if value else None


def _amount(value):
    return str(value) if value is not None else None


def check_in_to_dict(r):
    if r is None:
        return None
    return {
        "id": r.id,
        "checked_in_at": _iso(r.checked_in_at),
        "mileage": r.mileage,
        "fuel_level": r.fuel_level.value,
        "notes": r.notes,
        "photo_refs": r.photo_refs or [],
        "agent_id": r.agent_id,
    }


def check_out_to_dict(r):
    if r is None:
        return None
    return {
        "id": r.id,
        "checked_out_at": _iso(r.checked_out_at),
        "mileage": r.mileage,
        "fuel_level": r.fuel_level.value,
        "miles_driven": r.miles_driven,
        "allowed_miles": r.allowed_miles,
        "overage_miles": r.overage_miles,
        "mileage_fee": _amount(r.mileage_fee),
        "fuel_fee": _amount(r.fuel_fee),
        "cleaning_required": r.cleaning_required,
        "cleaning_fee": _amount(r.cleaning_fee),
        "damage_fee": _amount(r.damage_fee),
        "damages": [
            {
                "id": d.id,
                "description": d.description,
                "location": d.location,
                "severity": d.severity.value,
                "photo_ref": d.photo_ref,
            }
            for d in r.damages
        ],
        "notes": r.notes,
        "photo_refs": r.photo_refs or [],
        "agent_id": r.agent_id,
    }


def booking_to_dict(b, detail=True):
    out = {
        "id": b.id,
        "status": b.status.value,
        "customer_id": b.customer_id,
        "vehicle_id": b.vehicle_id,
        "driver_id": b.driver_id,
        "pickup_date": _iso(b.pickup_date),
        "return_date": _iso(b.return_date),
        "total_price": _amount(b.total_price),
        "payment_status": b.payment_status.value,
        "created_at": _iso(b.created_at),
    }
    if not detail:
        return out

    out.update({
        "pickup_location": b.pickup_location,
        "return_location": b.return_location,
        "base_price": _amount(b.base_price),
        "tax_amount": _amount(b.tax_amount),
        "deposit_amount": _amount(b.deposit_amount),
        "cleaning_fee": _amount(b.cleaning_fee),
        "damage_fee": _amount(b.damage_fee),
        "extra_charges": _amount(b.extra_charges),
        "amount_paid": _amount(b.amount_paid),
        "balance_due": _amount(b.balance_due),
        "payment_method": b.payment_method,
        "rental_terms": {
            "unlimited_mileage": b.unlimited_mileage,
            "daily_mileage_allowance": b.daily_mileage_allowance,
            "extra_mile_rate": _amount(b.extra_mile_rate),
            "cleaning_fee": _amount(b.cleaning_fee_rate),
        },
        "verification": {
            "license_verified": b.license_verified,
            "insurance_verified": b.insurance_verified,
        },
        "cancellation": {
            "cancelled_at": _iso(b.cancelled_at),
            "cancelled_by": b.cancelled_by,
            "reason": b.cancel_reason,
            "refund_tier": b.refund_tier,
            "refund_percent": b.refund_percent,
            "refund_amount": _amount(b.refund_amount),
        } if b.cancelled_at else None,
        "check_in": check_in_to_dict(b.check_in),
        "check_out": check_out_to_dict(b.check_out),
        "review": {
            "rating": b.review.rating,
            "comment": b.review.comment,
            "created_at": _iso(b.review.created_at),
        } if b.review else None,
        "updated_at": _iso(b.updated_at),
        "version": b.version,
    })
    return out
