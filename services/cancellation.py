from dataclasses import dataclass

FULL_REFUND = "full_refund"
PARTIAL_REFUND = "partial_refund"
NO_REFUND = "no_refund"


@dataclass(frozen=True)
class CancellationDecision:
    tier: str
    refund_percent: int
    note: str
    hours_until_pickup: float

    def to_dict(self):
        return {
            "tier": self.tier,
            "refund_percent": self.refund_percent,
            "note": self.note,
            "hours_until_pickup": round(self.hours_until_pickup, 2),
        }


def evaluate(now, pickup_date, full_refund_hours=24, partial_refund_hours=6, partial_percent=50):
    """
    Refund tier for cancelling at `now` a booking picked up at `pickup_date`.
    Both thresholds are strict: exactly 24h before pickup is already partial,
    exactly 6h before is already no refund.
    Always call at the moment of cancellation; the result depends on `now`.
    """
    hours = (pickup_date - now).total_seconds() / 3600

    if hours > full_refund_hours:
        return CancellationDecision(
            FULL_REFUND, 100,
            f"Cancelled more than {full_refund_hours} hours before pickup: full refund",
            hours,
        )
    if hours > partial_refund_hours:
        return CancellationDecision(
            PARTIAL_REFUND, partial_percent,
            f"Cancelled between {partial_refund_hours} and {full_refund_hours} hours before pickup: "
            f"{partial_percent}% refund",
            hours,
        )
    return CancellationDecision(
        NO_REFUND, 0,
        f"Cancelled {partial_refund_hours} hours or less before pickup: no refund",
        hours,
    )
