"""
Pricing breakdown stored on the order's payment note.

Admins reconcile UPI payments against the amount the customer was shown, so
the subtotal, delivery charge and final amount are kept together as JSON on
the order row.
"""

import json
import math
from typing import Optional

from pydantic import BaseModel

from .pricing import OrderPriceBreakdown


class OrderPaymentMeta(BaseModel):
    subtotal_amount: float
    delivery_charge: float
    final_amount: float


def build_order_payment_note(breakdown: OrderPriceBreakdown) -> str:
    """Serialize a price breakdown for the payment note column."""
    return json.dumps(
        {
            "subtotalAmount": breakdown.subtotal,
            "deliveryCharge": breakdown.delivery_charge,
            "finalAmount": breakdown.total,
        },
        separators=(",", ":"),
    )


def _to_number(value) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value):
        return None
    return float(value)


def parse_order_payment_meta(payment_note: Optional[str]) -> Optional[OrderPaymentMeta]:
    """Parse a payment note. Returns None for empty or malformed notes."""
    if not payment_note:
        return None
    try:
        payload = json.loads(payment_note)
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None

    subtotal_amount = _to_number(payload.get("subtotalAmount"))
    delivery_charge = _to_number(payload.get("deliveryCharge"))
    final_amount = _to_number(payload.get("finalAmount"))
    if subtotal_amount is None or delivery_charge is None or final_amount is None:
        return None

    return OrderPaymentMeta(
        subtotal_amount=subtotal_amount,
        delivery_charge=delivery_charge,
        final_amount=final_amount,
    )
