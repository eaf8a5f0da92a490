"""Order totals: subtotal plus a flat delivery charge below the free-delivery threshold."""

from typing import Iterable

from pydantic import BaseModel

FREE_DELIVERY_MIN_ORDER = 200
DELIVERY_CHARGE_BELOW_THRESHOLD = 25


class OrderPriceBreakdown(BaseModel):
    """Priced order."""

    subtotal: float
    delivery_charge: float
    total: float


def calculate_delivery_charge(subtotal: float) -> float:
    if subtotal >= FREE_DELIVERY_MIN_ORDER:
        return 0
    return DELIVERY_CHARGE_BELOW_THRESHOLD


def calculate_order_price_breakdown(subtotal: float) -> OrderPriceBreakdown:
    delivery_charge = calculate_delivery_charge(subtotal)
    return OrderPriceBreakdown(
        subtotal=subtotal,
        delivery_charge=delivery_charge,
        total=subtotal + delivery_charge,
    )


def calculate_subtotal(reserved_items: Iterable) -> float:
    """Sum of snapshot unit price times quantity, rounded to paise."""
    return round(sum(item.unit_price * item.quantity for item in reserved_items), 2)
