"""
Inventory reservation.

Stock is reserved in two phases. A pre-flight pass compares every requested
quantity against a snapshot read and fails fast. The authoritative pass then
issues one conditional decrement per product (``stock >= quantity``); if a
concurrent order consumed the stock in between, the update matches no row and
the reservation fails with the freshly read stock level.

A late failure leaves earlier decrements of the same batch applied on the
session, so callers must run ``reserve_inventory_stock`` inside a transaction
that is rolled back on error.
"""

import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel

from .models import StockChangeHistory, StockChangeType
from .repository import StorefrontRepository

logger = logging.getLogger(__name__)


class InventoryError(Exception):
    """Base class for reservation failures."""


class ProductNotFoundError(InventoryError):
    def __init__(self, missing_product_ids: List[str]):
        super().__init__("Some products do not exist.")
        self.missing_product_ids = missing_product_ids


class InsufficientStockError(InventoryError):
    def __init__(self, product_id: str, requested: int, available: int):
        super().__init__("Insufficient stock for one or more products.")
        self.product_id = product_id
        self.requested = requested
        self.available = available


class InvalidOrderItemError(InventoryError):
    def __init__(self):
        super().__init__("Order contains invalid item quantity.")


class InvalidStockValueError(InventoryError):
    def __init__(self, value):
        super().__init__(f"Stock must be a non-negative integer, got {value!r}.")
        self.value = value


class StockReasonTag(str, Enum):
    DAMAGED = "DAMAGED"
    EXPIRED = "EXPIRED"
    MANUAL = "MANUAL"


DEFAULT_STOCK_REASONS = {
    StockReasonTag.DAMAGED: "Stock reduced due to damaged units.",
    StockReasonTag.EXPIRED: "Stock reduced due to expired units.",
    StockReasonTag.MANUAL: "Admin updated product stock.",
}


class InventoryOrderItem(BaseModel):
    """Requested line: product and quantity."""

    product_id: str
    # Kept as sent; "2", 2.0 and 1.5 must reach normalize_inventory_items and fail there
    quantity: Any


class ReservedInventoryItem(BaseModel):
    """Reserved line with the price and stock levels seen at reservation time."""

    product_id: str
    name: str
    unit_price: float
    quantity: int
    previous_stock: int
    new_stock: int


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def normalize_inventory_items(items: Iterable) -> List[InventoryOrderItem]:
    """
    Validate quantities and merge duplicate products.

    Quantities for the same product are summed; products keep the order in
    which they first appear. Any non-integer or non-positive quantity fails
    the whole batch.
    """
    quantities: Dict[str, int] = {}
    for item in items:
        if not _is_positive_int(item.quantity):
            raise InvalidOrderItemError()
        quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity

    return [
        InventoryOrderItem(product_id=product_id, quantity=quantity)
        for product_id, quantity in quantities.items()
    ]


def reserve_inventory_stock(repo: StorefrontRepository, items: Iterable) -> List[ReservedInventoryItem]:
    """Verify availability and decrement stock for every requested product."""
    normalized_items = normalize_inventory_items(items)
    product_ids = [item.product_id for item in normalized_items]

    # Snapshot the values now; the ORM instances are not refreshed by the conditional updates
    snapshots = {
        product.id: {"name": product.name, "price": product.price, "stock": product.stock}
        for product in repo.find_products(product_ids)
    }

    missing_product_ids = [product_id for product_id in product_ids if product_id not in snapshots]
    if missing_product_ids:
        logger.warning(f"Reservation rejected, unknown products: {missing_product_ids}")
        raise ProductNotFoundError(missing_product_ids)

    for item in normalized_items:
        available = snapshots[item.product_id]["stock"]
        if item.quantity > available:
            logger.warning(f"Insufficient stock for product {item.product_id}: need {item.quantity}, have {available}")
            raise InsufficientStockError(item.product_id, item.quantity, available)

    reserved_items: List[ReservedInventoryItem] = []
    for item in normalized_items:
        updated = repo.decrement_stock_if_available(item.product_id, item.quantity)
        if updated != 1:
            latest_stock: Optional[int] = repo.get_product_stock(item.product_id)
            available = latest_stock if latest_stock is not None else 0
            logger.warning(
                f"Conditional decrement lost a race for product {item.product_id}: "
                f"need {item.quantity}, have {available}"
            )
            raise InsufficientStockError(item.product_id, item.quantity, available)

        snapshot = snapshots[item.product_id]
        reserved_items.append(
            ReservedInventoryItem(
                product_id=item.product_id,
                name=snapshot["name"],
                unit_price=snapshot["price"],
                quantity=item.quantity,
                previous_stock=snapshot["stock"],
                new_stock=snapshot["stock"] - item.quantity,
            )
        )
        logger.info(f"Reserved {item.quantity} units of {item.product_id}")

    return reserved_items


def set_product_stock(
    repo: StorefrontRepository,
    product_id: str,
    new_stock: int,
    actor_id: Optional[str] = None,
    reason: Optional[str] = None,
    reason_tag: Optional[StockReasonTag] = None,
) -> StockChangeHistory:
    """
    Admin edit: overwrite a product's stock and record the adjustment.

    The ledger reason reads ``[TAG] text``; the tag defaults to MANUAL and the
    text to the tag's stock reason.
    """
    if isinstance(new_stock, bool) or not isinstance(new_stock, int) or new_stock < 0:
        raise InvalidStockValueError(new_stock)

    previous_stock = repo.get_product_stock(product_id)
    if previous_stock is None:
        raise ProductNotFoundError([product_id])

    tag = StockReasonTag(reason_tag) if reason_tag is not None else StockReasonTag.MANUAL
    text = (reason or "").strip() or DEFAULT_STOCK_REASONS[tag]

    repo.set_stock(product_id, new_stock)
    entry = StockChangeHistory(
        product_id=product_id,
        change_type=StockChangeType.ADMIN_ADJUSTMENT.value,
        quantity_delta=new_stock - previous_stock,
        previous_stock=previous_stock,
        new_stock=new_stock,
        reason=f"[{tag.value}] {text}",
        changed_by_id=actor_id,
    )
    repo.add_stock_history([entry])
    logger.info(f"Set stock of {product_id} from {previous_stock} to {new_stock}")
    return entry
