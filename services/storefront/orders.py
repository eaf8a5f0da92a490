"""
Order placement and order lifecycle administration.

PLACEMENT (create_order), all in one transaction:
    1. Customer must exist; its row is locked for the rest of the transaction
    2. Customer must not have another order awaiting payment verification
    3. Reserve inventory and price the order from the reserved snapshot prices
    4. Write a fresh delivery address, the order and its items
    5. Append the PENDING status history row and one stock ledger row per product

Any failure rolls the whole attempt back, including stock already decremented.

LIFECYCLE (update_order_status):
    PENDING   → CONFIRMED | CANCELLED
    CONFIRMED → SHIPPED   | CANCELLED
    SHIPPED   → DELIVERED | CANCELLED
    DELIVERED, CANCELLED are terminal.

    CONFIRMED, SHIPPED and DELIVERED need a VERIFIED payment. CANCELLED needs a
    cancel reason. Each transition appends one status history row.
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from shared.database import transaction

from .inventory import reserve_inventory_stock
from .models import (
    Address,
    Order,
    OrderItem,
    OrderStatus,
    OrderStatusHistory,
    PaymentStatus,
    StockChangeHistory,
    StockChangeType,
    UPI_QR_PAYMENT_METHOD,
)
from .payment_meta import build_order_payment_note, parse_order_payment_meta
from .pricing import calculate_order_price_breakdown, calculate_subtotal
from .repository import StorefrontRepository
from .schemas import (
    CreatedOrder,
    CustomerSummary,
    DeliveryAddress,
    OrderDetail,
    OrderLine,
    StatusHistoryEntry,
)

logger = logging.getLogger(__name__)

MIN_CANCEL_REASON_LENGTH = 5
ADMIN_ORDER_LIST_LIMIT = 200
ORDER_PLACED_NOTE = "Order placed by customer"

ALLOWED_STATUS_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

ALLOWED_PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING_VERIFICATION: {PaymentStatus.VERIFIED, PaymentStatus.FAILED},
    PaymentStatus.FAILED: {PaymentStatus.VERIFIED},
    PaymentStatus.VERIFIED: set(),
}

TERMINAL_STATUSES = {OrderStatus.DELIVERED, OrderStatus.CANCELLED}
STATUSES_REQUIRING_VERIFIED_PAYMENT = {OrderStatus.CONFIRMED, OrderStatus.SHIPPED, OrderStatus.DELIVERED}

DEFAULT_STATUS_NOTES = {
    OrderStatus.CONFIRMED: "Order confirmed by admin",
    OrderStatus.SHIPPED: "Order shipped",
    OrderStatus.DELIVERED: "Order delivered",
}


class OrderError(Exception):
    """Base class for order placement and lifecycle failures."""


class CustomerNotFoundError(OrderError):
    def __init__(self, user_id: str):
        super().__init__("Customer not found")
        self.user_id = user_id


class PendingPaymentError(OrderError):
    def __init__(self):
        super().__init__(
            "Your previous payment is still pending verification. "
            "Please wait until it is verified before placing a new order."
        )


class OrderNotFoundError(OrderError):
    def __init__(self, order_id: str):
        super().__init__("Order not found")
        self.order_id = order_id


class InvalidStatusTransitionError(OrderError):
    def __init__(self, message: str):
        super().__init__(message)


class PaymentNotVerifiedError(OrderError):
    def __init__(self, status: OrderStatus):
        super().__init__(f"Payment must be verified before moving the order to {status.value}")
        self.status = status


class CancelReasonRequiredError(OrderError):
    def __init__(self):
        super().__init__(f"Cancel reason must be at least {MIN_CANCEL_REASON_LENGTH} characters")


def create_order(
    db: Session,
    user_id: str,
    delivery_address: DeliveryAddress,
    items: List,
    payment_status_supported: bool = True,
) -> CreatedOrder:
    """
    Place an order for a customer.

    Raises CustomerNotFoundError, PendingPaymentError or one of the inventory
    errors (ProductNotFoundError, InsufficientStockError, InvalidOrderItemError).
    Nothing is persisted when an error is raised.
    """
    repo = StorefrontRepository(db)

    with transaction(db):
        # Locked so two checkouts of one customer cannot both pass the pending-payment gate
        customer = repo.get_customer(user_id, for_update=True)
        if customer is None:
            raise CustomerNotFoundError(user_id)

        # Deployments whose orders carry no payment status have nothing to gate on
        if payment_status_supported and repo.has_pending_payment_order(customer.id):
            logger.info("Order rejected, payment still pending", extra={"user_id": customer.id})
            raise PendingPaymentError()

        reserved_items = reserve_inventory_stock(repo, items)
        breakdown = calculate_order_price_breakdown(calculate_subtotal(reserved_items))

        address = repo.add_address(Address(user_id=customer.id, **delivery_address.model_dump()))

        order = Order(
            user_id=customer.id,
            address_id=address.id,
            total=breakdown.total,
            status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING_VERIFICATION.value,
            payment_method=UPI_QR_PAYMENT_METHOD,
            payment_note=build_order_payment_note(breakdown),
            items=[
                OrderItem(product_id=item.product_id, quantity=item.quantity, price=item.unit_price)
                for item in reserved_items
            ],
        )
        repo.add_order(order)

        repo.add_status_history(
            OrderStatusHistory(
                order=order,
                status=OrderStatus.PENDING.value,
                note=ORDER_PLACED_NOTE,
                changed_by_id=customer.id,
            )
        )
        repo.add_stock_history(
            [
                StockChangeHistory(
                    product_id=item.product_id,
                    order_id=order.id,
                    change_type=StockChangeType.ORDER_PLACED.value,
                    quantity_delta=-item.quantity,
                    previous_stock=item.previous_stock,
                    new_stock=item.new_stock,
                    reason=f"Order {order.id} placed",
                    changed_by_id=customer.id,
                )
                for item in reserved_items
            ]
        )

        created = CreatedOrder(
            id=order.id,
            status=OrderStatus.PENDING,
            payment_status=PaymentStatus.PENDING_VERIFICATION,
            subtotal=breakdown.subtotal,
            delivery_charge=breakdown.delivery_charge,
            total=breakdown.total,
            created_at=order.created_at,
            customer=CustomerSummary(id=customer.id, email=customer.email, name=customer.name),
            items=[
                OrderLine(
                    product_id=item.product_id,
                    name=item.name,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    line_total=round(item.unit_price * item.quantity, 2),
                )
                for item in reserved_items
            ],
        )

    logger.info(
        f"Order placed with {len(created.items)} items, total {created.total}",
        extra={"order_id": created.id, "user_id": customer.id},
    )
    return created


def update_order_status(
    db: Session,
    order_id: str,
    actor_id: Optional[str] = None,
    status: Optional[OrderStatus] = None,
    payment_status: Optional[PaymentStatus] = None,
    cancel_reason: Optional[str] = None,
    note: Optional[str] = None,
) -> OrderDetail:
    """Apply an admin status and/or payment status change to an order."""
    repo = StorefrontRepository(db)

    with transaction(db):
        order = repo.get_order(order_id, for_update=True)
        if order is None:
            raise OrderNotFoundError(order_id)

        current_status = OrderStatus(order.status)
        target_status = OrderStatus(status) if status is not None else None
        if target_status == current_status:
            target_status = None

        if cancel_reason is not None and target_status != OrderStatus.CANCELLED:
            raise InvalidStatusTransitionError("A cancel reason can only be given when cancelling the order")

        if payment_status is not None:
            _apply_payment_status(order, current_status, PaymentStatus(payment_status))

        if target_status is not None:
            if target_status not in ALLOWED_STATUS_TRANSITIONS[current_status]:
                raise InvalidStatusTransitionError(
                    f"Cannot move order from {current_status.value} to {target_status.value}"
                )
            if (
                target_status in STATUSES_REQUIRING_VERIFIED_PAYMENT
                and order.payment_status != PaymentStatus.VERIFIED.value
            ):
                raise PaymentNotVerifiedError(target_status)

            if target_status == OrderStatus.CANCELLED:
                reason = (cancel_reason or "").strip()
                if len(reason) < MIN_CANCEL_REASON_LENGTH:
                    raise CancelReasonRequiredError()
                order.cancel_reason = reason
                default_note = f"Order cancelled: {reason}"
            else:
                default_note = DEFAULT_STATUS_NOTES[target_status]

            order.status = target_status.value
            repo.add_status_history(
                OrderStatusHistory(
                    order=order,
                    status=target_status.value,
                    note=note or default_note,
                    changed_by_id=actor_id,
                )
            )
            logger.info(
                f"Order moved from {current_status.value} to {target_status.value}",
                extra={"order_id": order.id},
            )

        db.flush()
        detail = to_order_detail(order)

    return detail


def _apply_payment_status(order: Order, current_status: OrderStatus, target: PaymentStatus) -> None:
    current = PaymentStatus(order.payment_status)
    if target == current:
        return
    if current_status in TERMINAL_STATUSES:
        raise InvalidStatusTransitionError(f"Cannot change payment of a {current_status.value} order")
    if target not in ALLOWED_PAYMENT_TRANSITIONS[current]:
        raise InvalidStatusTransitionError(f"Cannot change payment from {current.value} to {target.value}")

    order.payment_status = target.value
    logger.info(f"Payment moved from {current.value} to {target.value}", extra={"order_id": order.id})


def get_order(db: Session, order_id: str) -> OrderDetail:
    """Get a single order with items, pricing and history."""
    order = StorefrontRepository(db).get_order(order_id)
    if order is None:
        raise OrderNotFoundError(order_id)
    return to_order_detail(order)


def list_orders_for_customer(db: Session, user_id: str) -> List[OrderDetail]:
    """Get all orders of a customer, newest first."""
    repo = StorefrontRepository(db)
    if repo.get_customer(user_id) is None:
        raise CustomerNotFoundError(user_id)
    return [to_order_detail(order, include_history=False) for order in repo.get_orders_by_user(user_id)]


def list_orders(
    db: Session,
    q: Optional[str] = None,
    status: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    limit: int = ADMIN_ORDER_LIST_LIMIT,
) -> List[OrderDetail]:
    """
    Admin order listing, newest first.

    ``date_from`` and ``date_to`` are inclusive calendar days. A ``status`` that
    is not an order status is ignored. ``limit`` is capped at
    ADMIN_ORDER_LIST_LIMIT.
    """
    known_statuses = {s.value for s in OrderStatus}
    status = (status or "").strip().upper()
    created_from = datetime.combine(date_from, time.min) if date_from is not None else None
    created_before = datetime.combine(date_to + timedelta(days=1), time.min) if date_to is not None else None
    orders = StorefrontRepository(db).search_orders(
        q=(q or "").strip() or None,
        status=status if status in known_statuses else None,
        created_from=created_from,
        created_before=created_before,
        limit=min(limit, ADMIN_ORDER_LIST_LIMIT),
    )
    return [to_order_detail(order) for order in orders]


def to_order_detail(order: Order, include_history: bool = True) -> OrderDetail:
    """Build the order view, recovering the price breakdown from the payment note."""
    lines = [
        OrderLine(
            product_id=item.product_id,
            name=item.product.name if item.product is not None else item.product_id,
            quantity=item.quantity,
            unit_price=item.price,
            line_total=round(item.price * item.quantity, 2),
        )
        for item in order.items
    ]

    meta = parse_order_payment_meta(order.payment_note)
    if meta is not None:
        subtotal, delivery_charge, total = meta.subtotal_amount, meta.delivery_charge, meta.final_amount
    else:
        subtotal = round(sum(line.line_total for line in lines), 2)
        total = order.total
        delivery_charge = max(round(total - subtotal, 2), 0)

    history = []
    if include_history:
        history = [
            StatusHistoryEntry(
                status=entry.status,
                note=entry.note,
                changed_by_id=entry.changed_by_id,
                created_at=entry.created_at,
            )
            for entry in order.status_history
        ]

    customer = None
    if order.user is not None:
        customer = CustomerSummary(id=order.user.id, email=order.user.email, name=order.user.name)

    return OrderDetail(
        id=order.id,
        user_id=order.user_id,
        customer=customer,
        status=order.status,
        payment_status=order.payment_status,
        payment_method=order.payment_method,
        cancel_reason=order.cancel_reason,
        subtotal=subtotal,
        delivery_charge=delivery_charge,
        total=total,
        items=lines,
        history=history,
        created_at=order.created_at,
        updated_at=order.updated_at,
    )
