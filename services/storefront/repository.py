import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import and_, func, or_, update
from sqlalchemy.orm import Session, selectinload

from .models import (
    Address,
    Category,
    Order,
    OrderItem,
    OrderStatus,
    OrderStatusHistory,
    PaymentStatus,
    Product,
    StockChangeHistory,
    StoreSettings,
    User,
)

logger = logging.getLogger(__name__)


class StorefrontRepository:
    """
    Data access for order placement and administration.

    Every method works on the session it was built with and never commits;
    the caller owns the transaction boundary.
    """

    def __init__(self, db: Session):
        """Initialize with database session."""
        self.db = db

    # ── Customers ────────────────────────────────

    def get_customer(self, user_id: str, for_update: bool = False) -> Optional[User]:
        """
        Get user by ID.

        With ``for_update`` the row stays locked until the transaction ends, which
        serializes concurrent checkouts of the same customer.
        """
        query = self.db.query(User).filter(User.id == user_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def has_pending_payment_order(self, user_id: str) -> bool:
        """Check whether the customer has an open order awaiting payment verification."""
        pending = (
            self.db.query(Order.id)
            .filter(
                and_(
                    Order.user_id == user_id,
                    Order.payment_status == PaymentStatus.PENDING_VERIFICATION.value,
                    Order.status.notin_([OrderStatus.CANCELLED.value, OrderStatus.DELIVERED.value]),
                )
            )
            .first()
        )
        return pending is not None

    # ── Products & stock ─────────────────────────

    def get_product(self, product_id: str) -> Optional[Product]:
        """Get product by ID."""
        return self.db.query(Product).filter(Product.id == product_id).first()

    def list_products(
        self,
        q: Optional[str] = None,
        category_id: Optional[str] = None,
        in_stock: Optional[bool] = None,
    ) -> List[Product]:
        """
        List products ordered by name.

        ``q`` matches name, description or category name, case-insensitively.
        ``in_stock`` True keeps products with stock left, False keeps sold-out ones.
        """
        query = self.db.query(Product).outerjoin(Category, Product.category_id == Category.id)
        if q:
            query = query.filter(
                or_(
                    Product.name.icontains(q, autoescape=True),
                    Product.description.icontains(q, autoescape=True),
                    Category.name.icontains(q, autoescape=True),
                )
            )
        if category_id:
            query = query.filter(Product.category_id == category_id)
        if in_stock is True:
            query = query.filter(Product.stock > 0)
        elif in_stock is False:
            query = query.filter(Product.stock <= 0)
        return query.order_by(Product.name).all()

    def add_product(self, product: Product) -> Product:
        """Persist a new product."""
        self.db.add(product)
        self.db.flush()
        logger.info(f"Created product {product.id} ({product.name})")
        return product

    def delete_product(self, product: Product) -> None:
        self.db.delete(product)
        self.db.flush()

    def is_product_referenced(self, product_id: str) -> bool:
        """Check whether any order line or stock ledger row points at the product."""
        in_orders = self.db.query(OrderItem.id).filter(OrderItem.product_id == product_id).first()
        if in_orders is not None:
            return True
        in_ledger = (
            self.db.query(StockChangeHistory.id).filter(StockChangeHistory.product_id == product_id).first()
        )
        return in_ledger is not None

    def find_products(self, product_ids: Iterable[str]) -> List[Product]:
        """Batch lookup of products by ID."""
        ids = list(product_ids)
        if not ids:
            return []
        return self.db.query(Product).filter(Product.id.in_(ids)).all()

    def decrement_stock_if_available(self, product_id: str, quantity: int) -> int:
        """
        Decrement stock by ``quantity`` only if at least that much is left.

        Returns the number of rows updated: 1 on success, 0 when the product is
        gone or another transaction consumed the stock first.
        """
        result = self.db.execute(
            update(Product)
            .where(and_(Product.id == product_id, Product.stock >= quantity))
            .values(stock=Product.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def get_product_stock(self, product_id: str) -> Optional[int]:
        """Read the current stock straight from the database."""
        return self.db.query(Product.stock).filter(Product.id == product_id).scalar()

    def set_stock(self, product_id: str, new_stock: int) -> int:
        """Overwrite stock for a product. Returns the number of rows updated."""
        result = self.db.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock=new_stock)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    # ── Orders ───────────────────────────────────

    def add_address(self, address: Address) -> Address:
        """Persist a delivery address."""
        self.db.add(address)
        self.db.flush()
        logger.info(f"Created address {address.id} for user {address.user_id}")
        return address

    def add_order(self, order: Order) -> Order:
        """Persist an order together with its items."""
        self.db.add(order)
        self.db.flush()
        logger.info(f"Created order {order.id} for user {order.user_id} with {len(order.items)} items")
        return order

    def add_status_history(self, entry: OrderStatusHistory) -> OrderStatusHistory:
        """Append an order status history row at the end of the order's timeline."""
        order_id = entry.order_id or entry.order.id
        with self.db.no_autoflush:
            last_sequence = (
                self.db.query(func.max(OrderStatusHistory.sequence))
                .filter(OrderStatusHistory.order_id == order_id)
                .scalar()
            )
        entry.sequence = (last_sequence or 0) + 1
        self.db.add(entry)
        self.db.flush()
        return entry

    def add_stock_history(self, entries: List[StockChangeHistory]) -> None:
        """Append stock ledger rows in one batch."""
        self.db.add_all(entries)
        self.db.flush()

    def get_order(self, order_id: str, for_update: bool = False) -> Optional[Order]:
        """Get order by ID with items and history loaded."""
        query = (
            self.db.query(Order)
            .options(
                selectinload(Order.items).selectinload(OrderItem.product),
                selectinload(Order.status_history),
                selectinload(Order.user),
            )
            .filter(Order.id == order_id)
        )
        if for_update:
            query = query.with_for_update(of=Order)
        return query.first()

    def search_orders(
        self,
        q: Optional[str] = None,
        status: Optional[str] = None,
        created_from: Optional[datetime] = None,
        created_before: Optional[datetime] = None,
        limit: int = 200,
    ) -> List[Order]:
        """
        Admin order search, newest first.

        ``q`` matches the order id, customer name or customer email. The creation
        window is ``[created_from, created_before)``.
        """
        query = (
            self.db.query(Order)
            .join(User, Order.user_id == User.id)
            .options(
                selectinload(Order.items).selectinload(OrderItem.product),
                selectinload(Order.status_history),
                selectinload(Order.user),
            )
        )
        if q:
            query = query.filter(
                or_(
                    Order.id.icontains(q, autoescape=True),
                    User.name.icontains(q, autoescape=True),
                    User.email.icontains(q, autoescape=True),
                )
            )
        if status:
            query = query.filter(Order.status == status)
        if created_from is not None:
            query = query.filter(Order.created_at >= created_from)
        if created_before is not None:
            query = query.filter(Order.created_at < created_before)
        return query.order_by(Order.created_at.desc(), Order.id).limit(limit).all()

    def get_orders_by_user(self, user_id: str) -> List[Order]:
        """Get all orders for a user, newest first."""
        return (
            self.db.query(Order)
            .options(selectinload(Order.items).selectinload(OrderItem.product))
            .filter(Order.user_id == user_id)
            .order_by(Order.created_at.desc())
            .all()
        )

    # ── Categories ───────────────────────────────

    def list_categories(self) -> List[Category]:
        """List categories, newest first."""
        return self.db.query(Category).order_by(Category.created_at.desc(), Category.name).all()

    def get_category(self, category_id: str) -> Optional[Category]:
        return self.db.query(Category).filter(Category.id == category_id).first()

    def find_category_by_name(self, name: str) -> Optional[Category]:
        return self.db.query(Category).filter(Category.name == name).first()

    def add_category(self, category: Category) -> Category:
        """Persist a new category."""
        self.db.add(category)
        self.db.flush()
        logger.info(f"Created category {category.id} ({category.name})")
        return category

    def count_products_in_category(self, category_id: str) -> int:
        return self.db.query(func.count(Product.id)).filter(Product.category_id == category_id).scalar()

    def delete_category(self, category: Category) -> None:
        self.db.delete(category)
        self.db.flush()

    # ── Store settings ───────────────────────────

    def get_store_settings(self, for_update: bool = False) -> Optional[StoreSettings]:
        """Get the single store settings row, if it was ever written."""
        query = self.db.query(StoreSettings).filter(StoreSettings.id == StoreSettings.SINGLETON_ID)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def add_store_settings(self, row: StoreSettings) -> StoreSettings:
        self.db.add(row)
        self.db.flush()
        return row
