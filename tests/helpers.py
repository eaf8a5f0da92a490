from services.storefront.inventory import InventoryOrderItem
from services.storefront.models import Product
from services.storefront.repository import StorefrontRepository


def item(product_id, quantity):
    return InventoryOrderItem(product_id=product_id, quantity=quantity)


def stock_of(db, product_id):
    return db.query(Product.stock).filter(Product.id == product_id).scalar()


class RacingRepository(StorefrontRepository):
    """Simulates another checkout taking stock between the pre-flight read and the decrement."""

    def __init__(self, db, contended_product_id, stock_left):
        super().__init__(db)
        self.contended_product_id = contended_product_id
        self.stock_left = stock_left

    def decrement_stock_if_available(self, product_id, quantity):
        if product_id == self.contended_product_id:
            self.set_stock(product_id, self.stock_left)
        return super().decrement_stock_if_available(product_id, quantity)


class CallRecordingRepository(StorefrontRepository):
    """Records the customer lookups and pending-payment checks in call order."""

    def __init__(self, db):
        super().__init__(db)
        self.calls = []

    def get_customer(self, user_id, for_update=False):
        self.calls.append(("get_customer", for_update))
        return super().get_customer(user_id, for_update=for_update)

    def has_pending_payment_order(self, user_id):
        self.calls.append(("has_pending_payment_order",))
        return super().has_pending_payment_order(user_id)
