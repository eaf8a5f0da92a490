import pytest

from helpers import RacingRepository, item, stock_of
from services.storefront.inventory import (
    InsufficientStockError,
    InvalidOrderItemError,
    InvalidStockValueError,
    ProductNotFoundError,
    normalize_inventory_items,
    reserve_inventory_stock,
    set_product_stock,
)
from services.storefront.models import StockChangeHistory, StockChangeType
from services.storefront.repository import StorefrontRepository
from shared.database import transaction


class TestNormalize:
    def test_duplicates_are_summed_in_first_seen_order(self):
        normalized = normalize_inventory_items([item("b", 1), item("a", 2), item("b", 3)])

        assert [(i.product_id, i.quantity) for i in normalized] == [("b", 4), ("a", 2)]

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, 2.0, "2", True, None])
    def test_invalid_quantity_fails_whole_batch(self, quantity):
        items = [item("a", 1), item("b", quantity)]

        with pytest.raises(InvalidOrderItemError):
            normalize_inventory_items(items)


class TestReserve:
    def test_reserves_and_snapshots(self, db, make_product):
        rice = make_product("Basmati Rice", 140.0, 10)
        dal = make_product("Toor Dal", 165.0, 4)

        with transaction(db):
            reserved = reserve_inventory_stock(StorefrontRepository(db), [item(rice, 3), item(dal, 4)])

        assert [(r.product_id, r.quantity, r.previous_stock, r.new_stock) for r in reserved] == [
            (rice, 3, 10, 7),
            (dal, 4, 4, 0),
        ]
        assert reserved[0].name == "Basmati Rice"
        assert reserved[0].unit_price == 140.0
        assert stock_of(db, rice) == 7
        assert stock_of(db, dal) == 0

    def test_missing_products_are_listed_and_nothing_is_reserved(self, db, make_product):
        rice = make_product("Basmati Rice", 140.0, 10)

        with pytest.raises(ProductNotFoundError) as exc_info:
            with transaction(db):
                reserve_inventory_stock(StorefrontRepository(db), [item(rice, 1), item("X", 1), item("Y", 2)])

        assert exc_info.value.missing_product_ids == ["X", "Y"]
        assert stock_of(db, rice) == 10

    def test_insufficient_stock_reports_requested_and_available(self, db, make_product):
        paneer = make_product("Paneer", 90.0, 3)

        with pytest.raises(InsufficientStockError) as exc_info:
            with transaction(db):
                reserve_inventory_stock(StorefrontRepository(db), [item(paneer, 5)])

        assert exc_info.value.product_id == paneer
        assert exc_info.value.requested == 5
        assert exc_info.value.available == 3
        assert stock_of(db, paneer) == 3

    def test_duplicate_lines_are_checked_against_combined_quantity(self, db, make_product):
        paneer = make_product("Paneer", 90.0, 3)

        with pytest.raises(InsufficientStockError) as exc_info:
            with transaction(db):
                reserve_inventory_stock(StorefrontRepository(db), [item(paneer, 2), item(paneer, 2)])

        assert exc_info.value.requested == 4
        assert stock_of(db, paneer) == 3

    def test_lost_race_reports_fresh_stock_and_rolls_back_batch(self, db, make_product):
        milk = make_product("Milk", 56.0, 10)
        curd = make_product("Curd", 45.0, 5)
        repo = RacingRepository(db, curd, stock_left=1)

        with pytest.raises(InsufficientStockError) as exc_info:
            with transaction(db):
                reserve_inventory_stock(repo, [item(milk, 2), item(curd, 3)])

        assert exc_info.value.product_id == curd
        assert exc_info.value.requested == 3
        assert exc_info.value.available == 1
        assert stock_of(db, milk) == 10
        assert stock_of(db, curd) == 5

    def test_repeated_reservations_never_oversell(self, db, make_product):
        atta = make_product("Atta", 260.0, 5)
        reserved_total = 0

        for _ in range(5):
            try:
                with transaction(db):
                    reserved = reserve_inventory_stock(StorefrontRepository(db), [item(atta, 2)])
                reserved_total += reserved[0].quantity
            except InsufficientStockError as e:
                assert e.available == 1

        assert reserved_total == 4
        assert stock_of(db, atta) == 1


class TestSetProductStock:
    def test_records_adjustment(self, db, make_product, admin_id):
        chips = make_product("Masala Chips", 20.0, 12)

        with transaction(db):
            set_product_stock(StorefrontRepository(db), chips, 30, actor_id=admin_id, reason="New delivery")

        assert stock_of(db, chips) == 30
        entry = db.query(StockChangeHistory).filter(StockChangeHistory.product_id == chips).one()
        assert entry.change_type == StockChangeType.ADMIN_ADJUSTMENT.value
        assert entry.quantity_delta == 18
        assert (entry.previous_stock, entry.new_stock) == (12, 30)
        assert entry.changed_by_id == admin_id
        assert entry.reason == "[MANUAL] New delivery"

    def test_rejects_negative_stock(self, db, make_product):
        chips = make_product("Masala Chips", 20.0, 12)

        with pytest.raises(InvalidStockValueError):
            set_product_stock(StorefrontRepository(db), chips, -1)

    def test_unknown_product(self, db):
        with pytest.raises(ProductNotFoundError) as exc_info:
            set_product_stock(StorefrontRepository(db), "missing", 4)

        assert exc_info.value.missing_product_ids == ["missing"]
