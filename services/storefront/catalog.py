"""
Catalog administration: categories and products.

Stock is never written here directly. A product edit that changes stock goes
through ``set_product_stock`` so it lands in the stock ledger like any other
admin adjustment.
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shared.database import transaction

from .inventory import ProductNotFoundError, set_product_stock
from .models import Category, Product
from .repository import StorefrontRepository
from .schemas import (
    CategoryResponse,
    CreateProductRequest,
    ProductResponse,
    UpdateProductRequest,
)

logger = logging.getLogger(__name__)

STOCK_FILTERS = {"in": True, "out": False}
PRODUCT_FIELDS = ("name", "description", "price", "stock", "category_id")


class CatalogError(Exception):
    """Base class for catalog administration failures."""


class CategoryNotFoundError(CatalogError):
    def __init__(self, category_id: str):
        super().__init__("Category not found.")
        self.category_id = category_id


class DuplicateCategoryError(CatalogError):
    def __init__(self, name: str):
        super().__init__("Category already exists.")
        self.name = name


class CategoryInUseError(CatalogError):
    def __init__(self, category_id: str, product_count: int):
        super().__init__("Move this category's products to another category before deleting it.")
        self.category_id = category_id
        self.product_count = product_count


class InvalidCategoryReferenceError(CatalogError):
    def __init__(self, category_id: str):
        super().__init__("Invalid category reference.")
        self.category_id = category_id


class EmptyProductUpdateError(CatalogError):
    def __init__(self):
        super().__init__("At least one field is required.")


class ProductInUseError(CatalogError):
    def __init__(self, product_id: str):
        super().__init__("Product has orders or stock history and cannot be deleted.")
        self.product_id = product_id


def to_product_response(product: Product) -> ProductResponse:
    return ProductResponse(
        id=product.id,
        name=product.name,
        description=product.description,
        price=product.price,
        stock=product.stock,
        category_id=product.category_id,
        category=product.category.name if product.category is not None else None,
    )


def to_category_response(category: Category) -> CategoryResponse:
    return CategoryResponse(id=category.id, name=category.name, created_at=category.created_at)


# ── Categories ───────────────────────────────────


def list_categories(db: Session) -> List[CategoryResponse]:
    return [to_category_response(c) for c in StorefrontRepository(db).list_categories()]


def create_category(db: Session, name: str) -> CategoryResponse:
    """Create a category. Names are unique."""
    repo = StorefrontRepository(db)
    try:
        with transaction(db):
            if repo.find_category_by_name(name) is not None:
                raise DuplicateCategoryError(name)
            created = to_category_response(repo.add_category(Category(name=name)))
    except IntegrityError as e:
        # Lost a race with another insert of the same name
        raise DuplicateCategoryError(name) from e

    logger.info(f"Category {created.id} created as {created.name!r}")
    return created


def rename_category(db: Session, category_id: str, name: str) -> CategoryResponse:
    repo = StorefrontRepository(db)
    try:
        with transaction(db):
            category = repo.get_category(category_id)
            if category is None:
                raise CategoryNotFoundError(category_id)
            existing = repo.find_category_by_name(name)
            if existing is not None and existing.id != category.id:
                raise DuplicateCategoryError(name)
            category.name = name
            db.flush()
            renamed = to_category_response(category)
    except IntegrityError as e:
        raise DuplicateCategoryError(name) from e

    logger.info(f"Category {category_id} renamed to {name!r}")
    return renamed


def delete_category(db: Session, category_id: str) -> None:
    """Delete an empty category."""
    repo = StorefrontRepository(db)
    with transaction(db):
        category = repo.get_category(category_id)
        if category is None:
            raise CategoryNotFoundError(category_id)
        product_count = repo.count_products_in_category(category_id)
        if product_count > 0:
            raise CategoryInUseError(category_id, product_count)
        repo.delete_category(category)

    logger.info(f"Category {category_id} deleted")


# ── Products ─────────────────────────────────────


def list_products(
    db: Session,
    q: Optional[str] = None,
    category_id: Optional[str] = None,
    stock: Optional[str] = None,
) -> List[ProductResponse]:
    """
    List products, optionally filtered.

    ``stock`` is ``"in"`` for products with stock left or ``"out"`` for sold-out
    ones; any other value leaves stock unfiltered.
    """
    products = StorefrontRepository(db).list_products(
        q=(q or "").strip() or None,
        category_id=(category_id or "").strip() or None,
        in_stock=STOCK_FILTERS.get((stock or "").strip().lower()),
    )
    return [to_product_response(p) for p in products]


def get_product(db: Session, product_id: str) -> ProductResponse:
    product = StorefrontRepository(db).get_product(product_id)
    if product is None:
        raise ProductNotFoundError([product_id])
    return to_product_response(product)


def create_product(db: Session, req: CreateProductRequest) -> ProductResponse:
    repo = StorefrontRepository(db)
    with transaction(db):
        if repo.get_category(req.category_id) is None:
            raise InvalidCategoryReferenceError(req.category_id)
        product = repo.add_product(
            Product(
                name=req.name,
                description=req.description or None,
                price=req.price,
                stock=req.stock,
                category_id=req.category_id,
            )
        )
        created = to_product_response(product)

    logger.info(f"Product {created.id} added with stock {created.stock}")
    return created


def update_product(db: Session, product_id: str, changes: UpdateProductRequest) -> ProductResponse:
    """
    Apply a partial product edit.

    A stock change is recorded as an ADMIN_ADJUSTMENT with the given reason tag
    and text; an unchanged stock value writes no ledger row.
    """
    fields = changes.model_dump(exclude_unset=True)
    if not any(name in fields for name in PRODUCT_FIELDS):
        raise EmptyProductUpdateError()

    repo = StorefrontRepository(db)
    with transaction(db):
        product = repo.get_product(product_id)
        if product is None:
            raise ProductNotFoundError([product_id])

        if changes.category_id is not None and changes.category_id != product.category_id:
            category = repo.get_category(changes.category_id)
            if category is None:
                raise InvalidCategoryReferenceError(changes.category_id)
            product.category = category
        if changes.name is not None:
            product.name = changes.name
        if changes.price is not None:
            product.price = changes.price
        if "description" in fields:
            product.description = changes.description or None
        db.flush()

        if changes.stock is not None and changes.stock != product.stock:
            set_product_stock(
                repo,
                product_id,
                changes.stock,
                actor_id=changes.actor_id,
                reason=changes.stock_reason,
                reason_tag=changes.stock_reason_tag,
            )
            # The stock update bypasses the identity map
            db.refresh(product)

        updated = to_product_response(product)

    logger.info(f"Product {product_id} updated: {sorted(fields)}")
    return updated


def delete_product(db: Session, product_id: str) -> None:
    """Delete a product that no order or stock ledger row refers to."""
    repo = StorefrontRepository(db)
    with transaction(db):
        product = repo.get_product(product_id)
        if product is None:
            raise ProductNotFoundError([product_id])
        if repo.is_product_referenced(product_id):
            raise ProductInUseError(product_id)
        repo.delete_product(product)

    logger.info(f"Product {product_id} deleted")
