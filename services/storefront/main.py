"""
storefront/main.py - Grocery Storefront Order Service

PURPOSE:
    HTTP entry point for the grocery storefront's ordering core. Customers place
    orders that reserve stock and are paid by UPI; admins verify the payment and
    move each order through its lifecycle.

ORDER WORKFLOW:
    1. Customer submits items and a delivery address (POST /orders)
    2. Stock is reserved with a conditional decrement, the order is priced from
       the reserved snapshot prices and stored as PENDING / PENDING_VERIFICATION
    3. Admin checks the UPI payment and marks it VERIFIED or FAILED
    4. Admin moves the order CONFIRMED → SHIPPED → DELIVERED, or CANCELLED with a reason

KEY FEATURES:
    - No Oversell: stock only ever drops through "decrement if stock >= quantity"
    - Atomic Placement: address, order, items and history rows commit together or not at all
    - One Unverified Order: a customer cannot place a new order while a previous
      payment is still awaiting verification
    - Delivery Pricing: free delivery from 200, flat 25 below

API ENDPOINTS:
    GET    /health - Health check
    GET    /store/settings - Store open/closed status
    PATCH  /store/settings - Set store open/closed status (admin)
    GET    /categories - List categories
    POST   /categories - Create a category (admin)
    PATCH  /categories/{category_id} - Rename a category (admin)
    DELETE /categories/{category_id} - Delete an empty category (admin)
    GET    /products - List products (filters: q, category_id, stock=in|out)
    POST   /products - Add a product (admin)
    GET    /products/{product_id} - Get product details
    PATCH  /products/{product_id} - Edit a product (admin)
    DELETE /products/{product_id} - Delete an unreferenced product (admin)
    PUT    /products/{product_id}/stock - Set product stock (admin)
    POST   /orders - Place an order
    GET    /orders - Search orders (admin; filters: q, status, from, to)
    GET    /orders/{order_id} - Get order details
    GET    /orders/user/{user_id} - Get a customer's orders
    PATCH  /orders/{order_id} - Update order / payment status (admin)

ERROR MAPPING:
    400 - invalid item quantity, illegal status transition, missing cancel reason,
          unknown category on a product, empty product edit
    404 - unknown products (with missing_product_ids), customer, order or category
    409 - insufficient stock (with requested/available), payment still pending,
          payment not verified, duplicate category, category or product still in use
    500 - anything else ("Failed to place order.")

USAGE:
    Runs on port 8005
    Access: http://localhost:8005/orders/...
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, Query, status
from fastapi.responses import JSONResponse
from pydantic_settings import BaseSettings  # Configuration management
from sqlalchemy.orm import Session, sessionmaker

from shared.database import DATABASE_URL, Base, build_engine, transaction
from shared.logging_config import setup_logging

from . import catalog
from .catalog import (
    CategoryInUseError,
    CategoryNotFoundError,
    DuplicateCategoryError,
    EmptyProductUpdateError,
    InvalidCategoryReferenceError,
    ProductInUseError,
)
from .inventory import (
    InsufficientStockError,
    InvalidOrderItemError,
    InvalidStockValueError,
    ProductNotFoundError,
    set_product_stock,
)
from .orders import (
    CancelReasonRequiredError,
    CustomerNotFoundError,
    InvalidStatusTransitionError,
    OrderNotFoundError,
    PaymentNotVerifiedError,
    PendingPaymentError,
    create_order,
    get_order,
    list_orders,
    list_orders_for_customer,
    update_order_status,
)
from .repository import StorefrontRepository
from .schemas import (
    CategoryRequest,
    CreateOrderRequest,
    CreateProductRequest,
    HealthResponse,
    UpdateOrderStatusRequest,
    UpdateProductRequest,
    UpdateStockRequest,
    UpdateStoreSettingsRequest,
)
from .store_settings import get_store_settings, update_store_settings

SERVICE_NAME = "storefront-service"
SERVICE_VERSION = "1.0.0"


class Settings(BaseSettings):
    """Application settings."""

    database_url: str = os.getenv("DATABASE_URL", DATABASE_URL)
    storefront_service_port: int = int(os.getenv("STOREFRONT_SERVICE_PORT", "8005"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_timezone: str = os.getenv("LOG_TIMEZONE", "Asia/Kolkata")
    # Turn off for databases whose orders predate payment verification
    payment_status_supported: bool = True
    seed_catalog: bool = True


settings = Settings()

# Setup logging
setup_logging(SERVICE_NAME, level=settings.log_level, timezone_name=settings.log_timezone)
logger = logging.getLogger(__name__)

# Database setup
engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Initialize database tables."""
    logger.info("Initializing database...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database initialized")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage app lifecycle."""
    logger.info("Starting Storefront Service...")

    try:
        init_db()
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

    if settings.seed_catalog:
        from .seed_data import seed_catalog

        db = SessionLocal()
        try:
            seed_catalog(db)
        except Exception as e:
            logger.error(f"Failed to seed catalog: {e}")
        finally:
            db.close()

    yield

    logger.info("Shutting down Storefront Service...")
    engine.dispose()


app = FastAPI(title="Storefront Service", version=SERVICE_VERSION, lifespan=lifespan)


def error_response(status_code: int, message: str, **fields) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **fields})


@app.get("/health", response_model=HealthResponse)
def health():
    """Health check endpoint."""
    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
    }


# ── Store settings ───────────────────────────────


@app.get("/store/settings")
def read_store_settings(db: Session = Depends(get_db)):
    """Store open/closed status."""
    return {"settings": get_store_settings(db).model_dump(mode="json")}


@app.patch("/store/settings")
def patch_store_settings(req: UpdateStoreSettingsRequest, db: Session = Depends(get_db)):
    """Set store open/closed status (admin)."""
    settings_view = update_store_settings(db, req)
    return {"settings": settings_view.model_dump(mode="json")}


# ── Categories ───────────────────────────────────


@app.get("/categories")
def get_categories(db: Session = Depends(get_db)):
    """List categories."""
    return {"categories": [c.model_dump(mode="json") for c in catalog.list_categories(db)]}


@app.post("/categories", status_code=status.HTTP_201_CREATED)
def post_category(req: CategoryRequest, db: Session = Depends(get_db)):
    """Create a category (admin)."""
    try:
        category = catalog.create_category(db, req.name)
    except DuplicateCategoryError as e:
        return error_response(status.HTTP_409_CONFLICT, str(e))
    return {"category": category.model_dump(mode="json")}


@app.patch("/categories/{category_id}")
def patch_category(category_id: str, req: CategoryRequest, db: Session = Depends(get_db)):
    """Rename a category (admin)."""
    try:
        category = catalog.rename_category(db, category_id, req.name)
    except CategoryNotFoundError as e:
        return error_response(status.HTTP_404_NOT_FOUND, str(e))
    except DuplicateCategoryError:
        return error_response(status.HTTP_409_CONFLICT, "Category name already exists.")
    return {"category": category.model_dump(mode="json")}


@app.delete("/categories/{category_id}")
def remove_category(category_id: str, db: Session = Depends(get_db)):
    """Delete an empty category (admin)."""
    try:
        catalog.delete_category(db, category_id)
    except CategoryNotFoundError as e:
        return error_response(status.HTTP_404_NOT_FOUND, str(e))
    except CategoryInUseError as e:
        return error_response(status.HTTP_409_CONFLICT, str(e), product_count=e.product_count)
    return {"message": "Category deleted."}


# ── Products ─────────────────────────────────────


@app.get("/products")
def list_products(
    q: Optional[str] = None,
    category_id: Optional[str] = Query(default=None, alias="categoryId"),
    stock: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """List products, filtered by text, category and stock state."""
    return [p.model_dump(mode="json") for p in catalog.list_products(db, q=q, category_id=category_id, stock=stock)]


@app.post("/products", status_code=status.HTTP_201_CREATED)
def post_product(req: CreateProductRequest, db: Session = Depends(get_db)):
    """Add a product (admin)."""
    try:
        product = catalog.create_product(db, req)
    except InvalidCategoryReferenceError as e:
        return error_response(status.HTTP_400_BAD_REQUEST, str(e))
    return {"product": product.model_dump(mode="json")}


@app.get("/products/{product_id}")
def get_product(product_id: str, db: Session = Depends(get_db)):
    """Get product details."""
    try:
        product = catalog.get_product(db, product_id)
    except ProductNotFoundError:
        return error_response(status.HTTP_404_NOT_FOUND, "Product not found.")
    return product.model_dump(mode="json")


@app.patch("/products/{product_id}")
def patch_product(product_id: str, req: UpdateProductRequest, db: Session = Depends(get_db)):
    """Edit a product (admin). A stock change is written to the stock ledger."""
    try:
        product = catalog.update_product(db, product_id, req)
    except ProductNotFoundError:
        return error_response(status.HTTP_404_NOT_FOUND, "Product not found.")
    except (InvalidCategoryReferenceError, EmptyProductUpdateError) as e:
        return error_response(status.HTTP_400_BAD_REQUEST, str(e))
    return {"product": product.model_dump(mode="json")}


@app.delete("/products/{product_id}")
def remove_product(product_id: str, db: Session = Depends(get_db)):
    """Delete a product nothing refers to (admin)."""
    try:
        catalog.delete_product(db, product_id)
    except ProductNotFoundError:
        return error_response(status.HTTP_404_NOT_FOUND, "Product not found.")
    except ProductInUseError as e:
        return error_response(status.HTTP_409_CONFLICT, str(e))
    return {"message": "Product deleted successfully."}


@app.put("/products/{product_id}/stock")
def update_product_stock(product_id: str, req: UpdateStockRequest, db: Session = Depends(get_db)):
    """Set a product's stock (admin)."""
    repo = StorefrontRepository(db)
    try:
        with transaction(db):
            entry = set_product_stock(
                repo,
                product_id,
                req.stock,
                actor_id=req.actor_id,
                reason=req.reason,
                reason_tag=req.reason_tag,
            )
    except ProductNotFoundError:
        return error_response(status.HTTP_404_NOT_FOUND, "Product not found.")
    except InvalidStockValueError as e:
        return error_response(status.HTTP_400_BAD_REQUEST, str(e))

    return {
        "message": "Stock updated successfully.",
        "product_id": product_id,
        "previous_stock": entry.previous_stock,
        "stock": entry.new_stock,
        "reason": entry.reason,
    }


# ── Orders ───────────────────────────────────────


@app.post("/orders", status_code=status.HTTP_201_CREATED)
def place_order(req: CreateOrderRequest, db: Session = Depends(get_db)):
    """Place an order."""
    try:
        order = create_order(
            db,
            req.user_id,
            req.delivery_address,
            req.items,
            payment_status_supported=settings.payment_status_supported,
        )
    except ProductNotFoundError as e:
        return error_response(
            status.HTTP_404_NOT_FOUND,
            "Some products were not found.",
            missing_product_ids=e.missing_product_ids,
        )
    except InvalidOrderItemError:
        return error_response(status.HTTP_400_BAD_REQUEST, "Order contains invalid quantities.")
    except InsufficientStockError as e:
        return error_response(
            status.HTTP_409_CONFLICT,
            "Insufficient stock.",
            product_id=e.product_id,
            requested=e.requested,
            available=e.available,
        )
    except CustomerNotFoundError as e:
        return error_response(status.HTTP_404_NOT_FOUND, str(e))
    except PendingPaymentError as e:
        return error_response(status.HTTP_409_CONFLICT, str(e))
    except Exception:
        logger.exception("Failed to place order", extra={"user_id": req.user_id})
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to place order.")

    return {
        "message": "Order placed successfully.",
        "order": order.model_dump(mode="json"),
    }


@app.get("/orders")
def search_orders(
    q: Optional[str] = None,
    order_status: Optional[str] = Query(default=None, alias="status"),
    date_from: Optional[date] = Query(default=None, alias="from"),
    date_to: Optional[date] = Query(default=None, alias="to"),
    db: Session = Depends(get_db),
):
    """Search orders, newest first (admin)."""
    orders = list_orders(db, q=q, status=order_status, date_from=date_from, date_to=date_to)
    return {
        "orders": [order.model_dump(mode="json") for order in orders],
        "total_orders": len(orders),
    }


@app.get("/orders/user/{user_id}")
def get_user_orders(user_id: str, db: Session = Depends(get_db)):
    """Get all orders for a specific user."""
    try:
        orders = list_orders_for_customer(db, user_id)
    except CustomerNotFoundError as e:
        return error_response(status.HTTP_404_NOT_FOUND, str(e))

    return {
        "user_id": user_id,
        "orders": [order.model_dump(mode="json") for order in orders],
        "total_orders": len(orders),
    }


@app.get("/orders/{order_id}")
def get_order_details(order_id: str, db: Session = Depends(get_db)):
    """Get order details."""
    try:
        order = get_order(db, order_id)
    except OrderNotFoundError as e:
        return error_response(status.HTTP_404_NOT_FOUND, str(e))
    return order.model_dump(mode="json")


@app.patch("/orders/{order_id}")
def patch_order_status(order_id: str, req: UpdateOrderStatusRequest, db: Session = Depends(get_db)):
    """Update order status and/or payment status (admin)."""
    try:
        order = update_order_status(
            db,
            order_id,
            actor_id=req.actor_id,
            status=req.status,
            payment_status=req.payment_status,
            cancel_reason=req.cancel_reason,
            note=req.note,
        )
    except OrderNotFoundError as e:
        return error_response(status.HTTP_404_NOT_FOUND, str(e))
    except (InvalidStatusTransitionError, CancelReasonRequiredError) as e:
        return error_response(status.HTTP_400_BAD_REQUEST, str(e))
    except PaymentNotVerifiedError as e:
        return error_response(status.HTTP_409_CONFLICT, str(e))
    except Exception:
        logger.exception("Failed to update order status", extra={"order_id": order_id})
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to update order status.")

    return {
        "message": "Order status updated successfully.",
        "order": order.model_dump(mode="json"),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.storefront_service_port)
