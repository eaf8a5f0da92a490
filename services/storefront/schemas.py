from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .inventory import InventoryOrderItem, StockReasonTag
from .models import OrderStatus, PaymentStatus


class DeliveryAddress(BaseModel):
    """Delivery address supplied at checkout."""

    street: str = Field(min_length=3, max_length=255)
    phone: str = Field(min_length=7, max_length=20)
    city: str = Field(min_length=2, max_length=100)
    state: str = Field(min_length=2, max_length=100)
    postal_code: str = Field(min_length=3, max_length=20)
    country: str = Field(default="India", min_length=2, max_length=100)


class CreateOrderRequest(BaseModel):
    """Request to place an order."""

    user_id: str
    delivery_address: DeliveryAddress
    items: List[InventoryOrderItem] = Field(min_length=1)


class CustomerSummary(BaseModel):
    id: str
    email: str
    name: Optional[str] = None


class OrderLine(BaseModel):
    product_id: str
    name: str
    quantity: int
    unit_price: float
    line_total: float


class CreatedOrder(BaseModel):
    """Order returned to the customer right after placement."""

    id: str
    status: OrderStatus
    payment_status: PaymentStatus
    subtotal: float
    delivery_charge: float
    total: float
    created_at: datetime
    customer: CustomerSummary
    items: List[OrderLine]


class StatusHistoryEntry(BaseModel):
    status: OrderStatus
    note: Optional[str] = None
    changed_by_id: Optional[str] = None
    created_at: Optional[datetime] = None


class OrderDetail(BaseModel):
    """Full order view used by the customer and admin endpoints."""

    id: str
    user_id: str
    customer: Optional[CustomerSummary] = None
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: str
    cancel_reason: Optional[str] = None
    subtotal: float
    delivery_charge: float
    total: float
    items: List[OrderLine]
    history: List[StatusHistoryEntry] = []
    created_at: datetime
    updated_at: datetime


class UpdateOrderStatusRequest(BaseModel):
    """Admin request to move an order or its payment forward."""

    actor_id: Optional[str] = None
    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None
    cancel_reason: Optional[str] = Field(default=None, max_length=500)
    note: Optional[str] = Field(default=None, max_length=500)


class UpdateStockRequest(BaseModel):
    """Admin request to set a product's stock."""

    stock: int = Field(ge=0)
    actor_id: Optional[str] = None
    reason: Optional[str] = Field(default=None, max_length=200)
    reason_tag: Optional[StockReasonTag] = None


class ProductResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    price: float
    stock: int
    category_id: Optional[str] = None
    category: Optional[str] = None


class CreateProductRequest(BaseModel):
    """Admin request to add a product to the catalog."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=2, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    price: float = Field(gt=0)
    stock: int = Field(ge=0)
    category_id: str
    actor_id: Optional[str] = None


class UpdateProductRequest(BaseModel):
    """Admin request to edit a product. Only the fields sent are changed."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=2, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    price: Optional[float] = Field(default=None, gt=0)
    stock: Optional[int] = Field(default=None, ge=0)
    category_id: Optional[str] = None
    stock_reason_tag: Optional[StockReasonTag] = None
    stock_reason: Optional[str] = Field(default=None, max_length=200)
    actor_id: Optional[str] = None


class CategoryRequest(BaseModel):
    """Admin request to create or rename a category."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=2, max_length=100)


class CategoryResponse(BaseModel):
    id: str
    name: str
    created_at: Optional[datetime] = None


class StoreSettingsView(BaseModel):
    """Whether the store takes orders, and what customers see while it is closed."""

    model_config = ConfigDict(str_strip_whitespace=True)

    is_open: bool = True
    next_open_at: Optional[datetime] = None
    message: Optional[str] = Field(default=None, max_length=200)


class UpdateStoreSettingsRequest(StoreSettingsView):
    """Admin request replacing the store settings. Omitted fields are cleared."""

    is_open: bool


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str
    service: str
    version: str
