"""
Order Pydantic schemas for API request/response validation.

Field names are snake_case in Python and camelCase on the wire
(``productId``, ``totalAmount``, ``lastPage``...). Money values are
Decimals internally and JSON numbers externally.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

from order_service.database.models.order import OrderStatus

Money = Annotated[
    Decimal,
    PlainSerializer(float, return_type=float, when_used="json"),
]


class CamelModel(BaseModel):
    """Base schema with camelCase aliases that also accepts field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class OrderItemRequest(CamelModel):
    """Requested line item. Prices always come from the catalog."""

    product_id: int = Field(..., gt=0, description="Catalog product identifier")
    quantity: int = Field(..., gt=0, description="Quantity to order")


class OrderCreateRequest(CamelModel):
    """Order creation request."""

    items: list[OrderItemRequest] = Field(
        ...,
        min_length=1,
        description="Line items, at least one",
    )


class OrderPaginationParams(CamelModel):
    """Listing filter and page selection."""

    status: Optional[OrderStatus] = Field(None, description="Filter by status")
    page: int = Field(1, ge=1, description="1-based page number")
    limit: int = Field(10, ge=1, le=100, description="Page size")


class OrderStatusUpdate(CamelModel):
    """Requested status change."""

    status: OrderStatus


class OrderItemResponse(CamelModel):
    """Line item with its snapshot price and current catalog name."""

    product_id: int
    quantity: int
    price: Money
    name: Optional[str] = None


class OrderSummaryResponse(CamelModel):
    """Order without items, as returned by listings and payment recording."""

    id: UUID
    total_amount: Money
    total_items: int
    status: OrderStatus
    paid: bool
    paid_at: Optional[datetime] = None
    external_charge_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class OrderResponse(OrderSummaryResponse):
    """Hydrated order: items carry catalog-resolved names."""

    items: list[OrderItemResponse] = Field(default_factory=list)


class PaginationMeta(CamelModel):
    total: int
    page: int
    last_page: int


class PaginatedOrdersResponse(CamelModel):
    data: list[OrderSummaryResponse]
    meta: PaginationMeta


class OrderCreatedResponse(CamelModel):
    """Created order together with the payment session opened for it."""

    order: OrderResponse
    payment_session: Any = None
