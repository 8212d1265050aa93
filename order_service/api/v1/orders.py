"""
Order API endpoints.

This module implements the FastAPI router for the order lifecycle: creation
(which also opens a payment session), listing, lookup, status changes and
payment-session requests for existing orders.
"""

from typing import Any, Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from order_service.api.deps import OrderServiceDep, PaymentServiceDep
from order_service.core.config import get_settings
from order_service.core.logging import get_logger
from order_service.database.models.order import OrderStatus
from order_service.schemas.orders import (
    OrderCreatedResponse,
    OrderCreateRequest,
    OrderPaginationParams,
    OrderResponse,
    OrderStatusUpdate,
    PaginatedOrdersResponse,
)
from order_service.services.orders.repository import OrderNotFoundError
from order_service.services.orders.service import (
    OrderCreationFailedError,
    OrderTransitionError,
    OrderUpstreamError,
    OrderValidationError,
)
from order_service.services.payments.service import (
    PaymentSessionError,
    PaymentValidationError,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


def _not_found(order_id: UUID, e: OrderNotFoundError) -> HTTPException:
    logger.warning("Order not found", order_id=str(order_id))
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


def _upstream_failure(message: str, e: Exception) -> HTTPException:
    logger.error(
        message,
        error=str(e),
        context=getattr(e, "context", {}),
    )
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=message)


@router.post(
    "/",
    response_model=OrderCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create new order",
    description="Create an order priced by the catalog and open its payment session",
)
async def create_order(
    request: OrderCreateRequest,
    order_service: OrderServiceDep,
    payment_service: PaymentServiceDep,
) -> OrderCreatedResponse:
    """
    Create order and payment session.

    Raises:
        HTTPException: 400 if a product is unknown, 502 if the catalog,
            store or gateway call fails
    """
    logger.info("Creating order", item_count=len(request.items))

    try:
        order = await order_service.create_order(request.items)
    except OrderValidationError as e:
        logger.warning("Order validation failed", error=str(e), context=e.context)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        ) from e
    except OrderCreationFailedError as e:
        raise _upstream_failure("Failed to create order", e) from e

    try:
        payment_session = await payment_service.create_payment_session(order)
    except (PaymentSessionError, PaymentValidationError) as e:
        raise _upstream_failure("Failed to create payment session", e) from e

    return OrderCreatedResponse(order=order, payment_session=payment_session)


@router.get(
    "/",
    response_model=PaginatedOrdersResponse,
    summary="List orders",
    description="Get a page of orders, optionally filtered by status",
)
async def list_orders(
    order_service: OrderServiceDep,
    status_filter: Optional[OrderStatus] = Query(
        None, alias="status", description="Filter by order status"
    ),
    page: int = Query(1, ge=1, description="1-based page number"),
    limit: Optional[int] = Query(None, ge=1, le=100, description="Page size"),
) -> PaginatedOrdersResponse:
    return await order_service.list_orders(
        OrderPaginationParams(
            status=status_filter,
            page=page,
            limit=limit or get_settings().orders_page_limit,
        )
    )


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get order",
    description="Get an order with item names resolved from the catalog",
)
async def get_order(order_id: UUID, order_service: OrderServiceDep) -> OrderResponse:
    try:
        return await order_service.find_one(order_id)
    except OrderNotFoundError as e:
        raise _not_found(order_id, e) from e
    except OrderUpstreamError as e:
        raise _upstream_failure("Failed to resolve order items", e) from e


@router.patch(
    "/{order_id}/status",
    response_model=OrderResponse,
    summary="Change order status",
)
async def change_order_status(
    order_id: UUID,
    request: OrderStatusUpdate,
    order_service: OrderServiceDep,
) -> OrderResponse:
    """
    Change order status.

    Raises:
        HTTPException: 404 if order not found, 409 if the transition is
            refused, 502 if item names cannot be resolved
    """
    try:
        return await order_service.change_status(order_id, request.status)
    except OrderNotFoundError as e:
        raise _not_found(order_id, e) from e
    except OrderTransitionError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e),
        ) from e
    except OrderUpstreamError as e:
        raise _upstream_failure("Failed to resolve order items", e) from e


@router.post(
    "/{order_id}/payment-session",
    summary="Create payment session",
    description="Open a payment session for an existing order",
)
async def create_payment_session(
    order_id: UUID,
    order_service: OrderServiceDep,
    payment_service: PaymentServiceDep,
) -> Any:
    try:
        order = await order_service.find_one(order_id)
    except OrderNotFoundError as e:
        raise _not_found(order_id, e) from e
    except OrderUpstreamError as e:
        raise _upstream_failure("Failed to resolve order items", e) from e

    try:
        return await payment_service.create_payment_session(order)
    except (PaymentSessionError, PaymentValidationError) as e:
        raise _upstream_failure("Failed to create payment session", e) from e
