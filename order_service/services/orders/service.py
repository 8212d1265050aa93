"""
Order service orchestrating the order lifecycle.

This module implements the OrderService class: order creation priced by the
product catalog, lookups with item names resolved from the catalog at read
time, paginated listing, status changes and payment recording. Failures of
the catalog or the store abort the current operation; nothing is retried.
"""

import math
import uuid
from typing import Any, Optional, Sequence

from order_service.core.config import get_settings
from order_service.core.logging import get_logger, log_performance
from order_service.database.models.order import Order, OrderStatus
from order_service.messaging.broker import TransportError
from order_service.schemas.orders import (
    OrderItemResponse,
    OrderPaginationParams,
    OrderResponse,
    OrderSummaryResponse,
    PaginatedOrdersResponse,
    PaginationMeta,
)
from order_service.services.catalog.client import (
    CatalogClientError,
    ProductCatalogClient,
    ProductNotFoundError,
)
from order_service.services.orders.aggregator import OrderAggregator, RequestedItem
from order_service.services.orders.repository import (
    OrderAlreadyPaidError,
    OrderNotFoundError,
    OrderRepository,
    OrderRepositoryError,
)
from order_service.services.orders.state_machine import (
    get_allowed_transitions,
    is_transition_allowed,
)

logger = get_logger(__name__)

__all__ = [
    "OrderCreationFailedError",
    "OrderNotFoundError",
    "OrderService",
    "OrderServiceError",
    "OrderTransitionError",
    "OrderUpstreamError",
    "OrderValidationError",
]


class OrderServiceError(Exception):
    """Base exception for order service errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class OrderCreationFailedError(OrderServiceError):
    """Raised when any step of order creation fails."""

    pass


class OrderValidationError(OrderCreationFailedError):
    """Raised when requested items reference products unknown to the catalog."""

    pass


class OrderUpstreamError(OrderServiceError):
    """Raised when the catalog cannot resolve item names for a stored order."""

    pass


class OrderTransitionError(OrderServiceError):
    """Raised when an enforced status transition is refused."""

    def __init__(
        self,
        message: str,
        current_status: OrderStatus,
        target_status: OrderStatus,
        **context: Any,
    ):
        super().__init__(message, **context)
        self.current_status = current_status
        self.target_status = target_status


class OrderService:
    """
    Order service orchestrating business logic and integrations.

    Attributes:
        repository: Order repository for data access
        catalog_client: Product catalog used for pricing and item names
        aggregator: Builds priced order drafts
        enforce_transitions: Whether change_status consults the transition table
    """

    def __init__(
        self,
        repository: OrderRepository,
        catalog_client: ProductCatalogClient,
        aggregator: Optional[OrderAggregator] = None,
        enforce_transitions: Optional[bool] = None,
    ):
        self.repository = repository
        self.catalog_client = catalog_client
        self.aggregator = aggregator or OrderAggregator(catalog_client)
        if enforce_transitions is None:
            enforce_transitions = get_settings().enforce_status_transitions
        self.enforce_transitions = enforce_transitions

    async def create_order(self, items: Sequence[RequestedItem]) -> OrderResponse:
        """
        Create a new order priced by the catalog.

        Prices come from the catalog only. The order and its items are
        persisted in one transaction, then item names are resolved with a
        second catalog call.

        Args:
            items: Requested line items (product_id, quantity)

        Returns:
            Hydrated order view

        Raises:
            OrderValidationError: If any product is unknown; nothing is persisted
            OrderCreationFailedError: If the catalog call, the insert or the
                name resolution fails. When name resolution fails the order
                is already persisted and its id is in ``context["order_id"]``.
        """
        if not items:
            raise OrderValidationError("Order must contain at least one item")

        with log_performance(logger, "order_creation", item_count=len(items)):
            try:
                draft = await self.aggregator.build(items)
            except ProductNotFoundError as e:
                raise OrderValidationError(
                    str(e), missing_ids=e.missing_ids
                ) from e
            except (CatalogClientError, TransportError) as e:
                logger.error(
                    "Catalog validation failed during order creation",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise OrderCreationFailedError(
                    "Failed to validate order items", error=str(e)
                ) from e

            try:
                order = await self.repository.create_order(draft)
            except OrderRepositoryError as e:
                raise OrderCreationFailedError(
                    "Failed to persist order", error=str(e)
                ) from e

            try:
                names = await self._resolve_names(order)
            except (CatalogClientError, TransportError) as e:
                logger.error(
                    "Order persisted but item names could not be resolved",
                    order_id=str(order.id),
                    error=str(e),
                )
                raise OrderCreationFailedError(
                    "Failed to resolve item names for created order",
                    order_id=str(order.id),
                    error=str(e),
                ) from e

        logger.info(
            "Order created",
            order_id=str(order.id),
            total_amount=str(order.total_amount),
            total_items=order.total_items,
        )

        return self._to_view(order, names)

    async def find_one(self, order_id: uuid.UUID) -> OrderResponse:
        """
        Get an order with item names resolved from the catalog.

        Names reflect the catalog at read time; prices are the stored
        snapshot.

        Raises:
            OrderNotFoundError: If the order does not exist
            OrderUpstreamError: If the catalog cannot resolve the names
        """
        order = await self.repository.get_order_by_id(order_id)

        try:
            names = await self._resolve_names(order)
        except (CatalogClientError, TransportError) as e:
            logger.error(
                "Failed to resolve item names",
                order_id=str(order_id),
                error=str(e),
            )
            raise OrderUpstreamError(
                "Failed to resolve item names",
                order_id=str(order_id),
                error=str(e),
            ) from e

        return self._to_view(order, names)

    async def list_orders(
        self, params: OrderPaginationParams
    ) -> PaginatedOrdersResponse:
        """Get one page of order summaries; items are not included."""
        orders, total = await self.repository.list_orders(
            status=params.status,
            page=params.page,
            limit=params.limit,
        )

        return PaginatedOrdersResponse(
            data=[OrderSummaryResponse.model_validate(order) for order in orders],
            meta=PaginationMeta(
                total=total,
                page=params.page,
                last_page=math.ceil(total / params.limit),
            ),
        )

    async def change_status(
        self, order_id: uuid.UUID, status: OrderStatus
    ) -> OrderResponse:
        """
        Change order status.

        Requesting the current status returns the order without writing.
        Transitions are only checked when transition enforcement is enabled.

        Raises:
            OrderNotFoundError: If the order does not exist
            OrderUpstreamError: If the catalog cannot resolve item names
            OrderTransitionError: If enforcement refuses the transition
        """
        current = await self.find_one(order_id)

        if current.status == status:
            return current

        if self.enforce_transitions and not is_transition_allowed(
            current.status, status
        ):
            allowed = sorted(s.value for s in get_allowed_transitions(current.status))
            logger.warning(
                "Order status transition refused",
                order_id=str(order_id),
                current_status=current.status.value,
                target_status=status.value,
                allowed=allowed,
            )
            raise OrderTransitionError(
                f"Cannot change order status from {current.status.value} "
                f"to {status.value}",
                current_status=current.status,
                target_status=status,
                order_id=str(order_id),
                allowed=allowed,
            )

        order = await self.repository.update_status(order_id, status)
        names = {item.product_id: item.name for item in current.items}

        return self._to_view(order, names)

    async def mark_paid(
        self,
        order_id: uuid.UUID,
        charge_id: str,
        receipt_url: str,
    ) -> Order:
        """
        Record payment completion reported by the gateway.

        A repeated completion for an order that is already paid is logged
        and the stored order is returned unchanged.

        Raises:
            OrderNotFoundError: If the order does not exist
            OrderPersistenceError: If the update fails; nothing is written
        """
        try:
            order = await self.repository.record_payment(
                order_id, charge_id, receipt_url
            )
        except OrderAlreadyPaidError as e:
            logger.warning(
                "Duplicate payment completion ignored",
                order_id=str(order_id),
                charge_id=charge_id,
                existing_charge_id=e.context.get("existing_charge_id"),
            )
            return await self.repository.get_order_by_id(order_id)

        logger.info(
            "Order marked as paid",
            order_id=str(order_id),
            charge_id=charge_id,
        )

        return order

    async def _resolve_names(self, order: Order) -> dict[int, str]:
        products = await self.catalog_client.validate_products(
            item.product_id for item in order.items
        )
        return {product_id: product.name for product_id, product in products.items()}

    @staticmethod
    def _to_view(order: Order, names: dict[int, Optional[str]]) -> OrderResponse:
        summary = OrderSummaryResponse.model_validate(order)
        return OrderResponse(
            **summary.model_dump(),
            items=[
                OrderItemResponse(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    price=item.price,
                    name=names.get(item.product_id),
                )
                for item in order.items
            ],
        )
