"""
Payment service opening gateway payment sessions for orders.

The order must already be hydrated (every item carries its catalog name)
before a session is requested. The descriptor returned by the gateway is
passed back to the caller without interpretation.
"""

from typing import Any, Optional

from order_service.core.config import get_settings
from order_service.core.logging import get_logger, log_performance
from order_service.messaging.broker import TransportError
from order_service.schemas.orders import OrderResponse
from order_service.schemas.payments import PaymentSessionItem, PaymentSessionRequest
from order_service.services.payments.gateway_client import PaymentGatewayClient

logger = get_logger(__name__)


class PaymentServiceError(Exception):
    """Base exception for payment service errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class PaymentValidationError(PaymentServiceError):
    """Raised when an order cannot be turned into a session request."""

    pass


class PaymentSessionError(PaymentServiceError):
    """Raised when the gateway call fails."""

    pass


class PaymentService:
    """
    Payment session orchestration.

    Attributes:
        gateway_client: Payment gateway client
        currency: ISO currency code sent with every session request
    """

    def __init__(
        self,
        gateway_client: PaymentGatewayClient,
        currency: Optional[str] = None,
    ):
        self.gateway_client = gateway_client
        self.currency = currency or get_settings().payment_currency

    def build_session_request(self, order: OrderResponse) -> PaymentSessionRequest:
        """
        Build the gateway request from a hydrated order.

        Raises:
            PaymentValidationError: If the order has no items or an item has
                no resolved name
        """
        unnamed = [item.product_id for item in order.items if not item.name]
        if not order.items or unnamed:
            raise PaymentValidationError(
                "Order items must be hydrated with product names",
                order_id=str(order.id),
                unnamed_product_ids=unnamed,
            )

        return PaymentSessionRequest(
            order_id=order.id,
            currency=self.currency,
            items=[
                PaymentSessionItem(
                    name=item.name,
                    price=item.price,
                    quantity=item.quantity,
                )
                for item in order.items
            ],
        )

    async def create_payment_session(self, order: OrderResponse) -> Any:
        """
        Open a payment session for an order.

        Args:
            order: Hydrated order view

        Returns:
            Gateway session descriptor, unchanged

        Raises:
            PaymentValidationError: If the order is not hydrated
            PaymentSessionError: If the gateway call fails or times out
        """
        request = self.build_session_request(order)

        with log_performance(
            logger,
            "payment_session_request",
            order_id=str(order.id),
            item_count=len(request.items),
        ):
            try:
                session = await self.gateway_client.create_payment_session(request)
            except TransportError as e:
                logger.error(
                    "Payment session request failed",
                    order_id=str(order.id),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise PaymentSessionError(
                    "Failed to create payment session",
                    order_id=str(order.id),
                    error=str(e),
                ) from e

        logger.info("Payment session created", order_id=str(order.id))

        return session
