"""
Payment gateway client.

The gateway owns payment sessions and charges. This service only asks it to
open a session for an order and hands the returned descriptor back to the
caller untouched.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from order_service.core.config import get_settings
from order_service.core.logging import get_logger
from order_service.messaging.broker import MessageBroker
from order_service.schemas.payments import PaymentSessionRequest

logger = get_logger(__name__)


class PaymentGatewayClient(ABC):
    """Request-reply access to the payment gateway."""

    @abstractmethod
    async def send(self, request: dict[str, Any]) -> Any:
        """
        Send a payment-session request payload.

        Args:
            request: ``{orderId, currency, items: [{name, price, quantity}]}``

        Returns:
            Opaque session descriptor

        Raises:
            TransportError: If the call fails or times out
        """

    async def create_payment_session(self, request: PaymentSessionRequest) -> Any:
        payload = request.model_dump(mode="json", by_alias=True)
        logger.debug(
            "Requesting payment session",
            order_id=str(request.order_id),
            item_count=len(request.items),
        )
        return await self.send(payload)


class BrokerPaymentGatewayClient(PaymentGatewayClient):
    """Gateway client speaking to the payments service through the broker."""

    def __init__(
        self,
        broker: MessageBroker,
        subject: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.broker = broker
        self.subject = subject or get_settings().payment_session_subject
        self.timeout = timeout

    async def send(self, request: dict[str, Any]) -> Any:
        return await self.broker.request(self.subject, request, timeout=self.timeout)
