"""
Consumer for payment-completion events emitted by the payment gateway.

Each event ``{orderId, stripePaymentId, receiptUrl}`` marks the referenced
order as paid. Events that fail validation or reference unknown orders are
logged and skipped so one bad message never stops the loop.
"""

from typing import Any, Optional

from pydantic import ValidationError

from order_service.core.config import get_settings
from order_service.core.logging import clear_context, get_logger, set_request_id
from order_service.messaging.broker import MessageBroker
from order_service.schemas.payments import PaidOrderEvent
from order_service.services.orders.repository import (
    OrderNotFoundError,
    OrderPersistenceError,
)
from order_service.services.orders.service import OrderService

logger = get_logger(__name__)


async def handle_payment_event(order_service: OrderService, payload: Any) -> bool:
    """
    Apply one payment-completion event.

    Returns:
        True if the order was marked paid (or already was), False if the
        event was skipped
    """
    try:
        event = PaidOrderEvent.model_validate(payload)
    except ValidationError as e:
        logger.warning(
            "Invalid payment event skipped",
            errors=e.errors(include_url=False),
        )
        return False

    try:
        await order_service.mark_paid(
            event.order_id,
            event.stripe_payment_id,
            event.receipt_url,
        )
    except OrderNotFoundError:
        logger.warning(
            "Payment event for unknown order skipped",
            order_id=str(event.order_id),
        )
        return False
    except OrderPersistenceError as e:
        logger.error(
            "Failed to record payment",
            order_id=str(event.order_id),
            error=str(e),
        )
        return False

    return True


async def consume_payment_events(
    broker: MessageBroker,
    order_service: OrderService,
    subject: Optional[str] = None,
) -> None:
    """
    Process payment-completion events until cancelled.

    Args:
        broker: Connected message broker
        order_service: Service used to record payments
        subject: Event subject, defaults to settings.payment_succeeded_subject
    """
    subject = subject or get_settings().payment_succeeded_subject
    logger.info("Payment event consumer started", subject=subject)

    async for payload in broker.subscribe(subject):
        set_request_id()
        try:
            await handle_payment_event(order_service, payload)
        finally:
            clear_context()
