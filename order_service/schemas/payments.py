"""
Payment gateway message schemas.

Covers the payment-session request sent to the gateway and the
payment-completion event it emits.
"""

from uuid import UUID

from pydantic import Field

from order_service.schemas.orders import CamelModel, Money


class PaymentSessionItem(CamelModel):
    name: str
    price: Money
    quantity: int = Field(..., gt=0)


class PaymentSessionRequest(CamelModel):
    """Request body of the gateway's payment-session command."""

    order_id: UUID
    currency: str = Field(..., min_length=3, max_length=3)
    items: list[PaymentSessionItem] = Field(..., min_length=1)


class PaidOrderEvent(CamelModel):
    """
    Payment completion reported by the gateway.

    Wire fields: ``orderId``, ``stripePaymentId``, ``receiptUrl``.
    """

    order_id: UUID
    stripe_payment_id: str = Field(..., min_length=1, max_length=255)
    receipt_url: str = Field(..., min_length=1, max_length=2048)
