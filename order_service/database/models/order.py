"""
Order, order item and receipt models.

An order owns its line items (deleted with the order, immutable after
creation) and at most one receipt, created when the payment gateway reports
a completed payment. Item prices are snapshots of the catalog price at
creation time; product names are never stored.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from order_service.database.base import BaseModel


class OrderStatus(str, Enum):
    """
    Order status enumeration.

    Attributes:
        PENDING: Order created, awaiting payment
        PAID: Payment completed and recorded
        CANCELLED: Order cancelled
    """

    PENDING = "PENDING"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class Order(BaseModel):
    """
    Purchase order with catalog-derived totals and payment tracking.

    Attributes:
        id: Unique order identifier (UUID)
        total_amount: Sum of price x quantity over the items
        total_items: Sum of quantity over the items
        status: Current order status
        paid: True iff status is PAID via a recorded payment
        paid_at: When the payment completion was recorded
        external_charge_id: Gateway charge identifier
        items: Line items, created with the order
        receipt: Receipt created on payment completion
    """

    __tablename__ = "orders"

    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        comment="Sum of item price times quantity",
    )

    total_items: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Sum of item quantities",
    )

    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus, name="order_status", create_constraint=True),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
        comment="Current order status",
    )

    paid: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Whether payment has been recorded",
    )

    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment="When payment completion was recorded",
    )

    external_charge_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Payment gateway charge identifier",
    )

    items: Mapped[list["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    receipt: Mapped[Optional["OrderReceipt"]] = relationship(
        "OrderReceipt",
        back_populates="order",
        lazy="selectin",
        uselist=False,
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index(
            "ix_orders_status_created",
            "status",
            "created_at",
        ),
        CheckConstraint(
            "total_amount >= 0",
            name="ck_orders_total_amount_non_negative",
        ),
        CheckConstraint(
            "total_items > 0",
            name="ck_orders_total_items_positive",
        ),
        {"comment": "Purchase orders"},
    )

    def __repr__(self) -> str:
        return (
            f"<Order(id={self.id}, status={self.status.value}, "
            f"total_amount={self.total_amount}, total_items={self.total_items})>"
        )


class OrderItem(BaseModel):
    """
    Line item of an order.

    Attributes:
        order_id: Parent order
        product_id: Catalog product identifier
        quantity: Requested quantity
        price: Catalog unit price at order creation
    """

    __tablename__ = "order_items"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="Parent order identifier",
    )

    product_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True,
        comment="Catalog product identifier",
    )

    quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Quantity ordered",
    )

    price: Mapped[Decimal] = mapped_column(
        Numeric(precision=10, scale=2),
        nullable=False,
        comment="Catalog unit price snapshot at order creation",
    )

    order: Mapped["Order"] = relationship(
        "Order",
        back_populates="items",
    )

    __table_args__ = (
        CheckConstraint(
            "quantity > 0",
            name="ck_order_items_quantity_positive",
        ),
        CheckConstraint(
            "price >= 0",
            name="ck_order_items_price_non_negative",
        ),
        {"comment": "Order line items"},
    )

    def __repr__(self) -> str:
        return (
            f"<OrderItem(id={self.id}, order_id={self.order_id}, "
            f"product_id={self.product_id}, quantity={self.quantity}, "
            f"price={self.price})>"
        )


class OrderReceipt(BaseModel):
    """Receipt recorded when the payment gateway completes a payment."""

    __tablename__ = "order_receipts"

    order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        comment="Paid order identifier",
    )

    receipt_url: Mapped[str] = mapped_column(
        String(2048),
        nullable=False,
        comment="Gateway-hosted receipt URL",
    )

    order: Mapped["Order"] = relationship(
        "Order",
        back_populates="receipt",
    )

    __table_args__ = ({"comment": "Payment receipts, one per paid order"},)
