"""
Database models package initialization.

Models are imported here so they are registered with the Base metadata
for Alembic auto-generation and relationship resolution.
"""

from order_service.database.base import Base, BaseModel, TimestampMixin, UUIDMixin
from order_service.database.models.order import (
    Order,
    OrderItem,
    OrderReceipt,
    OrderStatus,
)

__all__ = [
    "Base",
    "BaseModel",
    "TimestampMixin",
    "UUIDMixin",
    "Order",
    "OrderItem",
    "OrderReceipt",
    "OrderStatus",
]
