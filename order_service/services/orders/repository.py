"""
Order data access repository with transaction support.

Each operation opens its own session and runs inside a single transaction
scope: everything it writes commits together, and any failure rolls the
whole unit back. Order creation inserts the order and all of its items in
one unit; payment recording updates the payment fields and creates the
receipt in one unit.
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import raiseload, selectinload

from order_service.core.logging import get_logger
from order_service.database.models.order import (
    Order,
    OrderItem,
    OrderReceipt,
    OrderStatus,
)
from order_service.services.orders.aggregator import OrderDraft

logger = get_logger(__name__)


class OrderRepositoryError(Exception):
    """Base exception for order repository errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class OrderNotFoundError(OrderRepositoryError):
    """Raised when order is not found."""

    pass


class OrderPersistenceError(OrderRepositoryError):
    """Raised when a database operation fails and is rolled back."""

    pass


class OrderAlreadyPaidError(OrderRepositoryError):
    """Raised when payment is recorded twice for the same order."""

    pass


class OrderRepository:
    """
    Repository for order persistence.

    Attributes:
        session_factory: Factory producing one session per operation
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @asynccontextmanager
    async def _transaction(
        self, operation: str, **context: Any
    ) -> AsyncIterator[AsyncSession]:
        """
        Run a block in a new session and transaction.

        Commits when the block completes, rolls back on any exception.
        SQLAlchemy failures are re-raised as OrderPersistenceError.
        """
        async with self.session_factory() as session:
            try:
                async with session.begin():
                    yield session
            except OrderRepositoryError:
                raise
            except IntegrityError as e:
                logger.error(
                    f"Failed to {operation} - integrity error",
                    error=str(e),
                    **context,
                )
                raise OrderPersistenceError(
                    f"Failed to {operation} due to data integrity violation",
                    error=str(e),
                    **context,
                ) from e
            except SQLAlchemyError as e:
                logger.error(
                    f"Failed to {operation} - database error",
                    error=str(e),
                    error_type=type(e).__name__,
                    **context,
                )
                raise OrderPersistenceError(
                    f"Failed to {operation} due to database error",
                    error=str(e),
                    **context,
                ) from e

    @staticmethod
    async def _load(
        session: AsyncSession,
        order_id: uuid.UUID,
        for_update: bool = False,
    ) -> Optional[Order]:
        stmt = (
            select(Order)
            .where(Order.id == order_id)
            .options(selectinload(Order.items), selectinload(Order.receipt))
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()

        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def create_order(self, draft: OrderDraft) -> Order:
        """
        Insert an order and all of its items atomically.

        Args:
            draft: Priced order draft

        Returns:
            Persisted order with its items

        Raises:
            OrderPersistenceError: If the insert fails; nothing is written
        """
        logger.info(
            "Creating order with items",
            item_count=len(draft.items),
            total_items=draft.total_items,
        )

        async with self._transaction(
            "create order", item_count=len(draft.items)
        ) as session:
            order = Order(
                total_amount=draft.total_amount,
                total_items=draft.total_items,
                status=OrderStatus.PENDING,
                paid=False,
                items=[
                    OrderItem(
                        product_id=item.product_id,
                        quantity=item.quantity,
                        price=item.price,
                    )
                    for item in draft.items
                ],
            )
            session.add(order)
            await session.flush()
            order = await self._load(session, order.id)

        logger.info(
            "Order created successfully",
            order_id=str(order.id),
            item_count=len(order.items),
        )

        return order

    async def get_order_by_id(self, order_id: uuid.UUID) -> Order:
        """
        Get order by ID with its items.

        Raises:
            OrderNotFoundError: If no order has this ID
            OrderPersistenceError: If the query fails
        """
        logger.debug("Fetching order by ID", order_id=str(order_id))

        async with self._transaction(
            "fetch order", order_id=str(order_id)
        ) as session:
            order = await self._load(session, order_id)

        if order is None:
            raise OrderNotFoundError(
                f"Order with id #{order_id} not found",
                order_id=str(order_id),
            )

        return order

    async def update_status(self, order_id: uuid.UUID, status: OrderStatus) -> Order:
        """
        Overwrite the order status.

        Raises:
            OrderNotFoundError: If no order has this ID
            OrderPersistenceError: If the update fails
        """
        async with self._transaction(
            "update order status", order_id=str(order_id), status=status.value
        ) as session:
            order = await self._load(session, order_id, for_update=True)
            if order is None:
                raise OrderNotFoundError(
                    f"Order with id #{order_id} not found",
                    order_id=str(order_id),
                )

            old_status = order.status
            order.status = status
            await session.flush()
            order = await self._load(session, order_id)

        logger.info(
            "Order status updated",
            order_id=str(order_id),
            old_status=old_status.value,
            new_status=status.value,
        )

        return order

    async def record_payment(
        self,
        order_id: uuid.UUID,
        charge_id: str,
        receipt_url: str,
    ) -> Order:
        """
        Mark the order paid and create its receipt in one transaction.

        Sets status PAID, paid, paid_at and external_charge_id, and inserts
        the receipt row. The order row is locked for the duration.

        Raises:
            OrderNotFoundError: If no order has this ID
            OrderAlreadyPaidError: If a payment was already recorded
            OrderPersistenceError: If the update fails; nothing is written
        """
        async with self._transaction(
            "record payment", order_id=str(order_id)
        ) as session:
            order = await self._load(session, order_id, for_update=True)
            if order is None:
                raise OrderNotFoundError(
                    f"Order with id #{order_id} not found",
                    order_id=str(order_id),
                )

            if order.paid:
                raise OrderAlreadyPaidError(
                    "Payment already recorded for order",
                    order_id=str(order_id),
                    existing_charge_id=order.external_charge_id,
                )

            order.status = OrderStatus.PAID
            order.paid = True
            order.paid_at = datetime.now(timezone.utc)
            order.external_charge_id = charge_id
            order.receipt = OrderReceipt(receipt_url=receipt_url)

            await session.flush()
            order = await self._load(session, order_id)

        logger.info(
            "Payment recorded",
            order_id=str(order_id),
            charge_id=charge_id,
        )

        return order

    async def list_orders(
        self,
        status: Optional[OrderStatus] = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[Sequence[Order], int]:
        """
        Get a page of orders, newest first, without their items.

        Args:
            status: Optional status filter
            page: 1-based page number
            limit: Page size

        Returns:
            Tuple of (orders, total_count matching the filter)

        Raises:
            ValueError: If page or limit is not a positive integer
            OrderPersistenceError: If the query fails
        """
        if page < 1 or limit < 1:
            raise ValueError("page and limit must be positive integers")

        conditions = []
        if status is not None:
            conditions.append(Order.status == status)

        stmt = (
            select(Order)
            .where(*conditions)
            .options(raiseload(Order.items), raiseload(Order.receipt))
            .order_by(Order.created_at.desc(), Order.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        count_stmt = select(func.count()).select_from(Order).where(*conditions)

        async with self._transaction(
            "list orders", status=status.value if status else None
        ) as session:
            total = (await session.execute(count_stmt)).scalar_one()
            orders = (await session.execute(stmt)).scalars().all()

        logger.debug(
            "Orders fetched",
            status=status.value if status else None,
            page=page,
            count=len(orders),
            total=total,
        )

        return orders, total
