"""
Test suite for OrderService business logic.

Uses the SQLite-backed repository and the in-memory catalog double so the
lifecycle is exercised end to end: creation priced by the catalog, name
hydration at read time, listing metadata, status changes with and without
transition enforcement, and idempotent payment recording.
"""

import uuid
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from order_service.database.models.order import Order, OrderItem, OrderReceipt, OrderStatus
from order_service.messaging.broker import MessagingTimeoutError
from order_service.schemas.orders import OrderPaginationParams
from order_service.services.orders.repository import (
    OrderNotFoundError,
    OrderPersistenceError,
    OrderRepository,
)
from order_service.services.orders.service import (
    OrderCreationFailedError,
    OrderService,
    OrderTransitionError,
    OrderUpstreamError,
    OrderValidationError,
)
from tests.conftest import FakeCatalogClient, count_rows, requested


# ============================================================================
# Order Creation
# ============================================================================


class TestOrderCreation:
    """Test suite for order creation."""

    @pytest.mark.asyncio
    async def test_create_order_accumulates_totals(self, order_service: OrderService):
        """
        Catalog {1: 10, 2: 5}, items [(1, 2), (2, 3)].

        Verifies:
        - total_items is 5
        - total_amount is 35, not the 15 an overwriting sum would give
        """
        order = await order_service.create_order(requested((1, 2), (2, 3)))

        assert order.total_items == 5
        assert order.total_amount == Decimal("35")
        assert order.status == OrderStatus.PENDING
        assert order.paid is False

    @pytest.mark.asyncio
    async def test_create_order_hydrates_names(
        self, order_service: OrderService, catalog_client: FakeCatalogClient
    ):
        order = await order_service.create_order(requested((1, 2), (2, 3)))

        names = {item.product_id: item.name for item in order.items}
        assert names == {1: "Mechanical Keyboard", 2: "Wireless Mouse"}
        # validation, then name resolution
        assert [sorted(call) for call in catalog_client.calls] == [[1, 2], [1, 2]]

    @pytest.mark.asyncio
    async def test_create_order_unknown_product_persists_nothing(
        self, order_service: OrderService, session_factory
    ):
        with pytest.raises(OrderValidationError) as exc_info:
            await order_service.create_order(requested((1, 1), (42, 1)))

        assert exc_info.value.context["missing_ids"] == [42]
        assert isinstance(exc_info.value, OrderCreationFailedError)
        assert await count_rows(session_factory, Order) == 0
        assert await count_rows(session_factory, OrderItem) == 0

    @pytest.mark.asyncio
    async def test_stored_total_matches_stored_item_prices(
        self, repository: OrderRepository
    ):
        catalog = FakeCatalogClient(
            {1: ("Sticker", Decimal("0.33")), 2: ("Cable", Decimal("149.99"))}
        )
        service = OrderService(repository, catalog, enforce_transitions=False)

        created = await service.create_order(requested((1, 3), (2, 1)))
        stored = await repository.get_order_by_id(created.id)

        assert stored.total_amount == Decimal("150.98")
        assert stored.total_amount == sum(
            item.price * item.quantity for item in stored.items
        )
        found = await service.find_one(created.id)
        assert {item.product_id: item.price for item in found.items} == {
            1: Decimal("0.33"),
            2: Decimal("149.99"),
        }

    @pytest.mark.asyncio
    async def test_sub_cent_catalog_price_persists_nothing(
        self, repository: OrderRepository, session_factory
    ):
        catalog = FakeCatalogClient({1: ("Sticker", Decimal("0.333"))})
        service = OrderService(repository, catalog, enforce_transitions=False)

        with pytest.raises(OrderCreationFailedError) as exc_info:
            await service.create_order(requested((1, 3)))

        assert not isinstance(exc_info.value, OrderValidationError)
        assert await count_rows(session_factory, Order) == 0

    @pytest.mark.asyncio
    async def test_create_order_requires_items(self, order_service: OrderService):
        with pytest.raises(OrderValidationError):
            await order_service.create_order([])

    @pytest.mark.asyncio
    async def test_create_order_catalog_timeout(
        self,
        order_service: OrderService,
        catalog_client: FakeCatalogClient,
        session_factory,
        monkeypatch,
    ):
        monkeypatch.setattr(
            catalog_client,
            "send",
            AsyncMock(side_effect=MessagingTimeoutError("no reply")),
        )

        with pytest.raises(OrderCreationFailedError) as exc_info:
            await order_service.create_order(requested((1, 1)))

        assert not isinstance(exc_info.value, OrderValidationError)
        assert await count_rows(session_factory, Order) == 0

    @pytest.mark.asyncio
    async def test_create_order_persistence_failure(
        self, catalog_client: FakeCatalogClient
    ):
        repository = AsyncMock(spec=OrderRepository)
        repository.create_order.side_effect = OrderPersistenceError("db down")
        service = OrderService(repository, catalog_client, enforce_transitions=False)

        with pytest.raises(OrderCreationFailedError):
            await service.create_order(requested((1, 1)))

    @pytest.mark.asyncio
    async def test_create_order_hydration_failure_keeps_order(
        self,
        order_service: OrderService,
        catalog_client: FakeCatalogClient,
        repository: OrderRepository,
        monkeypatch,
    ):
        monkeypatch.setattr(
            catalog_client,
            "send",
            AsyncMock(
                side_effect=[
                    [{"id": 1, "name": "Mechanical Keyboard", "price": "10"}],
                    MessagingTimeoutError("no reply"),
                ]
            ),
        )

        with pytest.raises(OrderCreationFailedError) as exc_info:
            await order_service.create_order(requested((1, 3)))

        order_id = uuid.UUID(exc_info.value.context["order_id"])
        stored = await repository.get_order_by_id(order_id)
        assert stored.status == OrderStatus.PENDING
        assert stored.total_amount == Decimal("30")
        assert len(stored.items) == 1


# ============================================================================
# Lookup and Listing
# ============================================================================


class TestFindAndList:
    """Test suite for order lookup and listing."""

    @pytest.mark.asyncio
    async def test_find_one_matches_created_order(self, order_service: OrderService):
        created = await order_service.create_order(requested((1, 2), (3, 1)))

        found = await order_service.find_one(created.id)

        assert found.id == created.id
        assert sorted((i.product_id, i.quantity, i.price) for i in found.items) == [
            (1, 2, Decimal("10")),
            (3, 1, Decimal("149.99")),
        ]

    @pytest.mark.asyncio
    async def test_find_one_uses_current_names_and_snapshot_prices(
        self, order_service: OrderService, catalog_client: FakeCatalogClient
    ):
        created = await order_service.create_order(requested((1, 1)))
        catalog_client.products[1] = ("Keyboard v2", Decimal("99"))

        found = await order_service.find_one(created.id)

        assert found.items[0].name == "Keyboard v2"
        assert found.items[0].price == Decimal("10")
        assert found.total_amount == Decimal("10")

    @pytest.mark.asyncio
    async def test_find_one_missing_order(self, order_service: OrderService):
        with pytest.raises(OrderNotFoundError):
            await order_service.find_one(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_find_one_catalog_failure(
        self,
        order_service: OrderService,
        catalog_client: FakeCatalogClient,
    ):
        created = await order_service.create_order(requested((1, 1)))
        catalog_client.products.pop(1)

        with pytest.raises(OrderUpstreamError):
            await order_service.find_one(created.id)

    @pytest.mark.asyncio
    async def test_list_orders_meta(self, catalog_client: FakeCatalogClient):
        repository = AsyncMock(spec=OrderRepository)
        repository.list_orders.return_value = ([], 25)
        service = OrderService(repository, catalog_client, enforce_transitions=False)

        result = await service.list_orders(
            OrderPaginationParams(status=OrderStatus.PAID, page=2, limit=10)
        )

        repository.list_orders.assert_awaited_once_with(
            status=OrderStatus.PAID, page=2, limit=10
        )
        assert result.meta.total == 25
        assert result.meta.page == 2
        assert result.meta.last_page == 3

    @pytest.mark.asyncio
    async def test_list_orders_returns_summaries(
        self,
        order_service: OrderService,
        catalog_client: FakeCatalogClient,
    ):
        for _ in range(3):
            await order_service.create_order(requested((2, 1)))
        calls_before = len(catalog_client.calls)

        result = await order_service.list_orders(
            OrderPaginationParams(status=OrderStatus.PENDING, page=1, limit=2)
        )

        assert len(result.data) == 2
        assert result.meta.total == 3
        assert result.meta.last_page == 2
        assert not hasattr(result.data[0], "items")
        assert len(catalog_client.calls) == calls_before

    @pytest.mark.asyncio
    async def test_list_orders_empty(self, order_service: OrderService):
        result = await order_service.list_orders(OrderPaginationParams())

        assert result.data == []
        assert result.meta.total == 0
        assert result.meta.last_page == 0


# ============================================================================
# Status Changes
# ============================================================================


class TestChangeStatus:
    """Test suite for status changes."""

    @pytest.mark.asyncio
    async def test_same_status_does_not_write(
        self, order_service: OrderService, monkeypatch
    ):
        created = await order_service.create_order(requested((1, 1)))
        update = AsyncMock()
        monkeypatch.setattr(order_service.repository, "update_status", update)

        first = await order_service.change_status(created.id, OrderStatus.PENDING)
        second = await order_service.change_status(created.id, OrderStatus.PENDING)

        update.assert_not_awaited()
        assert first == second
        assert first.status == OrderStatus.PENDING

    @pytest.mark.asyncio
    async def test_change_status_persists_and_keeps_names(
        self, order_service: OrderService, catalog_client: FakeCatalogClient
    ):
        created = await order_service.create_order(requested((1, 1)))
        calls_before = len(catalog_client.calls)

        updated = await order_service.change_status(created.id, OrderStatus.CANCELLED)

        assert updated.status == OrderStatus.CANCELLED
        assert updated.items[0].name == "Mechanical Keyboard"
        # one lookup to load the order, none after the write
        assert len(catalog_client.calls) == calls_before + 1
        found = await order_service.find_one(created.id)
        assert found.status == OrderStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_unchecked_transition_out_of_paid(self, order_service: OrderService):
        created = await order_service.create_order(requested((1, 1)))
        await order_service.mark_paid(created.id, "ch_1", "https://r.example.com/1")

        updated = await order_service.change_status(created.id, OrderStatus.PENDING)

        assert updated.status == OrderStatus.PENDING
        # payment facts stay recorded after a manual overwrite
        assert updated.paid is True
        assert updated.paid_at is not None
        assert updated.external_charge_id == "ch_1"

    @pytest.mark.asyncio
    async def test_unchecked_manual_paid_records_no_payment(
        self, order_service: OrderService, session_factory
    ):
        created = await order_service.create_order(requested((1, 1)))

        updated = await order_service.change_status(created.id, OrderStatus.PAID)

        assert updated.status == OrderStatus.PAID
        assert updated.paid is False
        assert updated.paid_at is None
        assert updated.external_charge_id is None
        assert await count_rows(session_factory, OrderReceipt) == 0

        # the gateway can still complete the payment afterwards
        paid = await order_service.mark_paid(
            created.id, "ch_late", "https://r.example.com/late"
        )
        assert paid.paid is True
        assert paid.external_charge_id == "ch_late"

    @pytest.mark.asyncio
    async def test_enforced_transition_refused(
        self, repository: OrderRepository, catalog_client: FakeCatalogClient
    ):
        service = OrderService(repository, catalog_client, enforce_transitions=True)
        created = await service.create_order(requested((1, 1)))
        await service.change_status(created.id, OrderStatus.CANCELLED)

        with pytest.raises(OrderTransitionError) as exc_info:
            await service.change_status(created.id, OrderStatus.PENDING)

        assert exc_info.value.current_status == OrderStatus.CANCELLED
        assert exc_info.value.target_status == OrderStatus.PENDING
        found = await service.find_one(created.id)
        assert found.status == OrderStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_change_status_missing_order(self, order_service: OrderService):
        with pytest.raises(OrderNotFoundError):
            await order_service.change_status(uuid.uuid4(), OrderStatus.CANCELLED)


# ============================================================================
# Payment Recording
# ============================================================================


class TestMarkPaid:
    """Test suite for payment completion."""

    @pytest.mark.asyncio
    async def test_mark_paid(self, order_service: OrderService, session_factory):
        created = await order_service.create_order(requested((1, 1)))

        order = await order_service.mark_paid(
            created.id, "ch_123", "https://receipts.example.com/1"
        )

        assert order.status == OrderStatus.PAID
        assert order.paid is True
        assert order.paid_at is not None
        assert order.external_charge_id == "ch_123"
        assert order.receipt.receipt_url == "https://receipts.example.com/1"
        assert await count_rows(session_factory, OrderReceipt) == 1

    @pytest.mark.asyncio
    async def test_mark_paid_replay_returns_stored_order(
        self, order_service: OrderService, session_factory
    ):
        created = await order_service.create_order(requested((1, 1)))
        first = await order_service.mark_paid(
            created.id, "ch_1", "https://receipts.example.com/1"
        )

        replay = await order_service.mark_paid(
            created.id, "ch_2", "https://receipts.example.com/2"
        )

        assert replay.id == first.id
        assert replay.external_charge_id == "ch_1"
        assert replay.paid_at == first.paid_at
        assert await count_rows(session_factory, OrderReceipt) == 1

    @pytest.mark.asyncio
    async def test_mark_paid_missing_order(self, order_service: OrderService):
        with pytest.raises(OrderNotFoundError):
            await order_service.mark_paid(uuid.uuid4(), "ch_1", "https://r.example.com")
