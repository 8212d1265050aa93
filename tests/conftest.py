"""
Pytest configuration and shared test fixtures.

Provides a throwaway SQLite database per test, in-memory doubles for the
product catalog and payment gateway, services wired to them, and an async
HTTP client for the FastAPI application with those services injected.
"""

import os

os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("APP_LOG_LEVEL", "WARNING")

from decimal import Decimal
from typing import Any, AsyncGenerator, Optional, Sequence

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from order_service.database.base import Base
from order_service.database.connection import create_engine, create_session_factory
from order_service.schemas.orders import OrderItemRequest
from order_service.services.catalog.client import ProductCatalogClient
from order_service.services.orders.repository import OrderRepository
from order_service.services.orders.service import OrderService
from order_service.services.payments.gateway_client import PaymentGatewayClient
from order_service.services.payments.service import PaymentService

CATALOG = {
    1: ("Mechanical Keyboard", Decimal("10")),
    2: ("Wireless Mouse", Decimal("5")),
    3: ("27in Monitor", Decimal("149.99")),
}


class FakeCatalogClient(ProductCatalogClient):
    """In-memory catalog returning ``{id, name, price}`` for known ids."""

    def __init__(self, products: Optional[dict[int, tuple[str, Decimal]]] = None):
        self.products = dict(CATALOG if products is None else products)
        self.calls: list[list[int]] = []

    async def send(self, product_ids: list[int]) -> Any:
        self.calls.append(list(product_ids))
        return [
            {"id": product_id, "name": name, "price": str(price)}
            for product_id, (name, price) in self.products.items()
            if product_id in product_ids
        ]


class FakeGatewayClient(PaymentGatewayClient):
    """Gateway double recording every session request."""

    def __init__(self):
        self.requests: list[dict[str, Any]] = []

    async def send(self, request: dict[str, Any]) -> Any:
        self.requests.append(request)
        return {
            "id": f"cs_test_{len(self.requests)}",
            "url": f"https://pay.example.com/session/{request['orderId']}",
        }


async def count_rows(
    session_factory: async_sessionmaker[AsyncSession], model: type
) -> int:
    """Count rows of a mapped model."""
    async with session_factory() as session:
        result = await session.execute(select(func.count()).select_from(model))
        return result.scalar_one()


@pytest.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """
    Create a SQLite database with the full schema.

    Yields:
        AsyncEngine bound to a file database unique to the test
    """
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
def repository(session_factory: async_sessionmaker[AsyncSession]) -> OrderRepository:
    return OrderRepository(session_factory)


@pytest.fixture
def catalog_client() -> FakeCatalogClient:
    return FakeCatalogClient()


@pytest.fixture
def gateway_client() -> FakeGatewayClient:
    return FakeGatewayClient()


@pytest.fixture
def order_service(
    repository: OrderRepository, catalog_client: FakeCatalogClient
) -> OrderService:
    """OrderService over the SQLite repository with unchecked transitions."""
    return OrderService(repository, catalog_client, enforce_transitions=False)


@pytest.fixture
def payment_service(gateway_client: FakeGatewayClient) -> PaymentService:
    return PaymentService(gateway_client, currency="usd")


@pytest.fixture
async def async_client(
    order_service: OrderService,
    payment_service: PaymentService,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an asynchronous test client for the FastAPI application.

    Route dependencies are overridden with the test services, so no broker
    or external database is needed. Lifespan events are not run.

    Yields:
        AsyncClient: Asynchronous test client for the app
    """
    from order_service.api.deps import get_order_service, get_payment_service
    from order_service.main import app

    app.dependency_overrides[get_order_service] = lambda: order_service
    app.dependency_overrides[get_payment_service] = lambda: payment_service

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client

    app.dependency_overrides.clear()


def requested(*pairs: tuple[int, int]) -> Sequence[OrderItemRequest]:
    """Build requested items from ``(product_id, quantity)`` pairs."""
    return [
        OrderItemRequest(product_id=product_id, quantity=quantity)
        for product_id, quantity in pairs
    ]
