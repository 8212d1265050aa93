"""
FastAPI dependencies wiring services to the database and message broker.

Routes depend on ``OrderServiceDep`` and ``PaymentServiceDep``; tests swap
them through ``app.dependency_overrides``.
"""

from typing import Annotated

from fastapi import Depends

from order_service.database.connection import get_session_factory
from order_service.messaging.broker import MessageBroker, get_message_broker
from order_service.services.catalog.client import (
    BrokerProductCatalogClient,
    ProductCatalogClient,
)
from order_service.services.orders.repository import OrderRepository
from order_service.services.orders.service import OrderService
from order_service.services.payments.gateway_client import BrokerPaymentGatewayClient
from order_service.services.payments.service import PaymentService


async def get_broker() -> MessageBroker:
    """Get the connected application message broker."""
    return await get_message_broker()


def get_order_repository() -> OrderRepository:
    return OrderRepository(get_session_factory())


async def get_catalog_client(
    broker: Annotated[MessageBroker, Depends(get_broker)],
) -> ProductCatalogClient:
    return BrokerProductCatalogClient(broker)


async def get_order_service(
    repository: Annotated[OrderRepository, Depends(get_order_repository)],
    catalog_client: Annotated[ProductCatalogClient, Depends(get_catalog_client)],
) -> OrderService:
    """
    Build the order service for a request.

    Args:
        repository: Order repository over the application session factory
        catalog_client: Broker-backed catalog client

    Returns:
        OrderService instance
    """
    return OrderService(repository, catalog_client)


async def get_payment_service(
    broker: Annotated[MessageBroker, Depends(get_broker)],
) -> PaymentService:
    return PaymentService(BrokerPaymentGatewayClient(broker))


OrderServiceDep = Annotated[OrderService, Depends(get_order_service)]
PaymentServiceDep = Annotated[PaymentService, Depends(get_payment_service)]
