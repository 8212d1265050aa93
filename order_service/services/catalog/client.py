"""
Product catalog client.

The catalog is the authority on product identity, name and current price.
ProductCatalogClient defines the single request-reply capability this
service needs (``send`` a list of product ids, receive ``{id, name, price}``
entries) and the validation built on top of it: every requested id must come
back, otherwise the request is treated as naming unknown products.
"""

from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional

from pydantic import TypeAdapter, ValidationError

from order_service.core.config import get_settings
from order_service.core.logging import get_logger
from order_service.messaging.broker import MessageBroker, RemoteServiceError
from order_service.schemas.catalog import CatalogProduct

logger = get_logger(__name__)

_products_adapter = TypeAdapter(list[CatalogProduct])


class CatalogClientError(Exception):
    """Base exception for catalog client errors."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context


class ProductNotFoundError(CatalogClientError):
    """Raised when the catalog cannot resolve one or more product ids."""

    def __init__(self, message: str, missing_ids: list[int], **context: Any):
        super().__init__(message, missing_ids=missing_ids, **context)
        self.missing_ids = missing_ids


class ProductCatalogClient(ABC):
    """Request-reply access to the product catalog."""

    @abstractmethod
    async def send(self, product_ids: list[int]) -> Any:
        """
        Ask the catalog to resolve product ids.

        Args:
            product_ids: Distinct product identifiers, in request order

        Returns:
            Raw reply, expected to be a list of ``{id, name, price}``

        Raises:
            TransportError: If the call fails or times out
        """

    async def validate_products(
        self, product_ids: Iterable[int]
    ) -> dict[int, CatalogProduct]:
        """
        Resolve product ids, requiring every one of them to exist.

        Args:
            product_ids: Product identifiers, duplicates allowed

        Returns:
            Mapping of product id to catalog product

        Raises:
            ProductNotFoundError: If any id is unknown to the catalog
            CatalogClientError: If the catalog reply is malformed
            TransportError: If the call fails or times out
        """
        ids = list(dict.fromkeys(product_ids))

        try:
            reply = await self.send(ids)
        except RemoteServiceError as e:
            if e.is_client_error:
                logger.warning(
                    "Catalog rejected product ids",
                    product_ids=ids,
                    status=e.status,
                )
                raise ProductNotFoundError(
                    str(e), missing_ids=ids, status=e.status
                ) from e
            raise

        try:
            products = _products_adapter.validate_python(reply)
        except ValidationError as e:
            logger.error("Malformed catalog reply", product_ids=ids, error=str(e))
            raise CatalogClientError(
                "Malformed catalog reply", product_ids=ids, error=str(e)
            ) from e

        by_id = {product.id: product for product in products}
        missing = [product_id for product_id in ids if product_id not in by_id]
        if missing:
            logger.warning("Unknown products requested", missing_ids=missing)
            raise ProductNotFoundError(
                f"Products not found: {', '.join(str(i) for i in missing)}",
                missing_ids=missing,
            )

        return by_id


class BrokerProductCatalogClient(ProductCatalogClient):
    """Catalog client speaking to the catalog service through the broker."""

    def __init__(
        self,
        broker: MessageBroker,
        subject: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.broker = broker
        self.subject = subject or get_settings().catalog_validate_subject
        self.timeout = timeout

    async def send(self, product_ids: list[int]) -> Any:
        return await self.broker.request(
            self.subject, product_ids, timeout=self.timeout
        )
