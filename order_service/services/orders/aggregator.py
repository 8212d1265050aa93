"""
Order aggregation from catalog-resolved prices.

The caller supplies product ids and quantities only. Prices are resolved
from the catalog in one round trip, and totals are computed from those
prices: ``total_amount`` accumulates ``price * quantity`` over every item,
``total_items`` accumulates ``quantity``. Catalog prices are whole cents,
so the total equals the sum of the stored item prices times quantities.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Protocol, Sequence

from order_service.core.logging import get_logger
from order_service.schemas.catalog import CENTS
from order_service.services.catalog.client import ProductCatalogClient

logger = get_logger(__name__)


class RequestedItem(Protocol):
    product_id: int
    quantity: int


@dataclass(frozen=True)
class OrderItemDraft:
    product_id: int
    quantity: int
    price: Decimal


@dataclass(frozen=True)
class OrderDraft:
    """Computed, not yet persisted order."""

    total_amount: Decimal
    total_items: int
    items: tuple[OrderItemDraft, ...]


def compute_totals(items: Iterable[OrderItemDraft]) -> tuple[Decimal, int]:
    """
    Sum amount and quantity over line items.

    Args:
        items: Priced line items

    Returns:
        Tuple of (total_amount rounded to cents, total_items)
    """
    total_amount = Decimal("0")
    total_items = 0
    for item in items:
        total_amount += item.price * item.quantity
        total_items += item.quantity
    return total_amount.quantize(CENTS, rounding=ROUND_HALF_UP), total_items


class OrderAggregator:
    """Builds order drafts priced by the product catalog."""

    def __init__(self, catalog_client: ProductCatalogClient):
        self.catalog_client = catalog_client

    async def build(self, items: Sequence[RequestedItem]) -> OrderDraft:
        """
        Validate requested items against the catalog and price them.

        Args:
            items: Requested line items (product_id, quantity)

        Returns:
            Order draft with catalog prices and accumulated totals

        Raises:
            ProductNotFoundError: If any product id is unknown
            CatalogClientError: If the catalog reply is malformed
            TransportError: If the catalog call fails
        """
        products = await self.catalog_client.validate_products(
            item.product_id for item in items
        )

        drafts = tuple(
            OrderItemDraft(
                product_id=item.product_id,
                quantity=item.quantity,
                price=products[item.product_id].price,
            )
            for item in items
        )
        total_amount, total_items = compute_totals(drafts)

        logger.debug(
            "Order draft built",
            item_count=len(drafts),
            total_amount=str(total_amount),
            total_items=total_items,
        )

        return OrderDraft(
            total_amount=total_amount,
            total_items=total_items,
            items=drafts,
        )
