"""Product catalog reply schemas."""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

CENTS = Decimal("0.01")


class CatalogProduct(BaseModel):
    """Product as resolved by the catalog: identity, current name and price."""

    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    price: Decimal = Field(..., ge=0)

    @field_validator("price", mode="before")
    @classmethod
    def coerce_float_price(cls, v):
        """Read JSON numbers by their decimal text, not their binary value."""
        if isinstance(v, float):
            return repr(v)
        return v

    @field_validator("price")
    @classmethod
    def validate_price_in_cents(cls, v: Decimal) -> Decimal:
        """
        Require a whole number of cents.

        Item prices are stored with two decimal places and order totals are
        summed from them, so a finer price cannot be snapshotted as given.

        Raises:
            ValueError: If the price has sub-cent precision
        """
        if v != v.quantize(CENTS):
            raise ValueError("Price must not have more than two decimal places")
        return v.quantize(CENTS)
