"""
Catalog Models - Pydantic models for validated product descriptors.
"""

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CatalogEntry(BaseModel):
    """A product descriptor returned by the catalog lookup.

    Price and currency are carried through untouched; formatting them for
    display is left to the application.
    """

    model_config = ConfigDict(frozen=True)

    product_id: str = Field(..., min_length=1, description="Platform product identifier")
    title: str = Field(..., description="Localized display title")
    description: str = Field("", description="Localized description")
    price: Decimal = Field(..., ge=0, description="Price in the storefront currency")
    currency_code: str | None = Field(None, description="ISO 4217 currency code")

    @field_validator("currency_code")
    @classmethod
    def validate_currency_code(cls, v: str | None) -> str | None:
        """Normalize currency code to upper case."""
        if v is None:
            return v
        if len(v) != 3:
            raise ValueError(f"Invalid currency code: {v}")
        return v.upper()
