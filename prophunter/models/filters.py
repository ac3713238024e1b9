"""Search filter models."""

import re
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class PropertyType(str, Enum):
    """Known property types (other values are passed through to the search)."""
    ANY = "ANY"
    APARTMENT = "Apartment"
    HOUSE = "House"
    COMMERCIAL = "Commercial"
    LAND = "Land"


class OperationFilter(str, Enum):
    """Transaction kinds to search for."""
    SALE = "SALE"
    RENT = "RENT"
    BOTH = "BOTH"


def parse_price(text: Optional[str]) -> Optional[float]:
    """
    Parse a price bound typed by the user.

    Accepts plain numbers (``1500000``, ``1500000.50``), pt-BR formatting
    (``1.500.000,00``) and an optional ``R$`` prefix. Blank means unbounded.
    Raises ValueError for anything else.
    """
    if text is None:
        return None
    cleaned = re.sub(r"(?i)r\$|\s", "", str(text))
    if not cleaned:
        return None

    if "," in cleaned:
        # pt-BR: dots group thousands, comma marks decimals
        cleaned = cleaned.replace(".", "").replace(",", ".")
    elif cleaned.count(".") > 1 or re.fullmatch(r"\d{1,3}(\.\d{3})+", cleaned):
        cleaned = cleaned.replace(".", "")

    if not re.fullmatch(r"\d+(\.\d+)?", cleaned):
        raise ValueError(f"Invalid price: {text!r}")
    return float(cleaned)


class FilterState(BaseModel):
    """Search request parameters as submitted by the user."""
    model_config = ConfigDict(populate_by_name=True)

    city: str = Field(..., min_length=1, description="Target city (required)")
    neighborhood: str = Field(default="", description="Optional neighborhood")
    min_price: str = Field(default="", alias="minPrice", description="Lower price bound, as typed")
    max_price: str = Field(default="", alias="maxPrice", description="Upper price bound, as typed")
    property_type: str = Field(default=PropertyType.ANY.value, alias="propertyType")
    operation_type: OperationFilter = Field(default=OperationFilter.BOTH, alias="operationType")
    keywords: str = Field(default="", description="Comma-separated relevance hints")

    @field_validator("city", mode="before")
    @classmethod
    def _strip_city(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("neighborhood", "keywords", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        if value is None:
            return ""
        return value.strip() if isinstance(value, str) else value

    @field_validator("min_price", "max_price", mode="before")
    @classmethod
    def _price_as_text(cls, value: Any) -> Any:
        if value is None:
            return ""
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value.strip() if isinstance(value, str) else value

    @field_validator("property_type", mode="before")
    @classmethod
    def _default_property_type(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return PropertyType.ANY.value
        if isinstance(value, PropertyType):
            return value.value
        return value.strip() if isinstance(value, str) else value

    @field_validator("operation_type", mode="before")
    @classmethod
    def _upper_operation(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    @model_validator(mode="after")
    def _check_price_range(self) -> "FilterState":
        low = parse_price(self.min_price)
        high = parse_price(self.max_price)
        if low is not None and high is not None and low > high:
            raise ValueError("minPrice must not exceed maxPrice")
        return self

    @property
    def keyword_list(self) -> list[str]:
        return [part.strip() for part in self.keywords.split(",") if part.strip()]
