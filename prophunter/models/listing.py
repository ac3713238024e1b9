"""Listing models - real-estate ads discovered by search and promoted to leads."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SellerType(str, Enum):
    """Who published the ad."""
    OWNER = "OWNER"
    BROKER = "BROKER"


class OperationType(str, Enum):
    """Transaction kind."""
    SALE = "SALE"
    RENT = "RENT"


class Platform(str, Enum):
    """Portal the ad was found on."""
    OLX = "OLX"
    ZAP = "Zap"
    VIVA_REAL = "VivaReal"
    MERCADO_LIVRE = "MercadoLivre"
    OTHER = "Other"


class PipelineStatus(str, Enum):
    """CRM pipeline stages. Flat set: no status implies another."""
    NEW = "NEW"
    CONTACTED = "CONTACTED"
    VISIT = "VISIT"
    NEGOTIATION = "NEGOTIATION"
    CLOSED = "CLOSED"
    LOST = "LOST"


TERMINAL_STATUSES = frozenset({PipelineStatus.CLOSED, PipelineStatus.LOST})

# Board column order
PIPELINE_ORDER = (
    PipelineStatus.NEW,
    PipelineStatus.CONTACTED,
    PipelineStatus.VISIT,
    PipelineStatus.NEGOTIATION,
    PipelineStatus.CLOSED,
    PipelineStatus.LOST,
)

# Substrings that mark a search/category page instead of an ad page
BLOCKED_URL_MARKERS = ("?q=", "busca", "pesquisa", "&")


def is_deep_link(url: Optional[str]) -> bool:
    """False for URLs that look like search results or category pages. Matching is case-sensitive."""
    return not any(marker in (url or "") for marker in BLOCKED_URL_MARKERS)


def _match_enum(enum_cls: type[Enum], value: Any) -> Any:
    """Case-insensitive lookup by value or member name; unknown values pass through."""
    if isinstance(value, enum_cls) or not isinstance(value, str):
        return value
    wanted = value.strip().lower()
    for member in enum_cls:
        if wanted in (member.value.lower(), member.name.lower()):
            return member
    return value


class ListingCandidate(BaseModel):
    """
    An ad as returned by the search provider.

    The provider's reply is untrusted: every required field is checked here
    even though the request carried a schema.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    id: str = Field(..., min_length=1, description="Stable identifier, merge key within a session")
    title: str = Field(..., min_length=1)
    description: str = Field(default="")
    price: float = Field(..., ge=0)
    currency: str = Field(default="BRL")
    location: str = Field(..., min_length=1)
    neighborhood: str = Field(default="")
    seller_type: SellerType = Field(..., alias="sellerType")
    operation_type: OperationType = Field(..., alias="operationType")
    seller_name: Optional[str] = Field(None, alias="sellerName")
    phone: Optional[str] = None
    platform: Platform
    url: str = Field(..., min_length=1, description="Item-level deep link")
    confidence_score: float = Field(
        ...,
        alias="confidenceScore",
        description="0-100 confidence that the seller is the owner"
    )
    features: list[str] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)
        return value.strip() if isinstance(value, str) else value

    @field_validator("title", "location", "url", mode="before")
    @classmethod
    def _strip_required_text(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("description", "neighborhood", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("currency", mode="before")
    @classmethod
    def _default_currency(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return "BRL"
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("seller_name", "phone", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator("seller_type", mode="before")
    @classmethod
    def _parse_seller_type(cls, value: Any) -> Any:
        return _match_enum(SellerType, value)

    @field_validator("operation_type", mode="before")
    @classmethod
    def _parse_operation_type(cls, value: Any) -> Any:
        return _match_enum(OperationType, value)

    @field_validator("platform", mode="before")
    @classmethod
    def _parse_platform(cls, value: Any) -> Any:
        if isinstance(value, str):
            matched = _match_enum(Platform, value)
            return matched if isinstance(matched, Platform) else Platform.OTHER
        return value

    @field_validator("confidence_score", mode="after")
    @classmethod
    def _clamp_confidence(cls, value: float) -> float:
        return min(100.0, max(0.0, value))

    @field_validator("features", mode="before")
    @classmethod
    def _clean_features(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, list):
            return [str(item).strip() for item in value if item is not None and str(item).strip()]
        return value


class Listing(ListingCandidate):
    """
    Canonical lead record.

    ``status`` is absent until the listing is promoted into the pipeline;
    readers that need a stage use ``effective_status``, which defaults to NEW.
    Content fields never change after creation, only ``status`` does, and
    always through ``with_status``.
    """
    scraped_at: datetime = Field(..., alias="scrapedAt")
    status: Optional[PipelineStatus] = None

    @field_validator("url", mode="after")
    @classmethod
    def _require_deep_link(cls, value: str) -> str:
        if not is_deep_link(value):
            raise ValueError("url must point at a single ad, not a search or category page")
        return value

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return _match_enum(PipelineStatus, value)

    @field_validator("scraped_at", mode="after")
    @classmethod
    def _ensure_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @property
    def effective_status(self) -> PipelineStatus:
        return self.status or PipelineStatus.NEW

    @classmethod
    def from_candidate(cls, candidate: ListingCandidate, scraped_at: datetime) -> "Listing":
        """Stamp a validated candidate with the retrieval time."""
        return cls(**candidate.model_dump(), scraped_at=scraped_at)

    @classmethod
    def from_record(cls, record: dict) -> "Listing":
        """Parse a row from the lead store."""
        return cls.model_validate(record)

    def with_status(self, status: Optional[PipelineStatus]) -> "Listing":
        return self.model_copy(update={"status": status})

    def to_record(self) -> dict:
        """camelCase, JSON-safe dict as stored in the leads table."""
        return self.model_dump(mode="json", by_alias=True)
