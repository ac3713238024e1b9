"""Aggregate numbers for the analytics dashboard."""

from typing import Iterable

from pydantic import BaseModel, Field

from prophunter.models.listing import Listing, OperationType, SellerType
from prophunter.services.pipeline import LeadPipeline


class DashboardStats(BaseModel):
    """Summary of a search result set."""
    total: int = 0
    owners: int = 0
    brokers: int = 0
    sales_count: int = 0
    rent_count: int = 0
    avg_sale_price: float = 0.0
    avg_rent_price: float = 0.0
    platform_counts: dict[str, int] = Field(default_factory=dict)


def _average(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def compute_dashboard_stats(listings: Iterable[Listing]) -> DashboardStats:
    listings = list(listings)
    sale_prices = [l.price for l in listings if l.operation_type == OperationType.SALE]
    rent_prices = [l.price for l in listings if l.operation_type == OperationType.RENT]

    platform_counts: dict[str, int] = {}
    for listing in listings:
        platform_counts[listing.platform.value] = platform_counts.get(listing.platform.value, 0) + 1

    return DashboardStats(
        total=len(listings),
        owners=sum(1 for l in listings if l.seller_type == SellerType.OWNER),
        brokers=sum(1 for l in listings if l.seller_type == SellerType.BROKER),
        sales_count=len(sale_prices),
        rent_count=len(rent_prices),
        avg_sale_price=_average(sale_prices),
        avg_rent_price=_average(rent_prices),
        platform_counts=platform_counts,
    )


def pipeline_summary(pipeline: LeadPipeline) -> dict[str, int]:
    """Lead count per board column."""
    return {status.value: len(leads) for status, leads in pipeline.columns().items()}
