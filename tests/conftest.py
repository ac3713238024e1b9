"""Shared pytest fixtures and configuration."""

import os
import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, Mock

# Set test environment variables
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("LLM_PROVIDER", "anthropic")
os.environ.setdefault("LLM_MODEL", "claude-sonnet-4-20250514")
os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key")
os.environ.setdefault("LEAD_SYNC_POLICY", "rollback")
os.environ.setdefault("LOG_FORMAT", "text")

from prophunter.models.filters import FilterState
from prophunter.models.listing import Listing
from prophunter.services.lead_sync import reset_lead_repository
from tests.utils.factories import create_candidate_data, create_listing


@pytest.fixture
def mock_supabase_client():
    """Mock Supabase client whose query builders chain back to themselves."""
    client = MagicMock()
    query = MagicMock()
    for method in ("select", "insert", "update", "delete", "eq"):
        getattr(query, method).return_value = query
    query.execute.return_value = MagicMock(data=[])
    client.table.return_value = query
    client.query = query
    return client


@pytest.fixture
def mock_llm_model():
    """Chat model stub; set ``ainvoke.return_value`` to the reply."""
    model = Mock()
    model.ainvoke = AsyncMock()
    return model


@pytest.fixture
def sample_filters():
    return FilterState(city="São Paulo", operationType="BOTH", propertyType="ANY")


@pytest.fixture
def sample_candidate():
    return create_candidate_data(
        id="olx-1001",
        title='Apartamento 2 quartos "direto com dono"',
        price=450000,
        location="São Paulo, SP",
        sellerType="OWNER",
        operationType="SALE",
        url="https://sp.olx.com.br/sao-paulo-e-regiao/imoveis/apartamento-2-quartos-1001",
        phone="(11) 98765-4321",
    )


@pytest.fixture
def sample_listing(sample_candidate):
    return Listing.model_validate({
        **sample_candidate,
        "scrapedAt": datetime(2025, 3, 10, 14, 30, tzinfo=timezone.utc),
    })


@pytest.fixture
def listings():
    return [create_listing(id=f"lead-{index}") for index in range(1, 4)]


@pytest.fixture(autouse=True)
def reset_repository():
    """Drop the process-wide lead repository between tests."""
    reset_lead_repository()
    yield
    reset_lead_repository()
