"""End-to-end flow: search reply -> admitted listings -> pipeline -> CSV."""

import json

import pytest
from unittest.mock import Mock, patch

from prophunter.models.filters import FilterState
from prophunter.models.listing import Listing, PipelineStatus
from prophunter.services.csv_export import export_csv
from prophunter.services.lead_sync import LeadRepository, SyncPolicy
from prophunter.services.listing_search import run_search
from tests.utils.assertions import assert_lead_ids, assert_valid_listing
from tests.utils.factories import create_candidate_data
from tests.utils.helpers import FakeLeadStore


def provider_reply(items: list[dict]) -> Mock:
    """Chat model reply with prose around a fenced JSON block."""
    text = "Encontrei estes anúncios:\n```json\n" + json.dumps(items, ensure_ascii=False) + "\n```\nBoa sorte!"
    return Mock(content=[{"type": "text", "text": text}])


@pytest.mark.integration
@pytest.mark.asyncio
async def test_search_admits_only_deep_links(mock_llm_model):
    good = [create_candidate_data(id=f"good-{index}") for index in range(3)]
    bad = [
        create_candidate_data(id=f"bad-{index}", url=f"https://www.olx.com.br/imoveis/{index}?ordem=1&filter=x")
        for index in range(2)
    ]
    mock_llm_model.ainvoke.return_value = provider_reply(good + bad)

    with patch("prophunter.services.listing_search.get_llm_model", return_value=mock_llm_model):
        outcome = await run_search(FilterState(city="Brasília", operationType="SALE"))

    assert outcome.failed is False
    assert [listing.id for listing in outcome.listings] == ["good-0", "good-1", "good-2"]
    for listing in outcome.listings:
        assert_valid_listing(listing)
        assert listing.scraped_at.tzinfo is not None
    assert len({listing.scraped_at for listing in outcome.listings}) == 1


@pytest.mark.integration
@pytest.mark.asyncio
async def test_search_results_flow_into_pipeline_and_export(mock_llm_model):
    items = [
        create_candidate_data(id="olx-1", operationType="RENT", sellerType="OWNER"),
        create_candidate_data(id="zap-2", operationType="SALE", sellerType="BROKER"),
    ]
    mock_llm_model.ainvoke.return_value = provider_reply(items)
    store = FakeLeadStore()
    repository = LeadRepository(store=store, policy=SyncPolicy.ROLLBACK)

    with patch("prophunter.services.listing_search.get_llm_model", return_value=mock_llm_model):
        outcome = await run_search(FilterState(city="São Paulo"))

    await repository.load()
    for listing in outcome.listings:
        result = await repository.add_to_pipeline(listing)
        assert result.ok
    # promoting the same ad twice keeps one lead
    await repository.add_to_pipeline(outcome.listings[0])

    assert_lead_ids(repository.pipeline, ["olx-1", "zap-2"])
    assert [row["status"] for row in store.rows] == ["NEW", "NEW"]

    moved = await repository.update_lead_status("olx-1", PipelineStatus.CONTACTED)
    assert moved.ok
    assert store.rows[0]["status"] == "CONTACTED"

    csv_text = export_csv(repository.pipeline.leads())
    rent_row = csv_text.split("\n")[1]
    assert rent_row.startswith("olx-1,")
    assert "Aluguel" in rent_row
    assert "Proprietário" in rent_row


@pytest.mark.integration
@pytest.mark.asyncio
async def test_failed_delete_resync_matches_store():
    store = FakeLeadStore()
    repository = LeadRepository(store=store, policy=SyncPolicy.LEGACY)
    await repository.load()

    for index in range(2):
        listing_data = create_candidate_data(id=f"lead-{index}")
        listing_data["scrapedAt"] = "2025-03-10T14:30:00+00:00"
        await repository.add_to_pipeline(Listing.model_validate(listing_data))

    store.fail_on.add("delete")
    result = await repository.delete_lead("lead-0")

    assert result.ok is False
    assert result.recovery == "resync"
    assert len(repository.pipeline) == 2
    assert_lead_ids(repository.pipeline, ["lead-0", "lead-1"])


@pytest.mark.integration
@pytest.mark.asyncio
async def test_search_failure_is_reported(mock_llm_model):
    mock_llm_model.ainvoke.return_value = Mock(content="Desculpe, não encontrei nada.")

    with patch("prophunter.services.listing_search.get_llm_model", return_value=mock_llm_model):
        outcome = await run_search(FilterState(city="Recife"))

    assert outcome.failed is True
    assert outcome.listings == []
    assert "No JSON array" in outcome.error
