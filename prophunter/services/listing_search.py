"""Listing search - asks an LLM with live web search for real-estate ads and validates the reply."""

import asyncio
import json
import os
import re
from datetime import datetime, timezone
from typing import Any, Optional

from langchain_anthropic import ChatAnthropic
from langchain_openai import ChatOpenAI
from pydantic import BaseModel, Field, ValidationError

from prophunter.models.filters import FilterState, OperationFilter, PropertyType
from prophunter.models.listing import Listing, ListingCandidate, is_deep_link
from prophunter.utils.errors import FilterValidationError, SearchError
from prophunter.utils.logging import get_correlation_id, get_structured_logger, log_timing, sanitize_text

logger = get_structured_logger(__name__)

DEFAULT_MODELS = {
    "anthropic": "claude-sonnet-4-20250514",
    "openai": "gpt-4.1",
}

# Portuguese search terms work better on Brazilian portals
PROPERTY_TYPE_TERMS = {
    PropertyType.APARTMENT.value: "Apartamento",
    PropertyType.HOUSE.value: "Casa",
    PropertyType.COMMERCIAL.value: "Comercial",
    PropertyType.LAND.value: "Terreno",
    PropertyType.ANY.value: "Imóvel",
}

LISTING_SCHEMA = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "id": {"type": "string"},
            "title": {"type": "string"},
            "price": {"type": "number"},
            "currency": {"type": "string"},
            "location": {"type": "string"},
            "neighborhood": {"type": "string"},
            "description": {"type": "string"},
            "sellerType": {"type": "string", "enum": ["OWNER", "BROKER"]},
            "operationType": {"type": "string", "enum": ["SALE", "RENT"]},
            "sellerName": {"type": "string", "description": "Name of the seller/owner if available"},
            "platform": {"type": "string", "enum": ["OLX", "Zap", "VivaReal", "MercadoLivre", "Other"]},
            "url": {"type": "string", "description": "The direct URL to the listing found in search (MUST be a deep link)"},
            "phone": {"type": "string", "description": "Phone number if available in snippet"},
            "confidenceScore": {"type": "number", "description": "Likelihood 0-100 that this is an owner"},
            "features": {"type": "array", "items": {"type": "string"}},
        },
        "required": [
            "id", "title", "price", "location", "sellerType",
            "operationType", "confidenceScore", "platform", "url",
        ],
    },
}


class SearchOutcome(BaseModel):
    """Search result that keeps "nothing found" apart from "the call failed"."""
    listings: list[Listing] = Field(default_factory=list)
    failed: bool = False
    error: Optional[str] = None


def numeric_setting(name: str, default: str, cast=int):
    """Read a numeric env setting. Raises SearchError when it does not parse."""
    raw = os.environ.get(name, default)
    try:
        return cast(raw)
    except (TypeError, ValueError):
        raise SearchError(f"{name} must be a number, got {raw!r}")


def get_search_term(property_type: str) -> str:
    """Translate a property type for the search query; unknown types pass through."""
    return PROPERTY_TYPE_TERMS.get(property_type, property_type)


def coerce_filters(payload: Any) -> FilterState:
    """Build a FilterState from request data. Raises FilterValidationError."""
    if isinstance(payload, FilterState):
        return payload
    if not isinstance(payload, dict):
        raise FilterValidationError("Filters must be a JSON object")
    try:
        return FilterState.model_validate(payload)
    except ValidationError as e:
        raise FilterValidationError(str(e)) from e


def build_search_prompt(filters: FilterState) -> dict:
    """
    Build the system instruction and user prompt for one search session.

    Returns dict with system and user prompts.
    """
    property_term = get_search_term(filters.property_type)
    display_type = "Any Property Type" if filters.property_type == PropertyType.ANY.value else filters.property_type
    operation = "Sale or Rent" if filters.operation_type == OperationFilter.BOTH else filters.operation_type.value
    max_results = numeric_setting("SEARCH_MAX_RESULTS", "20")

    system_prompt = """You are a high-precision Real Estate Scraping Agent.
Your mission is to find ACTIVE, DIRECT LINKS to specific real estate ads on Brazilian portals (OLX, Zap, VivaReal, MercadoLivre, DFImoveis, WImoveis).

CRITICAL URL VALIDATION RULES
1. NO SEARCH RESULTS OR CATEGORY PAGES: never return a URL that is a generic list or search query.
   - BAD (Search Page): https://www.olx.com.br/imoveis/estado-sp?q=apartamento
   - BAD (Category): https://www.vivareal.com.br/venda/sp/sao-paulo/
   - BAD (Broken Query): https://dfimoveis.com.br/aluguel?filtros=invalido
2. DIRECT ITEM PAGES ONLY: the URL must point to a specific property detail page, usually carrying a unique ID.
   - GOOD (OLX): https://df.olx.com.br/distrito-federal-e-regiao/imoveis/apartamento-reformado-123456789
   - GOOD (Zap): https://www.zapimoveis.com.br/imovel/venda-apartamento-id-2658974521/
   - GOOD (VivaReal): https://www.vivareal.com.br/imovel/1234567890/
   - GOOD (MercadoLivre): https://imovel.mercadolivre.com.br/MLB-1234567890
3. VERIFY INTEGRITY: do not construct or guess URLs. Use only URLs explicitly found in the search results.
4. ACTIVE & RECENT: exclude listings marked "Vendido", "Alugado" or "Indisponível". Prefer recently indexed content.
5. OWNER INFORMATION: extract any contact names or phone numbers visible in the snippet or title ("Tratar com [Name]", "Tel: ...", "Zap: ...").

Output rules
- Analyze the page snippet to determine sellerType (OWNER vs BROKER) and give confidenceScore 0-100 that it is an owner.
- If you cannot find specific deep links to active ads, return fewer results or an empty array. Do NOT fill with generic links.
- Reply with a JSON array only. No prose, no code fences."""

    keywords = ", ".join(filters.keyword_list) or "None"

    user_prompt = f"""Find {max_results} SPECIFIC real estate listing URLs (Deep Links) for:
City: {filters.city}
Neighborhood: {filters.neighborhood or "Any"}
Type: {display_type} (Search Term: {property_term})
Operation: {operation}
Price Range: {filters.min_price or "0"} - {filters.max_price or "Unlimited"}
Keywords: {keywords}

EXECUTE THESE PRECISE SEARCH QUERIES:
1. site:olx.com.br/imoveis "{filters.city}" "{property_term}" -list -busca
2. site:vivareal.com.br/imovel "{filters.city}" "{property_term}"
3. site:zapimoveis.com.br/imovel "{filters.city}" "{property_term}"
4. "{property_term}" "{filters.city}" "direto com proprietário" site:mercadolivre.com.br

For each result:
1. Verify the URL follows the "Item Page" pattern (usually ends with an ID).
2. Extract the OWNER NAME and PHONE if available in the snippet.
3. Discard any URL that looks like a search query (contains ?q=, &filter=).

Return ONLY a JSON array matching this schema:
{json.dumps(LISTING_SCHEMA, ensure_ascii=False)}"""

    return {
        "system": system_prompt,
        "user": user_prompt,
    }


def get_llm_model():
    """Get the configured chat model with its live web search tool bound."""
    provider = os.environ.get("LLM_PROVIDER", "anthropic").lower()
    model_name = os.environ.get("LLM_MODEL") or DEFAULT_MODELS.get(provider)
    max_queries = numeric_setting("SEARCH_MAX_WEB_QUERIES", "5")

    logger.debug(
        "Getting LLM model",
        llm_provider=provider,
        llm_model=model_name
    )

    if provider == "anthropic":
        api_key = os.environ.get("ANTHROPIC_API_KEY")
        if not api_key:
            raise SearchError("ANTHROPIC_API_KEY not set")
        model = ChatAnthropic(model=model_name, api_key=api_key, max_tokens=8192)
        return model.bind_tools([
            {"type": "web_search_20250305", "name": "web_search", "max_uses": max_queries}
        ])
    elif provider == "openai":
        api_key = os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise SearchError("OPENAI_API_KEY not set")
        model = ChatOpenAI(model=model_name, api_key=api_key, use_responses_api=True)
        return model.bind_tools([{"type": "web_search_preview"}])
    else:
        raise SearchError(f"Unsupported LLM provider: {provider}")


def response_text(response: Any) -> str:
    """Collect the text blocks of a chat model reply."""
    content = response.content if hasattr(response, "content") else response
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "".join(parts)
    return str(content)


def parse_candidates(text: str) -> list[Any]:
    """
    Extract the JSON array of ads from the reply text.

    Accepts a bare array, a fenced block, an array surrounded by prose, or an
    object with a ``listings`` array. Raises SearchError otherwise.
    """
    if not text or not text.strip():
        raise SearchError("Empty response from search provider")

    fenced = re.search(r"```(?:json)?\s*(.*?)```", text, re.DOTALL)
    candidates_text = fenced.group(1) if fenced else text

    try:
        data = json.loads(candidates_text)
    except json.JSONDecodeError:
        start_idx = candidates_text.find("[")
        end_idx = candidates_text.rfind("]") + 1
        if start_idx < 0 or end_idx <= start_idx:
            raise SearchError("No JSON array found in search response")
        try:
            data = json.loads(candidates_text[start_idx:end_idx])
        except json.JSONDecodeError as e:
            raise SearchError(f"Failed to parse search response: {e}")

    if isinstance(data, dict) and isinstance(data.get("listings"), list):
        data = data["listings"]
    if not isinstance(data, list):
        raise SearchError("Search response is not a JSON array")
    return data


def admit_candidates(items: list[Any], scraped_at: Optional[datetime] = None) -> list[Listing]:
    """
    Turn raw provider items into Listings.

    Items that fail the schema or point at a search/category page are dropped.
    Every survivor gets ``scraped_at`` (now, UTC, by default); the first item
    wins when ids repeat.
    """
    if scraped_at is None:
        scraped_at = datetime.now(timezone.utc)

    admitted: list[Listing] = []
    seen_ids: set[str] = set()
    invalid = 0
    rejected_urls = 0
    duplicates = 0

    for item in items:
        if not isinstance(item, dict):
            invalid += 1
            continue
        try:
            candidate = ListingCandidate.model_validate(item)
        except ValidationError:
            invalid += 1
            continue
        if not is_deep_link(candidate.url):
            rejected_urls += 1
            continue
        if candidate.id in seen_ids:
            duplicates += 1
            continue
        seen_ids.add(candidate.id)
        admitted.append(Listing.from_candidate(candidate, scraped_at))

    logger.info(
        "Search candidates admitted",
        received_count=len(items),
        admitted_count=len(admitted),
        invalid_count=invalid,
        rejected_url_count=rejected_urls,
        duplicate_count=duplicates
    )
    return admitted


async def fetch_listings(filters: FilterState) -> list[Listing]:
    """
    Run one search request. Raises SearchError when a numeric setting is
    malformed, the provider call fails or times out, or the reply is not a
    JSON array.
    """
    correlation_id = get_correlation_id()
    timeout = numeric_setting("SEARCH_TIMEOUT_SECONDS", "90", cast=float)

    logger.info(
        "Listing search started",
        correlation_id=correlation_id,
        city=filters.city,
        neighborhood=filters.neighborhood or None,
        property_type=filters.property_type,
        operation_type=filters.operation_type.value
    )

    prompt_data = build_search_prompt(filters)
    messages = [
        ("system", prompt_data["system"]),
        ("human", prompt_data["user"]),
    ]

    model = get_llm_model()
    try:
        with log_timing("listing_search_request", logger=logger, correlation_id=correlation_id):
            response = await asyncio.wait_for(model.ainvoke(messages), timeout=timeout)
    except asyncio.TimeoutError:
        raise SearchError(f"Search provider timed out after {timeout:g}s")
    except Exception as e:
        raise SearchError(f"Search provider request failed: {e}") from e

    text = response_text(response)
    try:
        items = parse_candidates(text)
    except SearchError:
        logger.warning("Unparsable search response", response_preview=sanitize_text(text))
        raise
    return admit_candidates(items)


async def run_search(filters: FilterState) -> SearchOutcome:
    """Search and report failure explicitly instead of raising."""
    try:
        listings = await fetch_listings(filters)
    except SearchError as e:
        logger.error(
            "Listing search failed",
            correlation_id=get_correlation_id(),
            city=filters.city,
            error=str(e),
            exc_info=True
        )
        return SearchOutcome(failed=True, error=str(e))
    return SearchOutcome(listings=listings)


async def search_listings(filters: FilterState) -> list[Listing]:
    """Search for listings; failures are logged and come back as an empty list."""
    outcome = await run_search(filters)
    return outcome.listings
