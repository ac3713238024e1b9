"""Supabase client wrapper and leads table operations."""

import os
from typing import Optional, Protocol

from supabase import create_client, Client
from supabase.client import ClientOptions

from prophunter.utils.errors import SupabaseError
from prophunter.utils.logging import get_structured_logger, timed

logger = get_structured_logger(__name__)

# Global client instance (singleton pattern)
_client: Optional[Client] = None


def get_leads_table() -> str:
    return os.environ.get("LEADS_TABLE", "leads")


def get_supabase_client() -> Client:
    """Get or create Supabase client singleton."""
    global _client

    if _client is None:
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")

        if not url or not key:
            raise SupabaseError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

        options = ClientOptions(
            auto_refresh_token=False,
            persist_session=False,
        )

        _client = create_client(url, key, options)
        logger.info("Supabase client initialized", supabase_url=url)

    return _client


async def close_supabase_client() -> None:
    """Drop the client reference; supabase-py has no explicit close."""
    global _client
    if _client:
        _client = None
        logger.info("Supabase client closed")


class SupabaseClient:
    """Async context manager for Supabase client."""

    def __init__(self):
        self.client: Optional[Client] = None

    async def __aenter__(self) -> Client:
        self.client = get_supabase_client()
        return self.client

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            logger.error(
                "Supabase operation error",
                error=str(exc_val),
                error_type=exc_type.__name__
            )
        return False


# Leads table operations
@timed("select_all_leads", logger=logger)
async def select_all_leads() -> list[dict]:
    """Fetch every lead row."""
    async with SupabaseClient() as client:
        try:
            result = client.table(get_leads_table()).select("*").execute()
            return result.data if result.data else []
        except Exception as e:
            raise SupabaseError(f"Failed to fetch leads: {e}")


async def insert_lead(record: dict) -> dict:
    """Insert a lead row."""
    async with SupabaseClient() as client:
        try:
            result = client.table(get_leads_table()).insert(record).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to insert lead: {e}")
        if result.data and len(result.data) > 0:
            return result.data[0]
        raise SupabaseError("Failed to insert lead: no data returned")


async def update_lead(lead_id: str, updates: dict) -> Optional[dict]:
    """Update a lead row by id. Returns the updated row, or None if no row matched."""
    async with SupabaseClient() as client:
        try:
            result = client.table(get_leads_table()).update(updates).eq("id", lead_id).execute()
            return result.data[0] if result.data and len(result.data) > 0 else None
        except Exception as e:
            raise SupabaseError(f"Failed to update lead {lead_id}: {e}")


async def delete_lead(lead_id: str) -> None:
    """Delete a lead row by id."""
    async with SupabaseClient() as client:
        try:
            client.table(get_leads_table()).delete().eq("id", lead_id).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to delete lead {lead_id}: {e}")


class LeadStore(Protocol):
    """Remote lead store consumed by the sync layer. Every method raises SupabaseError on failure."""

    async def select_all(self) -> list[dict]: ...

    async def insert(self, record: dict) -> dict: ...

    async def update(self, lead_id: str, updates: dict) -> Optional[dict]: ...

    async def delete(self, lead_id: str) -> None: ...


class SupabaseLeadStore:
    """LeadStore backed by the Supabase leads table."""

    async def select_all(self) -> list[dict]:
        return await select_all_leads()

    async def insert(self, record: dict) -> dict:
        return await insert_lead(record)

    async def update(self, lead_id: str, updates: dict) -> Optional[dict]:
        return await update_lead(lead_id, updates)

    async def delete(self, lead_id: str) -> None:
        await delete_lead(lead_id)
