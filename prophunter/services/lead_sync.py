"""Lead repository - keeps the local pipeline in step with the Supabase leads table.

Every mutation is applied to the local pipeline first, so readers see it
immediately, and then confirmed against the store. What happens when the
store refuses depends on the sync policy:

* ``rollback``: the local change is undone for every operation.
* ``legacy``: a failed add is undone, a failed status update is only logged,
  and a failed delete reloads the whole pipeline from the store.
"""

import asyncio
import os
import weakref
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ValidationError

from prophunter.models.listing import Listing, PipelineStatus, is_deep_link
from prophunter.services.pipeline import LeadPipeline
from prophunter.services.supabase_client import LeadStore, SupabaseLeadStore
from prophunter.utils.errors import SupabaseError
from prophunter.utils.logging import get_structured_logger, log_timing, mask_phone

logger = get_structured_logger(__name__)


class SyncPolicy(str, Enum):
    """Recovery strategy when the store rejects a mutation."""
    ROLLBACK = "rollback"
    LEGACY = "legacy"


class LeadOperation(str, Enum):
    """Mutation kinds accepted by LeadRepository.apply."""
    ADD = "ADD"
    UPDATE_STATUS = "UPDATE_STATUS"
    DELETE = "DELETE"


# User-facing notifications, shown as blocking alerts by the dashboard
FAILURE_MESSAGES = {
    LeadOperation.ADD: "Falha ao salvar lead no banco de dados. Tente novamente.",
    LeadOperation.UPDATE_STATUS: "Falha ao atualizar o status do lead. Tente novamente.",
    LeadOperation.DELETE: "Falha ao remover o lead. Tente novamente.",
}


class SyncResult(BaseModel):
    """Outcome of one pipeline mutation."""
    ok: bool
    operation: LeadOperation
    lead_id: str
    changed: bool = False
    recovery: Optional[str] = None
    error: Optional[str] = None
    message: Optional[str] = None
    lead: Optional[Listing] = None


def get_sync_policy() -> SyncPolicy:
    """Read LEAD_SYNC_POLICY, falling back to rollback."""
    raw = os.environ.get("LEAD_SYNC_POLICY", SyncPolicy.ROLLBACK.value).strip().lower()
    try:
        return SyncPolicy(raw)
    except ValueError:
        logger.warning("Unknown LEAD_SYNC_POLICY, using rollback", sync_policy=raw)
        return SyncPolicy.ROLLBACK


class LeadRepository:
    """Local pipeline view plus the remote store it mirrors."""

    def __init__(
        self,
        store: Optional[LeadStore] = None,
        policy: Optional[SyncPolicy] = None,
        pipeline: Optional[LeadPipeline] = None,
    ):
        self.store = store if store is not None else SupabaseLeadStore()
        self.policy = SyncPolicy(policy) if policy is not None else get_sync_policy()
        self.pipeline = pipeline if pipeline is not None else LeadPipeline()
        self.loaded = False
        # entries vanish once no coroutine holds or waits on the lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, lead_id: str) -> asyncio.Lock:
        lock = self._locks.get(lead_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[lead_id] = lock
        return lock

    async def _fetch_remote(self) -> list[Listing]:
        rows = await self.store.select_all()
        leads: list[Listing] = []
        skipped = 0
        for row in rows:
            try:
                leads.append(Listing.from_record(row))
            except ValidationError:
                skipped += 1
        if skipped:
            logger.warning("Skipped invalid lead rows", skipped_count=skipped, total_rows=len(rows))
        return leads

    async def load(self) -> list[Listing]:
        """Populate the pipeline with a single full fetch. Raises SupabaseError."""
        with log_timing("load_leads", logger=logger):
            leads = await self._fetch_remote()
        self.pipeline.replace_all(leads)
        self.loaded = True
        logger.info("Leads loaded", lead_count=len(self.pipeline))
        return self.pipeline.leads()

    async def resync(self) -> bool:
        """Replace the local view from the store. Returns False when the fetch fails."""
        try:
            leads = await self._fetch_remote()
        except SupabaseError as e:
            logger.error("Lead resync failed", error=str(e))
            return False
        self.pipeline.replace_all(leads)
        logger.info("Leads resynced from store", lead_count=len(self.pipeline))
        return True

    async def apply(
        self,
        operation: LeadOperation,
        lead_id: Optional[str] = None,
        listing: Optional[Listing] = None,
        status: Optional[PipelineStatus] = None,
    ) -> SyncResult:
        """Apply one mutation locally, confirm it remotely, recover on failure."""
        operation = LeadOperation(operation)
        if operation == LeadOperation.ADD:
            if listing is None:
                raise ValueError("ADD requires a listing")
            return await self.add_to_pipeline(listing)
        if lead_id is None:
            raise ValueError(f"{operation.value} requires a lead_id")
        if operation == LeadOperation.UPDATE_STATUS:
            if status is None:
                raise ValueError("UPDATE_STATUS requires a status")
            return await self.update_lead_status(lead_id, status)
        return await self.delete_lead(lead_id)

    def _failure(self, operation: LeadOperation, lead_id: str, error: Exception, recovery: str) -> SyncResult:
        return SyncResult(
            ok=False,
            operation=operation,
            lead_id=lead_id,
            changed=False,
            recovery=recovery,
            error=str(error),
            message=FAILURE_MESSAGES[operation],
        )

    async def add_to_pipeline(self, listing: Listing) -> SyncResult:
        """Raises ValueError for a listing whose url is not an item page."""
        if not is_deep_link(listing.url):
            raise ValueError(f"Listing {listing.id} url is a search or category page")
        async with self._lock_for(listing.id):
            lead = self.pipeline.promote(listing)
            if lead is None:
                return SyncResult(ok=True, operation=LeadOperation.ADD, lead_id=listing.id)

            try:
                await self.store.insert(lead.to_record())
            except SupabaseError as e:
                self.pipeline.remove(lead.id)
                logger.error("Lead insert failed, rolled back", lead_id=lead.id, error=str(e))
                return self._failure(LeadOperation.ADD, lead.id, e, "rollback")

            logger.info(
                "Lead added to pipeline",
                lead_id=lead.id,
                platform=lead.platform.value,
                phone=mask_phone(lead.phone)
            )
            return SyncResult(ok=True, operation=LeadOperation.ADD, lead_id=lead.id, changed=True, lead=lead)

    async def update_lead_status(self, lead_id: str, status: PipelineStatus) -> SyncResult:
        """Raises InvalidTransitionError for CLOSED/LOST leads, before anything changes."""
        status = PipelineStatus(status)
        async with self._lock_for(lead_id):
            previous = self.pipeline.set_status(lead_id, status)
            if previous is None or previous.status == status:
                return SyncResult(
                    ok=True,
                    operation=LeadOperation.UPDATE_STATUS,
                    lead_id=lead_id,
                    lead=self.pipeline.get(lead_id),
                )

            try:
                await self.store.update(lead_id, {"status": status.value})
            except SupabaseError as e:
                if self.policy == SyncPolicy.LEGACY:
                    logger.error("Lead status update failed, local state kept", lead_id=lead_id, error=str(e))
                    result = self._failure(LeadOperation.UPDATE_STATUS, lead_id, e, "none")
                    result.changed = True
                    result.lead = self.pipeline.get(lead_id)
                    return result
                self.pipeline.restore(previous, self.pipeline.position(lead_id))
                logger.error("Lead status update failed, rolled back", lead_id=lead_id, error=str(e))
                return self._failure(LeadOperation.UPDATE_STATUS, lead_id, e, "rollback")

            lead = self.pipeline.get(lead_id)
            logger.info(
                "Lead status updated",
                lead_id=lead_id,
                from_status=previous.effective_status.value,
                to_status=status.value
            )
            return SyncResult(
                ok=True,
                operation=LeadOperation.UPDATE_STATUS,
                lead_id=lead_id,
                changed=True,
                lead=lead,
            )

    async def delete_lead(self, lead_id: str) -> SyncResult:
        async with self._lock_for(lead_id):
            position = self.pipeline.position(lead_id)
            removed = self.pipeline.remove(lead_id)
            if removed is None:
                return SyncResult(ok=True, operation=LeadOperation.DELETE, lead_id=lead_id)

            try:
                await self.store.delete(lead_id)
            except SupabaseError as e:
                if self.policy == SyncPolicy.LEGACY:
                    logger.error("Lead delete failed, resyncing", lead_id=lead_id, error=str(e))
                    await self.resync()
                    return self._failure(LeadOperation.DELETE, lead_id, e, "resync")
                self.pipeline.restore(removed, position)
                logger.error("Lead delete failed, rolled back", lead_id=lead_id, error=str(e))
                return self._failure(LeadOperation.DELETE, lead_id, e, "rollback")

            logger.info("Lead removed from pipeline", lead_id=lead_id)
            return SyncResult(ok=True, operation=LeadOperation.DELETE, lead_id=lead_id, changed=True, lead=removed)


_repository: Optional[LeadRepository] = None


async def get_lead_repository() -> LeadRepository:
    """Process-wide repository, loaded from the store on first use."""
    global _repository
    if _repository is None:
        _repository = LeadRepository()
    if not _repository.loaded:
        await _repository.load()
    return _repository


def reset_lead_repository() -> None:
    global _repository
    _repository = None
