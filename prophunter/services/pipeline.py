"""CRM pipeline state machine for promoted leads."""

from typing import Iterable, Optional

from prophunter.models.listing import (
    Listing,
    PipelineStatus,
    PIPELINE_ORDER,
    TERMINAL_STATUSES,
)
from prophunter.utils.errors import InvalidTransitionError


def is_valid_transition(current: PipelineStatus, new: PipelineStatus) -> bool:
    """Any stage may move to any other, except out of CLOSED or LOST."""
    if current == new:
        return True
    return current not in TERMINAL_STATUSES


class LeadPipeline:
    """
    Leads keyed by id, kept in promotion order.

    Mutations are idempotent: promoting a known id, or changing or removing
    an unknown one, leaves the pipeline untouched and returns None.
    """

    def __init__(self, leads: Optional[Iterable[Listing]] = None):
        self._leads: dict[str, Listing] = {}
        if leads is not None:
            self.replace_all(leads)

    def __len__(self) -> int:
        return len(self._leads)

    def __contains__(self, lead_id: object) -> bool:
        return lead_id in self._leads

    def get(self, lead_id: str) -> Optional[Listing]:
        return self._leads.get(lead_id)

    def ids(self) -> list[str]:
        return list(self._leads)

    def leads(self) -> list[Listing]:
        return list(self._leads.values())

    def position(self, lead_id: str) -> Optional[int]:
        for index, known_id in enumerate(self._leads):
            if known_id == lead_id:
                return index
        return None

    def promote(self, listing: Listing) -> Optional[Listing]:
        """Add a listing as a NEW lead. Returns the lead, or None if already present."""
        if listing.id in self._leads:
            return None
        lead = listing.with_status(PipelineStatus.NEW)
        self._leads[lead.id] = lead
        return lead

    def set_status(self, lead_id: str, status: PipelineStatus) -> Optional[Listing]:
        """
        Overwrite a lead's status. Returns the lead as it was before the change,
        or None when the id is unknown.

        Raises InvalidTransitionError when the lead is CLOSED or LOST and the
        requested status differs.
        """
        lead = self._leads.get(lead_id)
        if lead is None:
            return None

        status = PipelineStatus(status)
        current = lead.effective_status
        if not is_valid_transition(current, status):
            raise InvalidTransitionError(lead_id, current.value, status.value)

        # dict assignment keeps the key's insertion position
        self._leads[lead_id] = lead.with_status(status)
        return lead

    def remove(self, lead_id: str) -> Optional[Listing]:
        """Delete a lead. Returns the removed lead, or None if unknown."""
        return self._leads.pop(lead_id, None)

    def restore(self, lead: Listing, position: Optional[int] = None) -> None:
        """Put a lead back, at its former position when given."""
        entries = [(key, value) for key, value in self._leads.items() if key != lead.id]
        if position is None or position >= len(entries):
            entries.append((lead.id, lead))
        else:
            entries.insert(max(position, 0), (lead.id, lead))
        self._leads = dict(entries)

    def replace_all(self, leads: Iterable[Listing]) -> None:
        """Replace the whole pipeline; duplicate ids keep the first occurrence."""
        fresh: dict[str, Listing] = {}
        for lead in leads:
            fresh.setdefault(lead.id, lead)
        self._leads = fresh

    def list_by_status(self, status: PipelineStatus) -> list[Listing]:
        """Leads in one stage, in promotion order. A missing status counts as NEW."""
        status = PipelineStatus(status)
        return [lead for lead in self._leads.values() if lead.effective_status == status]

    def columns(self) -> dict[PipelineStatus, list[Listing]]:
        """All stages in board order."""
        board: dict[PipelineStatus, list[Listing]] = {status: [] for status in PIPELINE_ORDER}
        for lead in self._leads.values():
            board[lead.effective_status].append(lead)
        return board
