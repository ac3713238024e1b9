"""Error handling utilities."""


class PropHunterError(Exception):
    """Base exception for PropHunter backend."""
    pass


class SearchError(PropHunterError):
    """Listing search failed (provider error, timeout or unparsable reply)."""
    pass


class FilterValidationError(PropHunterError):
    """Search filters could not be parsed."""
    pass


class InvalidTransitionError(PropHunterError):
    """Pipeline status change out of a terminal state."""

    def __init__(self, lead_id: str, current: str, requested: str):
        self.lead_id = lead_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Lead {lead_id} is {current}; cannot move to {requested}"
        )


class SupabaseError(PropHunterError):
    """Supabase operation error."""
    pass
