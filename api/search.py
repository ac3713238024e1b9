"""Listing search endpoint."""

import logging

from api._common import JsonRequestHandler, run_async
from prophunter.services.listing_search import coerce_filters, run_search
from prophunter.utils.errors import FilterValidationError
from prophunter.utils.logging import correlation_context

_logger = logging.getLogger(__name__)


class handler(JsonRequestHandler):
    """POST a FilterState, get back the admitted listings."""

    def do_POST(self):
        with correlation_context():
            try:
                try:
                    filters = coerce_filters(self.read_json())
                except (ValueError, FilterValidationError) as e:
                    self.send_json(400, {"error": "invalid filters", "detail": str(e)})
                    return

                outcome = run_async(run_search(filters))
                listings = [listing.to_record() for listing in outcome.listings]
                self.send_json(200, {
                    "ok": not outcome.failed,
                    "count": len(listings),
                    "listings": listings,
                    "failed": outcome.failed,
                    "error": outcome.error,
                })
            except Exception as e:
                _logger.error(f"Error running listing search: {e}", exc_info=True)
                self.send_json(500, {"error": "internal server error"})
