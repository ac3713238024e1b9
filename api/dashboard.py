"""Dashboard statistics endpoint."""

import logging

from pydantic import ValidationError

from api._common import JsonRequestHandler, run_async
from prophunter.models.listing import Listing
from prophunter.services.dashboard_stats import compute_dashboard_stats, pipeline_summary
from prophunter.services.lead_sync import get_lead_repository
from prophunter.utils.errors import SupabaseError

_logger = logging.getLogger(__name__)


class handler(JsonRequestHandler):
    """POST {"listings": [...]} for search stats plus the pipeline column counts."""

    def do_POST(self):
        try:
            try:
                body = self.read_json() or {}
                rows = body.get("listings", []) if isinstance(body, dict) else body
                if not isinstance(rows, list):
                    raise ValueError("listings must be an array")
                listings = [Listing.model_validate(row) for row in rows]
            except (ValueError, ValidationError) as e:
                self.send_json(400, {"error": "invalid listings", "detail": str(e)})
                return

            stats = compute_dashboard_stats(listings)
            try:
                repository = run_async(get_lead_repository())
                pipeline = pipeline_summary(repository.pipeline)
            except SupabaseError as e:
                _logger.warning(f"Pipeline unavailable for dashboard: {e}")
                pipeline = None

            self.send_json(200, {"stats": stats.model_dump(), "pipeline": pipeline})
        except Exception as e:
            _logger.error(f"Error computing dashboard stats: {e}", exc_info=True)
            self.send_json(500, {"error": "internal server error"})
