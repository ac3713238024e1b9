"""CSV export endpoint."""

import logging

from pydantic import ValidationError

from api._common import JsonRequestHandler
from prophunter.models.listing import Listing
from prophunter.services.csv_export import CSV_FILENAME, CSV_MIME_TYPE, export_csv

_logger = logging.getLogger(__name__)


class handler(JsonRequestHandler):
    """POST {"listings": [...]} and download them as CSV."""

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

            self.send_text(
                200,
                export_csv(listings),
                f"{CSV_MIME_TYPE}; charset=utf-8",
                headers={"Content-Disposition": f'attachment; filename="{CSV_FILENAME}"'},
            )
        except Exception as e:
            _logger.error(f"Error exporting CSV: {e}", exc_info=True)
            self.send_json(500, {"error": "internal server error"})
