"""CRM pipeline endpoint: list, add, move and delete leads."""

import logging

from pydantic import ValidationError

from api._common import JsonRequestHandler, run_async
from prophunter.models.listing import Listing, PipelineStatus
from prophunter.services.lead_sync import SyncResult, get_lead_repository
from prophunter.utils.contact import format_price_brl, whatsapp_link
from prophunter.utils.errors import InvalidTransitionError, SupabaseError
from prophunter.utils.logging import correlation_context

_logger = logging.getLogger(__name__)


def lead_card(lead: Listing) -> dict:
    """Stored record plus the display fields the board shows."""
    card = lead.to_record()
    card["status"] = lead.effective_status.value
    card["displayPrice"] = format_price_brl(lead.price, lead.operation_type.value, compact=True)
    card["whatsappUrl"] = whatsapp_link(lead.phone, message=None)
    return card


def parse_status(value) -> PipelineStatus:
    try:
        return PipelineStatus(str(value).strip().upper())
    except ValueError:
        raise ValueError(f"Unknown pipeline status: {value!r}")


class handler(JsonRequestHandler):
    """Vercel serverless function handler for pipeline leads."""

    def _send_result(self, result: SyncResult) -> None:
        payload = result.model_dump(mode="json", exclude={"lead"})
        payload["lead"] = lead_card(result.lead) if result.lead is not None else None
        self.send_json(200 if result.ok else 502, payload)

    def _repository(self):
        try:
            return run_async(get_lead_repository())
        except SupabaseError as e:
            _logger.error(f"Failed to load leads: {e}")
            self.send_json(502, {"error": "lead store unavailable", "detail": str(e)})
            return None

    def do_GET(self):
        with correlation_context():
            try:
                repository = self._repository()
                if repository is None:
                    return

                status = self.query_params().get("status")
                if status:
                    try:
                        partition = repository.pipeline.list_by_status(parse_status(status))
                    except ValueError as e:
                        self.send_json(400, {"error": str(e)})
                        return
                    self.send_json(200, {
                        "status": parse_status(status).value,
                        "leads": [lead_card(lead) for lead in partition],
                    })
                    return

                columns = {
                    column.value: [lead_card(lead) for lead in leads]
                    for column, leads in repository.pipeline.columns().items()
                }
                self.send_json(200, {"count": len(repository.pipeline), "columns": columns})
            except Exception as e:
                _logger.error(f"Error listing leads: {e}", exc_info=True)
                self.send_json(500, {"error": "internal server error"})

    def do_POST(self):
        """Promote a listing into the pipeline."""
        with correlation_context():
            try:
                try:
                    listing = Listing.model_validate(self.read_json() or {})
                except (ValueError, ValidationError) as e:
                    self.send_json(400, {"error": "invalid listing", "detail": str(e)})
                    return

                repository = self._repository()
                if repository is None:
                    return
                try:
                    result = run_async(repository.add_to_pipeline(listing))
                except ValueError as e:
                    self.send_json(400, {"error": "invalid listing", "detail": str(e)})
                    return
                self._send_result(result)
            except Exception as e:
                _logger.error(f"Error adding lead: {e}", exc_info=True)
                self.send_json(500, {"error": "internal server error"})

    def do_PATCH(self):
        """Move a lead to another stage: {"id": ..., "status": ...}."""
        with correlation_context():
            try:
                try:
                    body = self.read_json() or {}
                    lead_id = str(body.get("id") or "").strip()
                    if not lead_id:
                        raise ValueError("id is required")
                    status = parse_status(body.get("status"))
                except (ValueError, AttributeError) as e:
                    self.send_json(400, {"error": str(e)})
                    return

                repository = self._repository()
                if repository is None:
                    return
                try:
                    result = run_async(repository.update_lead_status(lead_id, status))
                except InvalidTransitionError as e:
                    self.send_json(409, {"error": str(e), "id": lead_id, "status": e.current})
                    return
                self._send_result(result)
            except Exception as e:
                _logger.error(f"Error updating lead status: {e}", exc_info=True)
                self.send_json(500, {"error": "internal server error"})

    def do_DELETE(self):
        """Remove a lead: ?id=..."""
        with correlation_context():
            try:
                lead_id = (self.query_params().get("id") or "").strip()
                if not lead_id:
                    self.send_json(400, {"error": "id is required"})
                    return

                repository = self._repository()
                if repository is None:
                    return
                self._send_result(run_async(repository.delete_lead(lead_id)))
            except Exception as e:
                _logger.error(f"Error deleting lead: {e}", exc_info=True)
                self.send_json(500, {"error": "internal server error"})
