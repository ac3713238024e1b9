"""Test helper functions."""

import json
from io import BytesIO
from typing import Any, Optional
from unittest.mock import Mock

from prophunter.utils.errors import SupabaseError


def create_handler(handler_cls, method: str = "GET", path: str = "/", body: Any = None):
    """Instantiate a request handler without a socket, with response methods mocked."""
    h = handler_cls.__new__(handler_cls)
    if body is None:
        raw = b""
    elif isinstance(body, (bytes, str)):
        raw = body.encode("utf-8") if isinstance(body, str) else body
    else:
        raw = json.dumps(body).encode("utf-8")

    h.rfile = BytesIO(raw)
    h.wfile = BytesIO()
    h.headers = {"Content-Length": str(len(raw)), "Content-Type": "application/json"}
    h.path = path
    h.command = method
    h.send_response = Mock()
    h.send_header = Mock()
    h.end_headers = Mock()
    return h


def response_status(h) -> int:
    return h.send_response.call_args[0][0]


def response_json(h) -> Any:
    h.wfile.seek(0)
    return json.loads(h.wfile.read().decode("utf-8"))


def response_text(h) -> str:
    h.wfile.seek(0)
    return h.wfile.read().decode("utf-8")


def sent_headers(h) -> dict:
    return {call.args[0]: call.args[1] for call in h.send_header.call_args_list}


class FakeLeadStore:
    """In-memory lead store; set ``fail_on`` to make an operation raise SupabaseError."""

    def __init__(self, rows: Optional[list[dict]] = None, fail_on: Optional[set[str]] = None):
        self.rows: list[dict] = list(rows or [])
        self.fail_on = set(fail_on or ())
        self.calls: list[tuple] = []

    def _maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise SupabaseError(f"simulated {operation} failure")

    async def select_all(self) -> list[dict]:
        self.calls.append(("select_all",))
        self._maybe_fail("select_all")
        return [dict(row) for row in self.rows]

    async def insert(self, record: dict) -> dict:
        self.calls.append(("insert", record["id"]))
        self._maybe_fail("insert")
        self.rows.append(dict(record))
        return record

    async def update(self, lead_id: str, updates: dict) -> Optional[dict]:
        self.calls.append(("update", lead_id, updates))
        self._maybe_fail("update")
        for row in self.rows:
            if row["id"] == lead_id:
                row.update(updates)
                return row
        return None

    async def delete(self, lead_id: str) -> None:
        self.calls.append(("delete", lead_id))
        self._maybe_fail("delete")
        self.rows = [row for row in self.rows if row["id"] != lead_id]
