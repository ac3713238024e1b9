"""Shared helpers for the serverless JSON handlers."""

import asyncio
import json
from http.server import BaseHTTPRequestHandler
from urllib.parse import parse_qs, urlparse

from prophunter.utils.logging_config import LoggingConfig


class JsonRequestHandler(BaseHTTPRequestHandler):
    """BaseHTTPRequestHandler with JSON body parsing and JSON responses."""

    def setup(self):
        LoggingConfig.setup_logging()
        super().setup()

    def read_json(self):
        """Parse the request body. Returns None for an empty body; raises ValueError for bad JSON."""
        content_length = int(self.headers.get('Content-Length', 0) or 0)
        raw_body = self.rfile.read(content_length).decode('utf-8') if content_length > 0 else ""
        if not raw_body:
            return None
        try:
            return json.loads(raw_body)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON body: {e}")

    def query_params(self) -> dict:
        """First value of each query string parameter."""
        parsed = parse_qs(urlparse(self.path).query)
        return {key: values[0] for key, values in parsed.items() if values}

    def send_json(self, status: int, payload) -> None:
        self.send_response(status)
        self.send_header('Content-Type', 'application/json')
        self.end_headers()
        self.wfile.write(json.dumps(payload, ensure_ascii=False).encode('utf-8'))

    def send_text(self, status: int, body: str, content_type: str, headers: dict = None) -> None:
        self.send_response(status)
        self.send_header('Content-Type', content_type)
        for name, value in (headers or {}).items():
            self.send_header(name, value)
        self.end_headers()
        self.wfile.write(body.encode('utf-8'))


def run_async(coro):
    """Run a coroutine to completion from a synchronous handler."""
    try:
        loop = asyncio.get_event_loop()
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    if loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)
