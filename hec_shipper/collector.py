"""Mock HTTP Event Collector for local runs and integration tests.

Accepts the same requests a real collector does and keeps every event it
receives in memory so tests can assert on them.
"""

import gzip
import json
import logging
import threading
import zlib

from flask import Flask, jsonify, request

from hec_shipper.delivery import URI_EVENT, URI_RAW

logger = logging.getLogger(__name__)


class ReceivedEvents:
    """Thread-safe store of everything the mock collector accepted."""

    def __init__(self):
        self._lock = threading.Lock()
        self._events: list = []
        self._requests: list[dict] = []

    def add(self, endpoint: str, events: list, headers: dict):
        with self._lock:
            self._events.extend(events)
            self._requests.append({"endpoint": endpoint, "count": len(events), "headers": headers})

    @property
    def events(self) -> list:
        with self._lock:
            return list(self._events)

    @property
    def requests(self) -> list[dict]:
        with self._lock:
            return list(self._requests)

    def clear(self):
        with self._lock:
            self._events.clear()
            self._requests.clear()


def parse_event_stream(text: str) -> list:
    """Split concatenated JSON objects (``{..}{..}``) into a list of values."""
    decoder = json.JSONDecoder()
    events = []
    pos = 0
    length = len(text)
    while pos < length:
        while pos < length and text[pos].isspace():
            pos += 1
        if pos >= length:
            break
        value, pos = decoder.raw_decode(text, pos)
        events.append(value)
    return events


def parse_raw_lines(text: str) -> list:
    """Parse newline-delimited raw events; non-JSON lines are kept as text."""
    events = []
    for line in text.split("\n"):
        if not line:
            continue
        try:
            events.append(json.loads(line))
        except json.JSONDecodeError:
            events.append(line)
    return events


def _reply(text: str, code: int, status: int):
    return jsonify(text=text, code=code), status


def create_collector_app(
    token: str | None = None,
    store: ReceivedEvents | None = None,
    fail_status: int | None = None,
) -> Flask:
    app = Flask(__name__)
    events = store if store is not None else ReceivedEvents()
    app.config["RECEIVED_EVENTS"] = events

    def _authorized() -> bool:
        if not token:
            return True
        return request.headers.get("Authorization", "") == f"Splunk {token}"

    def _body_text() -> str:
        body = request.get_data()
        if request.headers.get("Content-Encoding", "").lower() == "gzip":
            body = gzip.decompress(body)
        return body.decode("utf-8")

    def _ingest(endpoint: str, parse):
        if fail_status is not None:
            return _reply("Forced failure", 9, fail_status)
        if not _authorized():
            return _reply("Invalid token", 4, 401)
        try:
            text = _body_text()
        except (OSError, EOFError, zlib.error, UnicodeDecodeError):
            return _reply("Invalid data format", 6, 400)
        if not text.strip():
            return _reply("No data", 5, 400)
        try:
            parsed = parse(text)
        except json.JSONDecodeError:
            return _reply("Invalid data format", 6, 400)

        events.add(endpoint, parsed, dict(request.headers))
        logger.info("Accepted %d event(s) on %s", len(parsed), endpoint)
        return _reply("Success", 0, 200)

    @app.route(URI_EVENT, methods=["POST"])
    def collect_event():
        return _ingest(URI_EVENT, parse_event_stream)

    @app.route(URI_RAW, methods=["POST"])
    def collect_raw():
        return _ingest(URI_RAW, parse_raw_lines)

    @app.route("/services/collector/health")
    def health():
        return _reply("HEC is healthy", 17, 200)

    return app


def run_collector(app: Flask, host: str, port: int):
    """Run the Flask app (blocking)."""
    app.run(host=host, port=port, use_reloader=False, threaded=True)
