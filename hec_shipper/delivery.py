"""Delivery executor — one HTTP POST of a formatted payload to the collector."""

import base64
import logging
from enum import Enum

import requests

from hec_shipper.compressor import try_compress
from hec_shipper.config import Config

logger = logging.getLogger(__name__)

URI_RAW = "/services/collector/raw"
URI_EVENT = "/services/collector/event"
USER_AGENT = "hec-shipper"

# Longest response body echoed into the log on a non-200 status
MAX_RESPONSE_LOG = 4096


class Outcome(Enum):
    SUCCESS = "success"
    RETRY = "retry"
    PERMANENT_FAILURE = "permanent_failure"


def classify_status(status: int) -> Outcome:
    """Map an HTTP status to a delivery outcome.

    The collector answers 4xx for requests that will never succeed (bad
    token, malformed data, disabled endpoint), so those are not retried.
    """
    if status == 200:
        return Outcome.SUCCESS
    if 400 <= status < 500:
        return Outcome.PERMANENT_FAILURE
    return Outcome.RETRY


def endpoint_for(config: Config) -> str:
    return URI_RAW if config.splunk_send_raw else URI_EVENT


def basic_auth_value(user: str, passwd: str) -> str:
    token = base64.b64encode(f"{user}:{passwd}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


def build_headers(config: Config, compressed: bool) -> dict:
    """Request headers: user agent, credentials and content encoding."""
    headers = {
        "User-Agent": USER_AGENT,
        "Content-Type": "application/json",
    }
    # http_user/http_passwd win over the static token
    if config.http_user and config.http_passwd:
        headers["Authorization"] = basic_auth_value(config.http_user, config.http_passwd)
    elif config.auth_header:
        headers["Authorization"] = config.auth_header
    if compressed:
        headers["Content-Encoding"] = "gzip"
    return headers


class Payload:
    """Owns the bytes currently being delivered.

    ``replace`` hands ownership to a new buffer (the compressed one) and drops
    the old one. Leaving the ``with`` block releases whatever is held.
    """

    def __init__(self, data: bytes):
        self._data: bytes | None = data
        self.compressed = False

    @property
    def data(self) -> bytes:
        if self._data is None:
            raise RuntimeError("Payload already released")
        return self._data

    @property
    def released(self) -> bool:
        return self._data is None

    def replace(self, data: bytes, compressed: bool = True):
        if self._data is None:
            raise RuntimeError("Payload already released")
        self._data = data
        self.compressed = compressed

    def release(self):
        self._data = None

    def __len__(self) -> int:
        return len(self.data)

    def __enter__(self) -> "Payload":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False


def _response_text(response) -> str:
    try:
        body = response.content or b""
    except (requests.RequestException, OSError):
        return ""
    return body[:MAX_RESPONSE_LOG].decode("utf-8", errors="replace")


def deliver(payload: bytes, config: Config, connection) -> Outcome:
    """Send *payload* once over *connection* and classify the result.

    *connection* must provide ``post(path, data=..., headers=...)`` returning
    a response with ``status_code``, ``content`` and ``close()``.
    """
    with Payload(payload) as current:
        if config.compress_gzip:
            result = try_compress(current.data)
            if result.compressed:
                current.replace(result.data)
                logger.debug(
                    "Compressed payload %d -> %d bytes", result.original_size, result.compressed_size
                )

        path = endpoint_for(config)
        headers = build_headers(config, current.compressed)

        try:
            response = connection.post(path, data=current.data, headers=headers)
        except (requests.RequestException, OSError) as exc:
            logger.warning("http_do=%s", exc)
            return Outcome.RETRY

        try:
            status = response.status_code
            if status != 200:
                body = _response_text(response)
                if body:
                    logger.warning("http_status=%d:\n%s", status, body)
                else:
                    logger.warning("http_status=%d", status)
            return classify_status(status)
        finally:
            response.close()
