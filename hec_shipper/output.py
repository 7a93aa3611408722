"""Collector output — formats a chunk and delivers it in one flush."""

import logging
import time
from enum import Enum

from hec_shipper.config import Config
from hec_shipper.decoder import BatchStats
from hec_shipper.delivery import Outcome, deliver
from hec_shipper.formatter import FormatError, format_chunk
from hec_shipper.metrics import FlushMetrics
from hec_shipper.upstream import Upstream

logger = logging.getLogger(__name__)


class FlushResult(Enum):
    OK = "ok"
    RETRY = "retry"
    ERROR = "error"


_OUTCOME_RESULTS = {
    Outcome.SUCCESS: FlushResult.OK,
    Outcome.RETRY: FlushResult.RETRY,
    Outcome.PERMANENT_FAILURE: FlushResult.ERROR,
}


class SplunkOutput:
    """Ships msgpack chunks to an HTTP Event Collector.

    Each ``flush`` is one self-contained attempt; the caller decides whether
    and when to retry based on the returned FlushResult.
    """

    def __init__(
        self,
        config: Config,
        upstream: Upstream | None = None,
        metrics: FlushMetrics | None = None,
    ):
        self._config = config
        self._mode = config.send_mode
        self._upstream = upstream or Upstream(config)
        self._metrics = metrics or FlushMetrics()

    @property
    def config(self) -> Config:
        return self._config

    @property
    def metrics(self) -> FlushMetrics:
        return self._metrics

    def format_test(self, data: bytes) -> bytes:
        """Format a chunk without sending it."""
        payload, _ = format_chunk(data, self._mode)
        return payload

    def flush(self, data: bytes) -> FlushResult:
        """Format and deliver one chunk."""
        with self._upstream.connection() as conn:
            if conn is None:
                self._metrics.record_flush(FlushResult.RETRY.value)
                return FlushResult.RETRY

            stats = BatchStats()
            try:
                payload, size = format_chunk(data, self._mode, stats)
            except FormatError as exc:
                logger.error("Cannot format chunk of %d bytes: %s", len(data), exc)
                self._metrics.record_flush(FlushResult.ERROR.value, skipped=stats.skipped)
                return FlushResult.ERROR

            if not payload:
                logger.info("Nothing to send: all %d record(s) skipped", stats.skipped)
                self._metrics.record_flush(FlushResult.OK.value, skipped=stats.skipped)
                return FlushResult.OK

            start = time.monotonic()
            outcome = deliver(payload, self._config, conn)
            elapsed_ms = (time.monotonic() - start) * 1000

        result = _OUTCOME_RESULTS[outcome]
        self._metrics.record_flush(
            result.value,
            records=stats.formatted,
            skipped=stats.skipped,
            payload_bytes=size,
            latency_ms=elapsed_ms,
        )
        logger.debug(
            "Flushed %d record(s), %d bytes -> %s (%.1fms)",
            stats.formatted,
            size,
            result.value,
            elapsed_ms,
        )
        return result

    def close(self):
        self._upstream.close()
        logger.info("Output metrics: %s", self._metrics.snapshot())
