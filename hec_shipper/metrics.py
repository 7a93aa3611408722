"""Metrics collector — thread-safe counters for collector flushes."""

import threading
import time


class FlushMetrics:
    """Collects and reports metrics about flushes to the event collector."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._flushes: int = 0
        self._records_sent: int = 0
        self._records_skipped: int = 0
        self._bytes_sent: int = 0
        self._outcomes: dict = {}
        self._latency_count: int = 0
        self._latency_total: float = 0.0
        self._latency_max: float = 0.0
        self._start_time = time.monotonic()

    def record_flush(
        self,
        result: str,
        records: int = 0,
        skipped: int = 0,
        payload_bytes: int = 0,
        latency_ms: float | None = None,
    ) -> None:
        """Record the result of one flush.

        Args:
            result: Result name, e.g. "ok", "retry" or "error".
            records: Records in the payload (only counted as sent on "ok").
            skipped: Records dropped while formatting.
            payload_bytes: Formatted payload size before compression.
            latency_ms: HTTP round-trip time, if a request was made.
        """
        with self._lock:
            self._flushes += 1
            self._outcomes[result] = self._outcomes.get(result, 0) + 1
            self._records_skipped += skipped
            if result == "ok":
                self._records_sent += records
                self._bytes_sent += payload_bytes
            if latency_ms is not None:
                self._latency_count += 1
                self._latency_total += latency_ms
                self._latency_max = max(self._latency_max, latency_ms)

    def snapshot(self) -> dict:
        """Return a point-in-time snapshot of all collected metrics."""
        with self._lock:
            return {
                "flushes": self._flushes,
                "records_sent": self._records_sent,
                "records_skipped": self._records_skipped,
                "bytes_sent": self._bytes_sent,
                "outcomes": dict(self._outcomes),
                "avg_latency_ms": (
                    self._latency_total / self._latency_count if self._latency_count else 0.0
                ),
                "max_latency_ms": self._latency_max,
                "uptime_seconds": time.monotonic() - self._start_time,
            }
