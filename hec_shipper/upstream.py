"""Upstream — a bounded pool of HTTP connections to the event collector."""

import logging
import queue
import threading
from contextlib import contextmanager

import requests

from hec_shipper.config import Config

logger = logging.getLogger(__name__)


class Connection:
    """One pooled HTTP session bound to the collector base URL."""

    def __init__(self, session: requests.Session, base_url: str, timeout: float, verify: bool = True):
        self._session = session
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._verify = verify

    @property
    def base_url(self) -> str:
        return self._base_url

    def post(self, path: str, data: bytes, headers: dict):
        return self._session.post(
            self._base_url + path,
            data=data,
            headers=headers,
            timeout=self._timeout,
            verify=self._verify,
        )

    def close(self):
        self._session.close()


class Upstream:
    """Hands out at most ``max_connections`` connections at a time.

    Thread-safe: concurrent flushes each borrow their own connection.
    """

    def __init__(self, config: Config, session_factory=requests.Session):
        self._config = config
        self._pool: queue.Queue = queue.Queue(maxsize=config.max_connections)
        self._closed = threading.Event()
        for _ in range(config.max_connections):
            self._pool.put(
                Connection(
                    session_factory(),
                    config.base_url,
                    timeout=config.timeout,
                    verify=config.tls_verify,
                )
            )
        logger.info(
            "Upstream %s ready with %d connection(s)", config.base_url, config.max_connections
        )

    @property
    def available(self) -> int:
        return self._pool.qsize()

    def acquire(self, timeout: float = 0) -> Connection | None:
        """Borrow a connection, or return None if none is free in time."""
        if self._closed.is_set():
            logger.warning("Upstream %s is closed", self._config.base_url)
            return None
        try:
            if timeout > 0:
                return self._pool.get(timeout=timeout)
            return self._pool.get_nowait()
        except queue.Empty:
            logger.warning("No upstream connection available for %s", self._config.base_url)
            return None

    def release(self, conn: Connection):
        if self._closed.is_set():
            conn.close()
            return
        try:
            self._pool.put_nowait(conn)
        except queue.Full:
            conn.close()

    @contextmanager
    def connection(self, timeout: float = 0):
        """Yield a connection (or None) and always give it back."""
        conn = self.acquire(timeout)
        try:
            yield conn
        finally:
            if conn is not None:
                self.release(conn)

    def close(self):
        self._closed.set()
        while True:
            try:
                conn = self._pool.get_nowait()
            except queue.Empty:
                break
            conn.close()
