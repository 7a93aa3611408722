"""Gzip compression for collector payloads, with fallback to the raw bytes."""

import gzip
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class CompressionResult:
    data: bytes
    compressed: bool
    original_size: int
    compressed_size: int

    @property
    def ratio(self) -> float:
        return self.original_size / self.compressed_size if self.compressed_size > 0 else 1.0


def compress_payload(data: bytes) -> bytes:
    """Compress data with gzip (the format Content-Encoding: gzip announces)."""
    return gzip.compress(data)


def try_compress(data: bytes) -> CompressionResult:
    """Compress data, or hand back the original bytes if compression fails.

    Compression is an optimization only: a failure is logged and the payload
    goes out uncompressed.
    """
    original_size = len(data)
    try:
        compressed = compress_payload(data)
    except Exception:
        logger.exception("cannot gzip payload, disabling compression")
        return CompressionResult(
            data=data,
            compressed=False,
            original_size=original_size,
            compressed_size=original_size,
        )

    return CompressionResult(
        data=compressed,
        compressed=True,
        original_size=original_size,
        compressed_size=len(compressed),
    )
