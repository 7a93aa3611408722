"""Chunk decoder — lazily turns a msgpack buffer into Record objects.

A chunk is a plain concatenation of msgpack arrays ``[timestamp, body]``.
Timestamps come as integer seconds, float seconds, or the EventTime
extension (ext type 0: big-endian uint32 seconds + uint32 nanoseconds).
"""

import logging
import struct
import time
from collections.abc import Iterator, Mapping
from dataclasses import dataclass

import msgpack

logger = logging.getLogger(__name__)

EVENT_TIME_EXT = 0


@dataclass(frozen=True)
class Record:
    timestamp: float
    body: Mapping


@dataclass
class BatchStats:
    """Per-batch counters filled in while decoding and formatting."""

    decoded: int = 0
    formatted: int = 0
    skipped: int = 0


def decode_time(obj) -> float | None:
    """Convert an envelope timestamp to fractional seconds, or None if unknown."""
    if isinstance(obj, bool):
        return None
    if isinstance(obj, int):
        return float(obj) if obj >= 0 else None
    if isinstance(obj, float):
        return obj
    if isinstance(obj, msgpack.ExtType) and obj.code == EVENT_TIME_EXT and len(obj.data) == 8:
        seconds, nanoseconds = struct.unpack("!II", obj.data)
        return seconds + nanoseconds / 1e9
    if isinstance(obj, msgpack.Timestamp):
        return obj.to_unix()
    return None


def encode_event_time(ts: float) -> msgpack.ExtType:
    """Build an EventTime extension value for *ts* (seconds since the epoch)."""
    seconds = int(ts)
    nanoseconds = int(round((ts - seconds) * 1e9))
    if nanoseconds >= 1_000_000_000:
        seconds, nanoseconds = seconds + 1, nanoseconds - 1_000_000_000
    return msgpack.ExtType(EVENT_TIME_EXT, struct.pack("!II", seconds, nanoseconds))


def encode_record(body: Mapping, timestamp: float | None = None, event_time: bool = True) -> bytes:
    """Pack one ``[timestamp, body]`` envelope the way the log router stores it."""
    if timestamp is None:
        timestamp = time.time()
    ts = encode_event_time(timestamp) if event_time else timestamp
    return msgpack.packb([ts, body], use_bin_type=True)


def _ext_hook(code: int, data: bytes):
    """Decode extension values inside a chunk.

    EventTime becomes fractional seconds; any other extension is rendered as
    its payload text.
    """
    ts = decode_time(msgpack.ExtType(code, data))
    if ts is not None:
        return ts
    return data.decode("utf-8", errors="replace")


def iter_records(data: bytes, stats: BatchStats | None = None) -> Iterator[Record]:
    """Yield each well-formed Record in *data*, in order.

    Malformed envelopes are skipped with a warning. Decoding stops at the
    first corrupt or truncated object; records before it are still yielded.
    Each call starts a fresh pass over the buffer.
    """
    if stats is None:
        stats = BatchStats()
    unpacker = msgpack.Unpacker(
        raw=False,
        strict_map_key=False,
        unicode_errors="replace",
        ext_hook=_ext_hook,
        # the whole chunk is fed at once
        max_buffer_size=max(len(data), 1),
    )
    unpacker.feed(data)

    index = -1
    consumed = 0  # end offset of the last complete object
    while True:
        try:
            obj = unpacker.unpack()
        except msgpack.OutOfData:
            leftover = len(data) - consumed
            if leftover:
                logger.warning("Truncated chunk: %d trailing bytes not decoded", leftover)
            return
        except (msgpack.UnpackException, ValueError, TypeError) as exc:
            logger.warning("Corrupt chunk data at offset %d: %s", consumed, exc)
            return

        consumed = unpacker.tell()
        index += 1
        stats.decoded += 1
        reason = _envelope_problem(obj)
        if reason:
            stats.skipped += 1
            logger.warning("Skipping record #%d: %s", index, reason)
            continue

        yield Record(timestamp=decode_time(obj[0]), body=obj[1])


def _envelope_problem(obj) -> str | None:
    if not isinstance(obj, (list, tuple)) or len(obj) != 2:
        return "not a [timestamp, body] envelope"
    if decode_time(obj[0]) is None:
        return f"invalid timestamp {obj[0]!r}"
    if not isinstance(obj[1], Mapping):
        return f"body is {type(obj[1]).__name__}, expected a map"
    return None
