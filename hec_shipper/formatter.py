"""Record formatter — turns decoded records into an event collector payload.

Event endpoint payloads are compact JSON objects concatenated with no
separator::

    {"time":1000.5,"event":{"msg":"hi"}}{"time":1001.0,"event":{"msg":"yo"}}

Raw endpoint payloads carry one bare JSON value per line, each terminated
by a single newline.
"""

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

import msgpack

from hec_shipper.decoder import BatchStats, Record, iter_records
from hec_shipper.record_accessor import KeyPath

logger = logging.getLogger(__name__)

TIME_KEY = "time"
EVENT_KEY = "event"

# Max length of a record dump in the "could not process record" warning
MAX_RECORD_DUMP = 1048


class FormatError(Exception):
    """A batch could not be serialized; none of it should be sent."""


class OutputShape(Enum):
    WHOLE_BODY_WRAPPED = "whole_body_wrapped"
    WHOLE_BODY_RAW = "whole_body_raw"
    KEY_VALUE_WRAPPED = "key_value_wrapped"
    KEY_VALUE_RAW = "key_value_raw"

    @property
    def raw(self) -> bool:
        return self in (OutputShape.WHOLE_BODY_RAW, OutputShape.KEY_VALUE_RAW)

    @property
    def uses_key_path(self) -> bool:
        return self in (OutputShape.KEY_VALUE_WRAPPED, OutputShape.KEY_VALUE_RAW)


@dataclass(frozen=True)
class FormatMode:
    send_raw: bool = False
    event_key: KeyPath | None = None


def select_shape(mode: FormatMode) -> OutputShape:
    """Pick the output shape for a whole flush from the configured mode."""
    if mode.event_key is not None:
        return OutputShape.KEY_VALUE_RAW if mode.send_raw else OutputShape.KEY_VALUE_WRAPPED
    return OutputShape.WHOLE_BODY_RAW if mode.send_raw else OutputShape.WHOLE_BODY_WRAPPED


def build_event(record: Record, shape: OutputShape, key_path: KeyPath | None = None):
    """Build the structure to serialize for one record.

    Returns ``(True, structure)`` or ``(False, None)`` when the key path does
    not resolve against the record body.
    """
    if shape is OutputShape.WHOLE_BODY_RAW:
        return True, dict(record.body)
    if shape is OutputShape.WHOLE_BODY_WRAPPED:
        return True, {TIME_KEY: record.timestamp, EVENT_KEY: dict(record.body)}

    found, value = key_path.resolve(record.body)
    if not found:
        return False, None
    if shape is OutputShape.KEY_VALUE_RAW:
        return True, value
    return True, {TIME_KEY: record.timestamp, EVENT_KEY: value}


def _json_default(obj):
    """Render msgpack-only values that json cannot serialize natively."""
    if isinstance(obj, (bytes, bytearray)):
        return bytes(obj).decode("utf-8", errors="replace")
    if isinstance(obj, msgpack.Timestamp):
        return obj.to_unix()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def to_json(value) -> str:
    """Serialize to compact JSON, keeping non-ASCII text as-is."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=_json_default)


def _dump_for_log(body) -> str:
    try:
        text = to_json(body)
    except (TypeError, ValueError):
        text = repr(body)
    return text[:MAX_RECORD_DUMP]


def format_records(
    records: Iterable[Record], mode: FormatMode, stats: BatchStats | None = None
) -> bytes:
    """Format *records* into one payload for the configured endpoint.

    Records whose key path does not resolve are logged and skipped.
    Raises FormatError if any record cannot be serialized.
    """
    if stats is None:
        stats = BatchStats()
    shape = select_shape(mode)
    out = bytearray()

    for record in records:
        ok, event = build_event(record, shape, mode.event_key)
        if not ok:
            stats.skipped += 1
            logger.warning("could not process record: %s", _dump_for_log(record.body))
            continue

        try:
            fragment = to_json(event).encode("utf-8")
        except (TypeError, ValueError, MemoryError) as exc:
            out.clear()
            raise FormatError(f"cannot serialize record: {exc}") from exc

        out += fragment
        if shape.raw:
            out += b"\n"
        stats.formatted += 1

    return bytes(out)


def format_chunk(data: bytes, mode: FormatMode, stats: BatchStats | None = None) -> tuple[bytes, int]:
    """Decode a msgpack chunk and format it. Returns (payload, byte_count)."""
    if stats is None:
        stats = BatchStats()
    payload = format_records(iter_records(data, stats), mode, stats)
    return payload, len(payload)
