"""Key path selectors used to pull a single value out of a record body.

Grammar::

    path      := ['$'] key subscript*
    key       := one or more characters up to '[' or end of input
    subscript := '[' ( quoted | index ) ']'
    quoted    := "'" chars "'" | '"' chars '"'
    index     := non-negative integer

Examples: ``msg``, ``$log``, ``$kubernetes['labels']['app']``, ``$items[0]``.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

_MISSING = object()


@dataclass(frozen=True)
class KeyPath:
    key: str
    subscripts: tuple = ()

    @classmethod
    def parse(cls, pattern: str) -> "KeyPath":
        """Parse a key path pattern. Raises ValueError if malformed."""
        if pattern is None:
            raise ValueError("Key path is empty")
        text = pattern.strip()
        if text.startswith("$"):
            text = text[1:]

        end = text.find("[")
        key = text if end == -1 else text[:end]
        if not key:
            raise ValueError(f"Key path {pattern!r} has no key name")
        if "]" in key:
            raise ValueError(f"Unexpected ']' in key path {pattern!r}")

        subscripts = []
        pos = len(key)
        while pos < len(text):
            if text[pos] != "[":
                raise ValueError(f"Unexpected {text[pos]!r} at offset {pos} in {pattern!r}")
            if pos + 1 < len(text) and text[pos + 1] in ("'", '"'):
                # quoted keys may contain ']'
                quote_end = text.find(text[pos + 1], pos + 2)
                if quote_end == -1:
                    raise ValueError(f"Unterminated quote in key path {pattern!r}")
                close = text.find("]", quote_end)
            else:
                close = text.find("]", pos)
            if close == -1:
                raise ValueError(f"Unterminated subscript in key path {pattern!r}")
            subscripts.append(_parse_subscript(text[pos + 1:close], pattern))
            pos = close + 1

        return cls(key=key, subscripts=tuple(subscripts))

    def resolve(self, body) -> tuple[bool, object]:
        """Walk *body* along the path. Returns (found, value)."""
        current = _lookup(body, self.key)
        for sub in self.subscripts:
            if current is _MISSING:
                break
            current = _lookup(current, sub)
        if current is _MISSING:
            return False, None
        return True, current

    def __str__(self) -> str:
        parts = [f"${self.key}"]
        for sub in self.subscripts:
            parts.append(f"[{sub}]" if isinstance(sub, int) else f"['{sub}']")
        return "".join(parts)


def _parse_subscript(inner: str, pattern: str):
    inner = inner.strip()
    if len(inner) >= 2 and inner[0] == inner[-1] and inner[0] in ("'", '"'):
        name = inner[1:-1]
        if not name:
            raise ValueError(f"Empty subscript key in {pattern!r}")
        return name
    if inner.isdigit():
        return int(inner)
    raise ValueError(f"Invalid subscript [{inner}] in {pattern!r}")


def _lookup(container, sub):
    if isinstance(sub, str):
        if isinstance(container, Mapping):
            return container.get(sub, _MISSING)
        return _MISSING
    # integer index: only real sequences, never strings or bytes
    if isinstance(container, Sequence) and not isinstance(container, (str, bytes, bytearray)):
        if 0 <= sub < len(container):
            return container[sub]
    return _MISSING
