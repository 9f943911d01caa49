"""Utility helpers for the Watchshare service."""

from __future__ import annotations

import re
import secrets
import time
from datetime import datetime, timezone


CROCKFORD_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
ULID_LENGTH = 26
ULID_RE = re.compile(rf"[{CROCKFORD_ALPHABET}]{{{ULID_LENGTH}}}")

_TIMESTAMP_BITS = 48
_RANDOM_BITS = 80


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime, as stored in the database."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_ulid(timestamp_ms: int | None = None) -> str:
    """Return a new ULID: 48 bits of milliseconds followed by 80 random bits.

    The Crockford base32 encoding keeps identifiers lexicographically ordered
    by creation time.
    """

    if timestamp_ms is None:
        timestamp_ms = time.time_ns() // 1_000_000
    if not 0 <= timestamp_ms < 1 << _TIMESTAMP_BITS:
        raise ValueError("ULID timestamp out of range")

    value = (timestamp_ms << _RANDOM_BITS) | secrets.randbits(_RANDOM_BITS)
    chars: list[str] = []
    for _ in range(ULID_LENGTH):
        chars.append(CROCKFORD_ALPHABET[value & 0x1F])
        value >>= 5
    return "".join(reversed(chars))


def is_ulid(value: object) -> bool:
    return isinstance(value, str) and ULID_RE.fullmatch(value) is not None


def ulid_timestamp(value: str) -> int:
    """Return the millisecond timestamp encoded in ``value``."""

    if not is_ulid(value):
        raise ValueError(f"Not a ULID: {value!r}")
    decoded = 0
    for char in value:
        decoded = (decoded << 5) | CROCKFORD_ALPHABET.index(char)
    return decoded >> _RANDOM_BITS
