"""IAT round signatures.

An IAT signature is a tamper-evidence label, not a cryptographic proof: a
32-bit polynomial rolling hash over the round number, topic and timestamp,
followed by a random suffix. It must never be presented as a security
control.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime
import random
import string

SIGNATURE_PREFIX = "IAT"
SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
SUFFIX_LENGTH = 6

_MASK_32 = 0xFFFFFFFF


def _utf16_code_units(text: str) -> Iterator[int]:
    data = text.encode("utf-16-le")
    for i in range(0, len(data), 2):
        yield data[i] | (data[i + 1] << 8)


def rolling_hash(text: str) -> int:
    """32-bit ``h * 31 + unit`` hash over UTF-16 code units, unsigned."""
    value = 0
    for unit in _utf16_code_units(text):
        value = (value * 31 + unit) & _MASK_32
    return value


def signature_payload(round_number: int, topic: str, timestamp: datetime) -> str:
    return f"{round_number}:{topic}:{int(timestamp.timestamp() * 1000)}"


def generate_signature(
    round_number: int,
    topic: str,
    timestamp: datetime,
    *,
    rng: random.Random | None = None,
) -> str:
    """Build an ``IAT-<HEX>-<suffix>`` label for a round.

    Args:
        round_number: Round being signed.
        topic: Topic snapshot of the round.
        timestamp: Round timestamp.
        rng: Random source for the suffix; pass a seeded one for
            reproducible output.
    """
    source = rng or random.Random()
    digest = rolling_hash(signature_payload(round_number, topic, timestamp))
    suffix = "".join(source.choice(SUFFIX_ALPHABET) for _ in range(SUFFIX_LENGTH))
    return f"{SIGNATURE_PREFIX}-{digest:08X}-{suffix}"


def verify_signature_hash(
    signature: str,
    round_number: int,
    topic: str,
    timestamp: datetime,
) -> bool:
    """True if the hash part of ``signature`` matches the round's fields.

    Detects accidental edits to a round's topic or timestamp; anyone can
    recompute it, so it proves nothing about authorship.
    """
    parts = signature.split("-")
    if len(parts) != 3 or parts[0] != SIGNATURE_PREFIX:
        return False
    expected = rolling_hash(signature_payload(round_number, topic, timestamp))
    return parts[1] == f"{expected:08X}"
