from __future__ import annotations

import hashlib


UNIT_DIVISOR = 0xFFFFFFFF


def sha256_pair(left: str, right: str) -> str:
    encoded = f"{left}{right}".encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def hash_to_unit(digest: str) -> float:
    """Map the leading 32 bits of a hex digest onto [0, 1].

    The divisor is 2**32 - 1, so an all-ones prefix yields exactly 1.0.
    Verifiers must use the same divisor to reproduce rolls bit for bit.
    """
    return int(digest[:8], 16) / UNIT_DIVISOR
