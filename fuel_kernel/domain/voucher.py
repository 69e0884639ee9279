"""
Voucher code generation.

Codes look like ``FRT-20240101-7KQ4M``: a configured prefix, the UTC request
date, and a random suffix drawn from an alphabet without look-alike
characters (no 0/O, 1/I/L).  Uniqueness is the issuer's job; this module only
draws candidates.
"""

import random
from datetime import datetime

UNAMBIGUOUS_ALPHABET = "23456789ABCDEFGHJKMNPQRSTUVWXYZ"


class VoucherCodeGenerator:
    """
    Draws voucher code candidates.

    Args:
        prefix: Leading code segment.
        suffix_length: Number of random characters.
        rng: Random source; tests pass a seeded ``random.Random``.
    """

    def __init__(
        self,
        prefix: str = "FRT",
        suffix_length: int = 5,
        alphabet: str = UNAMBIGUOUS_ALPHABET,
        rng: random.Random | None = None,
    ):
        if not prefix:
            raise ValueError("prefix must be non-empty")
        if suffix_length < 1:
            raise ValueError("suffix_length must be at least 1")
        if len(set(alphabet)) < 2:
            raise ValueError("alphabet needs at least two distinct characters")
        self.prefix = prefix
        self.suffix_length = suffix_length
        self.alphabet = alphabet
        self._rng = rng or random.SystemRandom()

    def candidate(self, when: datetime) -> str:
        suffix = "".join(self._rng.choices(self.alphabet, k=self.suffix_length))
        return f"{self.prefix}-{when.strftime('%Y%m%d')}-{suffix}"


def is_well_formed(code: str, prefix: str, suffix_length: int) -> bool:
    """Check the ``PREFIX-YYYYMMDD-SUFFIX`` shape of ``code``."""
    parts = code.split("-")
    if len(parts) != 3:
        return False
    head, day, suffix = parts
    return (
        head == prefix
        and len(day) == 8
        and day.isdigit()
        and len(suffix) == suffix_length
        and all(ch in UNAMBIGUOUS_ALPHABET for ch in suffix)
    )
