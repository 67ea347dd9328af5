"""
Booking reference generation.

Confirmation numbers are meant to be read over the phone: upper-case base36,
a time-based prefix followed by a random suffix. Collision resistance is
sized for a single clinic, not a cryptographic guarantee.
"""

import secrets
import time
from typing import Callable, Optional

from core.constants import CONFIRMATION_NUMBER_ALPHABET, CONFIRMATION_NUMBER_SUFFIX_LENGTH


def to_base36(value: int) -> str:
    """Encode a non-negative integer in upper-case base36."""
    if value < 0:
        raise ValueError("value must be non-negative")
    if value == 0:
        return "0"
    digits = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    encoded = []
    while value:
        value, remainder = divmod(value, 36)
        encoded.append(digits[remainder])
    return "".join(reversed(encoded))


def new_confirmation_number(
    now: Optional[Callable[[], float]] = None,
    suffix_length: int = CONFIRMATION_NUMBER_SUFFIX_LENGTH,
) -> str:
    """
    Generate a human-shareable booking reference such as ``LZ4K9QX2-7HQD``.

    The prefix is the current time in milliseconds (base36); the suffix is
    drawn from ``secrets`` so two bookings in the same millisecond still differ
    with high probability.
    """
    clock = now or time.time
    prefix = to_base36(int(clock() * 1000))
    suffix = "".join(secrets.choice(CONFIRMATION_NUMBER_ALPHABET) for _ in range(suffix_length))
    return f"{prefix}-{suffix}"
