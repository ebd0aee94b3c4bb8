"""Short code generation.

Codes are drawn uniformly from a 62-symbol alphanumeric alphabet. With the
default length of 6 that is 62**6 (about 5.7e10) combinations, so collisions
are rare but possible; the allocator owns uniqueness, not this module.
"""

from nanoid import generate

__all__ = ["ALPHABET", "DEFAULT_CODE_LENGTH", "generate_short_code"]

ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"
DEFAULT_CODE_LENGTH = 6


def generate_short_code(length: int = DEFAULT_CODE_LENGTH) -> str:
    assert isinstance(length, int) and length > 0, f"length must be a positive integer, got {length!r}"
    return generate(ALPHABET, length)
