"""
Account / action / permission name encoding.

Names are up to 13 characters from ``.12345a-z`` packed into a uint64:
the first 12 characters take 5 bits each, the 13th takes the last 4 bits.
"""

from __future__ import annotations

from .errors import EnuError, ErrorCode

CHARMAP = ".12345abcdefghijklmnopqrstuvwxyz"
MAX_NAME_LENGTH = 13


def _char_to_symbol(c: str) -> int:
    if "a" <= c <= "z":
        return ord(c) - ord("a") + 6
    if "1" <= c <= "5":
        return ord(c) - ord("1") + 1
    if c == ".":
        return 0
    raise EnuError(f"Invalid character {c!r} in name", ErrorCode.INVALID_NAME)


def name_to_int(name: str) -> int:
    """
    Encode a name string as its uint64 value.

    Args:
        name: Name made of ``.12345abcdefghijklmnopqrstuvwxyz``

    Returns:
        Unsigned 64-bit integer

    Raises:
        EnuError: If the name is too long or has invalid characters
    """
    if not isinstance(name, str):
        raise EnuError(f"Name must be a string, got {type(name).__name__}", ErrorCode.INVALID_NAME)
    if len(name) > MAX_NAME_LENGTH:
        raise EnuError(f"Name {name!r} is longer than {MAX_NAME_LENGTH} characters", ErrorCode.INVALID_NAME)

    value = 0
    for i in range(MAX_NAME_LENGTH):
        c = _char_to_symbol(name[i]) if i < len(name) else 0
        if i < 12:
            c &= 0x1F
            c <<= 64 - 5 * (i + 1)
        else:
            if c > 0x0F:
                raise EnuError(f"Thirteenth character of {name!r} must be in .1-5a-j", ErrorCode.INVALID_NAME)
            c &= 0x0F
        value |= c
    return value


def int_to_name(value: int) -> str:
    """Decode a uint64 back to its name string (trailing dots trimmed)."""
    chars = ["."] * MAX_NAME_LENGTH
    tmp = value
    for i in range(MAX_NAME_LENGTH):
        if i == 0:
            c = CHARMAP[tmp & 0x0F]
            tmp >>= 4
        else:
            c = CHARMAP[tmp & 0x1F]
            tmp >>= 5
        chars[MAX_NAME_LENGTH - 1 - i] = c
    return "".join(chars).rstrip(".")


def is_valid_name(name: str) -> bool:
    """Check that ``name`` survives an encode/decode round trip unchanged."""
    try:
        return int_to_name(name_to_int(name)) == name
    except EnuError:
        return False
