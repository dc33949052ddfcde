"""
Asset and symbol value types.

An asset string such as ``"1.0000 ENU"`` carries its own decimal precision:
the number of digits after the decimal point. The binary form is an int64
amount in the smallest unit followed by the symbol (precision byte plus up
to seven upper-case code characters, zero padded).
"""

from __future__ import annotations
from dataclasses import dataclass
import re

from .errors import EncodingError

MAX_PRECISION = 18
_SYMBOL_CODE = re.compile(r"^[A-Z]{1,7}$")
_ASSET = re.compile(r"^(-?)(\d+)(?:\.(\d*))?\s+([A-Z]{1,7})$")


@dataclass(frozen=True)
class Symbol:
    """Token symbol: precision plus code."""

    precision: int
    code: str

    def __post_init__(self):
        if not _SYMBOL_CODE.match(self.code):
            raise EncodingError(f"Invalid symbol code {self.code!r}")
        if not 0 <= self.precision <= MAX_PRECISION:
            raise EncodingError(f"Symbol precision {self.precision} out of range")

    @classmethod
    def parse(cls, text: str) -> Symbol:
        """Parse ``"4,ENU"``."""
        try:
            precision, code = text.split(",", 1)
            return cls(int(precision), code.strip())
        except (ValueError, AttributeError) as e:
            raise EncodingError(f"Invalid symbol {text!r}, expected 'precision,CODE'", cause=e)

    def to_int(self) -> int:
        """Pack into the uint64 symbol value."""
        value = self.precision
        for i, ch in enumerate(self.code):
            value |= ord(ch) << (8 * (i + 1))
        return value

    @classmethod
    def from_int(cls, value: int) -> Symbol:
        precision = value & 0xFF
        code = []
        value >>= 8
        while value:
            code.append(chr(value & 0xFF))
            value >>= 8
        return cls(precision, "".join(code))

    def __str__(self) -> str:
        return f"{self.precision},{self.code}"


def symbol_code_to_int(code: str) -> int:
    """Pack a bare symbol code (no precision byte)."""
    if not _SYMBOL_CODE.match(code or ""):
        raise EncodingError(f"Invalid symbol code {code!r}")
    value = 0
    for i, ch in enumerate(code):
        value |= ord(ch) << (8 * i)
    return value


def int_to_symbol_code(value: int) -> str:
    code = []
    while value:
        code.append(chr(value & 0xFF))
        value >>= 8
    return "".join(code)


@dataclass(frozen=True)
class Asset:
    """Quantity of a token, e.g. ``Asset(10000, Symbol(4, "ENU"))`` is ``1.0000 ENU``."""

    amount: int
    symbol: Symbol

    @classmethod
    def parse(cls, text: str) -> Asset:
        """
        Parse an asset string.

        Args:
            text: Quantity such as ``"1.0000 ENU"`` or ``"10000 XYZ"``

        Returns:
            Asset with precision taken from the digits after the point
        """
        if not isinstance(text, str):
            raise EncodingError(f"Asset must be a string like '1.0000 ENU', got {type(text).__name__}")
        match = _ASSET.match(text.strip())
        if not match:
            raise EncodingError(f"Invalid asset {text!r}")
        sign, whole, fraction, code = match.groups()
        fraction = fraction or ""
        amount = int(whole + fraction)
        if sign:
            amount = -amount
        return cls(amount, Symbol(len(fraction), code))

    @property
    def precision(self) -> int:
        return self.symbol.precision

    def __str__(self) -> str:
        sign = "-" if self.amount < 0 else ""
        digits = str(abs(self.amount))
        precision = self.symbol.precision
        if precision:
            digits = digits.rjust(precision + 1, "0")
            digits = f"{digits[:-precision]}.{digits[-precision:]}"
        return f"{sign}{digits} {self.symbol.code}"
