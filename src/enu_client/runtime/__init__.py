"""Runtime helpers for the enu_client SDK"""

from .errors import EnuError, ErrorCode
from .names import name_to_int, int_to_name, is_valid_name
from .asset import Asset, Symbol
from .callbacks import maybe_await, resolve_provider

__all__ = [
    "EnuError",
    "ErrorCode",
    "name_to_int",
    "int_to_name",
    "is_valid_name",
    "Asset",
    "Symbol",
    "maybe_await",
    "resolve_provider",
]
