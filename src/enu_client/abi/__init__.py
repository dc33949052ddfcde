"""
Contract ABI support: schema parsing, caching and payload encoding.
"""

from .schema import (
    AbiDefinition,
    AbiField,
    AbiStruct,
    ParsedAbi,
    parse_abi,
)
from .cache import AbiCache
from .encoder import ActionEncoder, DEFAULT_SYMBOL_PRECISIONS, is_hex_data
from .bundled import SYSTEM_CONTRACTS, bundled_abis, load_bundled_abi

__all__ = [
    "AbiDefinition",
    "AbiField",
    "AbiStruct",
    "ParsedAbi",
    "parse_abi",
    "AbiCache",
    "ActionEncoder",
    "DEFAULT_SYMBOL_PRECISIONS",
    "is_hex_data",
    "SYSTEM_CONTRACTS",
    "bundled_abis",
    "load_bundled_abi",
]
