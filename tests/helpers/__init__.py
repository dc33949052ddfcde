from .mocks import MockChainApi
from .factories import (
    CHAIN_ID,
    HEADERS,
    PUBKEY,
    WIF,
    currency_abi,
    mk_client,
    mk_key,
)

__all__ = [
    "MockChainApi",
    "CHAIN_ID",
    "HEADERS",
    "PUBKEY",
    "WIF",
    "currency_abi",
    "mk_client",
    "mk_key",
]
