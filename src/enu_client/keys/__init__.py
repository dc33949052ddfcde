"""
Key storage and signing key negotiation.
"""

from .keystore import InMemoryKeyStore, KeyInfo, KeyStore, KeyStoreError
from .negotiator import KeyNegotiator, parse_key

__all__ = [
    "InMemoryKeyStore",
    "KeyInfo",
    "KeyStore",
    "KeyStoreError",
    "KeyNegotiator",
    "parse_key",
]
