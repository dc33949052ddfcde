"""
Cryptographic primitives for the enu_client SDK.

SECP256K1 keys and signatures backed by the ``ecdsa`` library.
"""

from .ecc import (
    PrivateKey,
    PublicKey,
    Signature,
    sha256,
    is_valid_private,
    is_valid_public,
    private_to_public,
)

__all__ = [
    "PrivateKey",
    "PublicKey",
    "Signature",
    "sha256",
    "is_valid_private",
    "is_valid_public",
    "private_to_public",
]
