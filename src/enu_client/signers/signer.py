"""
Transaction signing.

Signatures cover sha256(chain_id || packed transaction || 32 zero bytes)
and are canonical compact secp256k1 signatures with a recovery id,
rendered as ``SIG_K1_...`` strings.
"""

from __future__ import annotations
import logging
from typing import Any, Callable, List, Optional, Sequence, Union

from ..crypto.ecc import PrivateKey, PublicKey, Signature, sha256
from ..keys.negotiator import parse_key
from ..runtime.callbacks import resolve_provider
from ..runtime.errors import EnuError, ErrorCode
from ..tx.serializer import signing_buffer, signing_digest

logger = logging.getLogger(__name__)

SignProvider = Callable[..., Any]


class SignerError(EnuError):
    """Base exception for signer operations."""

    def __init__(self, message: str, details: Optional[dict] = None, cause: Optional[Exception] = None):
        super().__init__(message, ErrorCode.SIGN_PROVIDER_ERROR, details, cause)


def sign_buffer(buf: bytes, key: Union[PrivateKey, str, Any]) -> str:
    """
    Sign sha256(buf) with one key.

    This is the ``sign`` helper handed to custom sign providers.

    Args:
        buf: Signing buffer
        key: PrivateKey, private key string or signing capability

    Returns:
        ``SIG_K1_...`` signature string
    """
    signer = parse_key(key)
    if isinstance(signer, PublicKey):
        raise SignerError("A public key cannot sign", details={"key": signer.to_string()})
    return str(signer.sign_digest(sha256(buf)))


def _to_signature_string(value: Any) -> str:
    if isinstance(value, Signature):
        return value.to_string()
    if isinstance(value, str):
        return Signature.from_string(value).to_string()
    raise SignerError(f"Sign provider returned {type(value).__name__}, expected a signature")


class TransactionSigner:
    """
    Signs packed transactions for one chain.

    Example:
        ```python
        signer = TransactionSigner(chain_id)
        signatures = signer.sign(packed, [PrivateKey.from_string(wif)])
        ```
    """

    def __init__(self, chain_id: bytes):
        """
        Initialize signer.

        Args:
            chain_id: 32-byte chain id mixed into every signature
        """
        self.chain_id = chain_id

    def buffer(self, packed: bytes) -> bytes:
        return signing_buffer(self.chain_id, packed)

    def digest(self, packed: bytes) -> bytes:
        return signing_digest(self.chain_id, packed)

    def sign(self, packed: bytes, keys: Sequence[Any]) -> List[str]:
        """
        Sign with every key, preserving key order.

        Args:
            packed: Serialized transaction
            keys: Signing keys (anything with ``sign_digest``)

        Returns:
            Signature strings, one per key
        """
        digest = self.digest(packed)
        signatures = [str(key.sign_digest(digest)) for key in keys]
        logger.debug(f"Signed {digest.hex()} with {len(signatures)} key(s)")
        return signatures

    async def sign_with_provider(self, sign_provider: SignProvider, packed: bytes,
                                 transaction: Any) -> List[str]:
        """
        Delegate signing to a custom provider.

        The provider receives any of ``buf`` (the signing buffer), ``sign``
        (``sign(buf, key) -> str``) and ``transaction``, and returns a
        signature or a list of signatures, possibly as an awaitable.
        """
        try:
            result = await resolve_provider(
                sign_provider, buf=self.buffer(packed), sign=sign_buffer, transaction=transaction
            )
        except EnuError:
            raise
        except Exception as e:
            raise SignerError(f"Sign provider failed: {e}", cause=e)

        if result is None:
            raise SignerError("Sign provider returned no signature")
        if isinstance(result, (str, Signature)):
            result = [result]
        return [_to_signature_string(s) for s in result]


__all__ = ["SignerError", "TransactionSigner", "sign_buffer"]
