"""
Signing key negotiation.

Determines which private keys sign a transaction. A key provider may hand
out private keys directly, in which case exactly those sign. When it
discloses only public keys, the chain is asked which of them are required
and the provider is called a second time with that subset.

Accepted providers:

- a key string (WIF, ``PVT_K1_``, ``ENU...``, ``PUB_K1_``), PrivateKey or
  PublicKey, or a list of them;
- a callable taking any of ``transaction`` and ``pubkeys`` and returning
  one of the above, possibly as an awaitable;
- an awaitable resolving to one of the above (resolved once);
- an object exposing ``key_provider(transaction=..., pubkeys=...)``, such
  as a KeyStore.
"""

from __future__ import annotations
import asyncio
import inspect
import logging
from collections.abc import Mapping
from typing import Any, Callable, List, Optional, Tuple

from ..crypto.ecc import PrivateKey, PublicKey
from ..runtime.callbacks import maybe_await, resolve_provider
from ..runtime.errors import InvalidKeyError, NoSigningKeyError

logger = logging.getLogger(__name__)

RequiredKeysFn = Callable[[Any, List[str]], Any]


def parse_key(value: Any) -> Any:
    """
    Interpret one provided key.

    Returns:
        PrivateKey, PublicKey, or the value itself when it is a signing
        capability (exposes ``public_key`` and ``sign_digest``)

    Raises:
        InvalidKeyError: Not a recognizable key
    """
    if isinstance(value, (PrivateKey, PublicKey)):
        return value
    if hasattr(value, "sign_digest") and hasattr(value, "public_key"):
        return value
    if isinstance(value, str):
        if value.startswith("PVT_K1_"):
            return PrivateKey.from_string(value)
        if value.startswith("PUB_K1_") or value.startswith("ENU"):
            return PublicKey.from_string(value)
        return PrivateKey.from_string(value)
    raise InvalidKeyError(f"Unsupported key {type(value).__name__}")


def split_keys(values: List[Any]) -> Tuple[List[Any], List[PublicKey]]:
    """Separate provided keys into signing keys and public keys."""
    signers, publics = [], []
    for value in values:
        key = parse_key(value)
        if isinstance(key, PublicKey):
            publics.append(key)
        else:
            signers.append(key)
    return signers, publics


def dedupe_signers(signers: List[Any]) -> List[Any]:
    """Drop signing keys whose public key was already seen, keeping order."""
    seen = set()
    unique = []
    for signer in signers:
        public = signer.public_key()
        if public in seen:
            continue
        seen.add(public)
        unique.append(signer)
    return unique


class KeyNegotiator:
    """
    Two-phase key discovery.

    Example:
        ```python
        negotiator = KeyNegotiator(store, required_keys=api.get_required_keys)
        signers = await negotiator.negotiate(transaction)
        ```
    """

    def __init__(self, key_provider: Any = None, required_keys: Optional[RequiredKeysFn] = None):
        """
        Initialize the negotiator.

        Args:
            key_provider: Default provider, in any accepted form
            required_keys: ``(transaction, available_keys)`` returning
                ``{"required_keys": [...]}`` or a list, sync or async. When
                omitted every available key counts as required.
        """
        self.key_provider = key_provider
        self.required_keys = required_keys

    async def negotiate(self, transaction: Any, key_provider: Any = None) -> List[Any]:
        """
        Resolve the signing keys for a transaction.

        Args:
            transaction: Transaction to be signed
            key_provider: Provider for this call, overriding the default

        Returns:
            Signing keys, unique by public key, in provider order

        Raises:
            NoSigningKeyError: No usable private key
            InvalidKeyError: Provider returned something that is not a key
        """
        if key_provider is None:
            if inspect.isawaitable(self.key_provider):
                # one resolution shared by concurrent negotiations
                if not isinstance(self.key_provider, asyncio.Future):
                    self.key_provider = asyncio.ensure_future(self.key_provider)
                provider = await self.key_provider
                self.key_provider = provider
                logger.debug("Resolved awaitable key provider")
            else:
                provider = self.key_provider
        else:
            provider = await maybe_await(key_provider)
        if provider is None:
            raise NoSigningKeyError("No key provider configured")

        provided = await self._provide(provider, transaction, None)
        signers, publics = split_keys(provided)
        if signers:
            logger.debug(f"Key provider returned {len(signers)} private key(s)")
            return self._finish(signers)

        available = [p.to_string() for p in publics]
        if not available:
            raise NoSigningKeyError("Key provider returned no keys")

        required = await self._required(transaction, available)
        logger.debug(f"{len(required)} of {len(available)} available key(s) required")
        if not required:
            raise NoSigningKeyError(
                "None of the available keys are required", details={"available": available}
            )

        provided = await self._provide(provider, transaction, required)
        signers, _ = split_keys(provided)
        wanted = {PublicKey.from_string(k) for k in required}
        matching = [s for s in signers if s.public_key() in wanted]
        if len(matching) < len(signers):
            logger.warning(f"Dropped {len(signers) - len(matching)} key(s) not in the required set")
        return self._finish(matching, details={"required": required})

    async def _provide(self, provider: Any, transaction: Any, pubkeys: Optional[List[str]]) -> List[Any]:
        if provider is None:
            return []
        if isinstance(provider, (str, PrivateKey, PublicKey)):
            return [provider]
        if isinstance(provider, (list, tuple)):
            return list(provider)

        key_provider = getattr(provider, "key_provider", None)
        if key_provider is not None and callable(key_provider):
            provider = key_provider
        if callable(provider):
            result = await resolve_provider(provider, transaction=transaction, pubkeys=pubkeys)
            if callable(result) or hasattr(result, "key_provider"):
                raise InvalidKeyError("Key provider returned another provider")
            return await self._provide(result, transaction, pubkeys)

        if hasattr(provider, "sign_digest") and hasattr(provider, "public_key"):
            return [provider]
        raise InvalidKeyError(f"Unsupported key provider {type(provider).__name__}")

    async def _required(self, transaction: Any, available: List[str]) -> List[str]:
        if self.required_keys is None:
            return available
        response = await maybe_await(self.required_keys(transaction, available))
        if isinstance(response, Mapping):
            response = response.get("required_keys", [])
        return [str(k) for k in response]

    @staticmethod
    def _finish(signers: List[Any], details: Optional[dict] = None) -> List[Any]:
        unique = dedupe_signers(signers)
        if not unique:
            raise NoSigningKeyError("No signing key available", details=details)
        return unique


__all__ = ["KeyNegotiator", "parse_key", "split_keys", "dedupe_signers"]
