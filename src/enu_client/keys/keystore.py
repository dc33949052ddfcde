"""
Key storage.

Keystores double as key providers: asked without public keys they
disclose only the public keys they hold; asked again with the subset the
chain requires, they hand out the matching private keys.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union
import logging

from ..crypto.ecc import PrivateKey, PublicKey
from ..runtime.errors import EnuError, ErrorCode

logger = logging.getLogger(__name__)


class KeyStoreError(EnuError):
    """Key store specific errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.INVALID_KEY, details)


class KeyInfo:
    """
    Information about a stored key.

    Contains metadata about keys without exposing private data.
    """

    def __init__(self, key_id: str, public_key: PublicKey, created_at: int,
                 metadata: Optional[Dict[str, Any]] = None):
        """
        Initialize key information.

        Args:
            key_id: Unique identifier for the key
            public_key: Public key of the stored private key
            created_at: Creation timestamp (Unix seconds)
            metadata: Optional additional metadata
        """
        self.key_id = key_id
        self.public_key = public_key
        self.created_at = created_at
        self.metadata = metadata or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keyId": self.key_id,
            "publicKey": self.public_key.to_string(),
            "createdAt": self.created_at,
            "metadata": self.metadata,
        }

    def __repr__(self) -> str:
        return f"KeyInfo(id='{self.key_id}', public_key='{self.public_key}')"


class KeyStore(ABC):
    """
    Abstract key store interface.

    Subclasses implement storage; the two-phase provider protocol is
    shared.
    """

    @abstractmethod
    def store_key(self, key: Union[PrivateKey, str], key_id: Optional[str] = None, **metadata) -> KeyInfo:
        """
        Store a private key.

        Args:
            key: PrivateKey or WIF / PVT_K1_ string
            key_id: Identifier; defaults to the public key string
            **metadata: Additional metadata

        Returns:
            Key information

        Raises:
            KeyStoreError: If the id is taken
        """

    @abstractmethod
    def get_key(self, key_id: str) -> Optional[PrivateKey]:
        pass

    @abstractmethod
    def list_keys(self) -> List[KeyInfo]:
        pass

    @abstractmethod
    def delete_key(self, key_id: str) -> bool:
        pass

    def has_key(self, key_id: str) -> bool:
        return self.get_key(key_id) is not None

    def public_keys(self) -> List[str]:
        """Public key strings of all stored keys, in storage order."""
        return [info.public_key.to_string() for info in self.list_keys()]

    def find_by_public_key(self, public_key: Union[PublicKey, str]) -> Optional[PrivateKey]:
        """Private key whose public key matches, if stored."""
        for info in self.list_keys():
            if info.public_key == public_key:
                return self.get_key(info.key_id)
        return None

    def key_provider(self, transaction: Any = None, pubkeys: Optional[List[str]] = None) -> List[str]:
        """
        Two-phase key provider.

        Args:
            transaction: Transaction being signed (unused by this store)
            pubkeys: Public keys required by the chain; None on the first call

        Returns:
            Public key strings when ``pubkeys`` is None, otherwise WIF
            private keys for the requested public keys that are stored
        """
        if pubkeys is None:
            return self.public_keys()

        keys = []
        for pubkey in pubkeys:
            private = self.find_by_public_key(pubkey)
            if private is None:
                logger.debug(f"Requested key {pubkey} is not in the key store")
                continue
            keys.append(private.to_wif())
        return keys

    def __len__(self) -> int:
        return len(self.list_keys())


class InMemoryKeyStore(KeyStore):
    """
    In-memory key store implementation.

    Stores keys in memory with no persistence.

    Example:
        ```python
        store = InMemoryKeyStore()
        store.store_key("5KQwrPbwdL6PhXujxW37FSSQZ1JiwsST4cqQzDeyXtP79zkvFD3")
        client = EnuClient(ClientConfig(key_provider=store))
        ```
    """

    def __init__(self, keys: Optional[List[Union[PrivateKey, str]]] = None):
        """Initialize memory key store, optionally with keys."""
        self._keys: Dict[str, PrivateKey] = {}
        self._key_info: Dict[str, KeyInfo] = {}
        for key in keys or []:
            self.store_key(key)

    def store_key(self, key: Union[PrivateKey, str], key_id: Optional[str] = None, **metadata) -> KeyInfo:
        """Store a private key in memory."""
        private = key if isinstance(key, PrivateKey) else PrivateKey.from_string(key)
        public = private.public_key()
        key_id = key_id or public.to_string()
        if key_id in self._keys:
            raise KeyStoreError(f"Key already exists: {key_id}")

        info = KeyInfo(
            key_id=key_id,
            public_key=public,
            created_at=int(datetime.now(timezone.utc).timestamp()),
            metadata=metadata,
        )
        self._keys[key_id] = private
        self._key_info[key_id] = info

        logger.debug(f"Stored key {key_id} in memory key store")
        return info

    def get_key(self, key_id: str) -> Optional[PrivateKey]:
        return self._keys.get(key_id)

    def get_key_info(self, key_id: str) -> Optional[KeyInfo]:
        return self._key_info.get(key_id)

    def list_keys(self) -> List[KeyInfo]:
        return list(self._key_info.values())

    def delete_key(self, key_id: str) -> bool:
        """Delete a key from memory."""
        if key_id in self._keys:
            del self._keys[key_id]
            del self._key_info[key_id]
            logger.debug(f"Deleted key {key_id} from memory key store")
            return True
        return False

    def __repr__(self) -> str:
        return f"InMemoryKeyStore(count={len(self._keys)})"


__all__ = ["KeyStore", "KeyStoreError", "KeyInfo", "InMemoryKeyStore"]
