"""
SECP256K1 keys and signatures in the ledger's string formats.

- Private keys: WIF (``5...``) or ``PVT_K1_...``
- Public keys: ``ENU...`` (legacy prefix) or ``PUB_K1_...``
- Signatures: ``SIG_K1_...`` compact, canonical, with recovery id

Signing uses RFC 6979 deterministic nonces from the ``ecdsa`` library,
retrying with extra entropy until the signature is canonical.
"""

from __future__ import annotations
import hashlib
import os
from typing import Optional, Union

import base58
from ecdsa import SigningKey, VerifyingKey, SECP256k1, BadSignatureError
from ecdsa.util import sigencode_strings_canonize, sigdecode_string

from ..runtime.errors import InvalidKeyError, EnuError, ErrorCode

PUBLIC_KEY_PREFIX = "ENU"
K1_SUFFIX = b"K1"
MAX_SIGN_ATTEMPTS = 64


def sha256(data: Union[bytes, str]) -> bytes:
    """SHA-256 digest of bytes or a UTF-8 string."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).digest()


def ripemd160(data: bytes) -> bytes:
    h = hashlib.new('ripemd160')
    h.update(data)
    return h.digest()


def _check_encode(payload: bytes, suffix: bytes = b"") -> str:
    checksum = ripemd160(payload + suffix)[:4]
    return base58.b58encode(payload + checksum).decode("ascii")


def _check_decode(text: str, suffix: bytes = b"") -> bytes:
    try:
        raw = base58.b58decode(text)
    except ValueError as e:
        raise InvalidKeyError(f"Invalid base58 string {text!r}", cause=e)
    payload, checksum = raw[:-4], raw[-4:]
    if ripemd160(payload + suffix)[:4] != checksum:
        raise InvalidKeyError("Checksum mismatch")
    return payload


def _is_canonical(r: bytes, s: bytes) -> bool:
    return (
        not (r[0] & 0x80)
        and not (r[0] == 0 and not (r[1] & 0x80))
        and not (s[0] & 0x80)
        and not (s[0] == 0 and not (s[1] & 0x80))
    )


class PublicKey:
    """SECP256K1 public key (33-byte compressed form)."""

    def __init__(self, key_bytes: bytes):
        if len(key_bytes) != 33:
            raise InvalidKeyError(f"Public key must be 33 bytes, got {len(key_bytes)}")
        try:
            self._vk = VerifyingKey.from_string(key_bytes, curve=SECP256k1)
        except Exception as e:
            raise InvalidKeyError("Public key is not a valid curve point", cause=e)
        self.key_bytes = key_bytes

    @classmethod
    def from_string(cls, text: str) -> PublicKey:
        """
        Parse ``ENU...`` or ``PUB_K1_...``.

        Raises:
            InvalidKeyError: If the string is not a public key
        """
        if not isinstance(text, str):
            raise InvalidKeyError(f"Public key must be a string, got {type(text).__name__}")
        if text.startswith("PUB_K1_"):
            return cls(_check_decode(text[7:], K1_SUFFIX))
        if text.startswith(PUBLIC_KEY_PREFIX):
            return cls(_check_decode(text[len(PUBLIC_KEY_PREFIX):]))
        raise InvalidKeyError(f"Unrecognized public key format {text[:12]!r}")

    @classmethod
    def from_verifying_key(cls, vk: VerifyingKey) -> PublicKey:
        return cls(vk.to_string("compressed"))

    def to_string(self, prefix: str = PUBLIC_KEY_PREFIX) -> str:
        """Legacy string form, ``ENU`` + base58(key + ripemd160 checksum)."""
        return prefix + _check_encode(self.key_bytes)

    def to_k1_string(self) -> str:
        return "PUB_K1_" + _check_encode(self.key_bytes, K1_SUFFIX)

    def verify(self, signature: Union[Signature, str], digest: bytes) -> bool:
        """Verify a signature over a 32-byte digest."""
        if isinstance(signature, str):
            signature = Signature.from_string(signature)
        try:
            return self._vk.verify_digest(signature.rs, digest, sigdecode=sigdecode_string)
        except BadSignatureError:
            return False

    def __eq__(self, other) -> bool:
        if isinstance(other, PublicKey):
            return self.key_bytes == other.key_bytes
        if isinstance(other, str):
            try:
                return self.key_bytes == PublicKey.from_string(other).key_bytes
            except InvalidKeyError:
                return False
        return False

    def __hash__(self) -> int:
        return hash(self.key_bytes)

    def __str__(self) -> str:
        return self.to_string()

    def __repr__(self) -> str:
        return f"PublicKey('{self.to_string()}')"


class Signature:
    """Compact recoverable signature: header byte + r + s."""

    def __init__(self, data: bytes):
        if len(data) != 65:
            raise EnuError(f"Signature must be 65 bytes, got {len(data)}", ErrorCode.INVALID_KEY)
        self.data = data

    @property
    def recovery_id(self) -> int:
        return self.data[0] - 27 - 4

    @property
    def rs(self) -> bytes:
        return self.data[1:]

    @classmethod
    def from_string(cls, text: str) -> Signature:
        if not isinstance(text, str) or not text.startswith("SIG_K1_"):
            raise InvalidKeyError(f"Unrecognized signature format {str(text)[:12]!r}")
        return cls(_check_decode(text[7:], K1_SUFFIX))

    def to_string(self) -> str:
        return "SIG_K1_" + _check_encode(self.data, K1_SUFFIX)

    def recover(self, digest: bytes) -> PublicKey:
        """Recover the signing public key from a 32-byte digest."""
        candidates = VerifyingKey.from_public_key_recovery_with_digest(
            self.rs, digest, SECP256k1, hashfunc=hashlib.sha256, sigdecode=sigdecode_string
        )
        if not 0 <= self.recovery_id < len(candidates):
            raise InvalidKeyError(f"Bad recovery id {self.recovery_id}")
        return PublicKey.from_verifying_key(candidates[self.recovery_id])

    def __eq__(self, other) -> bool:
        return isinstance(other, Signature) and self.data == other.data

    def __hash__(self) -> int:
        return hash(self.data)

    def __str__(self) -> str:
        return self.to_string()


class PrivateKey:
    """
    SECP256K1 private key.

    Also serves as the default signing capability handed to the signer:
    anything exposing ``public_key()`` and ``sign_digest(digest)`` can sign.
    """

    def __init__(self, secret: Optional[bytes] = None):
        """
        Initialize private key.

        Args:
            secret: 32-byte secret; random when omitted
        """
        if secret is None:
            secret = os.urandom(32)
        if len(secret) != 32:
            raise InvalidKeyError(f"Private key must be 32 bytes, got {len(secret)}")
        try:
            self._sk = SigningKey.from_string(secret, curve=SECP256k1)
        except Exception as e:
            raise InvalidKeyError("Private key is out of range", cause=e)
        self.secret = secret
        self._public: Optional[PublicKey] = None

    @classmethod
    def from_seed(cls, seed: Union[str, bytes]) -> PrivateKey:
        """Deterministic key: sha256 of the seed. Never use weak seeds in production."""
        return cls(sha256(seed))

    @classmethod
    def from_string(cls, text: str) -> PrivateKey:
        """
        Parse a WIF or ``PVT_K1_`` private key string.

        Raises:
            InvalidKeyError: If the string is not a private key
        """
        if not isinstance(text, str):
            raise InvalidKeyError(f"Private key must be a string, got {type(text).__name__}")
        if text.startswith("PVT_K1_"):
            return cls(_check_decode(text[7:], K1_SUFFIX))
        try:
            raw = base58.b58decode(text)
        except ValueError as e:
            raise InvalidKeyError("Invalid WIF private key", cause=e)
        if len(raw) != 37 or raw[0] != 0x80:
            raise InvalidKeyError("Invalid WIF private key")
        payload, checksum = raw[:-4], raw[-4:]
        if sha256(sha256(payload))[:4] != checksum:
            raise InvalidKeyError("WIF checksum mismatch")
        return cls(payload[1:])

    def to_wif(self) -> str:
        payload = b"\x80" + self.secret
        return base58.b58encode(payload + sha256(sha256(payload))[:4]).decode("ascii")

    def to_k1_string(self) -> str:
        return "PVT_K1_" + _check_encode(self.secret, K1_SUFFIX)

    def public_key(self) -> PublicKey:
        if self._public is None:
            self._public = PublicKey.from_verifying_key(self._sk.get_verifying_key())
        return self._public

    def sign_digest(self, digest: bytes) -> Signature:
        """
        Produce a canonical recoverable signature over a 32-byte digest.

        Args:
            digest: SHA-256 digest to sign

        Returns:
            Signature whose header byte encodes the recovery id
        """
        if len(digest) != 32:
            raise EnuError(f"Digest must be 32 bytes, got {len(digest)}", ErrorCode.INVALID_KEY)

        public = self.public_key()
        for attempt in range(MAX_SIGN_ATTEMPTS):
            r, s = self._sk.sign_digest_deterministic(
                digest,
                hashfunc=hashlib.sha256,
                sigencode=sigencode_strings_canonize,
                extra_entropy=attempt.to_bytes(32, "big") if attempt else b"",
            )
            if not _is_canonical(r, s):
                continue
            rs = r + s
            candidates = VerifyingKey.from_public_key_recovery_with_digest(
                rs, digest, SECP256k1, hashfunc=hashlib.sha256, sigdecode=sigdecode_string
            )
            for recovery_id, candidate in enumerate(candidates):
                if candidate.to_string("compressed") == public.key_bytes:
                    return Signature(bytes([recovery_id + 27 + 4]) + rs)
        raise EnuError("Unable to produce a canonical signature", ErrorCode.INVALID_KEY)

    def sign(self, data: bytes) -> Signature:
        """Sign sha256(data)."""
        return self.sign_digest(sha256(data))

    def __eq__(self, other) -> bool:
        return isinstance(other, PrivateKey) and self.secret == other.secret

    def __hash__(self) -> int:
        return hash(self.secret)

    def __repr__(self) -> str:
        return f"PrivateKey(public='{self.public_key()}')"


def is_valid_private(text: str) -> bool:
    try:
        PrivateKey.from_string(text)
        return True
    except InvalidKeyError:
        return False


def is_valid_public(text: str) -> bool:
    try:
        PublicKey.from_string(text)
        return True
    except InvalidKeyError:
        return False


def private_to_public(text: str) -> str:
    """Derive the ``ENU...`` public key string from a private key string."""
    return PrivateKey.from_string(text).public_key().to_string()


__all__ = [
    "PrivateKey",
    "PublicKey",
    "Signature",
    "sha256",
    "is_valid_private",
    "is_valid_public",
    "private_to_public",
]
