"""
Enumivo Client Error Model

This module provides the error handling framework for the enu_client SDK.
Every failure raised by the engine derives from EnuError and carries a
stable ErrorCode, optional structured details and the underlying cause.
"""

from __future__ import annotations
from typing import Optional, Dict, Any
from enum import IntEnum


class ErrorCode(IntEnum):
    """Error codes used across the engine."""

    # Success
    OK = 0

    # General errors (1-99)
    UNKNOWN = 1
    INTERNAL = 2
    INVALID_NAME = 3

    # ABI errors (100-199)
    NOT_CACHED = 100
    INVALID_ABI = 101

    # Encoding errors (200-299)
    ENCODING_ERROR = 200
    MISSING_FIELD = 201
    PRECISION_MISMATCH = 202
    INVALID_BINARY = 203

    # Builder errors (300-399)
    BUILDER_ERROR = 300
    NESTED_CALLBACK = 301
    MISSING_AUTHORIZATION = 302

    # Key / signing errors (400-499)
    NO_SIGNING_KEY = 400
    INVALID_KEY = 401
    SIGN_PROVIDER_ERROR = 402

    # Network errors (500-599)
    NETWORK_ERROR = 500
    CONNECTION_FAILED = 501
    TIMEOUT = 502
    BROADCAST_FAILED = 503
    MOCK_FAILURE = 504


class EnuError(Exception):
    """
    Base class for all enu_client errors.

    Provides structured error information: a message, an error code,
    optional details and the exception that caused it.
    """

    def __init__(self, message: str, code: ErrorCode = ErrorCode.UNKNOWN,
                 details: Optional[Dict[str, Any]] = None, cause: Optional[Exception] = None):
        """
        Initialize an error.

        Args:
            message: Error message
            code: Error code
            details: Additional error details
            cause: Underlying exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.cause = cause

    def __str__(self) -> str:
        """String representation of the error."""
        parts = [f"[{self.code.name}] {self.message}"]
        if self.details:
            parts.append(f"Details: {self.details}")
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary representation."""
        result = {
            "code": self.code.value,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        if self.cause:
            result["cause"] = str(self.cause)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EnuError':
        """Create error from dictionary representation."""
        try:
            code = ErrorCode(data.get("code", ErrorCode.UNKNOWN))
        except ValueError:
            code = ErrorCode.UNKNOWN
        message = data.get("message", "Unknown error")
        details = data.get("details")
        return cls(message, code, details)


class NotCachedError(EnuError):
    """No ABI entry for an account and no payload supplied."""

    def __init__(self, account: str, details: Optional[Dict[str, Any]] = None, cause: Optional[Exception] = None):
        super().__init__(f"Abi '{account}' is not cached", ErrorCode.NOT_CACHED, details, cause)
        self.account = account


class InvalidAbiError(EnuError):
    """Malformed ABI schema."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, cause: Optional[Exception] = None):
        super().__init__(message, ErrorCode.INVALID_ABI, details, cause)


class EncodingError(EnuError):
    """Data encoding/decoding errors."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.ENCODING_ERROR,
                 details: Optional[Dict[str, Any]] = None, cause: Optional[Exception] = None):
        super().__init__(message, code, details, cause)


class MissingFieldError(EncodingError):
    """A required ABI field is absent from the structured payload."""

    def __init__(self, field: str, struct: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"Missing field '{field}' in {struct}", ErrorCode.MISSING_FIELD, details)
        self.field = field
        self.struct = struct


class PrecisionMismatchError(EncodingError):
    """An asset symbol precision differs from the declared precision."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.PRECISION_MISMATCH, details)


class TransactionBuilderError(EnuError):
    """Transaction builder specific errors."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.BUILDER_ERROR,
                 details: Optional[Dict[str, Any]] = None, cause: Optional[Exception] = None):
        super().__init__(message, code, details, cause)


class NestedCallbackError(TransactionBuilderError):
    """A broadcast-triggering call was made from inside a staging routine."""

    def __init__(self, message: str = "Callback during a transaction are not supported",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.NESTED_CALLBACK, details)


class NoSigningKeyError(EnuError):
    """Key negotiation produced no usable signing key."""

    def __init__(self, message: str = "No signing key available",
                 details: Optional[Dict[str, Any]] = None, cause: Optional[Exception] = None):
        super().__init__(message, ErrorCode.NO_SIGNING_KEY, details, cause)


class InvalidKeyError(EnuError):
    """Key string or object could not be parsed."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, cause: Optional[Exception] = None):
        super().__init__(message, ErrorCode.INVALID_KEY, details, cause)


class NetworkError(EnuError):
    """Network-related errors."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.NETWORK_ERROR,
                 details: Optional[Dict[str, Any]] = None, cause: Optional[Exception] = None):
        super().__init__(message, code, details, cause)


class BroadcastError(NetworkError):
    """The node rejected a pushed transaction."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, cause: Optional[Exception] = None):
        super().__init__(message, ErrorCode.BROADCAST_FAILED, details, cause)


class MockTransactionError(BroadcastError):
    """Synthesized broadcast failure for mock_transactions='fail'."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.code = ErrorCode.MOCK_FAILURE


def error_from_response(response: Dict[str, Any], status: Optional[int] = None,
                        broadcast: bool = False) -> Optional[EnuError]:
    """
    Create an appropriate error from a node response body.

    Nodes answer failures with ``{"code": 500, "message": ..., "error":
    {"name": ..., "what": ..., "details": [...]}}``.

    Args:
        response: Decoded JSON body
        status: HTTP status code, if known
        broadcast: True when the body answers a push_transaction call

    Returns:
        Appropriate error instance or None if no error
    """
    if "error" not in response:
        return None

    error_data = response["error"]
    message = response.get("message") or "Unknown error"
    details: Dict[str, Any] = {"status": status if status is not None else response.get("code")}

    if isinstance(error_data, dict):
        what = error_data.get("what")
        if what:
            message = f"{message}: {what}"
        details.update({k: v for k, v in error_data.items() if k in ("name", "code", "details")})
    else:
        message = f"{message}: {error_data}"

    if broadcast:
        return BroadcastError(message, details)
    return NetworkError(message, details=details)


__all__ = [
    "ErrorCode",
    "EnuError",
    "NotCachedError",
    "InvalidAbiError",
    "EncodingError",
    "MissingFieldError",
    "PrecisionMismatchError",
    "TransactionBuilderError",
    "NestedCallbackError",
    "NoSigningKeyError",
    "InvalidKeyError",
    "NetworkError",
    "BroadcastError",
    "MockTransactionError",
    "error_from_response",
]
