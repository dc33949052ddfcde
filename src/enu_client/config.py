"""
Client and per-call configuration.
"""

from __future__ import annotations
from collections.abc import Mapping
from dataclasses import dataclass, field, fields, replace
from typing import Any, Dict, List, Optional

from .abi.encoder import DEFAULT_SYMBOL_PRECISIONS
from .runtime.errors import TransactionBuilderError

DEFAULT_ENDPOINT = "http://127.0.0.1:8888"


@dataclass
class ClientConfig:
    """Configuration for an EnuClient."""

    http_endpoint: Optional[str] = DEFAULT_ENDPOINT
    chain_id: Optional[str] = None

    # Signing
    key_provider: Any = None
    sign_provider: Any = None
    sign: bool = True

    # Transaction defaults
    authorization: Any = None
    default_permission: str = "active"
    transaction_headers: Any = None
    expire_in_seconds: int = 60
    delay_sec: Optional[int] = None
    max_net_usage_words: Optional[int] = None
    max_cpu_usage_ms: Optional[int] = None
    symbol_precisions: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_SYMBOL_PRECISIONS))

    # Broadcast
    broadcast: bool = True
    mock_transactions: Any = None

    # Transport
    timeout: float = 30.0
    max_retries: int = 3
    retry_delay: float = 1.0
    retry_backoff: float = 2.0
    verify_ssl: bool = True
    user_agent: str = "enu-client-python/0.1.0"
    debug: bool = False

    def header_defaults(self) -> Dict[str, Any]:
        """Client-wide header values, unset ones omitted."""
        values = {
            "delay_sec": self.delay_sec,
            "max_net_usage_words": self.max_net_usage_words,
            "max_cpu_usage_ms": self.max_cpu_usage_ms,
        }
        return {k: v for k, v in values.items() if v is not None}


@dataclass
class TransactionOptions:
    """
    Options for a single transaction call.

    Unset fields fall back to the client configuration.
    """

    broadcast: Optional[bool] = None
    sign: Optional[bool] = None
    authorization: Any = None
    key_provider: Any = None
    expire_in_seconds: Optional[int] = None
    delay_sec: Optional[int] = None
    max_net_usage_words: Optional[int] = None
    max_cpu_usage_ms: Optional[int] = None

    @classmethod
    def coerce(cls, value: Any = None, **overrides: Any) -> TransactionOptions:
        """
        Normalize the accepted option forms.

        Args:
            value: None, a bool (broadcast flag), a mapping or a
                TransactionOptions
            **overrides: Option keywords applied on top

        Raises:
            TransactionBuilderError: Unknown option names or value type
        """
        if value is None:
            options = cls()
        elif isinstance(value, bool):
            options = cls(broadcast=value)
        elif isinstance(value, TransactionOptions):
            options = value
        elif isinstance(value, Mapping):
            options = cls(**_checked(dict(value)))
        else:
            raise TransactionBuilderError(
                f"Unsupported transaction options {value!r}",
                details={"type": type(value).__name__},
            )

        overrides = {k: v for k, v in overrides.items() if v is not None}
        if overrides:
            options = replace(options, **_checked(overrides))
        return options

    def header_overrides(self) -> Dict[str, Any]:
        values = {
            "delay_sec": self.delay_sec,
            "max_net_usage_words": self.max_net_usage_words,
            "max_cpu_usage_ms": self.max_cpu_usage_ms,
        }
        return {k: v for k, v in values.items() if v is not None}

    def transaction_level(self) -> List[str]:
        """Names of the set options that apply to a whole transaction."""
        return [f.name for f in fields(self) if f.name != "authorization" and getattr(self, f.name) is not None]


OPTION_NAMES = frozenset(f.name for f in fields(TransactionOptions))


def _checked(values: Dict[str, Any]) -> Dict[str, Any]:
    unknown = sorted(set(values) - OPTION_NAMES)
    if unknown:
        raise TransactionBuilderError(
            f"Unknown transaction option(s): {', '.join(unknown)}",
            details={"unknown": unknown},
        )
    return values


__all__ = ["ClientConfig", "TransactionOptions", "OPTION_NAMES", "DEFAULT_ENDPOINT"]
