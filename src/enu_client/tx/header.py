"""
Transaction header resolution.

Headers come from three layers, highest precedence first: per-call
overrides, client-wide defaults, and the resolver. The resolver reads a
configured header source (a mapping or a callable) or, failing that, the
chain itself through ``get_info`` and ``get_block``.
"""

from __future__ import annotations
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Union

from ..runtime.callbacks import maybe_await
from ..runtime.errors import ErrorCode, TransactionBuilderError
from .models import EXPIRATION_FORMAT, TransactionHeader

logger = logging.getLogger(__name__)

HEADER_FIELDS = tuple(TransactionHeader.model_fields)
REFERENCE_FIELDS = ("expiration", "ref_block_num", "ref_block_prefix")
ZERO_CHAIN_ID = bytes(32)

HeaderSource = Union[Mapping[str, Any], Callable[[int], Any]]


def pick_header_fields(values: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Keep only header keys whose value is not None."""
    if not values:
        return {}
    return {k: values[k] for k in HEADER_FIELDS if values.get(k) is not None}


def merge_headers(resolved: Mapping[str, Any], defaults: Optional[Mapping[str, Any]] = None,
                  overrides: Optional[Mapping[str, Any]] = None) -> TransactionHeader:
    """
    Combine header layers into a validated header.

    Args:
        resolved: Values from the resolver (lowest precedence)
        defaults: Client-wide defaults
        overrides: Per-call overrides (highest precedence)

    Returns:
        TransactionHeader
    """
    merged: Dict[str, Any] = {}
    merged.update(pick_header_fields(resolved))
    merged.update(pick_header_fields(defaults))
    merged.update(pick_header_fields(overrides))

    missing = [k for k in REFERENCE_FIELDS if k not in merged]
    if missing:
        raise TransactionBuilderError(
            f"Transaction header is missing {', '.join(missing)}",
            details={"missing": missing},
        )
    return TransactionHeader(**merged)


def _parse_block_time(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    text = str(value).replace('Z', '')
    # Block timestamps carry milliseconds
    if '.' in text:
        text = text.split('.', 1)[0]
    return datetime.strptime(text, EXPIRATION_FORMAT).replace(tzinfo=timezone.utc)


class HeaderResolver:
    """
    Resolves expiration and reference block fields for new transactions.

    Example:
        ```python
        resolver = HeaderResolver(api=chain_api)
        header = await resolver.resolve(expire_in_seconds=60)
        ```
    """

    def __init__(self, api: Any = None, header_source: Optional[HeaderSource] = None,
                 expire_in_seconds: int = 60, chain_id: Union[str, bytes, None] = None):
        """
        Initialize the resolver.

        Args:
            api: Chain API exposing get_info and get_block (sync or async)
            header_source: Mapping of header values, or callable taking
                ``expire_in_seconds`` and returning one (may be awaitable)
            expire_in_seconds: Expiration offset from the reference block time
            chain_id: Chain id hex string or bytes; fetched when omitted
        """
        self.api = api
        self.header_source = header_source
        self.expire_in_seconds = expire_in_seconds
        self._chain_id = bytes.fromhex(chain_id) if isinstance(chain_id, str) else chain_id

    async def resolve(self, expire_in_seconds: Optional[int] = None,
                      overrides: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """
        Produce header values for a new transaction.

        When ``overrides`` already pin the reference fields nothing is
        fetched.
        """
        expire = self.expire_in_seconds if expire_in_seconds is None else expire_in_seconds
        if overrides and all(overrides.get(k) is not None for k in REFERENCE_FIELDS):
            return {}

        if self.header_source is not None:
            source = self.header_source
            if callable(source):
                source = await maybe_await(source(expire))
            logger.debug("Using configured transaction headers")
            return dict(source or {})

        if self.api is None:
            raise TransactionBuilderError(
                "No header source or chain API configured",
                details={"expire_in_seconds": expire},
            )
        return await self._from_chain(expire)

    async def chain_id(self) -> bytes:
        """Configured chain id, else the one reported by ``get_info``."""
        if self._chain_id is not None:
            return self._chain_id
        if self.api is not None:
            info = await maybe_await(self.api.get_info())
            if info.get("chain_id"):
                self._chain_id = bytes.fromhex(info["chain_id"])
                return self._chain_id
        logger.warning("Chain id unknown, signing with an all-zero chain id")
        return ZERO_CHAIN_ID

    async def _from_chain(self, expire_in_seconds: int) -> Dict[str, Any]:
        info = await maybe_await(self.api.get_info())
        if self._chain_id is None and info.get("chain_id"):
            self._chain_id = bytes.fromhex(info["chain_id"])

        block_num = info.get("last_irreversible_block_num")
        if block_num is None:
            raise TransactionBuilderError(
                "get_info response has no last_irreversible_block_num",
                ErrorCode.BUILDER_ERROR, details={"info": info},
            )
        block = await maybe_await(self.api.get_block(block_num))
        expiration = _parse_block_time(block["timestamp"]) + timedelta(seconds=expire_in_seconds)

        logger.debug(f"Reference block {block_num}, expiration {expiration.strftime(EXPIRATION_FORMAT)}")
        return {
            "expiration": expiration.strftime(EXPIRATION_FORMAT),
            "ref_block_num": block_num & 0xFFFF,
            "ref_block_prefix": block["ref_block_prefix"],
        }


__all__ = [
    "HEADER_FIELDS",
    "REFERENCE_FIELDS",
    "ZERO_CHAIN_ID",
    "HeaderResolver",
    "merge_headers",
    "pick_header_fields",
]
