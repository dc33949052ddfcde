"""
ABI cache.

Maps contract account names to ParsedAbi entries. Entries are replaced
wholesale; a payload that fails to parse never replaces a good entry.
Asynchronous lookups share a single in-flight fetch per account.
"""

from __future__ import annotations
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from ..runtime.callbacks import maybe_await
from ..runtime.errors import NotCachedError
from .schema import ParsedAbi, parse_abi

logger = logging.getLogger(__name__)

AbiFetcher = Callable[[str], Union[Any, Awaitable[Any]]]


class AbiCache:
    """
    Contract ABI cache.

    Example:
        ```python
        cache = AbiCache(fetcher=api.get_abi)
        cache.abi("enu.token", abi_json)              # store
        token = cache.abi("enu.token")                 # lookup, no network
        msig = await cache.abi_async("enu.msig", False)  # fetch once
        ```
    """

    def __init__(self, fetcher: Optional[AbiFetcher] = None):
        """
        Initialize the cache.

        Args:
            fetcher: Callable returning the raw ABI for an account, sync or
                async. Without one, async lookups of uncached accounts fail
                with NotCachedError.
        """
        self._fetcher = fetcher
        self._entries: Dict[str, ParsedAbi] = {}
        self._revisions: Dict[str, int] = {}
        self._inflight: Dict[str, asyncio.Future] = {}

    def abi(self, account: str, raw: Any = None) -> ParsedAbi:
        """
        Look up or store an ABI synchronously.

        Args:
            account: Contract account name
            raw: Optional payload to parse and store, replacing any entry

        Returns:
            ParsedAbi for the account

        Raises:
            NotCachedError: No entry and no payload
            InvalidAbiError: Payload is malformed (existing entry kept)
        """
        if raw is not None:
            return self._store(account, raw)

        entry = self._entries.get(account)
        if entry is None:
            raise NotCachedError(account)
        return entry

    async def abi_async(self, account: str, force_refresh: bool = True) -> ParsedAbi:
        """
        Look up an ABI, fetching it from the network when needed.

        Args:
            account: Contract account name
            force_refresh: Always fetch and replace the entry when True;
                otherwise use the cached entry if there is one

        Returns:
            ParsedAbi for the account
        """
        if not force_refresh:
            entry = self._entries.get(account)
            if entry is not None:
                logger.debug(f"ABI cache hit for {account}")
                return entry

        task = self._inflight.get(account)
        if task is None or force_refresh:
            # forced fetches never join; they run after the in-flight one
            logger.debug(f"Fetching ABI for {account}")
            task = asyncio.ensure_future(self._fetch_and_store(account, task))
            self._inflight[account] = task
            task.add_done_callback(lambda t, a=account: self._forget(a, t))
        else:
            logger.debug(f"Joining in-flight ABI fetch for {account}")
        return await asyncio.shield(task)

    def has(self, account: str) -> bool:
        return account in self._entries

    def accounts(self) -> List[str]:
        return list(self._entries)

    def revision(self, account: str) -> int:
        """Number of times the entry for ``account`` has been stored (0 if never)."""
        return self._revisions.get(account, 0)

    def _store(self, account: str, raw: Any) -> ParsedAbi:
        revision = self._revisions.get(account, 0) + 1
        parsed = parse_abi(raw, revision)
        self._entries[account] = parsed
        self._revisions[account] = revision
        logger.debug(f"Stored ABI for {account} (revision {revision})")
        return parsed

    async def _fetch_and_store(self, account: str, after: Optional[asyncio.Future] = None) -> ParsedAbi:
        if after is not None:
            await asyncio.wait({after})
        if self._fetcher is None:
            raise NotCachedError(account, details={"reason": "no ABI fetcher configured"})
        raw = await maybe_await(self._fetcher(account))
        return self._store(account, raw)

    def _forget(self, account: str, task: asyncio.Future) -> None:
        if self._inflight.get(account) is task:
            del self._inflight[account]
        if not task.cancelled() and task.exception() is not None:
            logger.debug(f"ABI fetch for {account} failed: {task.exception()}")
