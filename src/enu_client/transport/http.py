"""
HTTP chain API.

Thin clients for the node's ``/v1/chain`` endpoints. ``ChainApi`` is
synchronous over ``requests``; ``AsyncChainApi`` is asynchronous over
``aiohttp``. Read calls retry connection failures with exponential
backoff. ``push_transaction`` is sent exactly once.
"""

from __future__ import annotations
import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

import aiohttp
import requests

from ..runtime.errors import ErrorCode, NetworkError, error_from_response
from ..tx.serializer import push_payload

logger = logging.getLogger(__name__)


def _transaction_body(transaction: Any) -> Dict[str, Any]:
    if hasattr(transaction, "to_dict"):
        return transaction.to_dict()
    return dict(transaction)


def _check(path: str, status: int, data: Any, broadcast: bool) -> Any:
    if isinstance(data, dict):
        error = error_from_response(data, status, broadcast)
        if error is not None:
            raise error
    if status != 200:
        raise NetworkError(
            f"HTTP {status} from {path}", details={"status": status, "body": data}
        )
    return data


class _ChainApiBase:
    def __init__(self, endpoint: str, timeout: float = 30.0, max_retries: int = 3,
                 retry_delay: float = 1.0, retry_backoff: float = 2.0,
                 verify_ssl: bool = True, user_agent: str = "enu-client-python/0.1.0"):
        """
        Initialize API client.

        Args:
            endpoint: Node base URL, e.g. ``http://127.0.0.1:8888``
            timeout: Request timeout in seconds
            max_retries: Retries for read calls
            retry_delay: Delay before the first retry
            retry_backoff: Multiplier applied to the delay per retry
            verify_ssl: Verify TLS certificates
            user_agent: User-Agent header
        """
        self.endpoint = endpoint.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.retry_backoff = retry_backoff
        self.verify_ssl = verify_ssl
        self.user_agent = user_agent

    @classmethod
    def from_config(cls, config: Any, **kwargs: Any):
        """Create from a ClientConfig."""
        return cls(
            config.http_endpoint,
            timeout=config.timeout,
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
            retry_backoff=config.retry_backoff,
            verify_ssl=config.verify_ssl,
            user_agent=config.user_agent,
            **kwargs,
        )

    def _url(self, path: str) -> str:
        return f"{self.endpoint}/v1/{path}"

    def _delay(self, attempt: int) -> float:
        return self.retry_delay * (self.retry_backoff ** (attempt - 1))

    def _headers(self) -> Dict[str, str]:
        return {"Content-Type": "application/json", "User-Agent": self.user_agent}

    @staticmethod
    def _failure(path: str, attempts: int, error: Optional[Exception], timed_out: bool) -> NetworkError:
        return NetworkError(
            f"Request to {path} failed after {attempts} attempt(s): {error}",
            ErrorCode.TIMEOUT if timed_out else ErrorCode.CONNECTION_FAILED,
            details={"path": path, "attempts": attempts},
            cause=error,
        )


class ChainApi(_ChainApiBase):
    """
    Synchronous chain API over requests.

    Example:
        ```python
        api = ChainApi("http://127.0.0.1:8888")
        info = api.get_info()
        ```
    """

    def __init__(self, endpoint: str, session: Optional[requests.Session] = None, **kwargs: Any):
        super().__init__(endpoint, **kwargs)
        self._session = session or requests.Session()
        self._session.headers.update(self._headers())

    def _post(self, path: str, body: Optional[Dict[str, Any]] = None, retry: bool = True,
              broadcast: bool = False) -> Any:
        attempts = self.max_retries + 1 if retry else 1
        last_error: Optional[Exception] = None

        for attempt in range(attempts):
            if attempt:
                delay = self._delay(attempt)
                logger.warning(f"{path} failed (attempt {attempt}/{attempts}), retrying in {delay}s: {last_error}")
                time.sleep(delay)
            try:
                response = self._session.post(
                    self._url(path), json=body or {}, timeout=self.timeout, verify=self.verify_ssl
                )
            except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
                last_error = e
                continue

            try:
                data = response.json()
            except ValueError as e:
                raise NetworkError(
                    f"Invalid JSON response from {path}: {e}",
                    details={"status": response.status_code}, cause=e,
                )
            return _check(path, response.status_code, data, broadcast)

        raise self._failure(path, attempts, last_error,
                            isinstance(last_error, requests.exceptions.Timeout))

    def get_info(self) -> Dict[str, Any]:
        return self._post("chain/get_info")

    def get_block(self, block_num_or_id: Any) -> Dict[str, Any]:
        return self._post("chain/get_block", {"block_num_or_id": block_num_or_id})

    def get_abi(self, account_name: str) -> Dict[str, Any]:
        return self._post("chain/get_abi", {"account_name": account_name})

    def get_required_keys(self, transaction: Any, available_keys: List[str]) -> Dict[str, Any]:
        return self._post("chain/get_required_keys", {
            "transaction": _transaction_body(transaction),
            "available_keys": list(available_keys),
        })

    def push_transaction(self, signed: Any) -> Dict[str, Any]:
        """Push a signed transaction. Never retried."""
        logger.info("Pushing transaction")
        return self._post("chain/push_transaction", push_payload(signed), retry=False, broadcast=True)

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> ChainApi:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class AsyncChainApi(_ChainApiBase):
    """
    Asynchronous chain API over aiohttp.

    Example:
        ```python
        async with AsyncChainApi("http://127.0.0.1:8888") as api:
            info = await api.get_info()
        ```
    """

    def __init__(self, endpoint: str, **kwargs: Any):
        super().__init__(endpoint, **kwargs)
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers=self._headers(),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            )
            logger.debug(f"Created session for {self.endpoint}")
        return self._session

    async def _post(self, path: str, body: Optional[Dict[str, Any]] = None, retry: bool = True,
                    broadcast: bool = False) -> Any:
        session = await self._get_session()
        attempts = self.max_retries + 1 if retry else 1
        last_error: Optional[Exception] = None

        for attempt in range(attempts):
            if attempt:
                delay = self._delay(attempt)
                logger.warning(f"{path} failed (attempt {attempt}/{attempts}), retrying in {delay}s: {last_error}")
                await asyncio.sleep(delay)
            try:
                response = await session.request(
                    "POST", self._url(path), json=body or {}, ssl=self.verify_ssl
                )
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = e
                continue

            try:
                data = await response.json(content_type=None)
            except ValueError as e:
                raise NetworkError(
                    f"Invalid JSON response from {path}: {e}",
                    details={"status": response.status}, cause=e,
                )
            finally:
                response.release()
            return _check(path, response.status, data, broadcast)

        raise self._failure(path, attempts, last_error, isinstance(last_error, asyncio.TimeoutError))

    async def get_info(self) -> Dict[str, Any]:
        return await self._post("chain/get_info")

    async def get_block(self, block_num_or_id: Any) -> Dict[str, Any]:
        return await self._post("chain/get_block", {"block_num_or_id": block_num_or_id})

    async def get_abi(self, account_name: str) -> Dict[str, Any]:
        return await self._post("chain/get_abi", {"account_name": account_name})

    async def get_required_keys(self, transaction: Any, available_keys: List[str]) -> Dict[str, Any]:
        return await self._post("chain/get_required_keys", {
            "transaction": _transaction_body(transaction),
            "available_keys": list(available_keys),
        })

    async def push_transaction(self, signed: Any) -> Dict[str, Any]:
        """Push a signed transaction. Never retried."""
        logger.info("Pushing transaction")
        return await self._post("chain/push_transaction", push_payload(signed), retry=False, broadcast=True)

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> AsyncChainApi:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


__all__ = ["ChainApi", "AsyncChainApi"]
