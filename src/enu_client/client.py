"""
Transaction client.

EnuClient wires the ABI cache, action encoder, header resolver, key
negotiator, signer and chain API together from one ClientConfig.

Example:
    ```python
    client = EnuClient(ClientConfig(key_provider=wif))

    # One action, signed and broadcast
    result = await client.transfer("inita", "initb", "1.0000 ENU", "")

    # Several actions in one transaction
    result = await client.transaction(lambda tr: [
        tr.transfer("inita", "initb", "1.0000 ENU", ""),
        tr.transfer("inita", "initc", "1.0000 ENU", ""),
    ])

    # Any contract with an ABI on chain
    token = await client.contract("enu.token")
    await token.transfer("inita", "initb", "1.0000 ENU", "", broadcast=False)
    ```
"""

from __future__ import annotations
import logging
from collections.abc import Mapping
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional

from .abi.bundled import SYSTEM_CONTRACTS, bundled_abis
from .abi.cache import AbiCache
from .abi.encoder import ActionEncoder
from .abi.schema import ParsedAbi
from .config import ClientConfig, TransactionOptions
from .keys.negotiator import KeyNegotiator
from .runtime.callbacks import maybe_await
from .runtime.errors import MockTransactionError, NetworkError, TransactionBuilderError
from .signers.signer import TransactionSigner
from .transport.http import AsyncChainApi
from .tx.builder import TransactionBuilder, current_builder, ensure_not_staging
from .tx.contract import (
    ContractProxy,
    ContractSet,
    ContractStage,
    StagingHandle,
    split_action_args,
)
from .tx.header import HeaderResolver, merge_headers, pick_header_fields
from .tx.models import SignedTransaction, Transaction, TransactionResult
from .tx.serializer import pack_transaction, push_payload, transaction_id

logger = logging.getLogger(__name__)

MOCK_PASS = "pass"
MOCK_FAIL = "fail"


def _warn_ignored(what: str, names: List[str]) -> None:
    if names:
        logger.warning(
            f"Options {', '.join(names)} of {what} ignored; "
            f"it is merged into the transaction being built"
        )


class EnuClient:
    """
    Builds, signs and broadcasts transactions.

    Actions of the bundled system contracts (``enumivo``, ``enu.token``,
    ``enu.null``) are available as coroutine methods, e.g.
    ``client.transfer`` or ``client.newaccount``.
    """

    def __init__(self, config: Optional[ClientConfig] = None, api: Any = None, **overrides: Any):
        """
        Initialize the client.

        Args:
            config: Client configuration; defaults to ClientConfig()
            api: Chain API (sync or async methods). Created from
                ``config.http_endpoint`` when omitted; no network access is
                possible when both are None.
            **overrides: ClientConfig fields applied on top of ``config``
        """
        config = config or ClientConfig()
        if overrides:
            config = replace(config, **overrides)
        self.config = config

        if config.debug:
            logging.getLogger("enu_client").setLevel(logging.DEBUG)

        if api is None and config.http_endpoint:
            api = AsyncChainApi.from_config(config)
        self.api = api

        self.abi_cache = AbiCache(fetcher=self._fetch_abi if api is not None else None)
        for account, abi in bundled_abis():
            self.abi_cache.abi(account, abi)

        self.encoder = ActionEncoder(config.symbol_precisions)
        self.headers = HeaderResolver(
            api=api,
            header_source=config.transaction_headers,
            expire_in_seconds=config.expire_in_seconds,
            chain_id=config.chain_id,
        )
        self.negotiator = KeyNegotiator(
            config.key_provider,
            required_keys=self.get_required_keys if api is not None else None,
        )

    # ------------------------------------------------------------------
    # Action sugar
    # ------------------------------------------------------------------

    def __getattr__(self, name: str) -> Callable[..., Any]:
        cache = self.__dict__.get("abi_cache")
        if cache is not None and not name.startswith("_"):
            for account in SYSTEM_CONTRACTS:
                if cache.has(account) and cache.abi(account).has_action(name):
                    return self._action_method(account, name)
        raise AttributeError(f"'{type(self).__name__}' object has no attribute '{name}'")

    def _action_method(self, account: str, action_name: str) -> Callable[..., Any]:
        async def invoke(*args: Any, **kwargs: Any) -> Optional[TransactionResult]:
            abi = self.abi_cache.abi(account)
            data, options = split_action_args(abi, action_name, args, kwargs)
            return await self.invoke_action(account, abi, action_name, data, options)

        invoke.__name__ = action_name
        invoke.__qualname__ = f"{type(self).__name__}.{action_name}"
        return invoke

    async def invoke_action(self, account: str, abi: ParsedAbi, action_name: str,
                            data: Dict[str, Any], options: TransactionOptions) -> Optional[TransactionResult]:
        """
        Send one action, or merge it into the transaction being built.

        Returns:
            TransactionResult, or None when merged into an outer transaction
        """
        builder = current_builder(self)
        if builder is not None:
            _warn_ignored(f"{account}::{action_name}", options.transaction_level())
            builder.stage(account, action_name, data, authorization=options.authorization, abi=abi)
            return None

        def routine(b: TransactionBuilder) -> None:
            b.stage(account, action_name, data, authorization=options.authorization, abi=abi)

        return await self._run(routine, options)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def transaction(self, intent: Any, callback: Any = None, options: Any = None,
                          **option_kwargs: Any) -> Optional[TransactionResult]:
        """
        Build, sign and broadcast one transaction.

        Args:
            intent: One of
                - a mapping with ``actions``, optional ``context_free_actions``,
                  ``transaction_extensions`` and header fields;
                - a routine receiving a StagingHandle;
                - a contract account name, with ``callback`` receiving its
                  ContractStage;
                - a list of contract account names, with ``callback``
                  receiving a ContractSet.
            callback: Routine for the contract forms. May also hold the
                options when ``intent`` is a mapping or a routine.
            options: TransactionOptions, mapping or bool (broadcast)
            **option_kwargs: Individual TransactionOptions fields

        Returns:
            TransactionResult, or None when called from inside another
            transaction's routine on this client (the actions are merged
            into that transaction)

        Raises:
            Any error raised by the routine, unchanged, after rollback
        """
        if callback is not None and not callable(callback):
            if options is not None:
                raise TransactionBuilderError("Options given twice")
            options, callback = callback, None
        opts = TransactionOptions.coerce(options, **option_kwargs)

        outer = current_builder(self)
        if outer is not None:
            logger.debug("Merging nested transaction into the pending one")
            ignored = opts.transaction_level()
            if isinstance(intent, Mapping):
                ignored += sorted(pick_header_fields(intent))
            _warn_ignored("nested transaction", ignored)
            await self._stage_intent(outer, intent, callback)
            return None

        header_overrides: Dict[str, Any] = {}
        extensions: List = []
        if isinstance(intent, Mapping):
            header_overrides = pick_header_fields(intent)
            extensions = list(intent.get("transaction_extensions") or [])

        async def routine(builder: TransactionBuilder) -> None:
            await self._stage_intent(builder, intent, callback)

        return await self._run(routine, opts, header_overrides, extensions)

    async def contract(self, account: str) -> ContractProxy:
        """
        Dispatch table for a contract's actions.

        Raises:
            NotCachedError: No ABI cached and no chain API to fetch it
            InvalidAbiError: The account has no usable ABI
        """
        abi = await self._abi(account)
        return ContractProxy(self, account, abi)

    async def get_required_keys(self, transaction: Any, available_keys: List[str]) -> Dict[str, Any]:
        """Ask the chain which of ``available_keys`` must sign ``transaction``."""
        if self.api is None:
            raise NetworkError("No chain API configured", details={"call": "get_required_keys"})
        return await maybe_await(self.api.get_required_keys(transaction, list(available_keys)))

    async def push_transaction(self, signed: Any) -> Dict[str, Any]:
        """
        Push an already signed transaction.

        Raises:
            NestedCallbackError: Called from inside a transaction routine
        """
        ensure_not_staging(self)
        if self.api is None:
            raise NetworkError("No chain API configured", details={"call": "push_transaction"})
        return await maybe_await(self.api.push_transaction(signed))

    async def close(self) -> None:
        close = getattr(self.api, "close", None)
        if close is not None:
            await maybe_await(close())

    async def __aenter__(self) -> EnuClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _fetch_abi(self, account: str) -> Any:
        return await maybe_await(self.api.get_abi(account))

    async def _abi(self, account: str) -> ParsedAbi:
        return await self.abi_cache.abi_async(account, force_refresh=False)

    def _system_contracts(self) -> List:
        return [(a, self.abi_cache.abi(a)) for a in SYSTEM_CONTRACTS if self.abi_cache.has(a)]

    async def _stage_intent(self, builder: TransactionBuilder, intent: Any, callback: Any) -> None:
        if isinstance(intent, Mapping):
            if callback is not None:
                raise TransactionBuilderError("A transaction mapping takes no routine")
            for action in intent.get("context_free_actions") or []:
                builder.stage_mapping(action, context_free=True)
            for action in intent.get("actions") or []:
                builder.stage_mapping(action)
            return

        if callable(intent):
            if callback is not None:
                raise TransactionBuilderError("Routine given twice")
            await maybe_await(intent(StagingHandle(builder, self._system_contracts())))
            return

        if callback is None:
            raise TransactionBuilderError(
                f"Contract transaction for {intent!r} needs a routine",
                details={"intent": repr(intent)},
            )

        if isinstance(intent, str):
            stage = ContractStage(builder, intent, await self._abi(intent))
            await maybe_await(callback(stage))
            return

        if isinstance(intent, (list, tuple)):
            stages = {}
            for account in intent:
                stages[account] = ContractStage(builder, account, await self._abi(account))
            await maybe_await(callback(ContractSet(stages)))
            return

        raise TransactionBuilderError(f"Unsupported transaction intent {type(intent).__name__}")

    async def _run(self, routine: Callable[[TransactionBuilder], Any], opts: TransactionOptions,
                   header_overrides: Optional[Dict[str, Any]] = None,
                   extensions: Optional[List] = None) -> TransactionResult:
        builder = TransactionBuilder(
            owner=self,
            authorization=opts.authorization,
            default_authorization=self.config.authorization,
            default_permission=self.config.default_permission,
        )
        outcome = await builder.run(routine, builder)
        if not outcome.ok:
            builder.rollback(outcome.error)
            raise outcome.error

        overrides = dict(header_overrides or {})
        overrides.update(opts.header_overrides())
        try:
            resolved = await self.headers.resolve(opts.expire_in_seconds, overrides)
            header = merge_headers(resolved, self.config.header_defaults(), overrides)
        except Exception as e:
            builder.rollback(e)
            raise

        trx = await builder.assemble(self._abi, self.encoder, header, extensions)
        return await self._sign_and_broadcast(trx, builder, opts)

    async def _sign_and_broadcast(self, trx: Transaction, builder: TransactionBuilder,
                                  opts: TransactionOptions) -> TransactionResult:
        sign = self.config.sign if opts.sign is None else opts.sign
        broadcast = self.config.broadcast if opts.broadcast is None else opts.broadcast

        packed = pack_transaction(trx)
        trx_id = transaction_id(packed)
        signatures: List[str] = []
        signer: Optional[TransactionSigner] = None

        if sign:
            signer = TransactionSigner(await self.headers.chain_id())
            if self.config.sign_provider is not None:
                signatures = await signer.sign_with_provider(self.config.sign_provider, packed, trx)
            else:
                keys = await self.negotiator.negotiate(trx, opts.key_provider)
                signatures = signer.sign(packed, keys)

        signed = SignedTransaction(transaction=trx, signatures=signatures)
        result = dict(transaction_id=trx_id, transaction=signed, intent=list(builder.staged))

        if signer is None or not broadcast:
            logger.debug(f"Transaction {trx_id} not broadcast (sign={sign}, broadcast={broadcast})")
            return TransactionResult(broadcast=False, **result)

        mock = self.config.mock_transactions
        if callable(mock):
            mock = mock()
        if mock == MOCK_PASS:
            logger.debug(f"Mock broadcast of {trx_id}")
            return TransactionResult(broadcast=False, mock_transaction=True, **result)
        if mock == MOCK_FAIL:
            digest = signer.digest(packed).hex()
            raise MockTransactionError(
                f"[push_transaction mock error] 'fake error', digest '{digest}'",
                details={"transaction_id": trx_id},
            )

        if self.api is None:
            raise NetworkError("No chain API configured", details={"call": "push_transaction"})
        logger.info(f"Broadcasting transaction {trx_id}")
        response = await maybe_await(self.api.push_transaction(push_payload(signed, packed)))
        return TransactionResult(
            broadcast=True,
            processed=(response or {}).get("processed"),
            **{**result, "transaction_id": (response or {}).get("transaction_id", trx_id)},
        )


__all__ = ["EnuClient", "MOCK_PASS", "MOCK_FAIL"]
