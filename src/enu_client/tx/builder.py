"""
Transaction builder.

Stages actions in invocation order, resolves their authorizations, encodes
their payloads through the ABI cache and produces a frozen Transaction.

The active builder is tracked in a context variable so that a transaction
call made from inside another transaction's construction routine merges
into the outer builder instead of producing a second transaction. Tasks
started with their own context never observe each other's builder.
"""

from __future__ import annotations
import logging
from collections.abc import Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Iterator, List, Optional, Tuple

from ..abi.encoder import ActionEncoder, is_hex_data
from ..abi.schema import ParsedAbi
from ..runtime.callbacks import maybe_await
from ..runtime.errors import NestedCallbackError, TransactionBuilderError
from .authorization import DEFAULT_PERMISSION, parse_authorization, resolve_authorization
from .models import Action, Authorization, StagedAction, Transaction, TransactionHeader

logger = logging.getLogger(__name__)

AbiLookup = Callable[[str], Awaitable[ParsedAbi]]

_ACCOUNT_TYPES = ("name", "account_name")

_active_builder: ContextVar[Optional["TransactionBuilder"]] = ContextVar(
    "enu_client_active_builder", default=None
)


class BuilderState(Enum):
    """Lifecycle of a builder. COMMITTED and ROLLED_BACK are terminal."""

    EMPTY = "empty"
    STAGING = "staging"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True)
class BuildOutcome:
    """Result of running a construction routine: a value or the error it raised."""

    value: Any = None
    error: Optional[BaseException] = None

    @classmethod
    def success(cls, value: Any = None) -> BuildOutcome:
        return cls(value=value)

    @classmethod
    def failure(cls, error: BaseException) -> BuildOutcome:
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None


def current_builder(owner: Any = None) -> Optional[TransactionBuilder]:
    """
    Builder whose construction routine is running in this context.

    Args:
        owner: When given, only a builder created for this owner matches
    """
    builder = _active_builder.get()
    if builder is None:
        return None
    if owner is not None and builder.owner is not owner:
        return None
    return builder


def ensure_not_staging(owner: Any = None) -> None:
    """Raise NestedCallbackError when called from inside a construction routine."""
    if current_builder(owner) is not None:
        raise NestedCallbackError()


def first_account_value(abi: Optional[ParsedAbi], action_name: str, data: Any) -> Optional[str]:
    """Value of the first account-name field of an action payload, if any."""
    if abi is None or not isinstance(data, Mapping) or not abi.has_action(action_name):
        return None
    for field in abi.action_fields(action_name):
        if abi.resolve_type(field.type) in _ACCOUNT_TYPES and data.get(field.name):
            return str(data[field.name])
    return None


class TransactionBuilder:
    """
    Staging area for one transaction.

    Example:
        ```python
        builder = TransactionBuilder(owner=client)
        outcome = await builder.run(routine, handle)
        if not outcome.ok:
            builder.rollback(outcome.error)
            raise outcome.error
        trx = await builder.assemble(abi_lookup, encoder, header)
        ```
    """

    def __init__(self, owner: Any = None, authorization: Any = None,
                 default_authorization: Any = None,
                 default_permission: str = DEFAULT_PERMISSION):
        """
        Initialize builder.

        Args:
            owner: Client the builder belongs to; nesting only merges into
                builders of the same owner
            authorization: Per-call authorization override
            default_authorization: Client-wide authorization default
            default_permission: Permission used when deriving from an actor
        """
        self.owner = owner
        self.authorization = authorization
        self.default_authorization = default_authorization
        self.default_permission = default_permission
        self.state = BuilderState.EMPTY
        self._staged: List[StagedAction] = []

    @property
    def staged(self) -> Tuple[StagedAction, ...]:
        """Everything staged so far, in invocation order."""
        return tuple(self._staged)

    @property
    def actions(self) -> Tuple[StagedAction, ...]:
        return tuple(s for s in self._staged if not s.context_free)

    @property
    def context_free_actions(self) -> Tuple[StagedAction, ...]:
        return tuple(s for s in self._staged if s.context_free)

    def stage(self, account: str, name: str, data: Any = None, authorization: Any = None,
              context_free: bool = False, abi: Optional[ParsedAbi] = None) -> StagedAction:
        """
        Append an action.

        Authorization is resolved now when it is explicit or when the ABI is
        at hand; otherwise it is resolved at assembly time.

        Args:
            account: Contract account
            name: Action name
            data: Field mapping or pre-encoded hex/bytes
            authorization: Explicit authorization for this action
            context_free: Stage as a context free action (never authorized)
            abi: Contract ABI, when already resolved

        Returns:
            The staged action
        """
        if self.state in (BuilderState.COMMITTED, BuilderState.ROLLED_BACK):
            raise TransactionBuilderError(
                f"Cannot stage {account}::{name}, transaction is {self.state.value}"
            )
        if callable(data) and not isinstance(data, Mapping):
            raise NestedCallbackError()

        auth: Tuple[Authorization, ...] = ()
        if not context_free and (authorization is not None or abi is not None):
            auth = tuple(self._authorize(name, data, abi, authorization))

        staged = StagedAction(
            account=account,
            name=name,
            authorization=auth,
            data={} if data is None else data,
            context_free=context_free,
        )
        self._staged.append(staged)
        self.state = BuilderState.STAGING
        logger.debug(f"Staged {account}::{name} ({len(self._staged)} staged)")
        return staged

    def stage_mapping(self, action: Mapping, context_free: bool = False) -> StagedAction:
        """Stage an action given as ``{"account", "name", "data", "authorization"}``."""
        for key in ("account", "name"):
            if not action.get(key):
                raise TransactionBuilderError(
                    f"Action is missing '{key}'", details={"action": dict(action)}
                )
        authorization = action.get("authorization")
        if authorization is not None and not context_free:
            authorization = parse_authorization(authorization, None, self.default_permission)
        return self.stage(
            action["account"], action["name"], action.get("data"),
            authorization=authorization or None, context_free=context_free,
        )

    @contextmanager
    def activate(self) -> Iterator[TransactionBuilder]:
        """Make this the current builder for the enclosed block."""
        token = _active_builder.set(self)
        try:
            yield self
        finally:
            _active_builder.reset(token)

    async def run(self, routine: Callable[..., Any], *args: Any) -> BuildOutcome:
        """
        Run a construction routine with this builder active.

        The routine may be sync or return an awaitable. Exceptions are
        captured in the outcome rather than raised.
        """
        with self.activate():
            try:
                value = await maybe_await(routine(*args))
            except Exception as e:
                return BuildOutcome.failure(e)
        return BuildOutcome.success(value)

    def rollback(self, error: Optional[BaseException] = None) -> None:
        """Discard all staged actions."""
        count = len(self._staged)
        self._staged.clear()
        self.state = BuilderState.ROLLED_BACK
        logger.debug(f"Rolled back {count} staged action(s): {error!r}")

    async def assemble(self, abi_lookup: AbiLookup, encoder: ActionEncoder,
                       header: TransactionHeader,
                       extensions: Optional[List[Tuple[int, str]]] = None) -> Transaction:
        """
        Encode staged actions and freeze the transaction.

        ABIs are resolved one action at a time, in staging order. Any
        failure rolls the builder back and propagates unchanged.

        Args:
            abi_lookup: Coroutine function returning the ABI of an account
            encoder: Payload encoder
            header: Resolved transaction header
            extensions: Transaction extensions as ``(type, hex)`` pairs

        Returns:
            Final Transaction
        """
        if self.state in (BuilderState.COMMITTED, BuilderState.ROLLED_BACK):
            raise TransactionBuilderError(f"Transaction is already {self.state.value}")
        try:
            if not self.actions:
                raise TransactionBuilderError("Transaction has no actions")
            context_free = [await self._encode(s, abi_lookup, encoder) for s in self.context_free_actions]
            actions = [await self._encode(s, abi_lookup, encoder) for s in self.actions]
            trx = Transaction(
                **header.header_dict(),
                context_free_actions=context_free,
                actions=actions,
                transaction_extensions=list(extensions or []),
            )
        except Exception as e:
            self.rollback(e)
            raise

        self.state = BuilderState.COMMITTED
        logger.debug(f"Assembled transaction with {len(actions)} action(s)")
        return trx

    def _authorize(self, name: str, data: Any, abi: Optional[ParsedAbi],
                   explicit: Any) -> List[Authorization]:
        first_actor = first_account_value(abi, name, data)
        per_call = explicit if explicit is not None else self.authorization
        return resolve_authorization(per_call, self.default_authorization, first_actor,
                                     self.default_permission)

    async def _encode(self, staged: StagedAction, abi_lookup: AbiLookup,
                      encoder: ActionEncoder) -> Action:
        needs_auth = not staged.context_free and not staged.authorization
        abi: Optional[ParsedAbi] = None
        if not is_hex_data(staged.data) or (needs_auth and self.authorization is None
                                            and self.default_authorization is None):
            abi = await abi_lookup(staged.account)

        authorization = list(staged.authorization)
        if needs_auth:
            authorization = self._authorize(staged.name, staged.data, abi, None)

        data = encoder.encode(abi, staged.name, staged.data)
        return Action(
            account=staged.account,
            name=staged.name,
            authorization=authorization,
            data=data.hex(),
        )


__all__ = [
    "BuilderState",
    "BuildOutcome",
    "TransactionBuilder",
    "current_builder",
    "ensure_not_staging",
    "first_account_value",
]
