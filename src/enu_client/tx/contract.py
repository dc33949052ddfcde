"""
Contract action dispatch.

Every action declared by a contract ABI becomes a callable. Calls accept
the payload either as positional arguments in ABI field order or as one
field mapping, optionally followed by transaction options:

    token.transfer("inita", "initb", "1.0000 ENU", "memo")
    token.transfer({"from": "inita", "to": "initb", "quantity": "1.0000 ENU", "memo": ""})
    token.transfer("inita", "initb", "1.0000 ENU", "", {"broadcast": False})
    token.transfer("inita", "initb", "1.0000 ENU", "", authorization="inita@owner")
"""

from __future__ import annotations
import keyword
import logging
from collections.abc import Mapping
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Tuple

from ..abi.schema import ParsedAbi
from ..config import OPTION_NAMES, TransactionOptions
from ..runtime.errors import NestedCallbackError, TransactionBuilderError
from .builder import TransactionBuilder, current_builder

logger = logging.getLogger(__name__)

ActionInvoker = Callable[[str, ParsedAbi, str, Dict[str, Any], TransactionOptions], Awaitable[Any]]


def _field_key(name: str, fields: List[str]) -> str:
    # ``from_`` stands for the reserved word ``from``
    if name not in fields and name.endswith("_") and keyword.iskeyword(name[:-1]):
        return name[:-1]
    return name


def split_action_args(abi: ParsedAbi, action_name: str, args: Tuple[Any, ...],
                      kwargs: Dict[str, Any]) -> Tuple[Dict[str, Any], TransactionOptions]:
    """
    Separate an action call's arguments into payload and options.

    Args:
        abi: Contract ABI declaring the action
        action_name: Action being called
        args: Positional arguments of the call
        kwargs: Keyword arguments; field names go to the payload, option
            names to the options

    Returns:
        ``(data, options)``

    Raises:
        NestedCallbackError: A callback was passed inside a transaction
        TransactionBuilderError: Surplus arguments or unknown keywords
    """
    if any(callable(a) and not isinstance(a, Mapping) for a in args):
        if current_builder() is not None:
            raise NestedCallbackError()
        raise TransactionBuilderError(
            f"Callbacks are not supported by '{action_name}', await the returned coroutine"
        )

    fields = [f.name for f in abi.action_fields(action_name)]
    if args and isinstance(args[0], Mapping):
        data = dict(args[0])
        rest = args[1:]
    else:
        data = dict(zip(fields, args))
        rest = args[len(fields):]

    if len(rest) > 1:
        raise TransactionBuilderError(
            f"'{action_name}' takes {len(fields)} field(s) and one options argument, "
            f"got {len(args)} argument(s)",
            details={"fields": fields},
        )

    option_kwargs: Dict[str, Any] = {}
    for name, value in kwargs.items():
        key = _field_key(name, fields)
        if key in fields:
            data[key] = value
        elif name in OPTION_NAMES:
            option_kwargs[name] = value
        else:
            raise TransactionBuilderError(
                f"'{action_name}' has no field or option named '{name}'",
                details={"fields": fields, "options": sorted(OPTION_NAMES)},
            )

    options = TransactionOptions.coerce(rest[0] if rest else None, **option_kwargs)
    return data, options


class ActionTable:
    """Attribute access over a table of action callables."""

    def __init__(self, actions: Dict[str, Callable[..., Any]]):
        self._actions = actions

    def __getattr__(self, name: str) -> Callable[..., Any]:
        actions = self.__dict__.get("_actions", {})
        if name in actions:
            return actions[name]
        raise AttributeError(f"{type(self).__name__} has no action '{name}'")

    def __dir__(self) -> List[str]:
        return sorted(set(super().__dir__()) | set(self._actions))

    def __contains__(self, name: str) -> bool:
        return name in self._actions

    def action_names(self) -> List[str]:
        return list(self._actions)


def _staging_action(builder: TransactionBuilder, account: str, abi: ParsedAbi,
                    action_name: str) -> Callable[..., None]:
    def stage(*args: Any, **kwargs: Any) -> None:
        data, options = split_action_args(abi, action_name, args, kwargs)
        builder.stage(account, action_name, data, authorization=options.authorization, abi=abi)

    stage.__name__ = action_name
    stage.__qualname__ = f"{account}.{action_name}"
    return stage


class ContractStage(ActionTable):
    """
    One contract's actions bound to a builder.

    Calls stage an action and return None; nothing is signed or sent until
    the construction routine finishes.
    """

    def __init__(self, builder: TransactionBuilder, account: str, abi: ParsedAbi):
        super().__init__({
            name: _staging_action(builder, account, abi, name) for name in abi.action_names()
        })
        self.account = account
        self.abi = abi

    def __repr__(self) -> str:
        return f"ContractStage('{self.account}')"


class StagingHandle(ActionTable):
    """
    Handle passed to construction routines.

    Exposes the actions of every given contract; on a name clash the
    contract listed first wins. Arbitrary actions can be staged with
    ``action`` and ``context_free_action``.
    """

    def __init__(self, builder: TransactionBuilder, contracts: List[Tuple[str, ParsedAbi]]):
        actions: Dict[str, Callable[..., Any]] = {}
        for account, abi in contracts:
            for name in abi.action_names():
                actions.setdefault(name, _staging_action(builder, account, abi, name))
        super().__init__(actions)
        self._builder = builder

    def action(self, account: str, name: str, data: Any = None, authorization: Any = None) -> None:
        """Stage an action of any contract; its ABI is resolved at assembly."""
        self._builder.stage(account, name, data, authorization=authorization)

    def context_free_action(self, account: str, name: str, data: Any = None) -> None:
        self._builder.stage(account, name, data, context_free=True)


class ContractSet:
    """
    Several contract stages, by account name.

    ``contracts["enu.token"]`` and ``contracts.enu_token`` are the same stage.
    """

    def __init__(self, stages: Dict[str, ContractStage]):
        self._stages = stages

    def __getitem__(self, account: str) -> ContractStage:
        return self._stages[account]

    def __getattr__(self, name: str) -> ContractStage:
        stages = self.__dict__.get("_stages", {})
        for account, stage in stages.items():
            if account.replace(".", "_") == name:
                return stage
        raise AttributeError(f"No contract '{name}' in this transaction")

    def __iter__(self) -> Iterator[str]:
        return iter(self._stages)

    def __len__(self) -> int:
        return len(self._stages)


class ContractProxy(ActionTable):
    """
    Dispatch table for one contract's actions.

    Each call outside a transaction routine builds, signs and broadcasts a
    one-action transaction and returns its result. Inside a routine of the
    same client the action is merged into the pending transaction and the
    call returns None.

    Example:
        ```python
        token = await client.contract("enu.token")
        result = await token.transfer("inita", "initb", "1.0000 ENU", "")
        await token.transaction(lambda t: t.issue("inita", "5.0000 ENU", ""))
        ```
    """

    def __init__(self, client: Any, account: str, abi: ParsedAbi):
        self.client = client
        self.account = account
        self.abi = abi
        super().__init__({name: self._bind(name) for name in abi.action_names()})

    def _bind(self, action_name: str) -> Callable[..., Awaitable[Any]]:
        async def invoke(*args: Any, **kwargs: Any) -> Any:
            data, options = split_action_args(self.abi, action_name, args, kwargs)
            return await self.client.invoke_action(self.account, self.abi, action_name, data, options)

        invoke.__name__ = action_name
        invoke.__qualname__ = f"{self.account}.{action_name}"
        return invoke

    async def transaction(self, routine: Callable[[ContractStage], Any], options: Any = None,
                          **option_kwargs: Any) -> Any:
        """Run ``routine`` with this contract's stage and send one transaction."""
        return await self.client.transaction(self.account, routine, options, **option_kwargs)

    def __repr__(self) -> str:
        return f"ContractProxy('{self.account}', actions={self.action_names()})"


__all__ = [
    "ActionTable",
    "ContractProxy",
    "ContractSet",
    "ContractStage",
    "StagingHandle",
    "split_action_args",
]
