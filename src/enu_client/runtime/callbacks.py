"""
Helpers for collaborators that may be synchronous or asynchronous.

Header sources, key providers, sign providers and network calls are all
accepted either as plain values, plain callables or coroutine functions.
They are normalized here into a single awaitable contract.
"""

from __future__ import annotations
import inspect
from typing import Any, Callable


async def maybe_await(value: Any) -> Any:
    """Await ``value`` if it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


def call_with_supported_kwargs(fn: Callable, **kwargs: Any) -> Any:
    """
    Call ``fn`` with only the keyword arguments its signature accepts.

    A provider written as ``lambda: [key]`` gets no arguments, one written
    as ``def provider(transaction, pubkeys=None)`` gets both, and one
    taking ``**kwargs`` gets everything.
    """
    try:
        signature = inspect.signature(fn)
    except (TypeError, ValueError):
        return fn(**kwargs)

    params = signature.parameters.values()
    if any(p.kind is inspect.Parameter.VAR_KEYWORD for p in params):
        return fn(**kwargs)

    accepted = {
        p.name for p in params
        if p.kind in (inspect.Parameter.POSITIONAL_OR_KEYWORD, inspect.Parameter.KEYWORD_ONLY)
    }
    return fn(**{k: v for k, v in kwargs.items() if k in accepted})


async def resolve_provider(fn: Callable, **kwargs: Any) -> Any:
    """Call a sync-or-async provider and await its result if needed."""
    return await maybe_await(call_with_supported_kwargs(fn, **kwargs))
