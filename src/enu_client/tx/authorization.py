"""
Authorization parsing and defaulting.

Accepted forms: ``"inita@owner"``, ``"inita"`` (default permission),
``"@posting"`` (actor taken from the action), ``{"actor", "permission"}``
mappings, Authorization instances, or a list of any of these.
"""

from __future__ import annotations
import logging
from collections.abc import Mapping
from typing import Any, List, Optional

from ..runtime.errors import ErrorCode, TransactionBuilderError
from .models import Authorization

logger = logging.getLogger(__name__)

DEFAULT_PERMISSION = "active"


def _parse_one(value: Any, default_actor: Optional[str], default_permission: str) -> Authorization:
    if isinstance(value, Authorization):
        return value

    if isinstance(value, Mapping):
        actor = value.get("actor") or default_actor
        permission = value.get("permission") or default_permission
    elif isinstance(value, str):
        actor, _, permission = value.partition("@")
        actor = actor or default_actor
        permission = permission or default_permission
    else:
        raise TransactionBuilderError(
            f"Unsupported authorization {value!r}", ErrorCode.MISSING_AUTHORIZATION
        )

    if not actor:
        raise TransactionBuilderError(
            f"Authorization {value!r} has no actor and none can be derived",
            ErrorCode.MISSING_AUTHORIZATION,
        )
    return Authorization(actor=actor, permission=permission)


def parse_authorization(value: Any, default_actor: Optional[str] = None,
                        default_permission: str = DEFAULT_PERMISSION) -> List[Authorization]:
    """
    Normalize an authorization specification to a list of pairs.

    Several string entries are sorted by actor, then permission; explicit
    mappings and Authorization objects keep the order given.

    Args:
        value: Authorization in any accepted form
        default_actor: Actor for permission-only strings
        default_permission: Permission for actor-only strings

    Returns:
        List of Authorization
    """
    if value is None:
        return []
    if isinstance(value, (str, Mapping, Authorization)):
        return [_parse_one(value, default_actor, default_permission)]

    entries = list(value)
    parsed = [_parse_one(entry, default_actor, default_permission) for entry in entries]
    if len(entries) > 1 and all(isinstance(entry, str) for entry in entries):
        parsed.sort(key=lambda a: (a.actor, a.permission))
    return parsed


def resolve_authorization(per_call: Any, global_default: Any, first_actor: Optional[str],
                          default_permission: str = DEFAULT_PERMISSION) -> List[Authorization]:
    """
    Pick the authorization for an action that did not carry its own.

    Precedence: per-call override, then the client-wide default, then the
    action's first account-name field with the default permission.

    Raises:
        TransactionBuilderError: When no actor can be determined
    """
    if per_call is not None:
        return parse_authorization(per_call, first_actor, default_permission)
    if global_default is not None:
        return parse_authorization(global_default, first_actor, default_permission)
    if first_actor:
        return [Authorization(actor=first_actor, permission=default_permission)]
    raise TransactionBuilderError(
        "Action has no authorization and no actor could be derived",
        ErrorCode.MISSING_AUTHORIZATION,
    )


__all__ = ["DEFAULT_PERMISSION", "parse_authorization", "resolve_authorization"]
