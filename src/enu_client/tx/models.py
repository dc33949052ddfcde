"""
Transaction data model.

Pydantic models for authorizations, actions, transaction headers, the
final transaction, its signed envelope and the result handed back to
callers. All wire models are frozen: once a transaction is final nothing
can be appended to it.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

EXPIRATION_FORMAT = "%Y-%m-%dT%H:%M:%S"


class Authorization(BaseModel):
    """An (actor, permission) pair authorizing an action."""

    actor: str
    permission: str

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return f"{self.actor}@{self.permission}"


class Action(BaseModel):
    """A single encoded contract invocation."""

    account: str
    name: str
    authorization: List[Authorization] = Field(default_factory=list)
    data: str = Field(default="", description="Hex encoded action payload")

    model_config = {"frozen": True}


class TransactionHeader(BaseModel):
    """
    Transaction envelope fields.

    ``expiration`` is kept as an ISO-8601 string with second precision and
    no zone suffix (UTC), the form nodes return and accept.
    """

    expiration: str
    ref_block_num: int = Field(ge=0, le=0xFFFF)
    ref_block_prefix: int = Field(ge=0, le=0xFFFFFFFF)
    max_net_usage_words: int = Field(default=0, ge=0)
    max_cpu_usage_ms: int = Field(default=0, ge=0, le=0xFF)
    delay_sec: int = Field(default=0, ge=0)

    model_config = {"frozen": True}

    @field_validator('expiration', mode='before')
    @classmethod
    def parse_expiration(cls, v: Any) -> str:
        """Normalize datetimes, timestamps and ISO strings."""
        if isinstance(v, datetime):
            dt = v.astimezone(timezone.utc) if v.tzinfo else v
            return dt.strftime(EXPIRATION_FORMAT)
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return datetime.fromtimestamp(v, tz=timezone.utc).strftime(EXPIRATION_FORMAT)
        if isinstance(v, str):
            try:
                dt = datetime.fromisoformat(v.replace('Z', '+00:00'))
            except ValueError:
                raise ValueError(f"Cannot parse expiration from: {v}")
            if dt.tzinfo:
                dt = dt.astimezone(timezone.utc)
            return dt.strftime(EXPIRATION_FORMAT)
        raise ValueError(f"Cannot parse expiration from type: {type(v)}")

    def expiration_seconds(self) -> int:
        """Expiration as seconds since the Unix epoch."""
        dt = datetime.strptime(self.expiration, EXPIRATION_FORMAT).replace(tzinfo=timezone.utc)
        return int(dt.timestamp())

    def header_dict(self) -> Dict[str, Any]:
        return self.model_dump(include=set(TransactionHeader.model_fields))


class Transaction(TransactionHeader):
    """Final, immutable transaction body."""

    context_free_actions: List[Action] = Field(default_factory=list)
    actions: List[Action] = Field(default_factory=list)
    transaction_extensions: List[Tuple[int, str]] = Field(default_factory=list)

    def required_authorizations(self) -> List[Authorization]:
        """Distinct authorizations over all actions, in first-seen order."""
        seen: Dict[Tuple[str, str], Authorization] = {}
        for action in self.actions:
            for auth in action.authorization:
                seen.setdefault((auth.actor, auth.permission), auth)
        return list(seen.values())

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump()


class SignedTransaction(BaseModel):
    """Transaction plus its signature set."""

    compression: str = "none"
    transaction: Transaction
    signatures: List[str] = Field(default_factory=list)

    model_config = {"frozen": True}


@dataclass(frozen=True)
class StagedAction:
    """
    Action as staged by the builder, before encoding.

    ``data`` is either a structured field mapping or pre-encoded hex/bytes.
    """

    account: str
    name: str
    authorization: Tuple[Authorization, ...] = ()
    data: Any = field(default_factory=dict)
    context_free: bool = False


class TransactionResult(BaseModel):
    """What a transaction call hands back to the caller."""

    transaction_id: str
    broadcast: bool
    transaction: SignedTransaction
    processed: Optional[Dict[str, Any]] = None
    mock_transaction: bool = False
    intent: List[StagedAction] = Field(default_factory=list)

    model_config = {"frozen": True, "arbitrary_types_allowed": True}


__all__ = [
    "Authorization",
    "Action",
    "TransactionHeader",
    "Transaction",
    "SignedTransaction",
    "StagedAction",
    "TransactionResult",
    "EXPIRATION_FORMAT",
]
