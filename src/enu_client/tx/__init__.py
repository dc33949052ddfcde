"""
Transaction construction: models, authorization, headers, builder,
serialization and contract dispatch.
"""

from .models import (
    Action,
    Authorization,
    SignedTransaction,
    StagedAction,
    Transaction,
    TransactionHeader,
    TransactionResult,
)
from .authorization import parse_authorization, resolve_authorization
from .header import HeaderResolver, merge_headers
from .builder import BuilderState, BuildOutcome, TransactionBuilder, current_builder
from .serializer import pack_transaction, push_payload, signing_digest, transaction_id
from .contract import ContractProxy, ContractSet, ContractStage, StagingHandle

__all__ = [
    "Action",
    "Authorization",
    "SignedTransaction",
    "StagedAction",
    "Transaction",
    "TransactionHeader",
    "TransactionResult",
    "parse_authorization",
    "resolve_authorization",
    "HeaderResolver",
    "merge_headers",
    "BuilderState",
    "BuildOutcome",
    "TransactionBuilder",
    "current_builder",
    "pack_transaction",
    "push_payload",
    "signing_digest",
    "transaction_id",
    "ContractProxy",
    "ContractSet",
    "ContractStage",
    "StagingHandle",
]
