"""
Enumivo Python SDK - transaction client

Builds, encodes, signs and broadcasts transactions for Enumivo
(EOSIO-family) chains. Contract payloads are encoded from their ABIs,
signing keys are negotiated with the chain, and several actions can be
staged into one atomic transaction.
"""

from .client import EnuClient
from .config import ClientConfig, TransactionOptions

from .runtime.errors import *
from .runtime.names import name_to_int, int_to_name, is_valid_name
from .runtime.asset import Asset, Symbol

from .abi import AbiCache, ActionEncoder, ParsedAbi, parse_abi
from .crypto import PrivateKey, PublicKey, Signature
from .keys import InMemoryKeyStore, KeyNegotiator
from .signers import TransactionSigner
from .transport import AsyncChainApi, ChainApi
from .tx import (
    Action,
    Authorization,
    ContractProxy,
    SignedTransaction,
    Transaction,
    TransactionBuilder,
    TransactionResult,
)

__version__ = "0.1.0"
__all__ = [
    "EnuClient",
    "ClientConfig",
    "TransactionOptions",
    "EnuError",
    "ErrorCode",
    "NotCachedError",
    "InvalidAbiError",
    "EncodingError",
    "MissingFieldError",
    "PrecisionMismatchError",
    "TransactionBuilderError",
    "NestedCallbackError",
    "NoSigningKeyError",
    "InvalidKeyError",
    "NetworkError",
    "BroadcastError",
    "MockTransactionError",
    "name_to_int",
    "int_to_name",
    "is_valid_name",
    "Asset",
    "Symbol",
    "AbiCache",
    "ActionEncoder",
    "ParsedAbi",
    "parse_abi",
    "PrivateKey",
    "PublicKey",
    "Signature",
    "InMemoryKeyStore",
    "KeyNegotiator",
    "TransactionSigner",
    "AsyncChainApi",
    "ChainApi",
    "Action",
    "Authorization",
    "ContractProxy",
    "SignedTransaction",
    "Transaction",
    "TransactionBuilder",
    "TransactionResult",
    "__version__",
]
