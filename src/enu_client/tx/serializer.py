"""
Transaction serialization.

Packs a final Transaction into the ledger's binary layout and derives the
transaction id and signing digest from it.
"""

from __future__ import annotations
from typing import Any, Dict, Iterable, List, Union

from ..codec.writer import BinaryWriter
from ..crypto.ecc import sha256
from ..runtime.names import name_to_int
from .models import Action, SignedTransaction, Transaction

SIGNING_PADDING = bytes(32)


def _write_action(w: BinaryWriter, action: Action) -> None:
    w.u64le(name_to_int(action.account))
    w.u64le(name_to_int(action.name))
    w.varuint32(len(action.authorization))
    for auth in action.authorization:
        w.u64le(name_to_int(auth.actor))
        w.u64le(name_to_int(auth.permission))
    w.len_prefixed_bytes(bytes.fromhex(action.data))


def _write_actions(w: BinaryWriter, actions: Iterable[Action]) -> None:
    actions = list(actions)
    w.varuint32(len(actions))
    for action in actions:
        _write_action(w, action)


def pack_transaction(trx: Transaction) -> bytes:
    """
    Serialize a transaction.

    Layout: expiration u32, ref_block_num u16, ref_block_prefix u32,
    max_net_usage_words varuint32, max_cpu_usage_ms u8, delay_sec
    varuint32, context free actions, actions, extensions.
    """
    w = BinaryWriter()
    w.u32le(trx.expiration_seconds())
    w.u16le(trx.ref_block_num)
    w.u32le(trx.ref_block_prefix)
    w.varuint32(trx.max_net_usage_words)
    w.u8(trx.max_cpu_usage_ms)
    w.varuint32(trx.delay_sec)
    _write_actions(w, trx.context_free_actions)
    _write_actions(w, trx.actions)
    w.varuint32(len(trx.transaction_extensions))
    for ext_type, ext_data in trx.transaction_extensions:
        w.u16le(ext_type)
        w.len_prefixed_bytes(bytes.fromhex(ext_data))
    return w.to_bytes()


def transaction_id(packed: bytes) -> str:
    return sha256(packed).hex()


def signing_buffer(chain_id: bytes, packed: bytes) -> bytes:
    """chain_id || packed transaction || 32 zero bytes (no context free data)."""
    return chain_id + packed + SIGNING_PADDING


def signing_digest(chain_id: bytes, packed: bytes) -> bytes:
    return sha256(signing_buffer(chain_id, packed))


def push_payload(signed: Union[SignedTransaction, Dict[str, Any]],
                 packed: Union[bytes, None] = None) -> Dict[str, Any]:
    """
    Body for the node's push_transaction endpoint.

    Args:
        signed: SignedTransaction, or an already packed payload which is
            returned as is
        packed: Serialized transaction when already computed
    """
    if isinstance(signed, dict):
        return signed
    if packed is None:
        packed = pack_transaction(signed.transaction)
    signatures: List[str] = list(signed.signatures)
    return {
        "signatures": signatures,
        "compression": signed.compression,
        "packed_context_free_data": "",
        "packed_trx": packed.hex(),
    }


__all__ = [
    "pack_transaction",
    "transaction_id",
    "signing_buffer",
    "signing_digest",
    "push_payload",
]
