"""
Tests for transaction packing, ids and signing digests.
"""

import hashlib

import pytest

from enu_client.codec.reader import BinaryReader
from enu_client.runtime.names import int_to_name
from enu_client.tx.models import Action, Authorization, SignedTransaction, Transaction
from enu_client.tx.serializer import (
    pack_transaction,
    push_payload,
    signing_buffer,
    signing_digest,
    transaction_id,
)
from helpers import CHAIN_ID, HEADERS

HEADER = {k: HEADERS[k] for k in ("expiration", "ref_block_num", "ref_block_prefix")}


@pytest.fixture
def trx():
    return Transaction(
        **HEADER,
        actions=[Action(
            account="enu.null",
            name="nonce",
            authorization=[Authorization(actor="inita", permission="active")],
            data="0131",
        )],
    )


class TestPack:

    def test_header_layout(self, trx):
        r = BinaryReader(pack_transaction(trx))

        assert r.u32le() == 1893456000
        assert r.u16le() == 1
        assert r.u32le() == 452435776
        assert r.varuint32() == 0
        assert r.u8() == 0
        assert r.varuint32() == 0

    def test_action_layout(self, trx):
        r = BinaryReader(pack_transaction(trx))
        r.bytes(13)

        assert r.varuint32() == 0  # context free actions
        assert r.varuint32() == 1
        assert int_to_name(r.u64le()) == "enu.null"
        assert int_to_name(r.u64le()) == "nonce"
        assert r.varuint32() == 1
        assert int_to_name(r.u64le()) == "inita"
        assert int_to_name(r.u64le()) == "active"
        assert r.len_prefixed_bytes() == b"\x011"
        assert r.varuint32() == 0  # extensions
        assert r.eof

    def test_context_free_actions_come_first(self):
        cfa = Action(account="enu.null", name="nonce", data="0130")
        act = Action(account="enu.null", name="nonce", data="0131",
                     authorization=[Authorization(actor="inita", permission="active")])
        r = BinaryReader(pack_transaction(Transaction(**HEADER, context_free_actions=[cfa], actions=[act])))
        r.bytes(13)

        assert r.varuint32() == 1
        r.bytes(16)
        assert r.varuint32() == 0
        assert r.len_prefixed_bytes() == b"\x010"
        assert r.varuint32() == 1

    def test_extensions(self, trx):
        packed = pack_transaction(trx.model_copy(update={"transaction_extensions": [(1, "beef")]}))
        assert packed.endswith(b"\x01" + b"\x01\x00" + b"\x02\xbe\xef")

    def test_large_header_values_use_varints(self):
        trx = Transaction(**HEADER, delay_sec=300, max_net_usage_words=128)
        r = BinaryReader(pack_transaction(trx))
        r.bytes(10)
        assert r.varuint32() == 128
        r.u8()
        assert r.varuint32() == 300

    def test_deterministic(self, trx):
        assert pack_transaction(trx) == pack_transaction(Transaction(**trx.model_dump()))


class TestDigests:

    def test_transaction_id(self, trx):
        packed = pack_transaction(trx)
        assert transaction_id(packed) == hashlib.sha256(packed).hexdigest()

    def test_signing_buffer(self, trx):
        chain_id = bytes.fromhex(CHAIN_ID)
        packed = pack_transaction(trx)
        buf = signing_buffer(chain_id, packed)

        assert buf == chain_id + packed + bytes(32)
        assert signing_digest(chain_id, packed) == hashlib.sha256(buf).digest()

    def test_chain_id_changes_digest(self, trx):
        packed = pack_transaction(trx)
        assert signing_digest(bytes(32), packed) != signing_digest(bytes.fromhex(CHAIN_ID), packed)


class TestPushPayload:

    def test_payload(self, trx):
        signed = SignedTransaction(transaction=trx, signatures=["SIG_K1_x"])
        assert push_payload(signed) == {
            "signatures": ["SIG_K1_x"],
            "compression": "none",
            "packed_context_free_data": "",
            "packed_trx": pack_transaction(trx).hex(),
        }

    def test_prepacked_payload_passes_through(self):
        payload = {"signatures": [], "packed_trx": "00"}
        assert push_payload(payload) is payload
