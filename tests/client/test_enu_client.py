"""
End-to-end tests for EnuClient against offline configurations and a mock chain API.
"""

import asyncio
import hashlib
import json
from unittest.mock import AsyncMock, Mock

import pytest

from enu_client import ClientConfig, EnuClient
from enu_client.crypto.ecc import PublicKey, Signature
from enu_client.keys.keystore import InMemoryKeyStore
from enu_client.runtime.errors import (
    InvalidAbiError,
    MockTransactionError,
    NestedCallbackError,
    NetworkError,
    NoSigningKeyError,
    NotCachedError,
    PrecisionMismatchError,
)
from enu_client.transport.http import AsyncChainApi
from enu_client.tx.serializer import pack_transaction, signing_digest
from helpers import CHAIN_ID, HEADERS, PUBKEY, WIF, MockChainApi, currency_abi, mk_client, mk_key

XFER = ("few", "many", "100.0000 SYS", "")


def sign_provider(buf, sign):
    return sign(buf, WIF)


def auth_pairs(result, index=0):
    return [(a.actor, a.permission) for a in result.transaction.transaction.actions[index].authorization]


class TestOffline:

    @pytest.mark.asyncio
    async def test_multi_signature(self):
        client = mk_client(key_provider=[mk_key("key1"), mk_key("key2")], broadcast=False)
        result = await client.nonce("1", {"authorization": "inita"})

        assert len(result.transaction.signatures) == 2
        assert result.broadcast is False

    @pytest.mark.asyncio
    async def test_signatures_recover_to_signers(self, offline_client):
        result = await offline_client.transfer("inita", "initb", "1.0000 ENU", "", False)

        trx = result.transaction.transaction
        digest = signing_digest(bytes.fromhex(CHAIN_ID), pack_transaction(trx))
        (sig,) = result.transaction.signatures
        assert Signature.from_string(sig).recover(digest) == PublicKey.from_string(PUBKEY)

    @pytest.mark.asyncio
    async def test_context_free_actions(self, offline_client):
        nonce = {"account": "enu.null", "name": "nonce", "data": "0131"}
        authorization = [{"actor": "inita", "permission": "active"}]

        result = await offline_client.transaction({
            "context_free_actions": [nonce],
            "actions": [dict(nonce, authorization=authorization)],
        }, broadcast=False)

        trx = result.transaction.transaction
        assert [a.authorization for a in trx.context_free_actions] == [[]]
        assert auth_pairs(result) == [("inita", "active")]

    @pytest.mark.asyncio
    async def test_version(self):
        import enu_client
        assert enu_client.__version__


class TestTransactionHeaders:

    OVERRIDES = {"max_net_usage_words": 333, "max_cpu_usage_ms": 222, "delay_sec": 369}

    @pytest.mark.asyncio
    async def test_global(self):
        headers = dict(HEADERS, **self.OVERRIDES)
        client = mk_client(key_provider=WIF, headers=headers, broadcast=False)

        result = await client.transfer(*XFER)

        trx = result.transaction.transaction
        assert trx.header_dict() == {k: headers[k] for k in trx.header_dict()}
        assert len(result.transaction.signatures) == 1

    @pytest.fixture
    def client(self):
        return mk_client(key_provider=WIF, sign=False, broadcast=False)

    @pytest.mark.asyncio
    async def test_transaction_mapping(self, client):
        result = await client.transaction({
            "delay_sec": 369,
            "actions": [{
                "account": "enu.null", "name": "nonce", "data": "0131",
                "authorization": [{"actor": "inita", "permission": "owner"}],
            }],
        })
        assert result.transaction.transaction.delay_sec == 369

    @pytest.mark.asyncio
    async def test_action_options(self, client):
        result = await client.transfer(*XFER, {"delay_sec": 369})
        assert result.transaction.transaction.delay_sec == 369

    @pytest.mark.asyncio
    async def test_routine_options(self, client):
        result = await client.transaction(lambda tr: tr.transfer(*XFER), {"delay_sec": 369})
        assert result.transaction.transaction.delay_sec == 369

    @pytest.mark.asyncio
    async def test_contract_options(self, client):
        result = await client.transaction("enu.token", lambda token: token.transfer(*XFER), {"delay_sec": 369})
        assert result.transaction.transaction.delay_sec == 369

    @pytest.mark.asyncio
    async def test_config_defaults_below_call(self):
        client = mk_client(sign=False, broadcast=False, delay_sec=5, max_cpu_usage_ms=7)
        result = await client.transfer(*XFER, delay_sec=9)

        trx = result.transaction.transaction
        assert (trx.delay_sec, trx.max_cpu_usage_ms) == (9, 7)

    @pytest.mark.asyncio
    async def test_headers_from_chain(self, chain_api):
        client = mk_client(api=chain_api, headers=None, sign=False, broadcast=False, expire_in_seconds=30)
        result = await client.transfer(*XFER)

        trx = result.transaction.transaction
        assert trx.expiration == "2030-01-01T00:00:30"
        assert trx.ref_block_num == 70000 & 0xFFFF
        assert trx.ref_block_prefix == 3456789012


class TestAbis:

    @pytest.mark.asyncio
    async def test_load_abi(self):
        client = mk_client()
        abi = currency_abi()

        assert client.abi_cache.abi("currency", abi).abi == abi
        assert client.abi_cache.abi("currency", json.dumps(abi).encode()).abi == abi

        currency = await client.contract("currency")
        assert callable(currency.transfer)

    @pytest.mark.asyncio
    async def test_abi_cache_sequence(self):
        api = MockChainApi(abis={"enu.msig": currency_abi()})
        client = mk_client(api=api)

        with pytest.raises(NotCachedError, match="not cached"):
            client.abi_cache.abi("enu.msig")

        abi = await client.abi_cache.abi_async("enu.msig")
        assert abi == await client.abi_cache.abi_async("enu.msig", False)
        assert abi == client.abi_cache.abi("enu.msig")
        assert api.calls["get_abi"] == 1

    @pytest.mark.asyncio
    async def test_system_contracts_need_no_fetch(self, chain_api):
        client = mk_client(api=chain_api)
        for account in ("enumivo", "enu.token"):
            assert await client.contract(account)
        assert chain_api.calls["get_abi"] == 0

    @pytest.mark.asyncio
    async def test_unknown_contract(self, chain_api):
        with pytest.raises(InvalidAbiError):
            await mk_client(api=chain_api).contract("unknown432")

    @pytest.mark.asyncio
    async def test_unknown_contract_offline(self):
        with pytest.raises(NotCachedError):
            await mk_client().contract("unknown432")

    @pytest.mark.asyncio
    async def test_abi_lookup_for_mapping_intent(self):
        client = mk_client(api=MockChainApi(abis={"currency": currency_abi()}))
        result = await client.transaction({
            "actions": [{
                "account": "currency",
                "name": "transfer",
                "data": {"from": "inita", "to": "initb", "quantity": "13.0000 CUR", "memo": ""},
                "authorization": [{"actor": "inita", "permission": "active"}],
            }],
        }, {"sign": False, "broadcast": False})
        assert result.transaction.transaction.actions[0].account == "currency"

    @pytest.mark.asyncio
    async def test_contracts_do_not_sort(self):
        client = mk_client(api=MockChainApi(abis={"currency": currency_abi()}))

        def routine(contracts):
            contracts.enu_token.transfer("inita", "initd", "1.1000 ENU", "")
            contracts.currency.transfer("inita", "initd", "1.2000 CUR", "")

        result = await client.transaction(["currency", "enu.token"], routine, sign=False, broadcast=False)

        actions = result.transaction.transaction.actions
        assert [a.account for a in actions] == ["enu.token", "currency"]

    def test_unknown_attribute(self, offline_client):
        with pytest.raises(AttributeError):
            offline_client.nosuchaction


class TestKeyProvider:

    @pytest.mark.asyncio
    async def test_global_callable(self, chain_api):
        client = mk_client(api=chain_api, key_provider=lambda: [WIF])
        result = await client.transfer("inita", "initb", "1.0001 ENU", "")
        assert result.broadcast is True
        assert len(chain_api.pushed) == 1

    @pytest.mark.asyncio
    async def test_per_call(self, chain_api):
        client = mk_client(api=chain_api)

        def provider():
            return [WIF]

        await client.transfer("inita", "initb", "1.0002 ENU", "", {"key_provider": provider})
        await client.transaction(lambda tr: tr.transfer("inita", "initb", "1.0003 ENU", ""),
                                 {"key_provider": provider})
        token = await client.contract("enu.token")
        await token.transfer("inita", "initb", "1.0004 ENU", "", {"key_provider": provider})

        assert len(chain_api.pushed) == 3

    @pytest.mark.asyncio
    async def test_no_key(self, chain_api):
        with pytest.raises(NoSigningKeyError):
            await mk_client(api=chain_api).transfer("inita", "initb", "1.0000 ENU", "")
        assert chain_api.pushed == []

    @pytest.mark.asyncio
    async def test_private_keys_used_as_given(self, chain_api):
        client = mk_client(api=chain_api, key_provider=lambda: [mk_key("other").to_wif(), WIF])
        result = await client.transfer("inita", "initb", "1.2740 ENU", "", False)

        assert len(result.transaction.signatures) == 2
        assert chain_api.calls["get_required_keys"] == 0

    @pytest.mark.asyncio
    async def test_public_keys_then_private_key(self, chain_api):
        calls = []

        def provider(transaction, pubkeys=None):
            calls.append(pubkeys)
            if pubkeys is None:
                assert transaction.actions[0].name == "transfer"
                return [PUBKEY]
            assert pubkeys == [PUBKEY]
            return [WIF]

        client = mk_client(api=chain_api, key_provider=provider)
        result = await client.transfer("inita", "initb", "9.0000 ENU", "", False)

        assert len(result.transaction.signatures) == 1
        assert calls == [None, [PUBKEY]]
        assert chain_api.required_keys_requests[0]["available_keys"] == [PUBKEY]

    @pytest.mark.asyncio
    async def test_keystore(self, chain_api):
        store = InMemoryKeyStore([WIF, mk_key("spare")])
        chain_api.required_keys = [PUBKEY]
        client = mk_client(api=chain_api, key_provider=store)

        result = await client.transfer("inita", "initb", "12.0000 ENU", "", True)

        assert len(result.transaction.signatures) == 1
        assert len(chain_api.required_keys_requests[0]["available_keys"]) == 2

    @pytest.mark.asyncio
    async def test_future(self, chain_api):
        future = asyncio.get_running_loop().create_future()
        future.set_result(WIF)
        client = mk_client(api=chain_api, key_provider=future)

        await client.transfer("inita", "initb", "1.6180 ENU", "", True)
        await client.transfer("inita", "initb", "1.6181 ENU", "", True)
        assert len(chain_api.pushed) == 2


class TestSignProvider:

    @pytest.mark.asyncio
    async def test_custom_provider_queries_required_keys(self, chain_api):
        client = None

        async def provider(buf, sign, transaction):
            res = await client.get_required_keys(transaction, [PUBKEY])
            assert res["required_keys"] == [PUBKEY]
            return sign(buf, WIF)

        client = mk_client(api=chain_api, sign_provider=provider)
        result = await client.transfer("inita", "initb", "2.0000 ENU", "", False)

        assert len(result.transaction.signatures) == 1
        assert chain_api.calls["get_required_keys"] == 1

    @pytest.mark.asyncio
    async def test_async_sign_provider(self):
        async def provider(buf, sign):
            return sign(buf, WIF)

        client = mk_client(sign_provider=provider, broadcast=False)
        result = await client.transfer("inita", "initb", "1.0000 ENU", "")
        assert len(result.transaction.signatures) == 1

    @pytest.mark.asyncio
    async def test_required_keys_without_api(self, offline_client):
        with pytest.raises(NetworkError):
            await offline_client.get_required_keys({}, [PUBKEY])


class TestBroadcastGate:

    @pytest.mark.asyncio
    async def test_broadcast(self, chain_api):
        client = mk_client(api=chain_api, sign_provider=sign_provider)
        result = await client.transfer("inita", "initb", "1.0000 ENU", "")

        assert result.broadcast is True
        assert result.processed["receipt"]["status"] == "executed"
        payload = chain_api.pushed[0]
        assert payload["packed_trx"] == pack_transaction(result.transaction.transaction).hex()
        assert payload["signatures"] == result.transaction.signatures
        assert result.transaction_id == hashlib.sha256(bytes.fromhex(payload["packed_trx"])).hexdigest()

    @pytest.mark.asyncio
    async def test_no_broadcast(self, chain_api):
        client = mk_client(api=chain_api, sign_provider=sign_provider)
        result = await client.transfer("inita", "initb", "1.0000 ENU", "", {"broadcast": False})

        assert result.broadcast is False
        assert len(result.transaction.signatures) == 1
        assert chain_api.pushed == []

    @pytest.mark.asyncio
    async def test_no_sign(self, chain_api):
        client = mk_client(api=chain_api, sign_provider=sign_provider)
        result = await client.transfer("inita", "initb", "1.0000 ENU", "", {"broadcast": False, "sign": False})

        assert result.transaction.signatures == []
        assert chain_api.pushed == []

    @pytest.mark.asyncio
    async def test_mock_pass(self, chain_api):
        client = mk_client(api=chain_api, sign_provider=sign_provider, mock_transactions="pass")
        result = await client.transfer("inita", "initb", "1.0000 ENU", "")

        assert result.mock_transaction is True
        assert chain_api.pushed == []

    @pytest.mark.asyncio
    async def test_mock_fail(self, chain_api):
        client = mk_client(api=chain_api, sign_provider=sign_provider, mock_transactions=lambda: "fail")

        with pytest.raises(MockTransactionError) as exc_info:
            await client.transfer("inita", "initb", "1.0000 ENU", "")

        assert "fake error" in exc_info.value.message
        assert exc_info.value.message.startswith("[push_transaction mock error]")
        assert chain_api.pushed == []

    @pytest.mark.asyncio
    async def test_node_rejection_surfaces(self, chain_api):
        chain_api.push_error = NetworkError("expired transaction")
        client = mk_client(api=chain_api, sign_provider=sign_provider)

        with pytest.raises(NetworkError, match="expired transaction"):
            await client.transfer("inita", "initb", "1.0000 ENU", "")
        assert chain_api.calls["push_transaction"] == 1

    @pytest.mark.asyncio
    async def test_broadcast_without_api(self):
        client = mk_client(sign_provider=sign_provider)
        with pytest.raises(NetworkError, match="No chain API"):
            await client.transfer("inita", "initb", "1.0000 ENU", "")


class TestAuthorization:

    @pytest.fixture
    def client(self):
        return mk_client(sign_provider=sign_provider, broadcast=False)

    @pytest.mark.asyncio
    async def test_derived_from_sender(self, client):
        result = await client.transfer("inita", "initb", "1.0000 ENU", "")
        assert auth_pairs(result) == [("inita", "active")]

    @pytest.mark.asyncio
    async def test_per_call(self, client):
        result = await client.transfer("inita", "initb", "1.0000 ENU", "", {"authorization": "inita@owner"})
        assert auth_pairs(result) == [("inita", "owner")]

    @pytest.mark.asyncio
    async def test_global_permission_only(self):
        client = mk_client(sign_provider=sign_provider, broadcast=False, authorization="@posting")
        result = await client.transfer("inita", "initb", "1.0000 ENU", "")
        assert auth_pairs(result) == [("inita", "posting")]

    @pytest.mark.asyncio
    async def test_global_list(self):
        authorization = [{"actor": "inita", "permission": "posting"}]
        client = mk_client(sign_provider=sign_provider, broadcast=False, authorization=authorization)
        result = await client.transfer("inita", "initb", "1.0000 ENU", "")
        assert auth_pairs(result) == [("inita", "posting")]

    @pytest.mark.asyncio
    async def test_sorting(self, client):
        result = await client.transfer("inita", "initb", "1.0000 ENU", "",
                                       {"authorization": ["initb@owner", "inita@owner"]})
        assert auth_pairs(result) == [("inita", "owner"), ("initb", "owner")]

    @pytest.mark.asyncio
    async def test_create_uses_explicit_authorization(self, client):
        result = await client.create("enu.token", "10000 ABC", {"authorization": "enu.token"})
        assert auth_pairs(result) == [("enu.token", "active")]

    @pytest.mark.asyncio
    async def test_custom_precision(self, client):
        result = await client.transfer("inita", "initb", "1.618 PHI", "")
        assert len(result.transaction.transaction.actions) == 1

    @pytest.mark.asyncio
    async def test_registered_precision_enforced(self, client):
        with pytest.raises(PrecisionMismatchError):
            await client.transfer("inita", "initb", "1.00 ENU", "")


class TestMultiAction:

    @pytest.fixture
    def client(self, chain_api):
        return mk_client(api=chain_api, sign_provider=sign_provider)

    @pytest.mark.asyncio
    async def test_staging_helpers_return_none(self, client, chain_api):
        returned = []

        def routine(tr):
            returned.append(tr.transfer("inita", "initb", "1.0000 ENU", ""))
            returned.append(tr.transfer({"from": "inita", "to": "initc", "quantity": "1.0000 ENU", "memo": ""}))

        result = await client.transaction(routine)

        assert returned == [None, None]
        assert len(result.transaction.transaction.actions) == 2
        assert len(chain_api.pushed) == 1

    @pytest.mark.asyncio
    async def test_system_actions(self, client):
        def routine(tr):
            tr.newaccount({"creator": "enumivo", "name": "a12345111222", "owner": PUBKEY, "active": PUBKEY})
            tr.buyrambytes({"payer": "enumivo", "receiver": "a12345111222", "bytes": 8192})
            tr.delegatebw({
                "from": "enumivo", "receiver": "a12345111222",
                "stake_net_quantity": "10.0000 ENU", "stake_cpu_quantity": "10.0000 ENU",
                "transfer": 0,
            })

        result = await client.transaction(routine)
        actions = result.transaction.transaction.actions
        assert [a.name for a in actions] == ["newaccount", "buyrambytes", "delegatebw"]
        assert {a.authorization[0].actor for a in actions} == {"enumivo"}

    @pytest.mark.asyncio
    async def test_callback_inside_routine(self, client, chain_api):
        with pytest.raises(NestedCallbackError, match="Callback during a transaction"):
            await client.transaction(
                lambda tr: tr.transfer("inita", "inita", "1.0000 ENU", "", lambda err, res: None)
            )
        assert chain_api.pushed == []

    @pytest.mark.asyncio
    async def test_rollback_on_raise(self, client, chain_api):
        error = RuntimeError("rollback")

        def routine(tr):
            tr.transfer("inita", "initb", "1.0000 ENU", "")
            raise error

        with pytest.raises(RuntimeError) as exc_info:
            await client.transaction(routine)
        assert exc_info.value is error
        assert chain_api.pushed == []

    @pytest.mark.asyncio
    async def test_rollback_on_async_raise(self, client, chain_api):
        async def routine(tr):
            await asyncio.sleep(0)
            raise ValueError("rollback")

        with pytest.raises(ValueError, match="rollback"):
            await client.transaction(routine)
        assert chain_api.pushed == []

    @pytest.mark.asyncio
    async def test_mapping_with_unicode_memo(self):
        client = mk_client(sign_provider=sign_provider, broadcast=False)
        result = await client.transaction({
            "actions": [{
                "account": "enu.token",
                "name": "transfer",
                "data": {"from": "inita", "to": "initb", "quantity": "13.0000 ENU", "memo": "爱"},
                "authorization": [{"actor": "inita", "permission": "active"}],
            }],
        })
        assert result.transaction.transaction.actions[0].data.endswith("03e788b1")

    @pytest.mark.asyncio
    async def test_push_inside_routine(self, client):
        async def routine(tr):
            await client.push_transaction({"signatures": [], "packed_trx": "00"})

        with pytest.raises(NestedCallbackError):
            await client.transaction(routine)


class TestContracts:

    @pytest.fixture
    def client(self, chain_api):
        return mk_client(api=chain_api, sign_provider=sign_provider)

    @pytest.mark.asyncio
    async def test_one_transaction_per_call(self, client, chain_api):
        token = await client.contract("enu.token")

        first = await token.transfer("inita", "initb", "1.0000 ENU", "")
        second = await token.transfer("initb", "inita", "1.0000 ENU", "")

        assert len(first.transaction.transaction.actions) == 1
        assert len(second.transaction.transaction.actions) == 1
        assert len(chain_api.pushed) == 2

    @pytest.mark.asyncio
    async def test_atomic_string_and_list(self, client):
        def stage_two(token):
            assert token.transfer("inita", "initb", "1.0000 ENU", "") is None
            assert token.transfer("initb", "inita", "1.0000 ENU", "") is None

        by_list = await client.transaction(["enu.token"], lambda contracts: stage_two(contracts.enu_token))
        by_name = await client.transaction("enu.token", stage_two)

        assert len(by_list.transaction.transaction.actions) == 2
        assert len(by_name.transaction.transaction.actions) == 2

    @pytest.mark.asyncio
    async def test_contract_transaction(self, client, chain_api):
        token = await client.contract("enu.token")

        def routine(tr):
            tr.transfer("inita", "initb", "1.0000 ENU", "")
            tr.transfer("inita", "initc", "2.0000 ENU", "")

        result = await token.transaction(routine)
        await token.transfer("inita", "initb", "3.0000 ENU", "")

        assert len(result.transaction.transaction.actions) == 2
        assert len(chain_api.pushed) == 2

    @pytest.mark.asyncio
    async def test_custom_contract(self, chain_api):
        chain_api.abis["currency"] = currency_abi()
        client = mk_client(api=chain_api, sign_provider=sign_provider)

        currency = await client.contract("currency")
        result = await currency.transfer("currency", "inita", "1.0000 CUR", "")

        assert result.transaction.transaction.actions[0].account == "currency"


class TestNesting:

    @pytest.mark.asyncio
    async def test_nested_calls_merge(self, chain_api):
        client = mk_client(api=chain_api, sign_provider=sign_provider)
        inner = []

        async def routine(tr):
            tr.transfer("inita", "initb", "1.0000 ENU", "")
            inner.append(await client.transfer("inita", "initc", "1.0000 ENU", ""))
            inner.append(await client.transaction(lambda t: t.transfer("inita", "initd", "1.0000 ENU", "")))
            token = await client.contract("enu.token")
            inner.append(await token.transfer("inita", "inite", "1.0000 ENU", ""))

        result = await client.transaction(routine)

        assert inner == [None, None, None]
        assert len(result.transaction.transaction.actions) == 4
        assert len(chain_api.pushed) == 1

    @pytest.mark.asyncio
    async def test_merged_call_options_ignored_with_warning(self, chain_api, caplog):
        client = mk_client(api=chain_api, sign_provider=sign_provider)

        async def routine(tr):
            await client.transfer("inita", "initb", "1.0000 ENU", "", delay_sec=369)
            await client.transaction({"actions": [], "max_cpu_usage_ms": 9})

        result = await client.transaction(routine)

        assert result.transaction.transaction.delay_sec == 0
        assert "delay_sec of enu.token::transfer ignored" in caplog.text
        assert "max_cpu_usage_ms of nested transaction ignored" in caplog.text

    @pytest.mark.asyncio
    async def test_other_client_not_merged(self, chain_api):
        outer = mk_client(api=chain_api, sign_provider=sign_provider)
        other = mk_client(api=chain_api, sign_provider=sign_provider)
        results = []

        async def routine(tr):
            tr.transfer("inita", "initb", "1.0000 ENU", "")
            results.append(await other.transfer("inita", "initc", "1.0000 ENU", ""))

        await outer.transaction(routine)

        assert results[0].broadcast is True
        assert len(chain_api.pushed) == 2

    @pytest.mark.asyncio
    async def test_concurrent_transactions_isolated(self, chain_api):
        client = mk_client(api=chain_api, sign_provider=sign_provider)

        async def routine(tr):
            tr.transfer("inita", "initb", "1.0000 ENU", "")
            await asyncio.sleep(0.01)
            tr.transfer("inita", "initc", "1.0000 ENU", "")

        results = await asyncio.gather(*[client.transaction(routine) for _ in range(3)])

        assert [len(r.transaction.transaction.actions) for r in results] == [2, 2, 2]
        assert len(chain_api.pushed) == 3


class TestLifecycle:

    def test_default_client_uses_http_api(self):
        client = EnuClient()
        assert isinstance(client.api, AsyncChainApi)
        assert client.api.endpoint == "http://127.0.0.1:8888"

    def test_overrides(self):
        client = EnuClient(ClientConfig(http_endpoint=None), broadcast=False)
        assert client.config.broadcast is False
        assert client.api is None

    @pytest.mark.asyncio
    async def test_context_manager_closes_api(self):
        api = Mock()
        api.close = AsyncMock()
        async with mk_client(api=api):
            pass
        api.close.assert_awaited_once()
