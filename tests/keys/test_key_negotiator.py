"""
Tests for two-phase signing key negotiation.
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from enu_client.crypto.ecc import PrivateKey, PublicKey
from enu_client.keys.keystore import InMemoryKeyStore
from enu_client.keys.negotiator import KeyNegotiator, dedupe_signers, parse_key, split_keys
from enu_client.runtime.errors import InvalidKeyError, NoSigningKeyError
from helpers import PUBKEY, WIF, mk_key


def pubs(signers):
    return [s.public_key().to_string() for s in signers]


class TestParseKey:

    def test_forms(self):
        key = PrivateKey.from_string(WIF)
        assert parse_key(WIF) == key
        assert parse_key(key.to_k1_string()) == key
        assert parse_key(PUBKEY) == PublicKey.from_string(PUBKEY)
        assert parse_key(key.public_key().to_k1_string()) == key.public_key()

    def test_signer_object(self):
        signer = Mock(spec=["sign_digest", "public_key"])
        assert parse_key(signer) is signer

    def test_garbage(self):
        with pytest.raises(InvalidKeyError):
            parse_key("not-a-key")
        with pytest.raises(InvalidKeyError):
            parse_key(42)

    def test_split_and_dedupe(self):
        signers, publics = split_keys([WIF, PUBKEY, WIF])
        assert len(signers) == 2
        assert publics == [PublicKey.from_string(PUBKEY)]
        assert len(dedupe_signers(signers)) == 1


class TestPrivateKeys:

    @pytest.mark.asyncio
    async def test_static_key(self):
        signers = await KeyNegotiator(WIF).negotiate({})
        assert pubs(signers) == [PUBKEY]

    @pytest.mark.asyncio
    async def test_static_list_keeps_order(self):
        k1, k2 = mk_key("key1"), mk_key("key2")
        signers = await KeyNegotiator([k2.to_wif(), k1]).negotiate({})
        assert signers == [k2, k1]

    @pytest.mark.asyncio
    async def test_private_keys_skip_required_keys(self):
        required = AsyncMock()
        await KeyNegotiator(WIF, required_keys=required).negotiate({})
        required.assert_not_called()

    @pytest.mark.asyncio
    async def test_duplicates_removed(self):
        signers = await KeyNegotiator([WIF, WIF, PrivateKey.from_string(WIF)]).negotiate({})
        assert len(signers) == 1

    @pytest.mark.asyncio
    async def test_callable_receives_transaction(self):
        calls = []

        def provider(transaction, pubkeys=None):
            calls.append((transaction, pubkeys))
            return [WIF]

        trx = {"actions": []}
        await KeyNegotiator(provider).negotiate(trx)
        assert calls == [(trx, None)]

    @pytest.mark.asyncio
    async def test_zero_argument_callable(self):
        signers = await KeyNegotiator(lambda: WIF).negotiate({})
        assert pubs(signers) == [PUBKEY]

    @pytest.mark.asyncio
    async def test_async_callable(self):
        async def provider(transaction):
            return [WIF]

        assert pubs(await KeyNegotiator(provider).negotiate({})) == [PUBKEY]

    @pytest.mark.asyncio
    async def test_future_resolved_once(self):
        future = asyncio.get_running_loop().create_future()
        future.set_result(WIF)
        negotiator = KeyNegotiator(future)

        assert pubs(await negotiator.negotiate({})) == [PUBKEY]
        assert pubs(await negotiator.negotiate({})) == [PUBKEY]

    @pytest.mark.asyncio
    async def test_coroutine_shared_by_concurrent_negotiations(self):
        calls = []

        async def keys():
            calls.append(1)
            await asyncio.sleep(0)
            return [WIF]

        negotiator = KeyNegotiator(keys())

        first, second = await asyncio.gather(negotiator.negotiate({}), negotiator.negotiate({}))

        assert pubs(first) == pubs(second) == [PUBKEY]
        assert calls == [1]
        assert pubs(await negotiator.negotiate({})) == [PUBKEY]

    @pytest.mark.asyncio
    async def test_per_call_provider_overrides(self):
        other = mk_key("other")
        signers = await KeyNegotiator(WIF).negotiate({}, key_provider=other)
        assert signers == [other]


class TestPublicKeys:

    @pytest.mark.asyncio
    async def test_two_phase(self):
        k1, k2 = mk_key("key1"), mk_key("key2")
        p1, p2 = k1.public_key().to_string(), k2.public_key().to_string()
        calls = []

        def provider(transaction, pubkeys=None):
            calls.append(pubkeys)
            if pubkeys is None:
                return [p1, p2]
            return [k.to_wif() for k in (k1, k2) if k.public_key().to_string() in pubkeys]

        required = AsyncMock(return_value={"required_keys": [p2]})
        signers = await KeyNegotiator(provider, required_keys=required).negotiate({"t": 1})

        assert signers == [k2]
        assert calls == [None, [p2]]
        required.assert_awaited_once_with({"t": 1}, [p1, p2])

    @pytest.mark.asyncio
    async def test_all_available_required_without_chain(self):
        store = InMemoryKeyStore([mk_key("key1"), mk_key("key2")])
        signers = await KeyNegotiator(store).negotiate({})
        assert pubs(signers) == store.public_keys()

    @pytest.mark.asyncio
    async def test_unrequested_keys_dropped(self, caplog):
        k1, k2 = mk_key("key1"), mk_key("key2")
        p1 = k1.public_key().to_string()

        def provider(pubkeys=None):
            if pubkeys is None:
                return [p1, k2.public_key().to_string()]
            return [k1.to_wif(), k2.to_wif()]

        signers = await KeyNegotiator(provider, required_keys=lambda t, keys: [p1]).negotiate({})
        assert signers == [k1]
        assert "Dropped 1 key(s)" in caplog.text

    @pytest.mark.asyncio
    async def test_none_required(self):
        negotiator = KeyNegotiator(PUBKEY, required_keys=lambda t, keys: {"required_keys": []})
        with pytest.raises(NoSigningKeyError, match="None of the available keys"):
            await negotiator.negotiate({})

    @pytest.mark.asyncio
    async def test_public_key_only_provider(self):
        with pytest.raises(NoSigningKeyError):
            await KeyNegotiator(PUBKEY).negotiate({})


class TestNoKeys:

    @pytest.mark.asyncio
    async def test_no_provider(self):
        with pytest.raises(NoSigningKeyError, match="No key provider"):
            await KeyNegotiator().negotiate({})

    @pytest.mark.asyncio
    async def test_empty_list(self):
        with pytest.raises(NoSigningKeyError, match="returned no keys"):
            await KeyNegotiator([]).negotiate({})

    @pytest.mark.asyncio
    async def test_provider_returning_provider(self):
        with pytest.raises(InvalidKeyError):
            await KeyNegotiator(lambda: (lambda: WIF)).negotiate({})
