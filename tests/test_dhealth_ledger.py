"""Tests for DhealthLedgerClient with a fake ledger connection"""

from types import SimpleNamespace

import grpc
import pytest
from cosmpy.aerial.client import Account
from cosmpy.aerial.exceptions import NotFoundError, QueryError, QueryTimeoutError
from cosmpy.aerial.tx_helpers import SubmittedTx, TxResponse

from dtps_relay.config import DhealthNetworkConfig
from dtps_relay.dhealth_ledger import DhealthLedgerClient
from dtps_relay.exceptions import BroadcastError, SigningError, TransportError
from dtps_relay.models import Coin

from conftest import RECIPIENT_MNEMONIC, SENDER_MNEMONIC


class FakeLedger:
    """Records queries the way LedgerClient would receive them"""

    instances = []

    def __init__(self, network_config, balance: int = 5000):
        self.network_config = network_config
        self.balance = balance
        self.queries = []
        FakeLedger.instances.append(self)

    def query_bank_balance(self, address, denom):
        self.queries.append((str(address), denom))
        return self.balance


class BroadcastingLedger(FakeLedger):
    """Answers the account, broadcast and tx polling calls of a real broadcast"""

    code = 0
    raw_log = ''

    def __init__(self, network_config):
        super().__init__(network_config)
        self.broadcasts = []
        self.polled = []

    def query_account(self, address):
        self.queries.append((str(address), 'account'))
        return Account(address=address, number=42, sequence=3)

    def broadcast_tx(self, tx):
        self.broadcasts.append(tx)
        return SubmittedTx(self, 'C0FFEE00')

    def wait_for_query_tx(self, tx_hash, timeout=None, poll_period=None):
        self.polled.append(tx_hash)
        return TxResponse(
            hash=tx_hash, height=1001, code=self.code, gas_wanted=200000, gas_used=80000,
            raw_log=self.raw_log, logs=[], events={}, timestamp=None,
        )


def failing_ledger(error: Exception):
    """Ledger factory whose every query raises error"""

    class Failing(FakeLedger):
        def query_bank_balance(self, address, denom):
            raise error

        def query_account(self, address):
            raise error

    return Failing


@pytest.fixture
def client():
    FakeLedger.instances = []
    return DhealthLedgerClient(DhealthNetworkConfig(), client_factory=FakeLedger)


@pytest.fixture
def sender_address(client):
    return str(client.derive_wallet(SENDER_MNEMONIC).address())


@pytest.fixture
def recipient_address(client):
    return str(client.derive_wallet(RECIPIENT_MNEMONIC).address())


class TestWallet:

    def test_derived_address_uses_chain_prefix(self, sender_address):
        assert sender_address.startswith('dh1')

    def test_derivation_is_deterministic(self, client, sender_address, recipient_address):
        assert str(client.derive_wallet(SENDER_MNEMONIC).address()) == sender_address
        assert sender_address != recipient_address

    @pytest.mark.parametrize('mnemonic', ['', 'not a real mnemonic phrase at all'])
    def test_invalid_mnemonic(self, client, mnemonic):
        with pytest.raises(SigningError):
            client.derive_wallet(mnemonic)

    def test_validate_address(self, client, sender_address):
        assert client.validate_address(sender_address)
        assert not client.validate_address('')
        assert not client.validate_address('cosmos1qqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqqq')
        assert not client.validate_address('dh1notbech32')


class TestBalance:

    async def test_get_balance(self, client, sender_address):
        balance = await client.get_balance(sender_address, 'udhp')

        assert balance == Coin(denom='udhp', amount=5000)
        assert FakeLedger.instances[0].queries == [(sender_address, 'udhp')]

    async def test_below_threshold(self, client, sender_address):
        assert await client.validate_balance(sender_address, 'udhp', 6000) is False

    async def test_at_threshold(self, client, sender_address):
        assert await client.validate_balance(sender_address, 'udhp', 5000) is True

    async def test_reconnects_on_every_call(self, client, sender_address):
        await client.get_balance(sender_address)
        await client.get_balance(sender_address)

        assert len(FakeLedger.instances) == 2

    @pytest.mark.parametrize('error', [
        ConnectionError('connection refused'),
        RuntimeError("Error when sending a GET request.\n Response: 500, b'internal'"),
        QueryError('query failed'),
        QueryTimeoutError('timed out'),
        grpc.RpcError(),
    ])
    async def test_node_failures_are_transport_errors(self, sender_address, error):
        client = DhealthLedgerClient(DhealthNetworkConfig(), client_factory=failing_ledger(error))

        with pytest.raises(TransportError) as excinfo:
            await client.get_balance(sender_address)

        assert excinfo.value.__cause__ is error

    @pytest.mark.parametrize('address', ['dh1notbech32', 'not-an-address'])
    async def test_malformed_address_never_queries(self, client, address):
        with pytest.raises(SigningError):
            await client.get_balance(address)

        assert FakeLedger.instances == []


class TestAccount:

    async def test_get_account(self, sender_address):
        client = DhealthLedgerClient(DhealthNetworkConfig(), client_factory=BroadcastingLedger)

        account = await client.get_account(sender_address)

        assert (account.number, account.sequence) == (42, 3)
        assert str(account.address) == sender_address

    async def test_unknown_account_is_none(self, sender_address):
        client = DhealthLedgerClient(
            DhealthNetworkConfig(), client_factory=failing_ledger(NotFoundError('account not found'))
        )

        assert await client.get_account(sender_address) is None

    async def test_query_failure_is_transport_error(self, sender_address):
        client = DhealthLedgerClient(DhealthNetworkConfig(), client_factory=failing_ledger(QueryError('boom')))

        with pytest.raises(TransportError):
            await client.get_account(sender_address)

    async def test_malformed_address(self, client):
        with pytest.raises(SigningError):
            await client.get_account('dh1notbech32')


class TestSendTokens:

    async def test_builds_send_with_memo(self, client, sender_address, recipient_address, monkeypatch):
        broadcasts = []

        def fake_broadcast(ledger, tx, wallet, memo):
            broadcasts.append((ledger, tx, wallet, memo))
            return SimpleNamespace(tx_hash='ABCDEF0123')

        monkeypatch.setattr(client, '_broadcast', fake_broadcast)

        result = await client.send_tokens(SENDER_MNEMONIC, recipient_address, [Coin('udhp', 1)], '{"a": 1}')

        assert result.chain == 'dhealth'
        assert result.transaction_hash == 'ABCDEF0123'

        ledger, tx, wallet, memo = broadcasts[0]
        assert memo == '{"a": 1}'
        assert str(wallet.address()) == sender_address
        assert ledger is FakeLedger.instances[0]

        message = tx.msgs[0]
        assert message.from_address == sender_address
        assert message.to_address == recipient_address
        assert [(coin.denom, coin.amount) for coin in message.amount] == [('udhp', '1')]

    async def test_signed_transaction_carries_fixed_fee_gas_and_memo(self, sender_address, recipient_address):
        client = DhealthLedgerClient(DhealthNetworkConfig(), client_factory=BroadcastingLedger)

        result = await client.send_tokens(SENDER_MNEMONIC, recipient_address, [Coin('udhp', 1)], '{"petId": 7}')

        ledger = FakeLedger.instances[-1]
        assert result.transaction_hash == 'C0FFEE00'
        assert ledger.polled == ['C0FFEE00']
        assert (sender_address, 'account') in ledger.queries

        signed = ledger.broadcasts[0].tx
        assert [(coin.denom, coin.amount) for coin in signed.auth_info.fee.amount] == [('udhp', '500')]
        assert signed.auth_info.fee.gas_limit == 200000
        assert signed.auth_info.signer_infos[0].sequence == 3
        assert signed.body.memo == '{"petId": 7}'
        assert len(signed.signatures) == 1

    @pytest.mark.parametrize('raw_log', [
        'out of gas in location: WriteFlat; gasWanted: 200000, gasUsed: 210000',
        'insufficient fees; got: 500udhp required: 800udhp',
        'account sequence mismatch',
    ])
    async def test_failed_delivery_is_broadcast_error(self, recipient_address, raw_log):
        class Rejecting(BroadcastingLedger):
            code = 11

        Rejecting.raw_log = raw_log
        client = DhealthLedgerClient(DhealthNetworkConfig(), client_factory=Rejecting)

        with pytest.raises(BroadcastError):
            await client.send_tokens(SENDER_MNEMONIC, recipient_address, [Coin('udhp', 1)], 'memo')

    async def test_unfunded_sender_is_transport_error(self, recipient_address):
        client = DhealthLedgerClient(
            DhealthNetworkConfig(), client_factory=failing_ledger(NotFoundError('account not found'))
        )

        with pytest.raises(TransportError):
            await client.send_tokens(SENDER_MNEMONIC, recipient_address, [Coin('udhp', 1)], 'memo')

    async def test_malformed_recipient_never_broadcasts(self, client, monkeypatch):
        monkeypatch.setattr(client, '_broadcast', lambda *args: pytest.fail('broadcast attempted'))

        with pytest.raises(SigningError):
            await client.send_tokens(SENDER_MNEMONIC, 'ADDR2', [Coin('udhp', 1)], 'memo')

    def test_fee_is_fixed(self, client):
        fee = client.transaction_fee()

        assert fee.gas_limit == 200000
        assert [(coin.denom, coin.amount) for coin in fee.to_proto().amount] == [('udhp', '500')]
