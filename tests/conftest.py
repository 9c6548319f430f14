"""Shared fixtures: in-memory credential store and fake ledger clients"""

from typing import Any, List, Optional, Tuple
from unittest.mock import MagicMock

import pytest

from dtps_relay.config import DhealthNetworkConfig, LegacyNetworkConfig
from dtps_relay.credential_store import YamlCredentialStore
from dtps_relay.models import BroadcastResult, Coin


LEGACY_SENDER_KEY = 'A' * 64
LEGACY_ENTITY_KEY = 'B' * 64

# BIP-39 test vectors
SENDER_MNEMONIC = 'abandon abandon abandon abandon abandon abandon abandon abandon abandon abandon abandon about'
RECIPIENT_MNEMONIC = 'legal winner thank year wave sausage worth useful legal winner thank yellow'
SENDER_ADDRESS = 'dh1sendersenderaddress'


def make_documents() -> dict:
    return {
        'configs': {
            'auth': {'whitelist': ['10.0.0.1', '127.0.0.1'], 'codes': ['key-staging', 'key-production']},
            'dhealthBroadcastRecipient': {'production': 'ADDR1', 'staging': 'ADDR2'},
            'broadcastRecipient': {'production': 'PRIMARY1', 'staging': 'PRIMARY2'},
            'legacyBroadcastRecipient': {'production': 'LEGACY1', 'staging': 'LEGACY2'},
        },
        'entities': {
            'key-staging': {
                'privateKey': LEGACY_SENDER_KEY,
                'mnemonic': SENDER_MNEMONIC,
                'address': SENDER_ADDRESS,
                'production': False,
            },
            'key-production': {
                'privateKey': LEGACY_SENDER_KEY,
                'mnemonic': SENDER_MNEMONIC,
                'address': SENDER_ADDRESS,
                'production': True,
            },
            'entity-b': {'privateKey': LEGACY_ENTITY_KEY, 'production': False},
        },
    }


class RecordingStore(YamlCredentialStore):
    """YAML store that remembers every lookup"""

    def __init__(self, documents=None):
        super().__init__(documents)
        self.lookups: List[Tuple[str, str]] = []

    async def find_doc(self, collection: str, key: str):
        self.lookups.append((collection, key))
        return await super().find_doc(collection, key)


class FakeLegacyClient:
    """Stands in for LegacyLedgerClient; records sends, never touches the network"""

    def __init__(self):
        self.network = LegacyNetworkConfig()
        self.sent: List[Tuple[str, str, Any]] = []

    def address_of(self, private_key: str) -> str:
        return f"ADDR-OF-{private_key[:4]}"

    async def send_transaction(self, sender_private_key: str, recipient_address: str, data: Any) -> BroadcastResult:
        self.sent.append((sender_private_key, recipient_address, data))
        return BroadcastResult(
            chain='legacy',
            transaction_hash=f"HASH{len(self.sent)}",
            acknowledgement={'message': 'packet 9 was pushed to the network via /transactions'},
            node_url='http://node-1:3000',
        )


class FakeDhealthClient:
    """Stands in for DhealthLedgerClient with a fixed balance; every mnemonic derives SENDER_ADDRESS"""

    def __init__(self, balance: int = 10000):
        self.network = DhealthNetworkConfig()
        self.balance = balance
        self.balance_checks: List[Tuple[str, str, int]] = []
        self.sent: List[Tuple[str, str, List[Coin], Optional[str]]] = []
        self.derive_wallet = MagicMock()
        self.derive_wallet.return_value.address.return_value = SENDER_ADDRESS

    async def validate_balance(self, address: str, denom: str, threshold: int) -> bool:
        self.balance_checks.append((address, denom, threshold))
        return self.balance >= threshold

    async def send_tokens(self, mnemonic: str, recipient: str, coins: List[Coin], memo: Optional[str] = None):
        self.sent.append((mnemonic, recipient, coins, memo))
        return BroadcastResult(chain='dhealth', transaction_hash=f"TX{len(self.sent)}")


@pytest.fixture
def documents():
    return make_documents()


@pytest.fixture
def store(documents):
    return RecordingStore(documents)


@pytest.fixture
def legacy_client():
    return FakeLegacyClient()


@pytest.fixture
def dhealth_client():
    return FakeDhealthClient()
