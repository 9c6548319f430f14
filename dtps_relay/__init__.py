"""
DTPS Relay

Relays authenticated announce requests to the dHealth ledgers as signed
transactions.

Components:
- node_health_checker: Healthy node discovery through the network directory
- node_selector: First-healthy node selection with last-known fallback
- legacy_ledger: Build, sign and announce on the legacy chain
- dhealth_ledger: Balance checks and token sends on the new chain
- relay_pipeline: Preconditions and dispatch per request shape
- credential_store: YAML / Firestore lookup of senders and recipient configs
- api: aiohttp routes, auth guard and service log

Request shapes:
1. NewChainSend - balance-gated 1udhp send on the new chain
2. LegacySend - message-only transfer, primary or legacy recipient
3. PeerTransfer - legacy transfer from one stored entity to another
"""

__version__ = '0.1.0'

from .config import (
    RelayConfig,
    LegacyNetworkConfig,
    DhealthNetworkConfig,
)
from .exceptions import (
    RelayError,
    ConfigError,
    TransportError,
    NoUsableNodeError,
    BroadcastError,
    SigningError,
)
from .models import (
    Coin,
    SenderRecord,
    RecipientConfig,
    NewChainSend,
    LegacySend,
    LegacyVariant,
    PeerTransfer,
    Rejection,
    RejectionReason,
    BroadcastResult,
)
from .credential_store import (
    CredentialStore,
    YamlCredentialStore,
    FirestoreCredentialStore,
    create_credential_store,
)
from .node_health_checker import NodeHealthChecker
from .node_selector import NodeSelector, NodeCandidate
from .legacy_ledger import LegacyLedgerClient, SignedTransaction
from .dhealth_ledger import DhealthLedgerClient
from .relay_pipeline import TransactionPipeline
from .api import create_app, configure_logging

__all__ = [
    # Configuration
    'RelayConfig',
    'LegacyNetworkConfig',
    'DhealthNetworkConfig',

    # Errors
    'RelayError',
    'ConfigError',
    'TransportError',
    'NoUsableNodeError',
    'BroadcastError',
    'SigningError',

    # Models
    'Coin',
    'SenderRecord',
    'RecipientConfig',
    'NewChainSend',
    'LegacySend',
    'LegacyVariant',
    'PeerTransfer',
    'Rejection',
    'RejectionReason',
    'BroadcastResult',

    # Credential store
    'CredentialStore',
    'YamlCredentialStore',
    'FirestoreCredentialStore',
    'create_credential_store',

    # Legacy chain
    'NodeHealthChecker',
    'NodeSelector',
    'NodeCandidate',
    'LegacyLedgerClient',
    'SignedTransaction',

    # New chain
    'DhealthLedgerClient',

    # Pipeline and API
    'TransactionPipeline',
    'create_app',
    'configure_logging',
]
