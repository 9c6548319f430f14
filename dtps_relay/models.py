"""
Relay Data Models

Request shapes, stored records and relay outcomes shared by the ledger
clients, the pipeline and the web layer.
"""

from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union


@dataclass(frozen=True)
class Coin:
    """Amount of a single denomination on the new chain"""
    denom: str
    amount: int

    def to_dict(self) -> Dict[str, str]:
        return {'denom': self.denom, 'amount': str(self.amount)}

    def __repr__(self):
        return f"Coin({self.amount}{self.denom})"


@dataclass(frozen=True)
class SenderRecord:
    """
    Entity record looked up by an opaque key

    Legacy senders carry a raw private key, new-chain senders a mnemonic plus
    optionally the address derived from it; a stored address that disagrees
    with the mnemonic is rejected. `production` selects the recipient variant.
    """
    key: str
    private_key: Optional[str] = None
    mnemonic: Optional[str] = None
    address: Optional[str] = None
    production: bool = False

    @classmethod
    def from_doc(cls, key: str, doc: Dict[str, Any]) -> 'SenderRecord':
        return cls(
            key=key,
            private_key=doc.get('privateKey'),
            mnemonic=doc.get('mnemonic'),
            address=doc.get('address'),
            production=bool(doc.get('production', False)),
        )

    def __repr__(self):
        # never print key material
        kind = 'mnemonic' if self.mnemonic else 'private_key' if self.private_key else 'none'
        return f"SenderRecord({self.key}: {kind}, production={self.production})"


@dataclass(frozen=True)
class RecipientConfig:
    """Stored broadcast recipient, one address per environment"""
    production: Optional[str]
    staging: Optional[str]

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]) -> 'RecipientConfig':
        return cls(production=doc.get('production'), staging=doc.get('staging'))

    def resolve(self, production: bool) -> Optional[str]:
        return self.production if production else self.staging


class LegacyVariant(str, Enum):
    """Which stored recipient config a legacy send uses"""
    PRIMARY = 'primary'
    LEGACY = 'legacy'

    @property
    def config_key(self) -> str:
        if self is LegacyVariant.PRIMARY:
            return 'broadcastRecipient'
        return 'legacyBroadcastRecipient'


@dataclass(frozen=True)
class NewChainSend:
    """Balance-gated send on the new chain"""
    authorization_key: Optional[str]
    data: Any
    config_key: str = 'dhealthBroadcastRecipient'


@dataclass(frozen=True)
class LegacySend:
    """Message-only transfer on the legacy chain"""
    authorization_key: Optional[str]
    data: Any
    variant: LegacyVariant = LegacyVariant.PRIMARY


@dataclass(frozen=True)
class PeerTransfer:
    """Legacy transfer from one stored entity to another"""
    sender_key: Optional[str]
    entity_key: Optional[str]
    data: Any


RelayRequest = Union[NewChainSend, LegacySend, PeerTransfer]


class RejectionReason(str, Enum):
    NO_AUTH_KEY = 'no-auth-key'
    NO_CONFIG = 'no-config'
    UNKNOWN_ENTITY = 'unknown-entity'
    INSUFFICIENT_BALANCE = 'insufficient-balance'


@dataclass(frozen=True)
class Rejection:
    """Precondition failure detected before any broadcast"""
    reason: RejectionReason
    detail: Optional[str] = None

    def __repr__(self):
        return f"Rejection({self.reason.value}{': ' + self.detail if self.detail else ''})"


@dataclass
class BroadcastResult:
    """
    Outcome of a successful broadcast

    Legacy broadcasts carry the node acknowledgement, new-chain broadcasts
    carry the transaction hash. Neither implies finality.
    """
    chain: str  # 'legacy' or 'dhealth'
    transaction_hash: Optional[str] = None
    acknowledgement: Optional[Dict[str, Any]] = None
    node_url: Optional[str] = None
    broadcast_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['broadcast_at'] = self.broadcast_at.isoformat()
        return data


RelayOutcome = Union[BroadcastResult, Rejection]
