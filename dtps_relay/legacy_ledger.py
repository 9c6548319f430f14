"""
Legacy Ledger Client

Build, sign and announce message-only transfer transactions on the legacy
(Symbol-based) dHealth chain:
1. Build  - transfer with fresh deadline, no mosaics, plain message, zero fee
2. Sign   - sender key pair + the network's generation hash
3. Announce - PUT /transactions on a node chosen by the NodeSelector

Build and sign are local and side-effect free; announce is the single
network call. Nothing is retried.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from loguru import logger
from symbolchain.CryptoTypes import Hash256, PrivateKey, Signature
from symbolchain.facade.SymbolFacade import SymbolFacade
from symbolchain.symbol.Network import Network

from .config import LegacyNetworkConfig
from .exceptions import SigningError
from .models import BroadcastResult
from .node_selector import NodeSelector


PLAIN_MESSAGE_TYPE = b'\x00'


@dataclass(frozen=True)
class SignedTransaction:
    """Immutable signed payload ready for announce"""
    payload: str
    hash: str
    signer_public_key: str
    network_type: int
    generation_hash: str
    transaction: Any
    signature: Signature

    def to_json(self) -> str:
        return json.dumps({'payload': self.payload})

    def __repr__(self):
        return f"SignedTransaction({self.hash[:16]}… by {self.signer_public_key[:16]}…)"


def create_network(network: LegacyNetworkConfig) -> Network:
    """Symbol network definition for the configured chain"""
    return Network(
        network.network_name,
        network.network_identifier,
        datetime.fromtimestamp(network.epoch_adjustment, tz=timezone.utc),
        Hash256(network.generation_hash),
    )


class LegacyLedgerClient:
    """
    Transfer transactions on the legacy chain

    Features:
    - Message-only transfers (empty mosaic list, zero fee)
    - Signatures bound to the configured generation hash
    - Node chosen per announce through the NodeSelector
    """

    def __init__(self, node_selector: NodeSelector, network: Optional[LegacyNetworkConfig] = None):
        self.node_selector = node_selector
        self.network = network or node_selector.network
        self.facade = SymbolFacade(create_network(self.network))

        logger.info(f"Legacy ledger client initialized (network type 0x{self.network.network_identifier:02X})")

    def create_key_pair(self, private_key: str) -> SymbolFacade.KeyPair:
        """Key pair from a hex private key"""
        try:
            return SymbolFacade.KeyPair(PrivateKey(private_key))
        except (TypeError, ValueError) as e:
            raise SigningError(f"Invalid legacy private key: {e}") from e

    def address_of(self, private_key: str) -> str:
        """Chain address owned by a private key"""
        key_pair = self.create_key_pair(private_key)
        return str(self.facade.network.public_key_to_address(key_pair.public_key))

    def create_transaction(self, signer_public_key, recipient_address: str, data: str):
        """
        Build a transfer transaction carrying data as a plain message

        Args:
            signer_public_key: Public key of the sender
            recipient_address: Raw recipient address
            data: Message text

        Returns:
            Unsigned transfer transaction
        """
        if not recipient_address or not self.facade.network.is_valid_address_string(recipient_address):
            raise SigningError(f"Malformed recipient address: {recipient_address!r}")

        deadline = self.facade.network.from_datetime(datetime.now(timezone.utc)) \
            .add_hours(self.network.deadline_hours).timestamp

        try:
            return self.facade.transaction_factory.create({
                'type': 'transfer_transaction_v1',
                'signer_public_key': signer_public_key,
                'fee': 0,
                'deadline': deadline,
                'recipient_address': recipient_address,
                'mosaics': [],
                'message': PLAIN_MESSAGE_TYPE + data.encode('utf8'),
            })
        except (TypeError, ValueError) as e:
            raise SigningError(f"Could not build transfer transaction: {e}") from e

    def sign_transaction(self, key_pair: SymbolFacade.KeyPair, transaction) -> SignedTransaction:
        """Sign a built transaction with the network generation hash"""
        signature = self.facade.sign_transaction(key_pair, transaction)
        payload_json = self.facade.transaction_factory.attach_signature(transaction, signature)

        return SignedTransaction(
            payload=json.loads(payload_json)['payload'],
            hash=str(self.facade.hash_transaction(transaction)),
            signer_public_key=str(key_pair.public_key),
            network_type=self.network.network_identifier,
            generation_hash=self.network.generation_hash,
            transaction=transaction,
            signature=signature,
        )

    def verify_transaction(self, signed: SignedTransaction) -> bool:
        """Check the signature against the signer and this network's generation hash"""
        return self.facade.verify_transaction(signed.transaction, signed.signature)

    async def announce_transaction(self, signed: SignedTransaction) -> BroadcastResult:
        """
        Announce a signed transaction to an available node

        Returns:
            BroadcastResult carrying the node acknowledgement

        Raises:
            TransportError: No usable node, or the node could not be reached
            BroadcastError: The node refused the payload
        """
        node = await self.node_selector.connect_to_an_available_node()
        logger.debug(f"Announcing {signed.hash} to {node.url or '<none>'}")

        acknowledgement = await node.repositories.transaction.announce(signed.to_json())

        logger.info(f"✓ Announced {signed.hash} via {node.url}")
        return BroadcastResult(
            chain='legacy',
            transaction_hash=signed.hash,
            acknowledgement=acknowledgement,
            node_url=node.url,
        )

    async def send_transaction(self, sender_private_key: str, recipient_address: str, data: Any) -> BroadcastResult:
        """
        Create a transaction, sign it and announce it

        Args:
            sender_private_key: Hex private key of the sender
            recipient_address: Raw recipient address
            data: Application data, serialized with json.dumps

        Returns:
            BroadcastResult
        """
        key_pair = self.create_key_pair(sender_private_key)
        transaction = self.create_transaction(key_pair.public_key, recipient_address, json.dumps(data))
        signed = self.sign_transaction(key_pair, transaction)
        return await self.announce_transaction(signed)
