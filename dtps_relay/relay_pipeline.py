"""
Transaction Pipeline

Relays one request to the ledger its shape selects:
1. Authorization key present
2. Sender (and entity) resolved from the credential store; a stored new-chain
   address must match the account derived from the mnemonic
3. Recipient resolved from stored config, or from the entity's own key
4. Balance at or above the fixed threshold (new chain only)
5. Build, sign and broadcast

Steps 1-4 are preconditions: a failure returns a Rejection and nothing is
broadcast. Failures in step 5 raise to the caller. Nothing is deduplicated,
relaying the same request twice broadcasts twice.
"""

import asyncio
import json
from typing import Optional, Tuple

from loguru import logger

from .config import DhealthNetworkConfig
from .credential_store import CredentialStore
from .dhealth_ledger import DhealthLedgerClient
from .legacy_ledger import LegacyLedgerClient
from .models import (
    Coin,
    LegacySend,
    NewChainSend,
    PeerTransfer,
    RecipientConfig,
    Rejection,
    RejectionReason,
    RelayOutcome,
    RelayRequest,
    SenderRecord,
)


CONFIGS = 'configs'
ENTITIES = 'entities'


class TransactionPipeline:
    """
    Dual-backend relay pipeline

    Features:
    - Exhaustive dispatch over the three request shapes
    - All lookups complete before any broadcast
    - Fixed-amount, balance-gated sends on the new chain
    """

    def __init__(
        self,
        store: CredentialStore,
        legacy_client: LegacyLedgerClient,
        dhealth_client: DhealthLedgerClient,
        dhealth_network: Optional[DhealthNetworkConfig] = None
    ):
        """
        Initialize pipeline

        Args:
            store: Credential store for sender records and recipient configs
            legacy_client: Legacy chain client
            dhealth_client: New chain client
            dhealth_network: Denom, threshold and send amount, defaults to the client's
        """
        self.store = store
        self.legacy_client = legacy_client
        self.dhealth_client = dhealth_client
        self.dhealth_network = dhealth_network or dhealth_client.network

    async def relay(self, request: RelayRequest) -> RelayOutcome:
        """
        Relay a request to the ledger its shape selects

        Returns:
            BroadcastResult on success, Rejection when a precondition fails

        Raises:
            TransportError: Directory, node or ledger failure (including BroadcastError)
            SigningError: Malformed key, mnemonic or address
        """
        if isinstance(request, NewChainSend):
            return await self._relay_new_chain(request)
        if isinstance(request, LegacySend):
            return await self._relay_legacy(request)
        if isinstance(request, PeerTransfer):
            return await self._relay_peer_transfer(request)
        raise TypeError(f"Unsupported relay request: {type(request).__name__}")

    async def find_sender(self, key: str) -> Optional[SenderRecord]:
        doc = await self.store.find_doc(ENTITIES, key)
        if doc is None:
            return None
        return SenderRecord.from_doc(key, doc)

    async def find_recipient_config(self, config_key: str) -> Optional[RecipientConfig]:
        doc = await self.store.find_doc(CONFIGS, config_key)
        if doc is None:
            return None
        return RecipientConfig.from_doc(doc)

    async def resolve_recipient(self, config_key: str, sender: SenderRecord) -> Tuple[Optional[str], Optional[Rejection]]:
        """
        Pick the recipient address for a sender's environment

        Returns:
            Tuple of (address, rejection)
        """
        recipient_config = await self.find_recipient_config(config_key)
        if recipient_config is None:
            return None, Rejection(RejectionReason.NO_CONFIG, f"configs/{config_key} missing")

        address = recipient_config.resolve(sender.production)
        if not address:
            variant = 'production' if sender.production else 'staging'
            return None, Rejection(RejectionReason.NO_CONFIG, f"configs/{config_key} has no {variant} address")

        return address, None

    def _reject(self, rejection: Rejection) -> Rejection:
        logger.warning(f"✗ Relay rejected: {rejection}")
        return rejection

    async def _relay_new_chain(self, request: NewChainSend) -> RelayOutcome:
        if not request.authorization_key:
            return self._reject(Rejection(RejectionReason.NO_AUTH_KEY))

        sender = await self.find_sender(request.authorization_key)
        if sender is None or not sender.mnemonic:
            return self._reject(Rejection(RejectionReason.UNKNOWN_ENTITY, "no new chain sender for key"))

        network = self.dhealth_network
        # balance is checked on the signing account
        sender_address = str(self.dhealth_client.derive_wallet(sender.mnemonic).address())
        if sender.address and sender.address != sender_address:
            return self._reject(Rejection(
                RejectionReason.UNKNOWN_ENTITY,
                f"stored address {sender.address} does not match mnemonic account {sender_address}",
            ))

        # fixed threshold, independent of what the caller meant to send
        has_balance = await self.dhealth_client.validate_balance(
            sender_address, network.denom, network.balance_threshold
        )
        if not has_balance:
            return self._reject(Rejection(
                RejectionReason.INSUFFICIENT_BALANCE,
                f"{sender_address} below {network.balance_threshold}{network.denom}",
            ))

        recipient, rejection = await self.resolve_recipient(request.config_key, sender)
        if rejection:
            return self._reject(rejection)

        logger.info(f"✓ Preconditions passed, sending {network.send_amount}{network.denom} to {recipient}")
        return await self.dhealth_client.send_tokens(
            sender.mnemonic,
            recipient,
            [Coin(denom=network.denom, amount=network.send_amount)],
            json.dumps(request.data),
        )

    async def _relay_legacy(self, request: LegacySend) -> RelayOutcome:
        if not request.authorization_key:
            return self._reject(Rejection(RejectionReason.NO_AUTH_KEY))

        sender = await self.find_sender(request.authorization_key)
        if sender is None or not sender.private_key:
            return self._reject(Rejection(RejectionReason.UNKNOWN_ENTITY, "no legacy sender for key"))

        recipient, rejection = await self.resolve_recipient(request.variant.config_key, sender)
        if rejection:
            return self._reject(rejection)

        logger.info(f"✓ Preconditions passed, announcing to {recipient} ({request.variant.value})")
        return await self.legacy_client.send_transaction(sender.private_key, recipient, request.data)

    async def _relay_peer_transfer(self, request: PeerTransfer) -> RelayOutcome:
        if not request.sender_key or not request.entity_key:
            return self._reject(Rejection(RejectionReason.NO_AUTH_KEY, "sender and entity keys required"))

        sender, entity = await asyncio.gather(
            self.find_sender(request.sender_key),
            self.find_sender(request.entity_key),
        )
        if sender is None or not sender.private_key:
            return self._reject(Rejection(RejectionReason.UNKNOWN_ENTITY, "unknown sender"))
        if entity is None or not entity.private_key:
            return self._reject(Rejection(RejectionReason.UNKNOWN_ENTITY, "unknown entity"))

        recipient = self.legacy_client.address_of(entity.private_key)

        logger.info(f"✓ Preconditions passed, peer transfer to {recipient}")
        return await self.legacy_client.send_transaction(sender.private_key, recipient, request.data)
