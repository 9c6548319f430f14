"""
dHealth Ledger Client (new chain)

Balance queries and token transfers on the Cosmos-based dHealth chain.
Every call opens a fresh ledger connection; nothing is cached.

The signing identity is derived from a BIP-39 mnemonic on the fixed
path m/44'/10111'/0'/0/0 with the "dh" address prefix.

Callers must check validate_balance() before send_tokens(); this client
does not enforce that ordering.
"""

import asyncio
from typing import Callable, List, Optional

import grpc
from bip_utils import Bip32Slip10Secp256k1, Bip39MnemonicValidator, Bip39SeedGenerator
from cosmpy.aerial.client import LedgerClient, NetworkConfig
from cosmpy.aerial.client.utils import prepare_and_broadcast_basic_transaction
from cosmpy.aerial.exceptions import BroadcastError as LedgerBroadcastError
from cosmpy.aerial.exceptions import NotFoundError, QueryError
from cosmpy.aerial.tx import Transaction, TxFee
from cosmpy.aerial.wallet import LocalWallet
from cosmpy.crypto.address import Address
from cosmpy.crypto.keypairs import PrivateKey
from cosmpy.protos.cosmos.bank.v1beta1.tx_pb2 import MsgSend
from cosmpy.protos.cosmos.base.v1beta1.coin_pb2 import Coin as CoinProto
from loguru import logger

from .config import DhealthNetworkConfig
from .exceptions import BroadcastError, SigningError, TransportError
from .models import BroadcastResult, Coin


class DhealthLedgerClient:
    """
    Token transfers on the new dHealth chain

    Features:
    - Balance lookup and threshold validation
    - Deterministic signer derivation from a mnemonic
    - Fixed gas limit and fee, caller-supplied memo
    """

    def __init__(
        self,
        network: Optional[DhealthNetworkConfig] = None,
        client_factory: Optional[Callable[[NetworkConfig], LedgerClient]] = None
    ):
        """
        Initialize ledger client

        Args:
            network: New chain config (endpoint, prefix, denom, fee)
            client_factory: Builds a connected ledger client, LedgerClient by default
        """
        self.network = network or DhealthNetworkConfig()
        self.network_config = NetworkConfig(
            chain_id=self.network.chain_id,
            url=self.network.url,
            fee_minimum_gas_price=self.network.minimum_gas_price,
            fee_denomination=self.network.denom,
            staking_denomination=self.network.denom,
        )
        self.client_factory = client_factory or LedgerClient

        logger.info(f"dHealth ledger client initialized ({self.network.chain_id} @ {self.network.url})")

    def _connect(self) -> LedgerClient:
        return self.client_factory(self.network_config)

    async def _run(self, description: str, func, *args, **kwargs):
        """
        Run a blocking ledger call off the event loop

        Raises:
            BroadcastError: The chain refused or failed the transaction
                (including out of gas and insufficient fees)
            TransportError: The node could not be reached or answered with
                an error (REST non-200, gRPC status, query timeout)
        """
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except LedgerBroadcastError as e:
            raise BroadcastError(f"{description} refused: {e}") from e
        except QueryError as e:
            raise TransportError(f"{description} query failed: {e}") from e
        except grpc.RpcError as e:
            raise TransportError(f"{description} failed: {e}") from e
        except (ConnectionError, OSError, RuntimeError) as e:
            raise TransportError(f"{description} failed: {e}") from e

    def _parse_address(self, address: str) -> Address:
        try:
            return Address(address)
        except (RuntimeError, TypeError, ValueError) as e:
            raise SigningError(f"Malformed address: {address!r}") from e

    def derive_wallet(self, mnemonic: str) -> LocalWallet:
        """
        Derive the signing wallet for a mnemonic

        Raises:
            SigningError: The mnemonic is not a valid BIP-39 phrase
        """
        if not mnemonic or not Bip39MnemonicValidator().IsValid(mnemonic):
            raise SigningError("Invalid mnemonic")

        seed = Bip39SeedGenerator(mnemonic).Generate()
        node = Bip32Slip10Secp256k1.FromSeed(seed).DerivePath(self.network.hd_path)
        private_key = PrivateKey(node.PrivateKey().Raw().ToBytes())
        return LocalWallet(private_key, prefix=self.network.address_prefix)

    def validate_address(self, address: str) -> bool:
        """Check that address is a bech32 address with the chain prefix"""
        if not address or not address.startswith(self.network.address_prefix + '1'):
            return False
        try:
            Address(address)
        except (RuntimeError, ValueError):
            return False
        return True

    @staticmethod
    def _query_account(client: LedgerClient, address: Address):
        try:
            return client.query_account(address)
        except NotFoundError:
            return None

    async def get_account(self, address: str):
        """Account entity (number, sequence) for an address, None if unknown"""
        account_address = self._parse_address(address)
        client = self._connect()
        return await self._run('Account query', self._query_account, client, account_address)

    async def get_balance(self, address: str, denom: Optional[str] = None) -> Coin:
        """
        Current balance of an address

        Args:
            address: Bech32 address
            denom: Denomination, defaults to the network denom

        Returns:
            Coin

        Raises:
            SigningError: The address is not a valid bech32 address
            TransportError: The balance could not be queried
        """
        denom = denom or self.network.denom
        account_address = self._parse_address(address)
        client = self._connect()
        amount = await self._run('Balance query', client.query_bank_balance, account_address, denom)
        return Coin(denom=denom, amount=int(amount))

    async def validate_balance(self, address: str, denom: str, threshold: int) -> bool:
        """True iff the balance of denom is at least threshold"""
        balance = await self.get_balance(address, denom)
        if balance.amount < threshold:
            logger.warning(f"⚠ Balance {balance} below threshold {threshold}{denom} for {address}")
            return False
        return True

    def _build_send(self, sender: Address, recipient: str, coins: List[Coin]) -> Transaction:
        if not self.validate_address(recipient):
            raise SigningError(f"Malformed recipient address: {recipient!r}")

        tx = Transaction()
        tx.add_message(MsgSend(
            from_address=str(sender),
            to_address=recipient,
            amount=[CoinProto(denom=coin.denom, amount=str(coin.amount)) for coin in coins],
        ))
        return tx

    def transaction_fee(self) -> TxFee:
        """Fixed fee and gas limit; never simulated"""
        return TxFee(
            amount=[CoinProto(denom=self.network.denom, amount=str(self.network.fee_amount))],
            gas_limit=self.network.gas_limit,
        )

    def _broadcast(self, client: LedgerClient, tx: Transaction, wallet: LocalWallet, memo: Optional[str]):
        submitted = prepare_and_broadcast_basic_transaction(
            client, tx, wallet, fee=self.transaction_fee(), memo=memo
        )
        return submitted.wait_to_complete()

    async def send_tokens(
        self,
        mnemonic: str,
        recipient: str,
        coins: List[Coin],
        memo: Optional[str] = None
    ) -> BroadcastResult:
        """
        Send coins from the mnemonic's account to recipient

        Args:
            mnemonic: Sender mnemonic
            recipient: Bech32 recipient address
            coins: Amounts to send
            memo: Transaction memo

        Returns:
            BroadcastResult carrying only the transaction hash of the delivery
        """
        wallet = self.derive_wallet(mnemonic)
        tx = self._build_send(wallet.address(), recipient, coins)

        client = self._connect()
        delivery = await self._run('Token transfer', self._broadcast, client, tx, wallet, memo)

        logger.info(f"✓ Sent {coins} from {wallet.address()} to {recipient}: {delivery.tx_hash}")
        return BroadcastResult(chain='dhealth', transaction_hash=delivery.tx_hash)
