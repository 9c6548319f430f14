"""
Node Repositories

REST handles bound to one legacy node. Only the transaction repository is
used for relaying; the others expose the read endpoints a connected node
offers (account, block, chain, node health).
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp

from . import http_client
from .exceptions import NoUsableNodeError


class NodeRepository:
    """Base class for repositories bound to a node URL"""

    def __init__(self, node_url: str, session: Optional[aiohttp.ClientSession] = None):
        self.node_url = node_url.rstrip('/') if node_url else ''
        self.session = session

    def _url(self, path: str) -> str:
        if not self.node_url:
            raise NoUsableNodeError()
        return f"{self.node_url}{path}"

    async def _get(self, path: str) -> Any:
        return await http_client.call(self._url(path), 'GET', session=self.session)


class TransactionRepository(NodeRepository):

    async def announce(self, payload_json: str) -> Dict[str, Any]:
        """
        Submit a signed transaction for relay

        Args:
            payload_json: '{"payload": "<hex>"}' as produced by the signer

        Returns:
            Node acknowledgement (acceptance for relay, not finality)
        """
        return await http_client.call(self._url('/transactions'), 'PUT', body=payload_json, session=self.session)

    async def get_transaction_status(self, transaction_hash: str) -> Dict[str, Any]:
        return await self._get(f"/transactionStatus/{transaction_hash}")


class AccountRepository(NodeRepository):

    async def get_account_info(self, address: str) -> Dict[str, Any]:
        return await self._get(f"/accounts/{address}")


class BlockRepository(NodeRepository):

    async def get_block_by_height(self, height: int) -> Dict[str, Any]:
        return await self._get(f"/blocks/{height}")


class ChainRepository(NodeRepository):

    async def get_chain_info(self) -> Dict[str, Any]:
        return await self._get('/chain/info')


class NodeInfoRepository(NodeRepository):

    async def get_node_health(self) -> Dict[str, Any]:
        return await self._get('/node/health')

    async def get_node_info(self) -> Dict[str, Any]:
        return await self._get('/node/info')


@dataclass
class NodeRepositories:
    """The repository handles derived from one node URL"""
    transaction: TransactionRepository
    account: AccountRepository
    block: BlockRepository
    chain: ChainRepository
    node: NodeInfoRepository

    @classmethod
    def for_node(cls, node_url: str, session: Optional[aiohttp.ClientSession] = None) -> 'NodeRepositories':
        return cls(
            transaction=TransactionRepository(node_url, session),
            account=AccountRepository(node_url, session),
            block=BlockRepository(node_url, session),
            chain=ChainRepository(node_url, session),
            node=NodeInfoRepository(node_url, session),
        )
