"""
Node Selector

Deterministic first-healthy node selection for the legacy chain:
1. Ask the health checker for healthy nodes
2. Take the first one (no ranking, no randomization)
3. If none is healthy, fall back to the last node we connected to
4. Remember the chosen node for the next fallback

The "last node" cell is process-wide and updated without locking. Two
concurrent requests may race on it; the only consequence is that one of
them falls back to a slightly stale endpoint.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Tuple

import aiohttp
from loguru import logger

from .config import LegacyNetworkConfig
from .node_health_checker import NodeHealthChecker
from .node_repositories import NodeRepositories


@dataclass
class NetworkProperties:
    """Network identity fixed by the ledger, never read from the node"""
    network_type: int
    generation_hash: str
    epoch_adjustment: int
    currency_mosaic_id: str
    currency_namespace: str
    currency_divisibility: int

    @classmethod
    def from_config(cls, network: LegacyNetworkConfig) -> 'NetworkProperties':
        return cls(
            network_type=network.network_identifier,
            generation_hash=network.generation_hash,
            epoch_adjustment=network.epoch_adjustment,
            currency_mosaic_id=network.currency_mosaic_id,
            currency_namespace=network.currency_namespace,
            currency_divisibility=network.currency_divisibility,
        )


@dataclass
class NodeCandidate:
    """A node chosen for one relay attempt"""
    url: str
    network: NetworkProperties
    repositories: NodeRepositories
    is_fallback: bool
    selected_at: datetime

    @property
    def is_usable(self) -> bool:
        return bool(self.url)

    def __repr__(self):
        status = "fallback" if self.is_fallback else "healthy"
        return f"NodeCandidate({self.url or '<none>'}: {status})"


class NodeSelector:
    """
    Connects to an available legacy node

    Features:
    - First-healthy selection in directory order
    - Last-known node fallback when the directory is empty
    - Network identity applied from config, not from the node
    """

    def __init__(
        self,
        health_checker: NodeHealthChecker,
        network: Optional[LegacyNetworkConfig] = None,
        session: Optional[aiohttp.ClientSession] = None
    ):
        self.health_checker = health_checker
        self.network = network or health_checker.network
        self.properties = NetworkProperties.from_config(self.network)
        self.session = session

        # last successfully connected node; empty until the first selection
        self.current_node: str = ''

    async def get_next_available_node(self) -> str:
        """
        Pick a healthy node URL, or the last-known one

        Returns:
            Node URL, empty string if nothing was ever available
        """
        node_url, _ = await self._pick_node()
        return node_url

    async def _pick_node(self) -> Tuple[str, bool]:
        healthy_nodes = await self.health_checker.get_healthy_nodes()

        if healthy_nodes:
            return healthy_nodes[0], False

        if self.current_node:
            logger.warning(f"⚠ No healthy node reported, falling back to {self.current_node}")
        else:
            logger.warning("⚠ No healthy node reported and no previous node to fall back to")
        return self.current_node, True

    def connect_to_node(self, node_url: str, is_fallback: bool = False) -> NodeCandidate:
        """
        Build the repository handles for a node and remember it

        Args:
            node_url: REST URL of the node
            is_fallback: Whether the URL came from the last-known cell

        Returns:
            NodeCandidate
        """
        candidate = NodeCandidate(
            url=node_url,
            network=self.properties,
            repositories=NodeRepositories.for_node(node_url, self.session),
            is_fallback=is_fallback,
            selected_at=datetime.now(timezone.utc),
        )

        self.current_node = node_url
        return candidate

    async def connect_to_an_available_node(self) -> NodeCandidate:
        """Select a node and return a connected handle"""
        node_url, is_fallback = await self._pick_node()

        candidate = self.connect_to_node(node_url, is_fallback=is_fallback)
        logger.debug(f"Current node: {self.current_node or '<none>'}")
        return candidate

    async def select_node(self) -> NodeCandidate:
        return await self.connect_to_an_available_node()
