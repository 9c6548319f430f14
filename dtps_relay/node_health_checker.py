"""
Node Health Checker

Queries the legacy network's directory service for nodes whose API and
database both report "up" and turns the host descriptors into REST URLs.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp
from loguru import logger

from . import http_client
from .config import LegacyNetworkConfig


HEALTH_FILTER = 'health.apiNode=up&health.db=up'


@dataclass
class NodeDescriptor:
    """Host entry reported by the directory"""
    host: str
    friendly_name: Optional[str] = None

    def __repr__(self):
        return f"NodeDescriptor({self.friendly_name or '-'}@{self.host})"


class NodeHealthChecker:
    """
    Healthy node discovery for the legacy chain

    Features:
    - Single directory query per call, no caching
    - Order preserved as returned by the directory
    - Network errors propagate to the caller (no retry)
    """

    def __init__(
        self,
        network: Optional[LegacyNetworkConfig] = None,
        session: Optional[aiohttp.ClientSession] = None
    ):
        """
        Initialize health checker

        Args:
            network: Legacy network config (directory URL, node URL template)
            session: Optional shared aiohttp session
        """
        self.network = network or LegacyNetworkConfig()
        self.session = session

        logger.info(f"Node health checker initialized ({self.network.directory_url})")

    @property
    def discovery_url(self) -> str:
        return f"{self.network.directory_url.rstrip('/')}/network/nodes?{HEALTH_FILTER}"

    async def list_healthy_nodes(self) -> List[NodeDescriptor]:
        """
        Fetch host descriptors of nodes reporting a healthy API and database

        Raises:
            TransportError: Directory unreachable or answered with an error
        """
        response = await http_client.call(self.discovery_url, 'GET', session=self.session)
        entries = self._extract_entries(response)

        nodes = []
        for entry in entries:
            host = entry.get('host') if isinstance(entry, dict) else None
            if not host:
                logger.debug(f"Skipping directory entry without host: {entry!r}")
                continue
            nodes.append(NodeDescriptor(host=host, friendly_name=entry.get('friendlyName')))

        logger.debug(f"Directory reported {len(nodes)} healthy nodes")
        return nodes

    async def get_healthy_nodes(self) -> List[str]:
        """
        Return REST URLs of healthy nodes, in directory order

        Returns:
            Possibly empty list of URLs such as http://<host>:3000
        """
        nodes = await self.list_healthy_nodes()
        return [self.network.node_url_template.format(host=node.host) for node in nodes]

    @staticmethod
    def _extract_entries(response: Any) -> List[Dict[str, Any]]:
        # the directory wraps results as {"data": [...]}; accept a bare list too
        if isinstance(response, dict):
            data = response.get('data')
        else:
            data = response

        if not isinstance(data, list):
            logger.warning(f"Unexpected directory response shape: {type(data).__name__}")
            return []
        return data
