"""
Run the relay service

Usage:
    python -m dtps_relay [--config relay_config.yaml] [--host 0.0.0.0] [--port 8080]
"""

import argparse

import aiohttp
from aiohttp import web
from loguru import logger

from . import __version__
from .api import configure_logging, create_app
from .config import RelayConfig
from .credential_store import create_credential_store
from .dhealth_ledger import DhealthLedgerClient
from .legacy_ledger import LegacyLedgerClient
from .node_health_checker import NodeHealthChecker
from .node_selector import NodeSelector
from .relay_pipeline import TransactionPipeline


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog='dtps_relay', description='dHealth transaction relay')
    parser.add_argument('--config', default='relay_config.yaml', help='Path to relay_config.yaml')
    parser.add_argument('--host', help='Override listen host')
    parser.add_argument('--port', type=int, help='Override listen port')
    return parser.parse_args(argv)


def build_app(config: RelayConfig) -> web.Application:
    """
    Wire the relay components explicitly

    store -> health checker -> selector -> ledger clients -> pipeline -> app
    """
    store = create_credential_store(config)

    health_checker = NodeHealthChecker(config.legacy_network)
    node_selector = NodeSelector(health_checker)
    legacy_client = LegacyLedgerClient(node_selector)
    dhealth_client = DhealthLedgerClient(config.dhealth_network)

    pipeline = TransactionPipeline(store, legacy_client, dhealth_client)
    app = create_app(pipeline, store, config)

    async def open_session(app: web.Application):
        # one client session shared by directory and node calls
        session = aiohttp.ClientSession()
        health_checker.session = session
        node_selector.session = session
        yield
        await session.close()

    app.cleanup_ctx.append(open_session)
    return app


def main(argv=None):
    args = parse_args(argv)
    config = RelayConfig.load(args.config)
    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port

    configure_logging(config.log_level)
    logger.info(f"Starting {config.service_name} {__version__} on {config.host}:{config.port}")

    web.run_app(build_app(config), host=config.host, port=config.port, print=None)


if __name__ == '__main__':
    main()
