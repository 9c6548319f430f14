"""
Relay HTTP API

aiohttp application exposing the pipeline:

GET  /                  Service name and version
POST /announce          Relay {"data": ...} on the primary backend
POST /announce/legacy   Relay {"data": ...} on the legacy chain, legacy recipient
POST /transfer          Legacy peer transfer {"sender", "entity", "data"}

Every route sits behind the auth guard (IP whitelist + authorization code
from configs/auth). One log record is written per request/response pair.
"""

import sys
from typing import Any, Dict, List, Optional

from aiohttp import web
from loguru import logger

from . import __version__
from .config import RelayConfig
from .credential_store import CredentialStore
from .exceptions import RelayError
from .models import (
    BroadcastResult,
    LegacySend,
    LegacyVariant,
    NewChainSend,
    PeerTransfer,
    Rejection,
    RejectionReason,
    RelayOutcome,
)
from .relay_pipeline import TransactionPipeline


PIPELINE_KEY = web.AppKey('pipeline', TransactionPipeline)
STORE_KEY = web.AppKey('store', CredentialStore)
CONFIG_KEY = web.AppKey('config', RelayConfig)

BODY_KEY = web.RequestKey('body', object)
RESPONSE_CONTENT_KEY = web.RequestKey('response_content', object)
ERROR_KEY = web.RequestKey('error', object)

REJECTION_RESPONSES = {
    RejectionReason.NO_AUTH_KEY: (500, "Error: no auth key"),
    RejectionReason.NO_CONFIG: (500, "Error: no config"),
    RejectionReason.UNKNOWN_ENTITY: (401, "Error: unknown entity"),
    RejectionReason.INSUFFICIENT_BALANCE: (400, "Error: insufficient balance"),
}


def configure_logging(level: str = 'INFO'):
    """Replace loguru's default sink with a stderr sink at level"""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
               "<cyan>{name}</cyan> - <level>{message}</level>",
    )


def send_response(request: web.Request, status: int, content: Any, error: Any = None) -> web.Response:
    """
    Send a JSON response and keep its content for the service log

    Args:
        request: Current request
        status: HTTP status
        content: JSON-serializable content (strings are sent as JSON strings)
        error: Error detail, logged but never sent
    """
    request[RESPONSE_CONTENT_KEY] = content
    request[ERROR_KEY] = error
    return web.json_response(content, status=status)


def request_addresses(request: web.Request) -> List[str]:
    forwarded = request.headers.get('X-Forwarded-For')
    if forwarded:
        return [address.strip() for address in forwarded.split(',') if address.strip()]
    return [request.remote] if request.remote else []


@web.middleware
async def service_log_middleware(request: web.Request, handler):
    """Log one record per request/response pair"""
    status = 500
    try:
        response = await handler(request)
        status = response.status
        return response
    except web.HTTPException as e:
        status = e.status
        raise
    finally:
        logger.bind(
            request={
                'method': request.method,
                'route': request.rel_url.path,
                'ip': request.headers.get('X-Forwarded-For', request.remote),
                'authCode': request.headers.get('Authorization'),
                'body': request.get(BODY_KEY),
            },
            response={
                'statusCode': status,
                'body': request.get(RESPONSE_CONTENT_KEY),
                'error': request.get(ERROR_KEY),
            },
        ).info(f"Request received: {request.method} {request.rel_url.path} -> {status}")


@web.middleware
async def error_middleware(request: web.Request, handler):
    """Turn relay failures into an opaque 500"""
    try:
        return await handler(request)
    except RelayError as e:
        logger.error(f"✗ {request.method} {request.rel_url.path} failed: {type(e).__name__}: {e}")
        return send_response(request, 500, "Server error", error=str(e))


@web.middleware
async def auth_guard_middleware(request: web.Request, handler):
    """Check caller IP against the whitelist and the authorization code"""
    auth_config = await request.app[STORE_KEY].find_doc('configs', 'auth')
    if not auth_config:
        return send_response(request, 500, "Error: no config")

    whitelist = auth_config.get('whitelist') or []
    if not any(address in whitelist for address in request_addresses(request)):
        return send_response(request, 403, "IP not allowed")

    codes = auth_config.get('codes') or []
    authorization_code = request.headers.get('Authorization')
    if not authorization_code or authorization_code not in codes:
        return send_response(request, 401, "Unauthorized")

    return await handler(request)


async def read_body(request: web.Request) -> Optional[Dict[str, Any]]:
    """Parsed JSON object body, None when the body is not a JSON object"""
    if not request.can_read_body:
        body = {}
    else:
        try:
            body = await request.json()
        except ValueError:
            return None

    if not isinstance(body, dict):
        return None
    request[BODY_KEY] = body
    return body


def outcome_response(request: web.Request, outcome: RelayOutcome) -> web.Response:
    """Map a pipeline outcome to an HTTP response"""
    if isinstance(outcome, Rejection):
        status, message = REJECTION_RESPONSES[outcome.reason]
        return send_response(request, status, message, error=outcome.detail)

    result: BroadcastResult = outcome
    if result.chain == 'dhealth':
        return send_response(request, 200, {'transactionHash': result.transaction_hash})
    return send_response(request, 200, result.acknowledgement or {})


async def root(request: web.Request) -> web.Response:
    config = request.app[CONFIG_KEY]
    return send_response(request, 200, {'name': config.service_name, 'version': __version__})


async def announce(request: web.Request) -> web.Response:
    body = await read_body(request)
    if body is None:
        return send_response(request, 400, "Error: invalid body")

    authorization_key = request.headers.get('Authorization')
    if request.app[CONFIG_KEY].primary_backend == 'dhealth':
        relay_request = NewChainSend(authorization_key=authorization_key, data=body.get('data'))
    else:
        relay_request = LegacySend(authorization_key=authorization_key, data=body.get('data'))

    outcome = await request.app[PIPELINE_KEY].relay(relay_request)
    return outcome_response(request, outcome)


async def announce_legacy(request: web.Request) -> web.Response:
    body = await read_body(request)
    if body is None:
        return send_response(request, 400, "Error: invalid body")

    relay_request = LegacySend(
        authorization_key=request.headers.get('Authorization'),
        data=body.get('data'),
        variant=LegacyVariant.LEGACY,
    )
    outcome = await request.app[PIPELINE_KEY].relay(relay_request)
    return outcome_response(request, outcome)


async def transfer(request: web.Request) -> web.Response:
    body = await read_body(request)
    if body is None:
        return send_response(request, 400, "Error: invalid body")

    relay_request = PeerTransfer(
        sender_key=body.get('sender'),
        entity_key=body.get('entity'),
        data=body.get('data'),
    )
    outcome = await request.app[PIPELINE_KEY].relay(relay_request)
    return outcome_response(request, outcome)


def create_app(pipeline: TransactionPipeline, store: CredentialStore, config: RelayConfig) -> web.Application:
    """
    Build the relay web application

    Args:
        pipeline: Relay pipeline handling the announce routes
        store: Credential store read by the auth guard
        config: Relay config (primary backend, service name)

    Returns:
        aiohttp Application
    """
    app = web.Application(middlewares=[
        service_log_middleware,
        error_middleware,
        auth_guard_middleware,
    ])
    app[PIPELINE_KEY] = pipeline
    app[STORE_KEY] = store
    app[CONFIG_KEY] = config

    app.router.add_get('/', root)
    app.router.add_post('/announce', announce)
    app.router.add_post('/announce/legacy', announce_legacy)
    app.router.add_post('/transfer', transfer)

    async def close_store(app: web.Application):
        await app[STORE_KEY].close()

    app.on_cleanup.append(close_store)
    return app
