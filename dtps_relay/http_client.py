"""
HTTP Request Helper

Executes remote REST calls (directory service, node API) with aiohttp.
No retries and no timeout beyond aiohttp's defaults.
"""

from typing import Any, Dict, Optional

import aiohttp
from loguru import logger

from .exceptions import BroadcastError, TransportError


SUPPORTED_METHODS = ('GET', 'POST', 'PUT', 'DELETE')


async def call(
    url: str,
    method: str = 'GET',
    body: Optional[Any] = None,
    headers: Optional[Dict[str, str]] = None,
    session: Optional[aiohttp.ClientSession] = None,
) -> Any:
    """
    Execute an HTTP request and return the decoded JSON body

    Args:
        url: Absolute URL
        method: GET, POST, PUT or DELETE
        body: JSON-serializable body (str bodies are sent as-is)
        headers: Extra request headers
        session: Optional shared session, a short-lived one is used otherwise

    Returns:
        Decoded JSON response

    Raises:
        TransportError: Connection failed or the URL is malformed
        BroadcastError: Server answered with a non-2xx status
    """
    method = method.upper()
    if method not in SUPPORTED_METHODS:
        raise ValueError(f"Unsupported HTTP method: {method}")

    kwargs: Dict[str, Any] = {'headers': dict(headers or {})}
    if isinstance(body, str):
        kwargs['data'] = body
        kwargs['headers'].setdefault('Content-Type', 'application/json')
    elif body is not None:
        kwargs['json'] = body

    if session is not None:
        return await _request(session, method, url, kwargs)

    async with aiohttp.ClientSession() as own_session:
        return await _request(own_session, method, url, kwargs)


async def _request(session: aiohttp.ClientSession, method: str, url: str, kwargs: Dict) -> Any:
    logger.debug(f"{method} {url}")
    try:
        async with session.request(method, url, **kwargs) as response:
            payload = await _read_body(response)
            if response.status >= 400:
                raise BroadcastError(
                    f"{method} {url} returned HTTP {response.status}",
                    status=response.status,
                    body=payload,
                )
            return payload
    except aiohttp.ClientError as e:
        # includes InvalidURL
        raise TransportError(f"{method} {url} failed: {e}") from e


async def _read_body(response: aiohttp.ClientResponse) -> Any:
    if response.content_type == 'application/json':
        return await response.json()
    text = await response.text()
    return {'message': text} if text else {}
