"""Shared async HTTP helpers used by the download client and package sources.

All requests go through ``open_response`` so that DEBUG traces, the one-shot
Basic-auth retry and response release are handled in one place. Sessions are
``aiohttp.ClientSession`` instances; a caller-supplied session is never closed
here.
"""
from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Optional, Tuple

import aiofiles
import aiohttp

from tooler.common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url
from tooler.constants import Constants

logger = logging.getLogger(__name__)

HEADERS_JSON = {"Accept": "application/json"}


def is_success(status: int) -> bool:
    """Return True for 2xx status codes."""
    return 200 <= status < 300


@asynccontextmanager
async def session_scope(
    session: Optional[aiohttp.ClientSession] = None,
    timeout: Optional[float] = None,
) -> AsyncIterator[aiohttp.ClientSession]:
    """Yield ``session`` or a new session that is closed on exit."""
    if session is not None:
        yield session
        return
    client_timeout = aiohttp.ClientTimeout(total=timeout) if timeout else aiohttp.ClientTimeout(total=None)
    owned = aiohttp.ClientSession(timeout=client_timeout)
    try:
        yield owned
    finally:
        await owned.close()


@asynccontextmanager
async def open_response(
    session: aiohttp.ClientSession,
    method: str,
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    auth: Optional[aiohttp.BasicAuth] = None,
    context: str = "http",
):
    """Open a response as an async context manager.

    The request is sent unauthenticated first; a 401 answer is retried once with
    ``auth`` when credentials are available.
    """
    target = safe_url(url)
    with Timer() as timer:
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP request",
                extra=extra_context(
                    event="http_request",
                    component="http_client",
                    action=method,
                    target=target,
                    context=context,
                ),
            )
        response = await session.request(method, url, headers=headers)
        if response.status == 401 and auth is not None:
            response.release()
            logger.debug(
                "HTTP 401, retrying with credentials",
                extra=extra_context(
                    event="http_retry",
                    component="http_client",
                    action=method,
                    outcome="unauthorized",
                    target=target,
                    context=context,
                ),
            )
            response = await session.request(method, url, headers=headers, auth=auth)
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP response",
                extra=extra_context(
                    event="http_response",
                    component="http_client",
                    action=method,
                    status_code=response.status,
                    duration_ms=timer.duration_ms(),
                    target=target,
                    context=context,
                ),
            )
    try:
        yield response
    finally:
        response.release()


async def get_json(
    session: aiohttp.ClientSession,
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    auth: Optional[aiohttp.BasicAuth] = None,
    context: str = "http",
) -> Tuple[int, Dict[str, str], Optional[Any]]:
    """GET ``url`` and parse a JSON body.

    Returns:
        Tuple of (status_code, headers_dict, parsed_json_or_none). Transport
        failures are reported as status 0.
    """
    try:
        async with open_response(session, "GET", url, headers=headers or HEADERS_JSON, auth=auth, context=context) as response:
            response_headers = dict(response.headers)
            if not is_success(response.status):
                return response.status, response_headers, None
            text = await response.text()
    except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
        logger.warning(
            "%s request failed: %s",
            context,
            exc,
            extra=extra_context(event="http_exception", component="http_client", action="GET", target=safe_url(url)),
        )
        return 0, {}, None

    try:
        return response.status, response_headers, json.loads(text)
    except ValueError:
        if is_debug_enabled(logger):
            logger.debug(
                "JSON decode error",
                extra=extra_context(
                    event="parse",
                    component="http_client",
                    action="get_json",
                    outcome="json_decode_error",
                    target=safe_url(url),
                ),
            )
        return response.status, response_headers, None


async def get_text(
    session: aiohttp.ClientSession,
    url: str,
    *,
    headers: Optional[Dict[str, str]] = None,
    auth: Optional[aiohttp.BasicAuth] = None,
    context: str = "http",
) -> Tuple[int, Optional[str]]:
    """GET ``url`` and return (status, body text or None on non-success)."""
    async with open_response(session, "GET", url, headers=headers, auth=auth, context=context) as response:
        if not is_success(response.status):
            return response.status, None
        return response.status, await response.text()


async def download_to_file(
    session: aiohttp.ClientSession,
    url: str,
    target: Path,
    *,
    auth: Optional[aiohttp.BasicAuth] = None,
    context: str = "download",
    chunk_size: int = Constants.DOWNLOAD_CHUNK_SIZE,
) -> int:
    """Stream the body of ``url`` into ``target``.

    The file is only written for a successful status. Returns the status code.
    """
    async with open_response(session, "GET", url, auth=auth, context=context) as response:
        if not is_success(response.status):
            return response.status
        async with aiofiles.open(target, "wb") as stream:
            async for chunk in response.content.iter_chunked(chunk_size):
                await stream.write(chunk)
            await stream.flush()
    return response.status
