"""
Outbound HTTP client and single-hop forwarding to the Gemini API.
"""

from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack
from typing import AsyncGenerator, Mapping

import httpx

from sigproxy.config.settings import settings
from sigproxy.core.errors import UpstreamUnreachableError
from sigproxy.util.logger import logger
from sigproxy.util.masking import redact_url_for_log

_upstream_async_client: httpx.AsyncClient | None = None
_upstream_client_lock: asyncio.Lock | None = None


def _upstream_http_limits() -> httpx.Limits:
    return httpx.Limits(
        max_connections=max(10, int(settings.upstream_max_connections)),
        max_keepalive_connections=max(5, int(settings.upstream_max_keepalive_connections)),
    )


def _upstream_http_timeout() -> httpx.Timeout:
    timeout = float(settings.upstream_timeout_seconds)
    read_timeout = settings.upstream_read_timeout_seconds
    return httpx.Timeout(
        connect=timeout,
        read=float(read_timeout) if read_timeout is not None else None,
        write=timeout,
        pool=timeout,
    )


async def _get_upstream_async_client() -> httpx.AsyncClient:
    global _upstream_async_client, _upstream_client_lock
    if _upstream_async_client is not None:
        return _upstream_async_client
    if _upstream_client_lock is None:
        _upstream_client_lock = asyncio.Lock()
    async with _upstream_client_lock:
        if _upstream_async_client is None:
            _upstream_async_client = httpx.AsyncClient(
                follow_redirects=False,
                http2=False,
                timeout=_upstream_http_timeout(),
                limits=_upstream_http_limits(),
            )
    return _upstream_async_client


async def close_upstream_async_client() -> None:
    global _upstream_async_client
    if _upstream_async_client is not None:
        await _upstream_async_client.aclose()
        _upstream_async_client = None


def _error_detail(exc: Exception) -> str:
    return (str(exc) or "").strip() or exc.__class__.__name__ or "connection_failed_or_timeout"


class UpstreamStream:
    """An upstream response whose headers have arrived and whose body is still unread."""

    def __init__(self, response: httpx.Response, exit_stack: AsyncExitStack, log_url: str) -> None:
        self.response = response
        self._exit_stack = exit_stack
        self._log_url = log_url

    @property
    def status_code(self) -> int:
        return self.response.status_code

    @property
    def content_type(self) -> str:
        return self.response.headers.get("content-type", "")

    async def iter_body(self) -> AsyncGenerator[bytes, None]:
        try:
            async for chunk in self.response.aiter_bytes():
                if chunk:
                    yield chunk
        except httpx.HTTPError as exc:
            logger.warning("upstream stream interrupted url=%s error=%s", self._log_url, _error_detail(exc))
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        await self._exit_stack.aclose()


async def open_upstream_stream(
    *,
    method: str,
    url: str,
    headers: Mapping[str, str],
    content: bytes | None,
) -> UpstreamStream:
    """Send one request upstream and return once response headers arrive.

    Raises ``UpstreamUnreachableError`` on connect, DNS, timeout or protocol failures.
    """

    log_url = redact_url_for_log(url)
    logger.debug(
        "forward start method=%s url=%s body_bytes=%d",
        method,
        log_url,
        len(content) if content is not None else 0,
    )
    client = await _get_upstream_async_client()
    exit_stack = AsyncExitStack()
    try:
        response = await exit_stack.enter_async_context(
            client.stream(method, url, headers=dict(headers), content=content)
        )
    except httpx.HTTPError as exc:
        await exit_stack.aclose()
        detail = _error_detail(exc)
        logger.warning("forward http_error method=%s url=%s error=%s", method, log_url, detail)
        raise UpstreamUnreachableError(f"upstream_unreachable: {detail}") from exc
    logger.debug("forward connected method=%s url=%s status=%s", method, log_url, response.status_code)
    return UpstreamStream(response, exit_stack, log_url)
