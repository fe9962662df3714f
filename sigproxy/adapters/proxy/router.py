"""Catch-all proxy routes: patched chat completions plus generic passthrough."""

from __future__ import annotations

import json
import logging
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from starlette.background import BackgroundTask

from sigproxy.adapters.proxy.upstream import UpstreamStream, open_upstream_stream
from sigproxy.config.constants import BODYLESS_METHODS
from sigproxy.config.settings import settings
from sigproxy.core.errors import RequestBodyError, SigProxyError
from sigproxy.core.routing import (
    RouteKind,
    RouteMatch,
    build_completions_headers,
    build_passthrough_headers,
    resolve_route,
)
from sigproxy.core.signature import count_injected, patch_chat_payload
from sigproxy.util.logger import logger
from sigproxy.util.masking import is_sensitive_name, redact_url_for_log

router = APIRouter()

_ALL_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")
_DEBUG_REQUEST_BODY_MAX_CHARS = 32000
_DEBUG_HEADERS_REDACT = frozenset({"authorization", "proxy-authorization", "cookie", "x-goog-api-key"})


def _request_path(request: Request) -> str:
    raw_path = request.scope.get("raw_path")
    if raw_path:
        return raw_path.decode("latin-1")
    return request.scope.get("path") or "/"


def _request_query(request: Request) -> str:
    return (request.scope.get("query_string") or b"").decode("latin-1")


async def _read_body(request: Request) -> bytes:
    limit = int(settings.max_request_body_bytes)
    chunks: list[bytes] = []
    size = 0
    async for chunk in request.stream():
        if not chunk:
            continue
        size += len(chunk)
        if limit > 0 and size > limit:
            raise RequestBodyError(
                "request_body_too_large",
                f"request body exceeds {limit} bytes",
            )
        chunks.append(chunk)
    return b"".join(chunks)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-standard JSON constant {name}")


def _decode_json(body: bytes) -> Any:
    try:
        return json.loads(body.decode("utf-8"), parse_constant=_reject_constant)
    except ValueError as exc:  # UnicodeDecodeError and JSONDecodeError included
        raise RequestBodyError("invalid_json", f"request body is not valid JSON: {exc}") from exc


def _encode_json(payload: Any) -> bytes:
    # ASCII escaping keeps lone surrogates (e.g. a truncated emoji) encodable.
    try:
        return json.dumps(payload, allow_nan=False, separators=(",", ":")).encode("utf-8")
    except ValueError as exc:
        raise RequestBodyError("invalid_json", f"request body is not valid JSON: {exc}") from exc


def _log_request_if_debug(request: Request, route: RouteKind, body: bytes) -> None:
    """DEBUG only: method/path/route/headers with secrets masked; the body only when log_full_request_body is on."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    headers_safe: dict[str, str] = {}
    for key, value in request.headers.items():
        key_lower = key.lower()
        if key_lower in _DEBUG_HEADERS_REDACT or is_sensitive_name(key_lower):
            headers_safe[key] = "***"
        else:
            headers_safe[key] = value
    logger.debug(
        "incoming request method=%s path=%s route=%s headers=%s body_size=%d",
        request.method,
        request.url.path,
        route.value,
        headers_safe,
        len(body),
    )
    if not settings.log_full_request_body or not body:
        return
    body_text = body.decode("utf-8", errors="replace")
    total_len = len(body_text)
    if total_len <= _DEBUG_REQUEST_BODY_MAX_CHARS:
        logger.debug("incoming request body (%d chars):\n%s", total_len, body_text)
        return
    offset = 0
    segment = 0
    while offset < total_len:
        chunk = body_text[offset : offset + _DEBUG_REQUEST_BODY_MAX_CHARS]
        segment += 1
        logger.debug(
            "incoming request body segment %d (chars %d-%d of %d):\n%s",
            segment,
            offset + 1,
            min(offset + _DEBUG_REQUEST_BODY_MAX_CHARS, total_len),
            total_len,
            chunk,
        )
        offset += _DEBUG_REQUEST_BODY_MAX_CHARS


async def _forward_completions(request: Request, match: RouteMatch) -> UpstreamStream:
    body = await _read_body(request)
    _log_request_if_debug(request, match.kind, body)
    payload = _decode_json(body) if body else {}
    if not isinstance(payload, dict):
        raise RequestBodyError("invalid_json", "chat completions body must be a JSON object")

    outbound, patched = patch_chat_payload(payload)
    model = payload.get("model")
    messages = outbound.get("messages")
    if patched:
        logger.info(
            "thought_signature injected model=%s tool_calls=%d",
            model,
            count_injected(payload.get("messages"), messages),
        )
    logger.info(
        "forward POST %s model=%s messages=%d patched=%s",
        redact_url_for_log(match.upstream_url),
        model if model is not None else "unknown",
        len(messages) if isinstance(messages, list) else 0,
        patched,
    )
    return await open_upstream_stream(
        method="POST",
        url=match.upstream_url,
        headers=build_completions_headers(request.headers),
        content=_encode_json(outbound),
    )


async def _forward_passthrough(request: Request, match: RouteMatch) -> UpstreamStream:
    method = request.method.upper()
    content: bytes | None = None
    if method not in BODYLESS_METHODS:
        body = await _read_body(request)
        _log_request_if_debug(request, match.kind, body)
        if body:
            content = _encode_json(_decode_json(body))
    else:
        _log_request_if_debug(request, match.kind, b"")
    logger.info("forward %s %s", method, redact_url_for_log(match.upstream_url))
    return await open_upstream_stream(
        method=method,
        url=match.upstream_url,
        headers=build_passthrough_headers(request.headers),
        content=content,
    )


def _error_response(kind: str, detail: str) -> JSONResponse:
    detail_text = (detail or "").strip() or kind
    return JSONResponse(status_code=502, content={"error": kind, "details": detail_text})


def _stream_back(upstream: UpstreamStream) -> StreamingResponse:
    headers: dict[str, str] = {}
    if upstream.content_type:
        headers["content-type"] = upstream.content_type
    return StreamingResponse(
        upstream.iter_body(),
        status_code=upstream.status_code,
        headers=headers,
        background=BackgroundTask(upstream.aclose),
    )


@router.api_route("/{proxy_path:path}", methods=list(_ALL_METHODS))
async def proxy(request: Request, proxy_path: str = "") -> Response:
    del proxy_path

    match = resolve_route(request.method, _request_path(request), _request_query(request))
    try:
        if match.kind is RouteKind.PATCHED_COMPLETIONS:
            upstream = await _forward_completions(request, match)
        else:
            upstream = await _forward_passthrough(request, match)
    except SigProxyError as exc:
        logger.warning(
            "proxy failed route=%s method=%s path=%s kind=%s error=%s",
            match.kind.value,
            request.method,
            request.url.path,
            exc.kind,
            exc,
        )
        return _error_response(exc.kind, str(exc))
    except Exception as exc:  # pragma: no cover - fail-safe
        logger.exception("proxy unhandled exception route=%s path=%s", match.kind.value, request.url.path)
        return _error_response("proxy_error", str(exc))

    logger.debug(
        "proxy upstream responded route=%s status=%s content_type=%s",
        match.kind.value,
        upstream.status_code,
        upstream.content_type,
    )
    return _stream_back(upstream)
