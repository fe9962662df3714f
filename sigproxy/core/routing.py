"""Route resolution and outbound header allow-lists."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from sigproxy.config.constants import (
    CLIENT_COMPLETIONS_PATH,
    COMPLETIONS_FORWARD_HEADERS,
    DEFAULT_CONTENT_TYPE,
    PASSTHROUGH_FORWARD_HEADERS,
    UPSTREAM_BASE_URL,
    UPSTREAM_COMPLETIONS_PATH,
)


class RouteKind(str, Enum):
    PATCHED_COMPLETIONS = "patched_completions"
    PASSTHROUGH = "passthrough"


@dataclass(frozen=True, slots=True)
class RouteMatch:
    kind: RouteKind
    upstream_url: str


def _build_passthrough_url(path: str, query: str) -> str:
    route_path = path or "/"
    if not route_path.startswith("/"):
        route_path = f"/{route_path}"
    if query:
        return f"{UPSTREAM_BASE_URL}{route_path}?{query}"
    return f"{UPSTREAM_BASE_URL}{route_path}"


def resolve_route(method: str, path: str, query: str = "") -> RouteMatch:
    """Pick the handling path for one inbound request.

    Only ``POST`` on the client-constructed completions path (trailing slash
    tolerated) is patched; it is
    sent to the corrected upstream path and its query string is dropped.
    Everything else keeps its path and query on the upstream origin.
    """

    if method.upper() == "POST" and path.rstrip("/") == CLIENT_COMPLETIONS_PATH:
        return RouteMatch(
            kind=RouteKind.PATCHED_COMPLETIONS,
            upstream_url=f"{UPSTREAM_BASE_URL}{UPSTREAM_COMPLETIONS_PATH}",
        )
    return RouteMatch(kind=RouteKind.PASSTHROUGH, upstream_url=_build_passthrough_url(path, query))


def _pick_headers(headers: Mapping[str, str], allowed: tuple[str, ...]) -> dict[str, str]:
    lowered = {key.lower(): value for key, value in headers.items()}
    picked: dict[str, str] = {}
    for name in allowed:
        value = lowered.get(name)
        if value:
            picked[name] = value
    return picked


def build_completions_headers(headers: Mapping[str, str]) -> dict[str, str]:
    forwarded = _pick_headers(headers, COMPLETIONS_FORWARD_HEADERS)
    forwarded.setdefault("content-type", DEFAULT_CONTENT_TYPE)
    return forwarded


def build_passthrough_headers(headers: Mapping[str, str]) -> dict[str, str]:
    return _pick_headers(headers, PASSTHROUGH_FORWARD_HEADERS)
