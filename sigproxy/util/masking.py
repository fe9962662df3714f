"""Credential masking for log output."""

from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

_REDACTED = "***"
_SENSITIVE_MARKERS = ("key", "token", "secret", "password", "signature")


def is_sensitive_name(name: str) -> bool:
    lowered = name.lower()
    return any(marker in lowered for marker in _SENSITIVE_MARKERS)


def redact_url_for_log(url: str) -> str:
    """Return *url* with the values of credential-like query parameters replaced.

    Gemini accepts the API key as ``?key=...``; the forwarded URL keeps it, only
    the logged copy is redacted.
    """
    parts = urlsplit(url)
    if not parts.query:
        return url
    pairs = parse_qsl(parts.query, keep_blank_values=True)
    if not any(is_sensitive_name(name) for name, _ in pairs):
        return url
    redacted = [(name, _REDACTED if is_sensitive_name(name) else value) for name, value in pairs]
    return urlunsplit(parts._replace(query=urlencode(redacted, safe="*")))
