"""Project error hierarchy."""


class SigProxyError(Exception):
    """Base error; ``kind`` is the machine-readable tag returned to the caller."""

    kind = "proxy_error"


class RequestBodyError(SigProxyError):
    """Raised when the inbound body cannot be read or decoded."""

    def __init__(self, kind: str, detail: str) -> None:
        super().__init__(detail)
        self.kind = kind


class UpstreamUnreachableError(SigProxyError):
    """Raised when the upstream cannot be contacted or stops responding."""

    kind = "upstream_unreachable"
