import httpx
import pytest

from sigproxy.adapters.proxy import upstream
from sigproxy.config.settings import settings
from sigproxy.core.errors import UpstreamUnreachableError


@pytest.fixture
def mock_client(monkeypatch):
    def _install(handler):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

        async def fake_get_client():
            return client

        monkeypatch.setattr(upstream, "_get_upstream_async_client", fake_get_client)
        return client

    return _install


@pytest.mark.asyncio
async def test_open_upstream_stream_sends_request_and_streams_body(mock_client):
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["authorization"] = request.headers.get("authorization")
        seen["body"] = request.content
        return httpx.Response(200, content=b"chunk-1chunk-2", headers={"content-type": "text/plain"})

    mock_client(handler)

    stream = await upstream.open_upstream_stream(
        method="POST",
        url="https://generativelanguage.googleapis.com/v1beta/openai/chat/completions",
        headers={"authorization": "Bearer T", "content-type": "application/json"},
        content=b'{"model":"m"}',
    )
    body = b"".join([chunk async for chunk in stream.iter_body()])

    assert stream.status_code == 200
    assert stream.content_type == "text/plain"
    assert body == b"chunk-1chunk-2"
    assert seen == {
        "method": "POST",
        "url": "https://generativelanguage.googleapis.com/v1beta/openai/chat/completions",
        "authorization": "Bearer T",
        "body": b'{"model":"m"}',
    }


@pytest.mark.asyncio
async def test_open_upstream_stream_wraps_connect_errors(mock_client):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    mock_client(handler)

    with pytest.raises(UpstreamUnreachableError) as exc_info:
        await upstream.open_upstream_stream(
            method="GET",
            url="https://generativelanguage.googleapis.com/v1beta/openai/models",
            headers={},
            content=None,
        )

    assert exc_info.value.kind == "upstream_unreachable"
    assert "connection refused" in str(exc_info.value)


@pytest.mark.asyncio
async def test_stream_close_is_idempotent(mock_client):
    mock_client(lambda request: httpx.Response(200, content=b"ok"))

    stream = await upstream.open_upstream_stream(
        method="GET",
        url="https://generativelanguage.googleapis.com/v1beta/openai/models",
        headers={},
        content=None,
    )
    await stream.aclose()
    await stream.aclose()


def test_upstream_timeout_leaves_reads_unbounded_by_default(monkeypatch):
    monkeypatch.setattr(settings, "upstream_timeout_seconds", 12.0)
    monkeypatch.setattr(settings, "upstream_read_timeout_seconds", None)

    timeout = upstream._upstream_http_timeout()

    assert timeout.connect == 12.0
    assert timeout.write == 12.0
    assert timeout.read is None


def test_upstream_timeout_read_override(monkeypatch):
    monkeypatch.setattr(settings, "upstream_read_timeout_seconds", 300)

    assert upstream._upstream_http_timeout().read == 300.0


@pytest.mark.asyncio
async def test_shared_client_is_created_once_and_closed():
    await upstream.close_upstream_async_client()
    first = await upstream._get_upstream_async_client()
    second = await upstream._get_upstream_async_client()

    assert first is second

    await upstream.close_upstream_async_client()
    assert first.is_closed
    assert upstream._upstream_async_client is None
