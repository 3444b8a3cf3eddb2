import json

import httpx
import pytest

from interactions_client.core.errors import ApiReportedError, MalformedResponseError, TransportError
from interactions_client.transport.httpx_transport import HttpxTransport

BASE = "https://api.example.test"


def make_transport(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpxTransport(base_url=BASE + "/", version="v1beta", api_key="secret-key", client=client), client


async def drain(transport, body):
    return [chunk async for chunk in transport.stream_interaction(body)]


@pytest.mark.asyncio
async def test_stream_posts_to_sse_endpoint():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["alt"] = request.url.params.get("alt")
        seen["key"] = request.headers.get("X-Goog-Api-Key")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, content=b'event: content.delta\ndata: {"delta":{"type":"text","text":"hi"}}\n\n')

    transport, client = make_transport(handler)
    chunks = await drain(transport, {"model": "m", "input": [], "stream": True})

    assert b"".join(chunks).startswith(b"event: content.delta")
    assert seen == {
        "method": "POST",
        "path": "/v1beta/interactions",
        "alt": "sse",
        "key": "secret-key",
        "body": {"model": "m", "input": [], "stream": True},
    }
    await client.aclose()


@pytest.mark.asyncio
async def test_error_status_raises_api_error_with_request_id():
    def handler(request):
        payload = {"error": {"code": 400, "message": "x" * 500, "status": "INVALID_ARGUMENT"}}
        return httpx.Response(400, json=payload, headers={"x-goog-request-id": "req-42"})

    transport, client = make_transport(handler)
    with pytest.raises(ApiReportedError) as exc:
        await drain(transport, {"model": "m"})
    err = exc.value
    assert err.status_code == 400
    assert err.code == "INVALID_ARGUMENT"
    assert err.request_id == "req-42"
    assert len(err.message) == 200
    assert not err.is_retryable
    await client.aclose()


@pytest.mark.asyncio
async def test_non_json_error_body_is_truncated():
    transport, client = make_transport(lambda request: httpx.Response(503, text="<html>" + "y" * 400))
    with pytest.raises(ApiReportedError) as exc:
        await drain(transport, {})
    assert exc.value.message.startswith("<html>")
    assert len(exc.value.message) == 200
    assert exc.value.is_retryable
    await client.aclose()


@pytest.mark.asyncio
async def test_connect_error_becomes_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    transport, client = make_transport(handler)
    with pytest.raises(TransportError):
        await drain(transport, {})
    with pytest.raises(TransportError):
        await transport.get_interaction("int_1")
    await client.aclose()


@pytest.mark.asyncio
async def test_get_interaction():
    def handler(request):
        assert request.method == "GET"
        assert request.url.path == "/v1beta/interactions/int_9"
        return httpx.Response(200, json={"id": "int_9", "status": "completed", "outputs": []})

    transport, client = make_transport(handler)
    assert await transport.get_interaction("int_9") == {"id": "int_9", "status": "completed", "outputs": []}
    await client.aclose()


@pytest.mark.asyncio
async def test_get_interaction_rejects_non_object():
    transport, client = make_transport(lambda request: httpx.Response(200, json=["not", "an", "object"]))
    with pytest.raises(MalformedResponseError):
        await transport.get_interaction("int_9")
    await client.aclose()


@pytest.mark.asyncio
async def test_aclose_leaves_injected_client_open():
    transport, client = make_transport(lambda request: httpx.Response(200))
    await transport.aclose()
    assert not client.is_closed
    await client.aclose()
