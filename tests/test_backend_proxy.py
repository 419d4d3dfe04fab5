"""Unit tests for eop_assistant.services.backend_proxy."""
import json

import httpx
import pytest

from eop_assistant.services.backend_proxy import build_target_url, forward


def test_build_target_url():
    assert build_target_url("http://api:8000/", "/items/1") == "http://api:8000/items/1"
    assert build_target_url("http://api:8000", "items", "q=1&x=2") == "http://api:8000/items?q=1&x=2"


@pytest.mark.asyncio
async def test_forwards_request_and_response():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["method"] = request.method
        seen["body"] = request.content
        seen["headers"] = dict(request.headers)
        return httpx.Response(201, json={"ok": True})

    result = await forward(
        "POST",
        "http://backend",
        "plans",
        query="draft=1",
        body=b'{"a": 1}',
        headers={"Authorization": "Bearer t", "Cookie": "token=secret", "Content-Type": "application/json"},
        transport=httpx.MockTransport(handler),
    )
    assert result.status_code == 201
    assert json.loads(result.content) == {"ok": True}
    assert result.media_type.startswith("application/json")
    assert seen["url"] == "http://backend/plans?draft=1"
    assert seen["method"] == "POST"
    assert seen["body"] == b'{"a": 1}'
    assert seen["headers"]["authorization"] == "Bearer t"
    assert "cookie" not in seen["headers"]


@pytest.mark.asyncio
async def test_backend_error_status_passes_through():
    transport = httpx.MockTransport(lambda request: httpx.Response(404, json={"detail": "nope"}))
    result = await forward("GET", "http://backend", "missing", transport=transport)
    assert result.status_code == 404


@pytest.mark.asyncio
async def test_timeout_becomes_504():
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    result = await forward("GET", "http://backend", "slow", timeout=2.0, transport=httpx.MockTransport(handler))
    assert result.status_code == 504
    assert "2s" in json.loads(result.content)["error"]


@pytest.mark.asyncio
async def test_connection_error_becomes_502():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    result = await forward("GET", "http://backend", "down", transport=httpx.MockTransport(handler))
    assert result.status_code == 502
    assert json.loads(result.content)["error"].startswith("Backend unreachable")
