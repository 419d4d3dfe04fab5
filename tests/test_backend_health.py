"""Unit tests for eop_assistant.services.backend_health."""
import httpx
import pytest

from eop_assistant.services.backend_health import COMPONENT_CHECKS, check_backend


def _transport(overrides=None):
    overrides = overrides or {}

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path in overrides:
            return overrides[path](request)
        return httpx.Response(200, json={"status": "ok", "message": f"{path} up"})

    return httpx.MockTransport(handler)


@pytest.mark.asyncio
async def test_all_components_ok_is_healthy():
    report = await check_backend("http://backend", transport=_transport())
    assert report["status"] == "healthy"
    assert set(report["components"]) == set(COMPONENT_CHECKS)
    assert report["components"]["database"] == {"status": "ok", "message": "/check/database up"}
    assert report["timestamp"]


@pytest.mark.asyncio
async def test_component_reporting_error_degrades():
    transport = _transport({
        "/check/gemini": lambda r: httpx.Response(200, json={"status": "error", "message": "quota exceeded"}),
    })
    report = await check_backend("http://backend", transport=transport)
    assert report["status"] == "degraded"
    assert report["components"]["gemini_service"] == {"status": "error", "message": "quota exceeded"}
    assert report["components"]["api_server"]["status"] == "ok"


@pytest.mark.asyncio
async def test_unreachable_component_is_error():
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    report = await check_backend("http://backend", transport=_transport({"/check/database": refuse}))
    assert report["status"] == "degraded"
    assert report["components"]["database"] == {"status": "error", "message": "Failed to check database status"}


@pytest.mark.asyncio
async def test_non_json_or_non_object_body_is_error():
    transport = _transport({
        "/check/realtime": lambda r: httpx.Response(200, text="<html>ok</html>"),
        "/check/proposal": lambda r: httpx.Response(200, json=["ok"]),
    })
    report = await check_backend("http://backend", transport=transport)
    assert report["components"]["realtime_updates"]["message"] == "Failed to check real-time updates status"
    assert report["components"]["proposal_generation"]["status"] == "error"
    assert report["status"] == "degraded"
