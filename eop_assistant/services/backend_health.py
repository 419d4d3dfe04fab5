"""Connectivity report for the external backend: one status check per component, run concurrently."""
import asyncio
import json
import logging
from datetime import datetime, timezone

import httpx

from eop_assistant.services.backend_proxy import forward

logger = logging.getLogger(__name__)

# component -> (backend status path, label used in failure messages)
COMPONENT_CHECKS = {
    "api_server": ("/check/api-server", "API server"),
    "database": ("/check/database", "database"),
    "gemini_service": ("/check/gemini", "Gemini service"),
    "proposal_generation": ("/check/proposal", "proposal generation"),
    "realtime_updates": ("/check/realtime", "real-time updates"),
}


async def _check_component(
    base_url: str,
    path: str,
    label: str,
    timeout: float,
    transport: httpx.AsyncBaseTransport | None,
) -> dict:
    result = await forward("GET", base_url, path, timeout=timeout, transport=transport)
    if result.status_code != 200:
        logger.warning("Backend check %s failed with status %s", path, result.status_code)
        return {"status": "error", "message": f"Failed to check {label} status"}
    try:
        body = json.loads(result.content)
    except ValueError:
        logger.warning("Backend check %s returned a non-JSON body", path)
        return {"status": "error", "message": f"Failed to check {label} status"}
    if not isinstance(body, dict):
        return {"status": "error", "message": f"Failed to check {label} status"}
    return {
        "status": "ok" if body.get("status") == "ok" else "error",
        "message": str(body.get("message") or ""),
    }


async def check_backend(
    base_url: str,
    *,
    timeout: float = 5.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict:
    """Return ``{status: healthy|degraded, components: {...}, timestamp}``.

    Any component that is unreachable, times out, or reports a non-"ok"
    status marks the whole report degraded.
    """
    names = list(COMPONENT_CHECKS)
    results = await asyncio.gather(*(
        _check_component(base_url, COMPONENT_CHECKS[name][0], COMPONENT_CHECKS[name][1], timeout, transport)
        for name in names
    ))
    components = dict(zip(names, results))
    healthy = all(c["status"] == "ok" for c in components.values())
    return {
        "status": "healthy" if healthy else "degraded",
        "components": components,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
