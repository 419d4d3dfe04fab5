"""Forward requests to the external FastAPI backend with a bounded timeout."""
import json
import logging
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)

# Request headers passed through to the backend
_FORWARDED_HEADERS = ("authorization", "content-type", "accept")


@dataclass(frozen=True)
class ProxyResponse:
    status_code: int
    content: bytes
    media_type: str


def _error(status_code: int, message: str) -> ProxyResponse:
    return ProxyResponse(
        status_code=status_code,
        content=json.dumps({"error": message}).encode("utf-8"),
        media_type="application/json",
    )


def build_target_url(base_url: str, path: str, query: str = "") -> str:
    url = f"{base_url.rstrip('/')}/{path.lstrip('/')}"
    return f"{url}?{query}" if query else url


async def forward(
    method: str,
    base_url: str,
    path: str,
    *,
    query: str = "",
    body: bytes | None = None,
    headers: dict[str, str] | None = None,
    timeout: float = 15.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ProxyResponse:
    """Send *method* to ``base_url/path``.

    Timeouts become 504 and connection failures 502, each with a JSON error
    body; any backend response is passed back unchanged.
    """
    target = build_target_url(base_url, path, query)
    out_headers = {k: v for k, v in (headers or {}).items() if k.lower() in _FORWARDED_HEADERS}
    out_headers.setdefault("content-type", "application/json")
    logger.info("[proxy] forwarding %s %s", method, target)

    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            resp = await client.request(method, target, content=body, headers=out_headers)
    except httpx.TimeoutException:
        logger.warning("[proxy] %s %s timed out after %.1fs", method, target, timeout)
        return _error(504, f"Backend did not respond within {timeout:g}s")
    except httpx.HTTPError as e:
        logger.error("[proxy] %s %s failed: %s", method, target, e)
        return _error(502, f"Backend unreachable: {e}")

    return ProxyResponse(
        status_code=resp.status_code,
        content=resp.content,
        media_type=resp.headers.get("content-type", "application/json"),
    )
