"""Shared aiohttp plumbing for the async provider clients."""

from typing import Optional

import aiohttp

from moon_agent.errors import UpstreamError


def new_session(timeout: float = 20.0) -> aiohttp.ClientSession:
    return aiohttp.ClientSession(
        timeout=aiohttp.ClientTimeout(total=timeout),
        headers={"Accept": "application/json"},
    )


async def fetch_json(session: aiohttp.ClientSession, provider: str, method: str,
                     url: str, headers: Optional[dict] = None, **kwargs):
    """Request ``url`` and decode JSON, raising UpstreamError on non-2xx or bad JSON."""
    async with session.request(method, url, headers=headers, **kwargs) as resp:
        if resp.status >= 400:
            raise UpstreamError(provider, resp.status, await resp.text())
        try:
            return await resp.json(content_type=None)
        except ValueError as e:
            raise UpstreamError(provider, resp.status, f"malformed JSON: {e}")


async def json_rpc(session: aiohttp.ClientSession, provider: str, url: str,
                   method: str, params):
    """POST a JSON-RPC 2.0 call and return ``result``."""
    payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
    data = await fetch_json(session, provider, "POST", url, json=payload)
    if not isinstance(data, dict):
        raise UpstreamError(provider, None, f"unexpected RPC response for {method}")
    if data.get("error"):
        error = data["error"]
        message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
        raise UpstreamError(provider, None, f"RPC error in {method}: {message}")
    return data.get("result")
