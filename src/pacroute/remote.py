from __future__ import annotations

from typing import Any, Optional

import httpx

from .errors import TransportError


def _client(timeout_s: float, transport: Optional[httpx.AsyncBaseTransport]) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=timeout_s, transport=transport)


async def fetch_json(
    url: str,
    timeout_s: float,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Any:
    try:
        async with _client(timeout_s, transport) as client:
            resp = await client.get(url)
            resp.raise_for_status()
            return resp.json()
    except httpx.HTTPError as exc:
        raise TransportError(f"GET {url} failed: {exc}") from exc
    except ValueError as exc:
        raise TransportError(f"GET {url} returned invalid JSON: {exc}") from exc


async def fetch_string_list(
    url: str,
    timeout_s: float,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> list[str]:
    data = await fetch_json(url, timeout_s, transport)
    if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
        raise TransportError(f"GET {url} did not return a list of strings")
    return [item.strip().lower() for item in data if item.strip()]


async def post_json(
    url: str,
    payload: dict,
    timeout_s: float,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> int:
    try:
        async with _client(timeout_s, transport) as client:
            resp = await client.post(url, json=payload)
            return resp.status_code
    except httpx.HTTPError as exc:
        raise TransportError(f"POST {url} failed: {exc}") from exc
