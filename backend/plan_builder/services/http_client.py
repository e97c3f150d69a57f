"""
Process-wide httpx.AsyncClient reused by the OpenAI transport.
Transports fall back to a per-call client when none has been started.
"""
from __future__ import annotations

import httpx

USER_AGENT = "plan-builder/0.1"
CONNECT_TIMEOUT_SECONDS = 5.0

_client: httpx.AsyncClient | None = None


def _build_client(read_timeout: float, max_connections: int) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=httpx.Timeout(read_timeout, connect=CONNECT_TIMEOUT_SECONDS),
        limits=httpx.Limits(max_connections=max_connections, max_keepalive_connections=max_connections),
        headers={"User-Agent": USER_AGENT},
    )


def get_http_client() -> httpx.AsyncClient:
    if _client is None:
        raise RuntimeError("LLM HTTP client not started; call init_http_client() first.")
    return _client


def get_http_client_or_none() -> httpx.AsyncClient | None:
    return _client


def init_http_client(timeout: float = 30.0, max_connections: int = 8) -> httpx.AsyncClient:
    """Start the shared client. Idempotent: a second call returns the running client unchanged."""
    global _client
    if _client is None:
        _client = _build_client(timeout, max_connections)
    return _client


async def close_http_client() -> None:
    global _client
    client, _client = _client, None
    if client is not None:
        await client.aclose()
