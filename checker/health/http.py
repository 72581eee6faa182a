"""
checker/health/http.py — HTTP reachability probe.

Issues a GET against the configured URL with a shared httpx.AsyncClient.
Any 2xx status passes; everything else fails with the status and the start
of the response body.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx

from checker.health import DETAIL_LIMIT, Probe, ProbeResult

if TYPE_CHECKING:
    from checker.definitions import HttpParams
    from config.settings import Settings

KEEPALIVE_CONNECTIONS = 20


def build_client(cfg: Settings | None = None, **kwargs) -> httpx.AsyncClient:
    """One client per run, shared by every http check (httpx clients are concurrency-safe)."""
    verify = cfg.HTTP_VERIFY_TLS if cfg is not None else True
    follow_redirects = cfg.HTTP_FOLLOW_REDIRECTS if cfg is not None else True
    # Per-attempt deadlines are enforced by the runner, not the client.
    # The pool is unbounded: a check must never queue behind other checks
    # while its own timeout is running.
    kwargs.setdefault(
        "limits",
        httpx.Limits(max_connections=None, max_keepalive_connections=KEEPALIVE_CONNECTIONS),
    )
    return httpx.AsyncClient(
        verify=verify,
        follow_redirects=follow_redirects,
        timeout=None,
        **kwargs,
    )


def make_probe(client: httpx.AsyncClient) -> Probe:
    async def probe(params: HttpParams) -> ProbeResult:
        return await check_url(client, params.url)

    return probe


async def check_url(client: httpx.AsyncClient, url: str) -> ProbeResult:
    try:
        response = await client.get(url)
    except httpx.HTTPError as e:
        return ProbeResult.failure(f"Error making HTTP request: {e}", detail=type(e).__name__)

    status = response.status_code
    if response.is_success:
        return ProbeResult.success(detail=f"response status: {status}")

    body = response.text.strip()[:DETAIL_LIMIT]
    return ProbeResult.failure(
        f"Received HTTP error {status} {response.reason_phrase}".rstrip(),
        detail=body or None,
    )
