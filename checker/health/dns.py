"""
checker/health/dns.py — Name resolution probe.

Resolves the domain with the system resolver (socket.getaddrinfo). The
lookup blocks, so it runs on a thread from a per-run executor sized by
lookup_slots(): every attempt of every dns check can hold its own thread at
once, and a lookup that outlives its check's timeout never delays another
check.

Usage:
    executor = build_executor(lookup_slots(definitions))
    probe = make_probe(executor)
    ...
    executor.shutdown(wait=False)
"""

from __future__ import annotations

import asyncio
import functools
import socket
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Iterable, Optional

from checker.health import Probe, ProbeResult

if TYPE_CHECKING:
    from checker.definitions import CheckDefinition, DnsParams


def lookup_slots(definitions: Iterable[CheckDefinition]) -> int:
    """Upper bound on lookups in flight at once: one per attempt of each dns check."""
    return sum(d.retry_policy.max_retries + 1 for d in definitions if d.kind == "dns")


def build_executor(slots: int) -> ThreadPoolExecutor:
    # Threads are started lazily, so a large bound costs nothing until used.
    return ThreadPoolExecutor(max_workers=max(1, slots), thread_name_prefix="dns-lookup")


async def resolve(domain: str, executor: Optional[ThreadPoolExecutor] = None) -> list[str]:
    loop = asyncio.get_running_loop()
    lookup = functools.partial(socket.getaddrinfo, domain, None, type=socket.SOCK_STREAM)
    infos = await loop.run_in_executor(executor, lookup)
    return sorted({info[4][0] for info in infos})


async def check_domain(domain: str, executor: Optional[ThreadPoolExecutor] = None) -> ProbeResult:
    try:
        addresses = await resolve(domain, executor)
    except (socket.gaierror, UnicodeError) as e:
        return ProbeResult.failure(f"DNS resolution failed for '{domain}': {e}")
    except OSError as e:
        return ProbeResult.failure(f"DNS lookup error for '{domain}': {e}")

    if not addresses:
        return ProbeResult.failure(f"DNS resolution failed for '{domain}': no addresses")
    return ProbeResult.success(detail="resolved: " + ", ".join(addresses))


def make_probe(executor: Optional[ThreadPoolExecutor] = None) -> Probe:
    async def probe(params: DnsParams) -> ProbeResult:
        return await check_domain(params.domain, executor)

    return probe
