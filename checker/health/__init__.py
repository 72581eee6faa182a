"""
checker/health — Probe implementations, one module per check kind.

Each module exposes a ``make_probe(...)`` factory that builds an async
``probe(params)`` coroutine returning a ProbeResult. Probes report
failures as results, not exceptions; the runner bounds every call with
the check's timeout.

Usage:
    from checker.health import ProbeResult
    from checker.health import dns as health_dns
    probe = health_dns.make_probe()
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable


@dataclass(frozen=True)
class ProbeResult:
    ok: bool
    reason: str | None = None
    detail: str | None = None

    @classmethod
    def success(cls, detail: str | None = None) -> "ProbeResult":
        return cls(True, None, detail)

    @classmethod
    def failure(cls, reason: str, detail: str | None = None) -> "ProbeResult":
        return cls(False, reason, detail)


Probe = Callable[[Any], Awaitable[ProbeResult]]

DETAIL_LIMIT = 500
