"""
checker/orchestrator.py — Runs a set of checks concurrently and aggregates them.

Lifecycle of one invocation:
  1. Validate every definition (shape, positive timings, a probe per kind).
     Any problem raises ConfigError before a single probe runs.
  2. Apply the selector. Deselected checks never become CheckRuns.
  3. Start one asyncio task per selected check, with no concurrency cap.
  4. Fan all StatusEvents into one queue and hand them to ``on_event`` in
     arrival order.
  5. Once every runner is terminal, build the RunResult.

Importable:
    from checker.orchestrator import run_checks
    result = asyncio.run(run_checks(definitions, selector, cfg))
"""

from __future__ import annotations

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Container, Iterable, Mapping, Optional

from pydantic import ValidationError

from checker.definitions import CHECK_KINDS, CheckDefinition, ConfigError
from checker.health import Probe
from checker.health import dns as health_dns
from checker.health import http as health_http
from checker.health import ssh as health_ssh
from checker.runner import CANCELLED_REASON, CheckRun, CheckState, StatusEvent, run_check
from checker.select import Selector, select

if TYPE_CHECKING:
    import httpx

    from config.settings import Settings

logger = logging.getLogger(__name__)

_DONE = object()


@dataclass(frozen=True)
class CheckOutcome:
    check_id: int
    name: str
    kind: str
    labels: dict[str, str]
    state: CheckState
    attempts: int
    reason: Optional[str] = None

    @classmethod
    def from_run(cls, run: CheckRun) -> CheckOutcome:
        return cls(
            check_id=run.check_id,
            name=run.name,
            kind=run.definition.kind,
            labels=dict(run.definition.labels),
            state=run.state,
            attempts=run.attempt,
            reason=run.last_failure_reason if run.state is not CheckState.SUCCEEDED else None,
        )


@dataclass(frozen=True)
class RunResult:
    """Aggregate verdict for one invocation. The only input to the exit code."""

    outcomes: tuple[CheckOutcome, ...] = ()
    started_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    duration_seconds: float = 0.0

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded_count(self) -> int:
        return sum(1 for o in self.outcomes if o.state is CheckState.SUCCEEDED)

    @property
    def failed_count(self) -> int:
        return sum(1 for o in self.outcomes if o.state is CheckState.FAILED)

    @property
    def cancelled_count(self) -> int:
        return sum(1 for o in self.outcomes if o.state is CheckState.CANCELLED)

    @property
    def failures(self) -> list[tuple[str, str | None]]:
        return [(o.name, o.reason) for o in self.outcomes if o.state is not CheckState.SUCCEEDED]

    @property
    def passed(self) -> bool:
        return self.failed_count == 0 and self.cancelled_count == 0

    @property
    def exit_code(self) -> int:
        return 0 if self.passed else 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "duration_seconds": round(self.duration_seconds, 3),
            "total": self.total,
            "succeeded": self.succeeded_count,
            "failed": self.failed_count,
            "cancelled": self.cancelled_count,
            "passed": self.passed,
            "checks": [
                {
                    "id": o.check_id,
                    "name": o.name,
                    "type": o.kind,
                    "labels": o.labels,
                    "state": o.state.value,
                    "attempts": o.attempts,
                    "reason": o.reason,
                }
                for o in self.outcomes
            ],
        }


def validate_definitions(
    definitions: Iterable[CheckDefinition | Mapping[str, Any]],
    available_kinds: Container[str],
) -> list[CheckDefinition]:
    """Re-validate every definition and confirm a probe exists for its kind."""
    validated: list[CheckDefinition] = []
    for idx, definition in enumerate(definitions):
        payload = (
            definition.model_dump()
            if isinstance(definition, CheckDefinition)
            else definition
        )
        try:
            checked = CheckDefinition.model_validate(payload)
        except ValidationError as exc:
            raise ConfigError(f"checks[{idx}]: {exc}") from exc
        if checked.kind not in available_kinds:
            raise ConfigError(f"checks[{idx}]: no probe available for check type '{checked.kind}'")
        validated.append(checked)
    return validated


def default_probes(
    cfg: Settings | None,
    client: httpx.AsyncClient,
    dns_executor: ThreadPoolExecutor | None = None,
) -> dict[str, Probe]:
    return {
        "http": health_http.make_probe(client),
        "dns": health_dns.make_probe(dns_executor),
        "ssh": health_ssh.make_probe(cfg),
    }


class Orchestrator:
    def __init__(
        self,
        probes: Mapping[str, Probe],
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.probes = dict(probes)
        self.sleep = sleep

    def plan(
        self,
        definitions: Iterable[CheckDefinition | Mapping[str, Any]],
        selector: Selector | None = None,
    ) -> list[CheckRun]:
        """Validate then select. Runs keep the definition's position as their id."""
        validated = validate_definitions(definitions, self.probes)
        return [
            CheckRun(check_id=idx, definition=definition)
            for idx, definition in enumerate(validated)
            if select(definition.labels, selector)
        ]

    async def run(
        self,
        definitions: Iterable[CheckDefinition | Mapping[str, Any]],
        selector: Selector | None = None,
        on_event: Callable[[StatusEvent], None] | None = None,
        cancel: asyncio.Event | None = None,
    ) -> RunResult:
        runs = self.plan(definitions, selector)
        started_at = datetime.now(tz=UTC)
        start = time.monotonic()
        logger.debug("running %d check(s), selector=%s", len(runs), selector or "<all>")

        queue: asyncio.Queue = asyncio.Queue()
        tasks = [
            asyncio.create_task(
                run_check(run, self.probes[run.definition.kind], queue.put_nowait, self.sleep),
                name=f"check-{run.check_id}",
            )
            for run in runs
        ]

        async def supervise() -> None:
            await asyncio.gather(*tasks, return_exceptions=True)
            queue.put_nowait(_DONE)

        supervisor = asyncio.create_task(supervise())
        watcher = asyncio.create_task(self._cancel_when_set(cancel, tasks)) if cancel else None
        try:
            while True:
                event = await queue.get()
                if event is _DONE:
                    break
                if on_event is not None:
                    on_event(event)
        finally:
            if watcher is not None:
                watcher.cancel()
            if not supervisor.done():
                for task in tasks:
                    task.cancel()
                await asyncio.gather(supervisor, return_exceptions=True)

        # A runner that crashed, or was cancelled before its first step, never
        # reached a terminal state on its own.
        for run, task in zip(runs, tasks):
            error = task.exception() if task.done() and not task.cancelled() else None
            if error is not None:
                logger.error("%s: runner crashed", run.name, exc_info=error)
            if run.state.terminal:
                continue
            if error is not None:
                reason, state = f"error: {error!r}", CheckState.FAILED
            else:
                reason, state = CANCELLED_REASON, CheckState.CANCELLED
            run.last_failure_reason = reason
            event = run.transition(state, reason)
            if on_event is not None:
                on_event(event)

        return RunResult(
            outcomes=tuple(CheckOutcome.from_run(run) for run in runs),
            started_at=started_at,
            duration_seconds=time.monotonic() - start,
        )

    @staticmethod
    async def _cancel_when_set(cancel: asyncio.Event, tasks: list[asyncio.Task]) -> None:
        await cancel.wait()
        logger.info("cancellation requested; stopping outstanding checks")
        for task in tasks:
            task.cancel()


async def run_checks(
    definitions: Iterable[CheckDefinition | Mapping[str, Any]],
    selector: Selector | None = None,
    cfg: Settings | None = None,
    on_event: Callable[[StatusEvent], None] | None = None,
    cancel: asyncio.Event | None = None,
    probes: Mapping[str, Probe] | None = None,
) -> RunResult:
    """Run checks with the standard probes (or ``probes`` when given)."""
    if probes is not None:
        return await Orchestrator(probes).run(definitions, selector, on_event, cancel)
    definitions = validate_definitions(definitions, CHECK_KINDS)
    dns_executor = health_dns.build_executor(health_dns.lookup_slots(definitions))
    try:
        async with health_http.build_client(cfg) as client:
            orchestrator = Orchestrator(default_probes(cfg, client, dns_executor))
            return await orchestrator.run(definitions, selector, on_event, cancel)
    finally:
        # A lookup past its check's timeout keeps its thread; do not wait for it here.
        dns_executor.shutdown(wait=False, cancel_futures=True)
