"""
checker/runner.py — Single-check state machine.

    Pending --start--> Running
    Running --probe succeeds--> Succeeded
    Running --probe fails, retries exhausted--> Failed
    Running --probe fails, retries left--> WaitingAfterFailure
    WaitingAfterFailure --backoff elapses--> Running

Every transition emits exactly one StatusEvent. A runner touches nothing but
its own CheckRun and the emit callable, so any number of them can run on one
event loop side by side.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from checker.definitions import CheckDefinition
from checker.health import Probe, ProbeResult
from checker.retry import backoff, exhausted

logger = logging.getLogger(__name__)

TIMEOUT_REASON = "Check timed out"
CANCELLED_REASON = "Run cancelled before the check finished"


class CheckState(str, Enum):
    PENDING = "Pending"
    RUNNING = "Running"
    WAITING = "WaitingAfterFailure"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    CANCELLED = "Cancelled"

    @property
    def terminal(self) -> bool:
        return self in (CheckState.SUCCEEDED, CheckState.FAILED, CheckState.CANCELLED)


@dataclass(frozen=True)
class StatusEvent:
    check_id: int
    name: str
    state: CheckState
    attempt: int
    reason: Optional[str] = None
    detail: Optional[str] = None
    wait_seconds: Optional[float] = None

    @property
    def status_text(self) -> str:
        if self.state is CheckState.WAITING:
            return f"Waiting {self.wait_seconds:.2f}s after failure: {self.reason}"
        if self.state in (CheckState.FAILED, CheckState.CANCELLED):
            return f"{self.state.value}: {self.reason}"
        if self.state is CheckState.RUNNING:
            return f"Running (attempt {self.attempt})"
        return self.state.value

    def __str__(self) -> str:
        return f"{self.name}: {self.status_text}"


@dataclass
class CheckRun:
    """Mutable runtime state for one selected check, owned by its runner."""

    check_id: int
    definition: CheckDefinition
    attempt: int = 0
    state: CheckState = CheckState.PENDING
    last_failure_reason: Optional[str] = None

    @property
    def name(self) -> str:
        return self.definition.name

    def transition(
        self,
        state: CheckState,
        reason: str | None = None,
        detail: str | None = None,
        wait_seconds: float | None = None,
    ) -> StatusEvent:
        if self.state.terminal:
            raise RuntimeError(f"{self.name} already {self.state.value}; cannot move to {state.value}")
        self.state = state
        return StatusEvent(
            check_id=self.check_id,
            name=self.name,
            state=state,
            attempt=self.attempt,
            reason=reason,
            detail=detail,
            wait_seconds=wait_seconds,
        )


async def attempt_once(probe: Probe, definition: CheckDefinition) -> ProbeResult:
    """One probe call bounded by checkTimeout. Never raises for probe problems."""
    try:
        return await asyncio.wait_for(probe(definition.params), timeout=definition.check_timeout)
    except asyncio.TimeoutError:
        return ProbeResult.failure(TIMEOUT_REASON)
    except Exception as e:  # noqa: BLE001
        return ProbeResult.failure(f"error: {e}")


async def run_check(
    run: CheckRun,
    probe: Probe,
    emit: Callable[[StatusEvent], None],
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> CheckRun:
    """Drive ``run`` to a terminal state, emitting one event per transition."""
    policy = run.definition.retry_policy
    try:
        while True:
            run.attempt += 1
            logger.debug("%s: attempt %d", run.name, run.attempt)
            emit(run.transition(CheckState.RUNNING))

            result = await attempt_once(probe, run.definition)
            if result.ok:
                emit(run.transition(CheckState.SUCCEEDED, detail=result.detail))
                return run

            run.last_failure_reason = result.reason
            logger.debug("%s: attempt %d failed: %s", run.name, run.attempt, result.reason)
            if exhausted(run.attempt, policy):
                logger.info("%s failed after %d attempt(s): %s", run.name, run.attempt, result.reason)
                emit(run.transition(CheckState.FAILED, result.reason, result.detail))
                return run

            delay = backoff(run.attempt, policy)
            emit(run.transition(CheckState.WAITING, result.reason, result.detail, delay))
            await sleep(delay)
    except asyncio.CancelledError:
        if not run.state.terminal:
            run.last_failure_reason = CANCELLED_REASON
            emit(run.transition(CheckState.CANCELLED, CANCELLED_REASON))
        raise
