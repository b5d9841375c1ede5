"""Waiting for the publish workflow after a merge.

:func:`poll_until` is a plain deadline poller: the timeout is a parameter, not
an emergent property of loop counts. Clock and sleep are injectable so tests
run in zero wall time.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

from release_train.core.result import Err, Ok, Result
from release_train.output.console import ConsoleProtocol, Style
from release_train.release.config import WaitConfig
from release_train.release.errors import HostError, WorkflowFailedError, WorkflowTimeoutError
from release_train.release.gateway import ExecutionGateway
from release_train.release.gh import latest_workflow_run
from release_train.release.model import WorkflowRun

Clock = Callable[[], float]
Sleep = Callable[[float], None]

T = TypeVar("T")
E = TypeVar("E")

WaitError = HostError | WorkflowFailedError | WorkflowTimeoutError


@dataclass(frozen=True, slots=True)
class PollTimedOut:
    elapsed: float
    polls: int


def poll_until(
    check: Callable[[], Result[T | None, E]],
    *,
    interval: float,
    timeout: float,
    grace: float = 0.0,
    clock: Clock = time.monotonic,
    sleep: Sleep = time.sleep,
) -> Result[T, E | PollTimedOut]:
    """Call ``check`` until it yields a value, fails, or the deadline passes.

    ``grace`` is slept before the first check and does not count against
    ``timeout``: the deadline is set once the grace delay is over. Checks
    then run every ``interval`` seconds, and polling stops with PollTimedOut
    as soon as the next check would land at or past the deadline.

    Args:
        check: Returns Ok(value) when done, Ok(None) to keep polling, Err to abort.
        interval: Seconds between checks.
        timeout: Seconds allowed for polling, counted after ``grace``.
        grace: Seconds to wait before the first check.
    """
    start = clock()
    if grace > 0:
        sleep(grace)
    deadline = clock() + timeout
    polls = 0

    while True:
        polls += 1
        outcome = check()
        if isinstance(outcome, Err):
            return outcome
        if outcome.value is not None:
            return Ok(outcome.value)

        if clock() + interval >= deadline:
            return Err(PollTimedOut(elapsed=clock() - start, polls=polls))
        sleep(interval)


def _describe(run: WorkflowRun) -> str:
    return f"status: {run.status}, conclusion: {run.conclusion or 'n/a'}"


def wait_for_workflow(
    gateway: ExecutionGateway,
    *,
    workflow: str,
    branch: str | None,
    after_run_id: int | None,
    wait: WaitConfig,
    console: ConsoleProtocol,
    clock: Clock = time.monotonic,
    sleep: Sleep = time.sleep,
) -> Result[WorkflowRun | None, WaitError]:
    """Wait for the publish run triggered by the merge that just happened.

    Only a run newer than ``after_run_id`` (the latest run seen before the
    merge) is accepted; anything older, or no run at all, counts as
    not completed yet.

    In dry-run mode no merge happened, so the latest run is read once and
    reported without waiting (Ok(None) when there is none).
    """
    console.print(f"Waiting for {workflow} to complete...")

    if gateway.dry_run:
        latest = latest_workflow_run(gateway, workflow=workflow, branch=branch)
        if isinstance(latest, Err):
            return latest
        if latest.value is not None:
            console.print(f"  dry-run: latest run {_describe(latest.value)}", Style.DIM)
        console.print("  dry-run: not waiting", Style.DIM)
        return Ok(latest.value)

    def check() -> Result[WorkflowRun | None, HostError | WorkflowFailedError]:
        latest = latest_workflow_run(gateway, workflow=workflow, branch=branch)
        if isinstance(latest, Err):
            return latest

        run = latest.value
        if run is None or (after_run_id is not None and run.run_id <= after_run_id):
            console.print("  no new run yet", Style.DIM)
            return Ok(None)

        console.print(f"  {_describe(run)}", Style.DIM)
        if not run.is_completed:
            return Ok(None)
        if run.succeeded:
            return Ok(run)
        return Err(
            WorkflowFailedError(
                workflow=workflow, conclusion=run.conclusion or "unknown", url=run.url
            )
        )

    result = poll_until(
        check,
        interval=wait.poll_interval,
        timeout=wait.timeout,
        grace=wait.grace,
        clock=clock,
        sleep=sleep,
    )
    if isinstance(result, Ok):
        console.success(f"{workflow} completed successfully")
        return Ok(result.value)

    error = result.error
    if isinstance(error, PollTimedOut):
        return Err(WorkflowTimeoutError(workflow=workflow, timeout=wait.timeout, polls=error.polls))
    return Err(error)
