"""End-to-end release run.

Packages are processed one at a time in ascending rank:

    discover -> for each package:
        skip if it has no release PR
        resolve conflicts if a lower-rank package has a release PR this run
        merge the release PR (squash, delete branch)
        wait for the publish workflow

The first failure stops the run. Merges already done are kept: each one is
durable and its publish workflow can be re-triggered on a later run.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from release_train.core.result import Err, Ok, Result
from release_train.git.repository import ReleaseCheckout
from release_train.output.console import ConsoleProtocol, Style
from release_train.release.config import ReleaseConfig
from release_train.release.conflicts import ConflictResolver
from release_train.release.discovery import discover
from release_train.release.errors import (
    MergeError,
    NothingToReleaseError,
    ReleaseError,
    ReleaseStepError,
)
from release_train.release.gateway import ExecutionGateway
from release_train.release.gh import latest_workflow_run, merge_pr
from release_train.release.model import PackageOutcome, ReleaseRequest, ReleaseSummary, RunPlan
from release_train.release.registry import Package
from release_train.release.waiter import Clock, Sleep, wait_for_workflow


@dataclass
class ReleaseOrchestrator:
    gateway: ExecutionGateway
    config: ReleaseConfig
    console: ConsoleProtocol
    clock: Clock = time.monotonic
    sleep: Sleep = time.sleep
    resolver: ConflictResolver = field(init=False)

    def __post_init__(self) -> None:
        self.resolver = ConflictResolver(
            ReleaseCheckout(self.gateway), config=self.config, console=self.console
        )

    def run(self) -> Result[ReleaseSummary, ReleaseError]:
        console = self.console
        console.header("Starting automated release")
        if self.gateway.dry_run:
            console.warning("dry run: no merge, commit or push will be made")

        planned = discover(
            self.gateway, self.config.packages, label=self.config.label, console=console
        )
        if isinstance(planned, Err):
            return planned
        plan = planned.value
        if plan.is_empty():
            return Err(NothingToReleaseError(label=self.config.label))

        outcomes: list[PackageOutcome] = []
        for package, request in plan:
            if request is None:
                console.print(f"Skipping {package.name} (no release PR)", Style.DIM)
                outcomes.append(PackageOutcome(package=package.name, request_id=None))
                continue

            released = self._release(plan, package, request)
            if isinstance(released, Err):
                console.error(f"release stopped at {package.name} PR #{request.request_id}")
                done = [o.package for o in outcomes if o.merged]
                if done:
                    console.print(f"already released: {', '.join(done)}", Style.DIM)
                return released
            outcomes.append(PackageOutcome(package=package.name, request_id=request.request_id))

        summary = ReleaseSummary(outcomes=tuple(outcomes))
        print_summary(summary, console)
        return Ok(summary)

    def _release(
        self, plan: RunPlan, package: Package, request: ReleaseRequest
    ) -> Result[None, ReleaseError]:
        console = self.console
        console.header(f"Processing {package.name} release (PR #{request.request_id})")

        if plan.has_lower_rank_request(package):
            resolved = self.resolver.resolve(package, request)
            if isinstance(resolved, Err):
                return resolved

        # Watermark: the publish run we wait for must be newer than this one.
        before = latest_workflow_run(
            self.gateway, workflow=self.config.workflow, branch=self.config.integration_branch
        )
        if isinstance(before, Err):
            return Err(
                ReleaseStepError(package.name, request.request_id, "watermark", before.error)
            )
        after_run_id = before.value.run_id if before.value is not None else None

        console.print(f"Merging {package.name} PR #{request.request_id}...")
        merged = merge_pr(self.gateway, request.request_id)
        if isinstance(merged, Err):
            return Err(
                MergeError(
                    package=package.name,
                    request_id=request.request_id,
                    message=f"could not merge {package.name} PR #{request.request_id}",
                    hint=merged.error.hint,
                )
            )
        if not self.gateway.dry_run:
            console.success(f"merged {package.name} PR #{request.request_id}")

        waited = wait_for_workflow(
            self.gateway,
            workflow=self.config.workflow,
            branch=self.config.integration_branch,
            after_run_id=after_run_id,
            wait=self.config.wait,
            console=console,
            clock=self.clock,
            sleep=self.sleep,
        )
        if isinstance(waited, Err):
            return Err(ReleaseStepError(package.name, request.request_id, "wait", waited.error))
        return Ok(None)


def print_summary(summary: ReleaseSummary, console: ConsoleProtocol) -> None:
    console.header("Release summary")
    for outcome in summary.outcomes:
        if outcome.merged:
            console.success(f"{outcome.package} (PR #{outcome.request_id})")
        else:
            console.print(f"-- {outcome.package} (skipped, no release PR)", Style.DIM)
