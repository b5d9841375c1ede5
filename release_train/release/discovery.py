from __future__ import annotations

import re
from collections.abc import Iterable

from release_train.core.result import Err, Ok, Result
from release_train.output.console import ConsoleProtocol, Style
from release_train.release.errors import DiscoveryError
from release_train.release.gateway import ExecutionGateway
from release_train.release.gh import PullRequestInfo, list_labelled_prs
from release_train.release.model import ReleaseRequest, RunPlan
from release_train.release.registry import Package, ordered


def title_pattern(package: Package) -> re.Pattern[str]:
    return re.compile(re.escape(f"release {package.name}"), re.IGNORECASE)


def match_release_pr(package: Package, prs: Iterable[PullRequestInfo]) -> PullRequestInfo | None:
    """First PR whose title mentions ``release <name>``; later matches are ignored."""
    pattern = title_pattern(package)
    for pr in prs:
        if pattern.search(pr.title):
            return pr
    return None


def discover(
    gateway: ExecutionGateway,
    packages: tuple[Package, ...],
    *,
    label: str,
    console: ConsoleProtocol,
) -> Result[RunPlan, DiscoveryError]:
    """Build the run plan: one open, labelled release PR per package at most."""
    console.header("Searching for release PRs")
    console.print(f"label: {label}", Style.DIM)

    requests: dict[str, ReleaseRequest] = {}
    for package in ordered(packages):
        listed = list_labelled_prs(gateway, label=label)
        if isinstance(listed, Err):
            return Err(
                DiscoveryError(
                    package=package.name,
                    message=f"{package.name}: {listed.error.message}",
                    hint=listed.error.hint,
                )
            )

        pr = match_release_pr(package, listed.value)
        if pr is None:
            console.print(f"  {package.name}: no release PR", Style.DIM)
            continue

        requests[package.name] = ReleaseRequest(
            package=package.name,
            request_id=pr.number,
            source_branch=pr.head_branch,
            title=pr.title,
            mergeable_state=pr.mergeable,
        )
        console.print(f"  {package.name}: PR #{pr.number} ({pr.head_branch})")

    return Ok(RunPlan.build(packages, requests))
