"""PR host and CI adapters built on the GitHub CLI.

All calls go through the execution gateway, so they inherit the injected
token and the dry-run policy. Reads are never retried: a failed query is
terminal for the run.
"""

from __future__ import annotations

import json
from dataclasses import dataclass

from release_train.core.result import Err, Ok, Result
from release_train.core.structured import as_obj_list, as_str_dict, get_int, get_str
from release_train.release.errors import HostError
from release_train.release.gateway import ExecutionGateway
from release_train.release.model import MergeableState, WorkflowRun

_PR_FIELDS = "number,title,headRefName,mergeable"
_RUN_FIELDS = "databaseId,status,conclusion,url"
_PR_LIST_LIMIT = 100


@dataclass(frozen=True, slots=True)
class PullRequestInfo:
    number: int
    title: str
    head_branch: str
    mergeable: MergeableState


def _gh_json(gateway: ExecutionGateway, cmd: list[str], *, what: str) -> Result[object, HostError]:
    result = gateway.run(cmd)
    if isinstance(result, Err):
        return Err(HostError(message=f"{what} failed", hint=result.error.hint))

    try:
        obj: object = json.loads(result.value or "null")
    except json.JSONDecodeError as e:
        return Err(HostError(message=f"invalid JSON from {what}: {e}"))
    return Ok(obj)


def _parse_pr(obj: object) -> PullRequestInfo | None:
    d = as_str_dict(obj)
    if d is None:
        return None
    number = get_int(d, "number")
    head = get_str(d, "headRefName")
    if number is None or head is None:
        return None
    return PullRequestInfo(
        number=number,
        title=get_str(d, "title") or "",
        head_branch=head,
        mergeable=MergeableState.parse(get_str(d, "mergeable")),
    )


def list_labelled_prs(
    gateway: ExecutionGateway, *, label: str
) -> Result[list[PullRequestInfo], HostError]:
    """Open pull requests carrying ``label``, in the order the host returns them."""
    obj = _gh_json(
        gateway,
        [
            "gh",
            "pr",
            "list",
            "--state",
            "open",
            "--label",
            label,
            "--limit",
            str(_PR_LIST_LIMIT),
            "--json",
            _PR_FIELDS,
        ],
        what="gh pr list",
    )
    if isinstance(obj, Err):
        return obj

    raw = as_obj_list(obj.value)
    if raw is None:
        return Err(HostError(message="unexpected gh pr list payload", hint=label))

    prs: list[PullRequestInfo] = []
    for item in raw:
        pr = _parse_pr(item)
        if pr is not None:
            prs.append(pr)
    return Ok(prs)


def view_pr(gateway: ExecutionGateway, number: int) -> Result[PullRequestInfo, HostError]:
    obj = _gh_json(
        gateway,
        ["gh", "pr", "view", str(number), "--json", _PR_FIELDS],
        what=f"gh pr view {number}",
    )
    if isinstance(obj, Err):
        return obj

    pr = _parse_pr(obj.value)
    if pr is None:
        return Err(HostError(message=f"unexpected gh pr view payload for #{number}"))
    return Ok(pr)


def merge_pr(gateway: ExecutionGateway, number: int) -> Result[None, HostError]:
    """Squash-merge ``number`` and delete its source branch."""
    merged = gateway.run(
        ["gh", "pr", "merge", str(number), "--squash", "--delete-branch"],
        mutating=True,
    )
    if isinstance(merged, Err):
        return Err(HostError(message=f"gh pr merge {number} failed", hint=merged.error.hint))
    return Ok(None)


def latest_workflow_run(
    gateway: ExecutionGateway, *, workflow: str, branch: str | None = None
) -> Result[WorkflowRun | None, HostError]:
    """Most recent run of ``workflow``; None when the workflow has never run."""
    cmd = ["gh", "run", "list", "--workflow", workflow, "--limit", "1", "--json", _RUN_FIELDS]
    if branch is not None:
        cmd.extend(["--branch", branch])

    obj = _gh_json(gateway, cmd, what="gh run list")
    if isinstance(obj, Err):
        return obj

    raw = as_obj_list(obj.value)
    if raw is None:
        return Err(HostError(message="unexpected gh run list payload", hint=workflow))
    if not raw:
        return Ok(None)

    d = as_str_dict(raw[0])
    if d is None:
        return Err(HostError(message="unexpected gh run list entry", hint=workflow))

    run_id = get_int(d, "databaseId")
    status = get_str(d, "status")
    if run_id is None or status is None:
        return Err(HostError(message="gh run list entry lacks databaseId/status", hint=workflow))

    return Ok(
        WorkflowRun(
            run_id=run_id,
            status=status.lower(),
            conclusion=(get_str(d, "conclusion") or "").lower() or None,
            url=get_str(d, "url"),
        )
    )
