"""Git operations on the release checkout.

:class:`ReleaseCheckout` wraps the handful of git commands needed to bring a
release branch up to date with the integration branch. Commands run through
the execution gateway, so state-changing ones (checkout, merge, commit, push)
are skipped in dry-run mode.

Usage:
    checkout = ReleaseCheckout(gateway)
    match checkout.merge_no_commit("origin/master"):
        case Ok(True):
            print("merged cleanly")
        case Ok(False):
            print(checkout.unmerged_paths())
        case Err(e):
            print(f"merge failed: {e.message}")
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

from release_train.core.result import Err, Ok, Result
from release_train.release.gateway import ExecutionGateway

__all__ = ["ConflictSide", "GitError", "ReleaseCheckout"]

ConflictSide = Literal["ours", "theirs"]


@dataclass(frozen=True, slots=True)
class GitError:
    """Error from a git operation.

    Attributes:
        command: The git subcommand that failed (e.g. "push")
        message: stderr of the command, or a fallback description
        returncode: Process return code
    """

    command: str
    message: str
    returncode: int = 1


class ReleaseCheckout:
    """The local working tree, driven through an :class:`ExecutionGateway`."""

    def __init__(self, gateway: ExecutionGateway) -> None:
        self.gateway = gateway

    def fetch(self, remote: str, ref: str) -> Result[None, GitError]:
        return self._unit(["fetch", remote, ref], command="fetch")

    def checkout(self, branch: str, *, start_point: str | None = None) -> Result[None, GitError]:
        """Check out ``branch``; with ``start_point`` the branch is (re)created there."""
        args = ["checkout", branch]
        if start_point is not None:
            args = ["checkout", "-B", branch, start_point]
        return self._unit(args, command="checkout", mutating=True)

    def merge_no_commit(self, ref: str) -> Result[bool, GitError]:
        """Merge ``ref`` without committing.

        Returns:
            Ok(True) if the merge applied cleanly, Ok(False) if it stopped on
            conflicts, Err for any other failure.
        """
        result = self.gateway.run(
            ["git", "merge", "--no-commit", "--no-ff", ref],
            mutating=True,
        )
        if isinstance(result, Ok):
            return Ok(True)

        conflicts = self.unmerged_paths()
        if isinstance(conflicts, Ok) and conflicts.value:
            return Ok(False)
        return Err(
            GitError(
                command="merge",
                message=result.error.hint or "merge failed",
                returncode=result.error.returncode,
            )
        )

    def unmerged_paths(self) -> Result[tuple[str, ...], GitError]:
        result = self.gateway.run(["git", "diff", "--name-only", "--diff-filter=U"])
        if isinstance(result, Err):
            return Err(
                GitError(
                    command="diff",
                    message=result.error.hint or "could not list unmerged paths",
                    returncode=result.error.returncode,
                )
            )
        lines = (result.value or "").splitlines()
        return Ok(tuple(sorted({ln.strip() for ln in lines if ln.strip()})))

    def checkout_side(self, path: str, side: ConflictSide) -> Result[None, GitError]:
        return self._unit(["checkout", f"--{side}", "--", path], command="checkout", mutating=True)

    def add(self, paths: Sequence[str]) -> Result[None, GitError]:
        return self._unit(["add", "--", *paths], command="add", mutating=True)

    def commit_no_edit(self) -> Result[None, GitError]:
        return self._unit(["commit", "--no-edit"], command="commit", mutating=True)

    def push(self, remote: str, branch: str) -> Result[None, GitError]:
        return self._unit(["push", remote, branch], command="push", mutating=True)

    def abort_merge(self) -> None:
        """Abort an in-progress merge; a no-op when none is in progress."""
        self.gateway.run(["git", "merge", "--abort"], tolerate_failure=True, mutating=True)

    def _unit(
        self, args: list[str], *, command: str, mutating: bool = False
    ) -> Result[None, GitError]:
        result = self.gateway.run(["git", *args], mutating=mutating)
        if isinstance(result, Err):
            return Err(
                GitError(
                    command=command,
                    message=result.error.hint or f"git {command} failed",
                    returncode=result.error.returncode,
                )
            )
        return Ok(None)
