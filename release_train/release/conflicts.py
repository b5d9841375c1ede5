"""Conflict resolution for stale release branches.

When a lower-rank package has just been released, the integration branch
moves ahead of every other release branch and the generated release files
conflict. Only four artifacts are ever reconciled, each by a fixed rule:

=====================  ================================  =========================
artifact               path                              rule
=====================  ================================  =========================
package manifest       ``<pkg>/package.json``            theirs, then our version
lock file              ``pnpm-lock.yaml``                theirs
release manifest       ``.github/release-please-...``    theirs, then our entry
changelog              ``<pkg>/CHANGELOG.md``            ours
=====================  ================================  =========================

A conflict in any other file aborts the merge and fails the run.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum

from release_train.core.result import Err, Ok, Result
from release_train.core.structured import as_str_dict, get_str
from release_train.git.repository import ConflictSide, GitError, ReleaseCheckout
from release_train.output.console import ConsoleProtocol, Style
from release_train.release.config import ReleaseConfig
from release_train.release.errors import ConflictResolutionError, UnresolvableConflictError
from release_train.release.gateway import ExecutionGateway
from release_train.release.gh import view_pr
from release_train.release.model import ConflictResolutionRecord, MergeableState, ReleaseRequest
from release_train.release.registry import Package

Patch = Callable[[str, str], Result[str, str]]
ResolveError = ConflictResolutionError | UnresolvableConflictError


class Strategy(Enum):
    TAKE_THEIRS = "take-theirs"
    TAKE_THEIRS_THEN_PATCH = "take-theirs-then-patch-field"
    TAKE_OURS = "take-ours"

    @property
    def side(self) -> ConflictSide:
        return "ours" if self is Strategy.TAKE_OURS else "theirs"


@dataclass(frozen=True, slots=True)
class ArtifactRule:
    artifact: str
    strategy: Strategy
    patch: Patch | None = None


class ResolutionOutcome(Enum):
    NOT_NEEDED = "not-needed"  # host reports the PR as mergeable
    CLEAN = "clean"  # merged locally without conflicts; nothing pushed
    RESOLVED = "resolved"  # conflicts resolved, committed and pushed
    DRY_RUN = "dry-run"


def _dump_json(obj: object) -> str:
    return json.dumps(obj, indent=2, ensure_ascii=False) + "\n"


def _load_json_table(text: str) -> Result[dict[str, object], str]:
    try:
        obj: object = json.loads(text)
    except json.JSONDecodeError as e:
        return Err(f"invalid JSON: {e}")
    data = as_str_dict(obj)
    if data is None:
        return Err("expected a JSON object")
    return Ok(data)


def read_manifest_version(text: str) -> Result[str, str]:
    data = _load_json_table(text)
    if isinstance(data, Err):
        return data
    version = get_str(data.value, "version")
    if version is None:
        return Err("missing version field")
    return Ok(version)


def patch_manifest_version(text: str, version: str) -> Result[str, str]:
    """Overwrite the top-level ``version`` field, keeping every other field."""
    data = _load_json_table(text)
    if isinstance(data, Err):
        return data
    if data.value.get("version") == version:
        return Ok(text)
    data.value["version"] = version
    return Ok(_dump_json(data.value))


def patch_registry_entry(text: str, version: str, *, key: str) -> Result[str, str]:
    """Overwrite one package entry of the release manifest registry."""
    data = _load_json_table(text)
    if isinstance(data, Err):
        return data
    if data.value.get(key) == version:
        return Ok(text)
    data.value[key] = version
    return Ok(_dump_json(data.value))


def resolution_table(package: Package, config: ReleaseConfig) -> Mapping[str, ArtifactRule]:
    """Repo-relative path -> rule, for the artifacts ``package`` may conflict on."""

    def registry_patch(text: str, version: str) -> Result[str, str]:
        return patch_registry_entry(text, version, key=package.path)

    return {
        package.manifest_path: ArtifactRule(
            "package manifest", Strategy.TAKE_THEIRS_THEN_PATCH, patch_manifest_version
        ),
        config.lock_file: ArtifactRule("lock file", Strategy.TAKE_THEIRS),
        config.release_manifest: ArtifactRule(
            "release manifest", Strategy.TAKE_THEIRS_THEN_PATCH, registry_patch
        ),
        package.changelog_path: ArtifactRule("changelog", Strategy.TAKE_OURS),
    }


class ConflictResolver:
    """Brings one package's release branch up to date with the integration branch."""

    def __init__(
        self,
        checkout: ReleaseCheckout,
        *,
        config: ReleaseConfig,
        console: ConsoleProtocol,
    ) -> None:
        self.checkout = checkout
        self.config = config
        self.console = console

    @property
    def _gateway(self) -> ExecutionGateway:
        return self.checkout.gateway

    def resolve(
        self, package: Package, request: ReleaseRequest
    ) -> Result[ResolutionOutcome, ResolveError]:
        console = self.console
        console.print(f"Checking conflicts for {package.name} PR #{request.request_id}...")

        # The state captured at discovery is stale once an upstream PR merged.
        view = view_pr(self._gateway, request.request_id)
        if isinstance(view, Err):
            return self._fail(package, request, "view", view.error.message, view.error.hint)
        state = view.value.mergeable
        branch = view.value.head_branch or request.source_branch

        if state is MergeableState.MERGEABLE:
            console.print("  no conflicts to resolve", Style.DIM)
            return Ok(ResolutionOutcome.NOT_NEEDED)

        if self._gateway.dry_run:
            console.print(
                f"  dry-run: would merge {self._upstream} into {branch} ({state.value.lower()})",
                Style.DIM,
            )
            return Ok(ResolutionOutcome.DRY_RUN)

        remote = self.config.remote
        for ref in (branch, self.config.integration_branch):
            fetched = self.checkout.fetch(remote, ref)
            if isinstance(fetched, Err):
                return self._git_fail(package, request, fetched.error)

        outcome: Result[ResolutionOutcome, ResolveError] | None = None
        with self._gateway.returning_to(self.config.integration_branch):
            try:
                outcome = self._reconcile(package, request, branch)
            finally:
                if outcome is None or isinstance(outcome, Err):
                    self.checkout.abort_merge()
        return outcome

    @property
    def _upstream(self) -> str:
        return f"{self.config.remote}/{self.config.integration_branch}"

    def _reconcile(
        self, package: Package, request: ReleaseRequest, branch: str
    ) -> Result[ResolutionOutcome, ResolveError]:
        console = self.console
        checked_out = self.checkout.checkout(branch, start_point=f"{self.config.remote}/{branch}")
        if isinstance(checked_out, Err):
            return self._git_fail(package, request, checked_out.error)

        record = self._record_version(package, request)
        if isinstance(record, Err):
            return record
        console.print(f"  current {package.name} version: {record.value.version}", Style.DIM)

        merged = self.checkout.merge_no_commit(self._upstream)
        if isinstance(merged, Err):
            return self._git_fail(package, request, merged.error)
        if merged.value:
            self.checkout.abort_merge()
            console.print("  no conflicts after merge", Style.DIM)
            return Ok(ResolutionOutcome.CLEAN)

        conflicted = self.checkout.unmerged_paths()
        if isinstance(conflicted, Err):
            return self._git_fail(package, request, conflicted.error)

        table = resolution_table(package, self.config)
        unknown = tuple(p for p in conflicted.value if p not in table)
        if unknown:
            return Err(
                UnresolvableConflictError(
                    package=package.name, request_id=request.request_id, paths=unknown
                )
            )

        console.print(f"  resolving {len(conflicted.value)} conflicted file(s)", Style.DIM)
        touched = self._apply(package, request, table, conflicted.value, record.value)
        if isinstance(touched, Err):
            return touched

        added = self.checkout.add(touched.value)
        if isinstance(added, Err):
            return self._git_fail(package, request, added.error)
        committed = self.checkout.commit_no_edit()
        if isinstance(committed, Err):
            return self._git_fail(package, request, committed.error)
        pushed = self.checkout.push(self.config.remote, branch)
        if isinstance(pushed, Err):
            return self._git_fail(package, request, pushed.error)

        console.success(f"conflicts resolved and pushed to {branch}")
        return Ok(ResolutionOutcome.RESOLVED)

    def _record_version(
        self, package: Package, request: ReleaseRequest
    ) -> Result[ConflictResolutionRecord, ConflictResolutionError]:
        text = self._gateway.read_text(package.manifest_path)
        if isinstance(text, Err):
            return self._fail(package, request, "read-version", text.error.message, text.error.hint)
        version = read_manifest_version(text.value)
        if isinstance(version, Err):
            return self._fail(
                package, request, "read-version", f"{package.manifest_path}: {version.error}"
            )
        return Ok(ConflictResolutionRecord(package=package.name, version=version.value))

    def _apply(
        self,
        package: Package,
        request: ReleaseRequest,
        table: Mapping[str, ArtifactRule],
        conflicted: tuple[str, ...],
        record: ConflictResolutionRecord,
    ) -> Result[list[str], ConflictResolutionError]:
        touched: list[str] = []
        for path in conflicted:
            rule = table[path]
            taken = self.checkout.checkout_side(path, rule.strategy.side)
            if isinstance(taken, Err):
                return self._git_fail(package, request, taken.error)
            self.console.print(f"  {rule.artifact}: {rule.strategy.value} ({path})", Style.DIM)
            touched.append(path)

        # The version must survive even where the upstream change merged cleanly.
        for path, rule in table.items():
            if rule.patch is None:
                continue
            if path not in conflicted and not (self._gateway.root / path).is_file():
                continue
            text = self._gateway.read_text(path)
            if isinstance(text, Err):
                return self._fail(package, request, "patch", text.error.message, text.error.hint)
            patched = rule.patch(text.value, record.version)
            if isinstance(patched, Err):
                return self._fail(package, request, "patch", f"{path}: {patched.error}")
            if patched.value != text.value:
                written = self._gateway.write_text(path, patched.value)
                if isinstance(written, Err):
                    return self._fail(
                        package, request, "patch", written.error.message, written.error.hint
                    )
            if path not in touched:
                touched.append(path)
        return Ok(touched)

    def _fail(
        self,
        package: Package,
        request: ReleaseRequest,
        step: str,
        message: str,
        hint: str | None = None,
    ) -> Err[ConflictResolutionError]:
        return Err(
            ConflictResolutionError(
                package=package.name,
                request_id=request.request_id,
                step=step,
                message=f"{package.name} PR #{request.request_id}: {message}",
                hint=hint,
            )
        )

    def _git_fail(
        self, package: Package, request: ReleaseRequest, error: GitError
    ) -> Err[ConflictResolutionError]:
        return self._fail(
            package, request, error.command, f"git {error.command} failed", error.message
        )
