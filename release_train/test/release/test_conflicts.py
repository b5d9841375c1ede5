from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path

import pytest

from release_train.core.result import Err, Ok, Result
from release_train.git.repository import ReleaseCheckout
from release_train.output.console import MockConsole
from release_train.platform.process import ProcessError
from release_train.release.config import ReleaseConfig
from release_train.release.conflicts import (
    ConflictResolver,
    ResolutionOutcome,
    Strategy,
    patch_manifest_version,
    patch_registry_entry,
    read_manifest_version,
    resolution_table,
)
from release_train.release.errors import ConflictResolutionError, UnresolvableConflictError
from release_train.release.model import MergeableState, ReleaseRequest
from release_train.release.registry import Package

from ._fakes import ScriptedProcess, fail, make_gateway

SDK = Package("synapse-sdk", "packages/synapse-sdk", 1)
MANIFEST = ".github/release-please-manifest.json"
LOCK = "pnpm-lock.yaml"
REQUEST = ReleaseRequest(
    package="synapse-sdk",
    request_id=42,
    source_branch="release-please--components--synapse-sdk",
    title="chore: release synapse-sdk 0.5.0",
    mergeable_state=MergeableState.CONFLICTING,
)
BRANCH = REQUEST.source_branch


def _json(obj: object) -> str:
    return json.dumps(obj, indent=2) + "\n"


def _view(state: str) -> str:
    return json.dumps(
        {"number": 42, "title": REQUEST.title, "headRefName": BRANCH, "mergeable": state}
    )


def _write(root: Path, rel: str, text: str) -> None:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def _release_branch_tree(root: Path) -> None:
    """Working tree as checked out on the release branch."""
    _write(root, SDK.manifest_path, _json({"name": "synapse-sdk", "version": "0.5.0"}))
    _write(root, SDK.changelog_path, "# Changelog\n\n## 0.5.0\n")
    _write(
        root, MANIFEST, _json({"packages/synapse-core": "1.0.0", "packages/synapse-sdk": "0.5.0"})
    )
    _write(root, LOCK, "lockfileVersion: '6.0'\n# release branch\n")


# Content of each artifact on the integration branch after synapse-core 1.1.0 was released.
UPSTREAM = {
    SDK.manifest_path: _json(
        {"name": "synapse-sdk", "version": "0.4.0", "dependencies": {"synapse-core": "^1.1.0"}}
    ),
    SDK.changelog_path: "# Changelog\n\n## 0.4.0\n",
    MANIFEST: _json({"packages/synapse-core": "1.1.0", "packages/synapse-sdk": "0.4.0"}),
    LOCK: "lockfileVersion: '6.0'\n# integration branch\n",
}


def _git_checkout(root: Path) -> Callable[[list[str]], Result[str, ProcessError]]:
    def handler(cmd: list[str]) -> Result[str, ProcessError]:
        if "--theirs" in cmd:
            path = cmd[-1]
            _write(root, path, UPSTREAM[path])
        return Ok("")

    return handler


def _script(root: Path, *, state: str = "CONFLICTING", unmerged: str = "") -> ScriptedProcess:
    merge_reply: object = "" if not unmerged else (lambda cmd: fail(cmd, stderr="CONFLICT"))
    return (
        ScriptedProcess()
        .on("gh", "pr", "view", reply=_view(state))
        .on("git", "fetch")
        .on("git", "checkout", reply=_git_checkout(root))
        .on("git", "merge", "--no-commit", reply=merge_reply)
        .on("git", "merge", "--abort")
        .on("git", "diff", reply=unmerged)
        .on("git", "add")
        .on("git", "commit")
        .on("git", "push")
    )


def _resolver(
    root: Path, *, dry_run: bool = False, console: MockConsole | None = None
) -> ConflictResolver:
    gateway = make_gateway(root, dry_run=dry_run)
    return ConflictResolver(
        ReleaseCheckout(gateway), config=ReleaseConfig(), console=console or MockConsole()
    )


class TestPatching:
    def test_read_manifest_version(self) -> None:
        assert read_manifest_version('{"version": "1.2.3"}') == Ok("1.2.3")
        assert isinstance(read_manifest_version('{"name": "x"}'), Err)
        assert isinstance(read_manifest_version("[]"), Err)

    def test_patch_manifest_keeps_other_fields(self) -> None:
        text = _json({"name": "x", "version": "0.4.0", "dependencies": {"core": "^1.1.0"}})
        patched = patch_manifest_version(text, "0.5.0")
        assert isinstance(patched, Ok)
        assert json.loads(patched.value) == {
            "name": "x",
            "version": "0.5.0",
            "dependencies": {"core": "^1.1.0"},
        }
        assert patched.value.endswith("}\n")

    def test_patch_is_noop_when_version_already_matches(self) -> None:
        text = '{"version":"0.5.0"}'
        assert patch_manifest_version(text, "0.5.0") == Ok(text)

    def test_patch_registry_entry_only_touches_its_key(self) -> None:
        text = _json({"packages/a": "1.1.0", "packages/b": "0.4.0"})
        patched = patch_registry_entry(text, "0.5.0", key="packages/b")
        assert isinstance(patched, Ok)
        assert json.loads(patched.value) == {"packages/a": "1.1.0", "packages/b": "0.5.0"}

    def test_patch_invalid_json(self) -> None:
        assert isinstance(patch_manifest_version("{", "1.0.0"), Err)


def test_resolution_table() -> None:
    table = resolution_table(SDK, ReleaseConfig())
    assert {path: rule.strategy for path, rule in table.items()} == {
        SDK.manifest_path: Strategy.TAKE_THEIRS_THEN_PATCH,
        LOCK: Strategy.TAKE_THEIRS,
        MANIFEST: Strategy.TAKE_THEIRS_THEN_PATCH,
        SDK.changelog_path: Strategy.TAKE_OURS,
    }
    assert Strategy.TAKE_OURS.side == "ours"
    assert Strategy.TAKE_THEIRS_THEN_PATCH.side == "theirs"


def test_mergeable_pr_needs_nothing(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    proc = _script(tmp_path, state="MERGEABLE").install(monkeypatch)

    result = _resolver(tmp_path).resolve(SDK, REQUEST)

    assert result == Ok(ResolutionOutcome.NOT_NEEDED)
    assert proc.commands("git") == []


def test_conflicts_resolved_with_version_preserved(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    _release_branch_tree(tmp_path)
    unmerged = "\n".join([SDK.manifest_path, SDK.changelog_path, MANIFEST, LOCK]) + "\n"
    proc = _script(tmp_path, unmerged=unmerged).install(monkeypatch)
    console = MockConsole()

    result = _resolver(tmp_path, console=console).resolve(SDK, REQUEST)

    assert result == Ok(ResolutionOutcome.RESOLVED)

    manifest = json.loads((tmp_path / SDK.manifest_path).read_text(encoding="utf-8"))
    assert manifest["version"] == "0.5.0"
    assert manifest["dependencies"] == {"synapse-core": "^1.1.0"}

    registry = json.loads((tmp_path / MANIFEST).read_text(encoding="utf-8"))
    assert registry == {"packages/synapse-core": "1.1.0", "packages/synapse-sdk": "0.5.0"}

    assert (tmp_path / LOCK).read_text(encoding="utf-8") == UPSTREAM[LOCK]
    assert "## 0.5.0" in (tmp_path / SDK.changelog_path).read_text(encoding="utf-8")

    assert ["git", "checkout", "--ours", "--", SDK.changelog_path] in proc.commands("git")
    assert ["git", "checkout", "-B", BRANCH, f"origin/{BRANCH}"] in proc.commands("git")
    assert proc.commands("git", "push") == [["git", "push", "origin", BRANCH]]
    assert proc.index("git", "commit") < proc.index("git", "push")
    # Ends back on the integration branch.
    assert proc.calls[-1].cmd == ["git", "checkout", "master"]
    assert proc.commands("git", "merge", "--abort") == []
    assert console.find(f"conflicts resolved and pushed to {BRANCH}")


def test_version_patched_even_when_manifest_merged_cleanly(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    _release_branch_tree(tmp_path)
    _script(tmp_path, unmerged=f"{LOCK}\n{MANIFEST}\n").install(monkeypatch)

    result = _resolver(tmp_path).resolve(SDK, REQUEST)

    assert result == Ok(ResolutionOutcome.RESOLVED)
    registry = json.loads((tmp_path / MANIFEST).read_text(encoding="utf-8"))
    assert registry["packages/synapse-sdk"] == "0.5.0"
    manifest = json.loads((tmp_path / SDK.manifest_path).read_text(encoding="utf-8"))
    assert manifest["version"] == "0.5.0"


def test_clean_local_merge_is_aborted(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _release_branch_tree(tmp_path)
    proc = _script(tmp_path, state="UNKNOWN").install(monkeypatch)

    result = _resolver(tmp_path).resolve(SDK, REQUEST)

    assert result == Ok(ResolutionOutcome.CLEAN)
    assert proc.commands("git", "merge", "--abort") == [["git", "merge", "--abort"]]
    assert proc.commands("git", "commit") == []
    assert proc.commands("git", "push") == []
    assert proc.calls[-1].cmd == ["git", "checkout", "master"]


def test_unknown_conflict_aborts(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    _release_branch_tree(tmp_path)
    proc = _script(tmp_path, unmerged=f"{LOCK}\nsrc/index.ts\n").install(monkeypatch)

    result = _resolver(tmp_path).resolve(SDK, REQUEST)

    assert result == Err(
        UnresolvableConflictError(package="synapse-sdk", request_id=42, paths=("src/index.ts",))
    )
    assert proc.commands("git", "merge", "--abort") == [["git", "merge", "--abort"]]
    assert proc.commands("git", "add") == []
    assert proc.commands("git", "push") == []
    assert proc.calls[-1].cmd == ["git", "checkout", "master"]
    # Nothing was taken from either side.
    assert (tmp_path / LOCK).read_text(encoding="utf-8").endswith("# release branch\n")


def test_push_failure_aborts_and_returns_to_master(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    _release_branch_tree(tmp_path)
    proc = (
        _script(tmp_path, unmerged=f"{LOCK}\n")
        .on("git", "push", reply=lambda cmd: fail(cmd, stderr="rejected (fetch first)"))
        .install(monkeypatch)
    )

    result = _resolver(tmp_path).resolve(SDK, REQUEST)

    assert isinstance(result, Err)
    assert isinstance(result.error, ConflictResolutionError)
    assert result.error.step == "push"
    assert result.error.hint == "rejected (fetch first)"
    assert proc.calls[-1].cmd == ["git", "checkout", "master"]


def test_unexpected_exception_still_restores_branch(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    _release_branch_tree(tmp_path)

    def explode(cmd: list[str]) -> Result[str, ProcessError]:
        del cmd
        raise RuntimeError("interrupted")

    proc = _script(tmp_path).on("git", "merge", "--no-commit", reply=explode).install(monkeypatch)

    with pytest.raises(RuntimeError):
        _resolver(tmp_path).resolve(SDK, REQUEST)

    assert proc.commands("git", "merge", "--abort") == [["git", "merge", "--abort"]]
    assert proc.calls[-1].cmd == ["git", "checkout", "master"]


def test_missing_manifest_fails_before_merging(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    proc = _script(tmp_path, unmerged=f"{LOCK}\n").install(monkeypatch)

    result = _resolver(tmp_path).resolve(SDK, REQUEST)

    assert isinstance(result, Err)
    assert isinstance(result.error, ConflictResolutionError)
    assert result.error.step == "read-version"
    assert proc.commands("git", "merge", "--no-commit") == []


def test_view_failure(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    ScriptedProcess().on("gh", "pr", "view", reply=lambda cmd: fail(cmd)).install(monkeypatch)

    result = _resolver(tmp_path).resolve(SDK, REQUEST)

    assert isinstance(result, Err)
    assert isinstance(result.error, ConflictResolutionError)
    assert result.error.step == "view"


def test_dry_run_reports_without_touching_the_tree(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    proc = _script(tmp_path).install(monkeypatch)
    console = MockConsole()

    result = _resolver(tmp_path, dry_run=True, console=console).resolve(SDK, REQUEST)

    assert result == Ok(ResolutionOutcome.DRY_RUN)
    assert proc.commands("git") == []
    assert console.find(f"dry-run: would merge origin/master into {BRANCH}")
