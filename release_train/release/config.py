"""Release run configuration.

Defaults match the monorepo layout; an optional ``release-train.toml`` can
override them:

    integration_branch = "master"
    label = "autorelease: pending"
    workflow = "release-please.yml"

    [wait]
    timeout = 600
    poll_interval = 15
    grace = 30

    [[packages]]
    name = "synapse-core"
    path = "packages/synapse-core"
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path

from release_train.core.result import Err, Ok, Result
from release_train.core.structured import (
    StrDict,
    as_str_dict,
    get_int,
    get_list,
    get_str,
)
from release_train.release.errors import ConfigurationError
from release_train.release.registry import Package, build_registry, default_packages

CONFIG_FILE_NAME = "release-train.toml"

INTEGRATION_BRANCH = "master"
REMOTE = "origin"
RELEASE_LABEL = "autorelease: pending"
PUBLISH_WORKFLOW = "release-please.yml"

LOCK_FILE = "pnpm-lock.yaml"
RELEASE_MANIFEST = ".github/release-please-manifest.json"

WAIT_TIMEOUT_SECONDS = 600.0
POLL_INTERVAL_SECONDS = 15.0
GRACE_SECONDS = 30.0

TOKEN_ENV_VARS = ("GITHUB_TOKEN", "GH_TOKEN")


@dataclass(frozen=True, slots=True)
class WaitConfig:
    timeout: float = WAIT_TIMEOUT_SECONDS
    poll_interval: float = POLL_INTERVAL_SECONDS
    grace: float = GRACE_SECONDS


@dataclass(frozen=True, slots=True)
class ReleaseConfig:
    integration_branch: str = INTEGRATION_BRANCH
    remote: str = REMOTE
    label: str = RELEASE_LABEL
    workflow: str = PUBLISH_WORKFLOW
    lock_file: str = LOCK_FILE
    release_manifest: str = RELEASE_MANIFEST
    wait: WaitConfig = field(default_factory=WaitConfig)
    packages: tuple[Package, ...] = field(default_factory=default_packages)

    def with_timeout(self, timeout: float | None) -> ReleaseConfig:
        if timeout is None:
            return self
        return replace(self, wait=replace(self.wait, timeout=timeout))

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Result[ReleaseConfig, ConfigurationError]:
        wait: StrDict = as_str_dict(data.get("wait")) or {}

        packages = default_packages()
        raw_packages = get_list(data, "packages")
        if raw_packages is not None:
            entries: list[tuple[str, str]] = []
            for item in raw_packages:
                d = as_str_dict(item)
                if d is None:
                    return Err(ConfigurationError("[[packages]] entries must be tables"))
                entries.append((get_str(d, "name") or "", get_str(d, "path") or ""))
            built = build_registry(entries)
            if isinstance(built, Err):
                return built
            packages = built.value

        timeout = _get_seconds(wait, "timeout", WAIT_TIMEOUT_SECONDS)
        interval = _get_seconds(wait, "poll_interval", POLL_INTERVAL_SECONDS)
        grace = _get_seconds(wait, "grace", GRACE_SECONDS)
        if timeout <= 0 or interval <= 0 or grace < 0:
            return Err(
                ConfigurationError("[wait] timeout and poll_interval must be > 0, grace >= 0")
            )

        return Ok(
            cls(
                integration_branch=get_str(data, "integration_branch") or INTEGRATION_BRANCH,
                remote=get_str(data, "remote") or REMOTE,
                label=get_str(data, "label") or RELEASE_LABEL,
                workflow=get_str(data, "workflow") or PUBLISH_WORKFLOW,
                lock_file=get_str(data, "lock_file") or LOCK_FILE,
                release_manifest=get_str(data, "release_manifest") or RELEASE_MANIFEST,
                wait=WaitConfig(timeout=timeout, poll_interval=interval, grace=grace),
                packages=packages,
            )
        )


def _get_seconds(table: Mapping[str, object], key: str, default: float) -> float:
    value = table.get(key)
    if isinstance(value, float):
        return value
    number = get_int(table, key)
    return float(number) if number is not None else default


def _parse_toml(path: Path) -> Result[StrDict, ConfigurationError]:
    import tomllib

    try:
        data_obj: object = tomllib.loads(path.read_bytes().decode("utf-8"))
    except FileNotFoundError:
        return Err(ConfigurationError(f"config file not found: {path}"))
    except PermissionError:
        return Err(ConfigurationError(f"permission denied reading: {path}"))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigurationError(f"invalid TOML syntax in {path}: {e}"))
    except UnicodeDecodeError as e:
        return Err(ConfigurationError(f"error reading {path}: {e}"))

    data = as_str_dict(data_obj)
    if data is None:
        return Err(ConfigurationError(f"config root must be a TOML table: {path}"))
    return Ok(data)


def load_config(path: Path | None) -> Result[ReleaseConfig, ConfigurationError]:
    """Load configuration, falling back to defaults when ``path`` is None."""
    if path is None:
        return Ok(ReleaseConfig())

    result = _parse_toml(path)
    if isinstance(result, Err):
        return result
    return ReleaseConfig.from_dict(result.value)


def resolve_token(env: Mapping[str, str] | None = None) -> Result[str, ConfigurationError]:
    source = os.environ if env is None else env
    for name in TOKEN_ENV_VARS:
        token = source.get(name, "").strip()
        if token:
            return Ok(token)
    return Err(
        ConfigurationError(
            "GITHUB_TOKEN or GH_TOKEN environment variable is required",
            hint="export GITHUB_TOKEN=$(gh auth token)",
        )
    )

