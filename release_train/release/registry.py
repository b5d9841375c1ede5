from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from release_train.core.result import Err, Ok, Result
from release_train.release.errors import ConfigurationError


@dataclass(frozen=True, slots=True)
class Package:
    """A releasable package of the monorepo.

    ``rank`` is the position in the dependency order: a package may only
    depend on packages with a strictly lower rank.
    """

    name: str
    path: str  # repo-relative, no trailing slash
    rank: int

    @property
    def manifest_path(self) -> str:
        return f"{self.path}/package.json"

    @property
    def changelog_path(self) -> str:
        return f"{self.path}/CHANGELOG.md"


DEFAULT_PACKAGES: tuple[tuple[str, str], ...] = (
    ("synapse-core", "packages/synapse-core"),
    ("synapse-sdk", "packages/synapse-sdk"),
    ("synapse-react", "packages/synapse-react"),
)


def default_packages() -> tuple[Package, ...]:
    return tuple(
        Package(name=name, path=path, rank=rank)
        for rank, (name, path) in enumerate(DEFAULT_PACKAGES)
    )


def build_registry(
    entries: Iterable[tuple[str, str]],
) -> Result[tuple[Package, ...], ConfigurationError]:
    """Build a registry from (name, path) pairs listed in dependency order."""
    packages: list[Package] = []
    names: set[str] = set()
    paths: set[str] = set()
    for rank, (name, raw_path) in enumerate(entries):
        path = raw_path.strip().rstrip("/")
        if not name or not path:
            return Err(ConfigurationError(f"package #{rank}: name and path are required"))
        if name in names:
            return Err(ConfigurationError(f"duplicate package name: {name}"))
        if path in paths:
            return Err(ConfigurationError(f"duplicate package path: {path}"))
        names.add(name)
        paths.add(path)
        packages.append(Package(name=name, path=path, rank=rank))

    if not packages:
        return Err(ConfigurationError("package list is empty"))
    return Ok(tuple(packages))


def ordered(packages: Iterable[Package]) -> list[Package]:
    return sorted(packages, key=lambda p: p.rank)
