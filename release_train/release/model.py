from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

from release_train.release.registry import Package


class MergeableState(Enum):
    """Host-reported mergeability of a pull request (``gh pr view --json mergeable``)."""

    MERGEABLE = "MERGEABLE"
    CONFLICTING = "CONFLICTING"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, raw: str | None) -> MergeableState:
        if raw is None:
            return cls.UNKNOWN
        try:
            return cls(raw.upper())
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True, slots=True)
class ReleaseRequest:
    """An open release pull request for one package."""

    package: str
    request_id: int
    source_branch: str
    title: str
    mergeable_state: MergeableState = MergeableState.UNKNOWN


def _empty_requests() -> Mapping[str, ReleaseRequest]:
    return MappingProxyType({})


@dataclass(frozen=True, slots=True)
class RunPlan:
    """Package name -> pending release request, built once per run.

    A package absent from the plan has nothing to release and is skipped.
    """

    packages: tuple[Package, ...]
    requests: Mapping[str, ReleaseRequest] = field(default_factory=_empty_requests)

    @classmethod
    def build(
        cls, packages: tuple[Package, ...], requests: Mapping[str, ReleaseRequest]
    ) -> RunPlan:
        return cls(packages=packages, requests=MappingProxyType(dict(requests)))

    def is_empty(self) -> bool:
        return not self.requests

    def has_lower_rank_request(self, package: Package) -> bool:
        return any(p.rank < package.rank and p.name in self.requests for p in self.packages)

    def __iter__(self) -> Iterator[tuple[Package, ReleaseRequest | None]]:
        for package in sorted(self.packages, key=lambda p: p.rank):
            yield package, self.requests.get(package.name)


@dataclass(frozen=True, slots=True)
class WorkflowRun:
    """The latest observed run of the publish workflow."""

    run_id: int
    status: str  # queued | in_progress | completed (gh may report others, e.g. waiting)
    conclusion: str | None
    url: str | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    @property
    def succeeded(self) -> bool:
        return self.is_completed and self.conclusion == "success"


@dataclass(frozen=True, slots=True)
class ConflictResolutionRecord:
    """Version of the package captured on its release branch before merging upstream."""

    package: str
    version: str


@dataclass(frozen=True, slots=True)
class PackageOutcome:
    package: str
    request_id: int | None

    @property
    def merged(self) -> bool:
        return self.request_id is not None


@dataclass(frozen=True, slots=True)
class ReleaseSummary:
    outcomes: tuple[PackageOutcome, ...]

    @property
    def merged(self) -> list[str]:
        return [o.package for o in self.outcomes if o.merged]

    @property
    def skipped(self) -> list[str]:
        return [o.package for o in self.outcomes if not o.merged]
