"""Error types for a release run.

Every failure is terminal for the run. Each variant carries enough context
(package, pull request number, step) to re-run the remaining work by hand.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ConfigurationError:
    """Pre-flight failure: missing credential or invalid config file."""

    message: str
    hint: str | None = None


@dataclass(frozen=True, slots=True)
class ExecutionError:
    """An external command exited non-zero (or could not start)."""

    command: tuple[str, ...]
    returncode: int
    stderr: str

    @property
    def message(self) -> str:
        cmd_str = " ".join(self.command[:3])
        if len(self.command) > 3:
            cmd_str += " ..."
        return f"{cmd_str} failed (exit {self.returncode})"

    @property
    def hint(self) -> str | None:
        return self.stderr.strip() or None


@dataclass(frozen=True, slots=True)
class HostError:
    """The PR host or CI API answered with a failure or an unexpected payload."""

    message: str
    hint: str | None = None


@dataclass(frozen=True, slots=True)
class DiscoveryError:
    package: str
    message: str
    hint: str | None = None


@dataclass(frozen=True, slots=True)
class NothingToReleaseError:
    label: str

    @property
    def message(self) -> str:
        return f"no open release PRs labelled '{self.label}'; nothing to release"

    @property
    def hint(self) -> str | None:
        return None


@dataclass(frozen=True, slots=True)
class UnresolvableConflictError:
    """A conflict outside the fixed set of generated release artifacts."""

    package: str
    request_id: int
    paths: tuple[str, ...]

    @property
    def message(self) -> str:
        return (
            f"{self.package} PR #{self.request_id}: cannot auto-resolve conflicts in "
            + ", ".join(self.paths)
        )

    @property
    def hint(self) -> str | None:
        return "Resolve the release branch by hand, then re-run."


@dataclass(frozen=True, slots=True)
class ConflictResolutionError:
    """A VCS step failed while reconciling a release branch."""

    package: str
    request_id: int
    step: str
    message: str
    hint: str | None = None


@dataclass(frozen=True, slots=True)
class MergeError:
    package: str
    request_id: int
    message: str
    hint: str | None = None


@dataclass(frozen=True, slots=True)
class WorkflowTimeoutError:
    workflow: str
    timeout: float
    polls: int

    @property
    def message(self) -> str:
        return (
            f"timed out after {self.timeout:g}s waiting for {self.workflow} "
            f"({self.polls} polls)"
        )

    @property
    def hint(self) -> str | None:
        return "Re-run with a larger --timeout once the workflow is green."


@dataclass(frozen=True, slots=True)
class WorkflowFailedError:
    workflow: str
    conclusion: str
    url: str | None = None

    @property
    def message(self) -> str:
        return f"{self.workflow} finished with conclusion: {self.conclusion}"

    @property
    def hint(self) -> str | None:
        return self.url


StepCause = HostError | WorkflowTimeoutError | WorkflowFailedError


@dataclass(frozen=True, slots=True)
class ReleaseStepError:
    """A host or workflow failure while releasing one package."""

    package: str
    request_id: int
    step: str
    cause: StepCause

    @property
    def message(self) -> str:
        return f"{self.package} PR #{self.request_id} ({self.step}): {self.cause.message}"

    @property
    def hint(self) -> str | None:
        return self.cause.hint


ReleaseError = (
    ConfigurationError
    | ExecutionError
    | HostError
    | DiscoveryError
    | NothingToReleaseError
    | UnresolvableConflictError
    | ConflictResolutionError
    | MergeError
    | WorkflowTimeoutError
    | WorkflowFailedError
    | ReleaseStepError
)


def pretty(error: ReleaseError) -> str:
    if error.hint:
        return f"{error.message} (hint: {error.hint})"
    return error.message
