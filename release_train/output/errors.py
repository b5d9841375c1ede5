"""Error presentation for release runs."""

from __future__ import annotations

from typing import TYPE_CHECKING

from release_train.core.errors import ErrorCode
from release_train.output.console import Style
from release_train.release.errors import (
    ConfigurationError,
    ConflictResolutionError,
    DiscoveryError,
    ExecutionError,
    HostError,
    MergeError,
    NothingToReleaseError,
    ReleaseError,
    ReleaseStepError,
    UnresolvableConflictError,
    WorkflowFailedError,
    WorkflowTimeoutError,
)

if TYPE_CHECKING:
    from release_train.output.console import ConsoleProtocol

__all__ = ["print_release_error", "release_error_exit_code"]


def print_release_error(error: ReleaseError, console: ConsoleProtocol) -> None:
    match error:
        case ConfigurationError(message=message):
            console.error(f"configuration: {message}")
        case DiscoveryError(package=package, message=message):
            console.error(f"discovery failed ({package}): {message}")
        case UnresolvableConflictError(package=package, request_id=number, paths=paths):
            console.error(f"{package} PR #{number}: conflicts outside the release artifacts")
            for path in paths:
                console.print(f"  {path}", Style.DIM)
        case ConflictResolutionError(step=step, message=message):
            console.error(f"conflict resolution failed at '{step}': {message}")
        case MergeError(message=message):
            console.error(message)
        case ReleaseStepError(package=package, request_id=number, step=step, cause=cause):
            console.error(f"{package} PR #{number}: {step} failed: {cause.message}")
        case WorkflowTimeoutError() | WorkflowFailedError() | NothingToReleaseError():
            console.error(error.message)
        case ExecutionError() | HostError():
            console.error(error.message)

    if error.hint:
        console.print(f"hint: {error.hint}", Style.DIM)


def release_error_exit_code(error: ReleaseError) -> int:
    """Every release failure maps to the same exit code."""
    del error
    return int(ErrorCode.RELEASE_FAILED)
