"""Process exit codes.

A run either completed (or was an early exit such as ``--help``) or it
stopped at its first failure.
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    """Exit codes for the CLI. Values are stable."""

    OK = 0
    RELEASE_FAILED = 1
