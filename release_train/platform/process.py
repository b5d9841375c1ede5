"""Subprocess execution with Result-based error handling.

This is the only module allowed to call ``subprocess`` directly. git and gh
go through :func:`run` or :func:`run_silent`, usually via the execution
gateway.

Usage:
    result = run(["git", "rev-parse", "HEAD"], cwd=repo_root)
    match result:
        case Ok(stdout):
            print(stdout.strip())
        case Err(error):
            print(f"git failed: {error.stderr}")
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path

from release_train.core.result import Err, Ok, Result

__all__ = ["ProcessError", "run", "run_silent"]


@dataclass(frozen=True, slots=True)
class ProcessError:
    """A command that exited non-zero, timed out, or failed to start.

    Attributes:
        command: The command that was executed.
        returncode: Exit code, -1 when the process never ran to completion.
        stdout: Standard output (may be empty).
        stderr: Standard error, or the reason the process did not complete.
    """

    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    def __str__(self) -> str:
        shown = " ".join(self.command[:3])
        if len(self.command) > 3:
            shown += " ..."
        return f"{shown} failed (exit {self.returncode})"


def _invoke(
    cmd: list[str],
    cwd: Path,
    env: dict[str, str] | None,
    timeout: float | None,
    *,
    capture: bool,
) -> Result[subprocess.CompletedProcess[str], ProcessError]:
    try:
        return Ok(
            subprocess.run(
                cmd,
                cwd=str(cwd),
                env=env,
                capture_output=capture,
                text=True,
                timeout=timeout,
                check=False,
            )
        )
    except subprocess.TimeoutExpired as e:
        partial = e.stdout if isinstance(e.stdout, str) else ""
        return Err(ProcessError(tuple(cmd), -1, partial, f"Command timed out after {timeout}s"))
    except OSError as e:
        return Err(ProcessError(tuple(cmd), -1, "", str(e)))


def run(
    cmd: list[str],
    cwd: Path,
    env: dict[str, str] | None = None,
    *,
    timeout: float | None = None,
) -> Result[str, ProcessError]:
    """Execute a command and capture its output.

    Args:
        cmd: Command and arguments.
        cwd: Working directory.
        env: Full environment for the child (current env if None).
        timeout: Maximum seconds to wait (None for no limit).

    Returns:
        Ok(stdout) on success, Err(ProcessError) otherwise.
    """
    done = _invoke(cmd, cwd, env, timeout, capture=True)
    if isinstance(done, Err):
        return done

    proc = done.value
    if proc.returncode != 0:
        return Err(ProcessError(tuple(cmd), proc.returncode, proc.stdout, proc.stderr))
    return Ok(proc.stdout)


def run_silent(
    cmd: list[str],
    cwd: Path,
    env: dict[str, str] | None = None,
    *,
    timeout: float | None = None,
) -> Result[None, ProcessError]:
    """Execute a command with output streaming to the terminal.

    Nothing is captured, so a failure only reports the exit code.
    """
    done = _invoke(cmd, cwd, env, timeout, capture=False)
    if isinstance(done, Err):
        return done

    if done.value.returncode != 0:
        return Err(ProcessError(tuple(cmd), done.value.returncode, "", ""))
    return Ok(None)
