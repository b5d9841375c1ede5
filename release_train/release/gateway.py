"""Execution gateway.

Every external side effect of a release run (git, gh, files in the working
tree) goes through :class:`ExecutionGateway`. It owns three concerns:

- credential injection: the token reaches child processes through their
  environment only, never through command text or console output;
- dry-run: commands flagged ``mutating`` are echoed and skipped, read-only
  commands still run so the plan is accurate;
- the working tree: :meth:`ExecutionGateway.returning_to` guarantees the
  checkout ends on the integration branch whatever happens inside.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from release_train.core.result import Err, Ok, Result
from release_train.output.console import ConsoleProtocol, Style
from release_train.platform.process import ProcessError, run, run_silent
from release_train.release.errors import ExecutionError
from release_train.release.timeouts import (
    GH_TIMEOUT_SECONDS,
    GIT_NETWORK_TIMEOUT_SECONDS,
    GIT_TIMEOUT_SECONDS,
)

_NETWORK_GIT_COMMANDS = frozenset({"fetch", "pull", "push", "clone"})


def _echo(cmd: list[str]) -> str:
    return " ".join(cmd[:3]) + (" ..." if len(cmd) > 3 else "")


def _default_timeout(cmd: list[str]) -> float | None:
    if not cmd:
        return None
    if cmd[0] == "gh":
        return GH_TIMEOUT_SECONDS
    if cmd[0] == "git":
        if len(cmd) > 1 and cmd[1] in _NETWORK_GIT_COMMANDS:
            return GIT_NETWORK_TIMEOUT_SECONDS
        return GIT_TIMEOUT_SECONDS
    return None


def _to_execution_error(error: ProcessError) -> ExecutionError:
    return ExecutionError(
        command=error.command,
        returncode=error.returncode,
        stderr=error.stderr or error.stdout,
    )


class ExecutionGateway:
    """Runs external commands for one release run, rooted at the repository.

    Attributes:
        root: Repository root; the cwd of every command.
        dry_run: When True, mutating commands and writes are skipped.
    """

    def __init__(
        self,
        *,
        root: Path,
        token: str,
        console: ConsoleProtocol,
        dry_run: bool = False,
        verbose: bool = False,
    ) -> None:
        self.root = root
        self.dry_run = dry_run
        self._token = token
        self._console = console
        self._verbose = verbose

    def _env(self) -> dict[str, str]:
        env = dict(os.environ)
        env["GH_TOKEN"] = self._token
        env["GITHUB_TOKEN"] = self._token
        # Never block on an interactive credential prompt.
        env["GIT_TERMINAL_PROMPT"] = "0"
        return env

    def run(
        self,
        cmd: list[str],
        *,
        capture: bool = True,
        tolerate_failure: bool = False,
        mutating: bool = False,
        timeout: float | None = None,
    ) -> Result[str | None, ExecutionError]:
        """Execute ``cmd`` in the repository root.

        Args:
            cmd: Command and arguments.
            capture: Capture and return stdout; otherwise stream to the terminal
                and return None.
            tolerate_failure: Turn a non-zero exit into Ok(None).
            mutating: The command changes local or remote state (skipped in
                dry-run mode, which returns Ok("")).
            timeout: Override the per-tool default timeout.

        Returns:
            Ok(stdout) / Ok(None), or Err(ExecutionError).
        """
        if mutating:
            if self.dry_run:
                self._console.print(f"dry-run: skipped {_echo(cmd)}", Style.DIM)
                return Ok("")
            self._console.print(_echo(cmd), Style.DIM)
        elif self._verbose:
            self._console.print(_echo(cmd), Style.DIM)

        limit = timeout if timeout is not None else _default_timeout(cmd)
        env = self._env()

        if capture:
            result = run(cmd, cwd=self.root, env=env, timeout=limit)
            if isinstance(result, Ok):
                return Ok(result.value)
            error = result.error
        else:
            silent = run_silent(cmd, cwd=self.root, env=env, timeout=limit)
            if isinstance(silent, Ok):
                return Ok(None)
            error = silent.error

        if tolerate_failure:
            return Ok(None)
        return Err(_to_execution_error(error))

    def read_text(self, rel_path: str) -> Result[str, ExecutionError]:
        """Read a repository-relative file (allowed in dry-run)."""
        try:
            return Ok((self.root / rel_path).read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as e:
            return Err(ExecutionError(command=("read", rel_path), returncode=-1, stderr=str(e)))

    def write_text(self, rel_path: str, text: str) -> Result[None, ExecutionError]:
        """Write a repository-relative file; skipped in dry-run."""
        if self.dry_run:
            self._console.print(f"dry-run: skipped write {rel_path}", Style.DIM)
            return Ok(None)
        try:
            (self.root / rel_path).write_text(text, encoding="utf-8")
        except OSError as e:
            return Err(ExecutionError(command=("write", rel_path), returncode=-1, stderr=str(e)))
        return Ok(None)

    @contextmanager
    def returning_to(self, branch: str) -> Iterator[None]:
        """Check out ``branch`` when the block exits, on every exit path.

        A failure to restore is reported but never masks the block's own
        outcome.
        """
        try:
            yield
        finally:
            restored = self.run(["git", "checkout", branch], mutating=True)
            if isinstance(restored, Err):
                self._console.error(
                    f"could not return to {branch}: {restored.error.hint or restored.error.message}"
                )
