from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import typer

from release_train.core.errors import ErrorCode
from release_train.core.result import Err
from release_train.output.console import ConsoleProtocol, RichConsole
from release_train.release.config import CONFIG_FILE_NAME, ReleaseConfig, load_config, resolve_token
from release_train.release.gateway import ExecutionGateway


@dataclass(frozen=True, slots=True)
class CLIContext:
    root: Path
    config: ReleaseConfig
    console: ConsoleProtocol
    gateway: ExecutionGateway


def _fail(message: str, hint: str | None = None) -> typer.Exit:
    typer.echo(f"error: {message}", err=True)
    if hint:
        typer.echo(f"hint: {hint}", err=True)
    return typer.Exit(code=int(ErrorCode.RELEASE_FAILED))


def build_context(
    *,
    dry_run: bool,
    timeout: float | None,
    config_path: Path | None,
    verbose: bool,
    root: Path | None = None,
) -> CLIContext:
    """Pre-flight: credential first, then configuration."""
    token = resolve_token()
    if isinstance(token, Err):
        raise _fail(token.error.message, token.error.hint)

    repo_root = (root or Path.cwd()).resolve()
    if config_path is None and (repo_root / CONFIG_FILE_NAME).is_file():
        config_path = repo_root / CONFIG_FILE_NAME

    loaded = load_config(config_path)
    if isinstance(loaded, Err):
        raise _fail(loaded.error.message, loaded.error.hint)

    console = RichConsole()
    return CLIContext(
        root=repo_root,
        config=loaded.value.with_timeout(timeout),
        console=console,
        gateway=ExecutionGateway(
            root=repo_root,
            token=token.value,
            console=console,
            dry_run=dry_run,
            verbose=verbose,
        ),
    )
