from __future__ import annotations

from pathlib import Path

import typer

from release_train import __version__
from release_train.cli.context import build_context
from release_train.core.errors import ErrorCode
from release_train.core.result import Err
from release_train.output.errors import print_release_error, release_error_exit_code
from release_train.release.orchestrator import ReleaseOrchestrator


app = typer.Typer(
    add_completion=False,
    rich_markup_mode="rich",
    help=(
        "Merge pending release PRs in dependency order, waiting for the publish "
        "workflow after each merge and resolving release-file conflicts on the way.\n\n"
        "Requires GITHUB_TOKEN (or GH_TOKEN) and the gh CLI."
    ),
)


@app.command()
def release(
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Show what would be done; no merge, commit or push is made.",
    ),
    timeout: float | None = typer.Option(
        None,
        "--timeout",
        min=1,
        help="Seconds to wait for each publish workflow (default: 600).",
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        help="Config file (default: ./release-train.toml when present).",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Echo read-only commands too."),
    version: bool = typer.Option(False, "--version", help="Show version and exit."),
) -> None:
    """Release every package with a pending release PR."""
    if version:
        typer.echo(__version__)
        raise typer.Exit(code=int(ErrorCode.OK))

    ctx = build_context(dry_run=dry_run, timeout=timeout, config_path=config, verbose=verbose)
    orchestrator = ReleaseOrchestrator(gateway=ctx.gateway, config=ctx.config, console=ctx.console)

    result = orchestrator.run()
    if isinstance(result, Err):
        print_release_error(result.error, ctx.console)
        raise typer.Exit(code=release_error_exit_code(result.error))

    ctx.console.success("automated release process completed")


def main() -> None:
    app()
