# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Main CLI entry point for etag-runner.

Thin layer: loads config, builds the target, hands off to the update loop.
"""

from typing import Optional

import typer

from etag_runner import __version__
from etag_runner.config import ConfigError, RunnerConfig, load_config
from etag_runner.logging_config import setup_logging
from etag_runner.updater import Fetcher, RemoteTarget, RetryStrategy, TargetValidationError, UpdateLoop


app = typer.Typer(
    name="etag-runner",
    help="Re-download a remote script when its ETag changes and keep running it",
    no_args_is_help=True,
)


def _load(config_path: Optional[str], **overrides) -> RunnerConfig:
    """Load config and apply CLI overrides, exiting on errors."""
    try:
        return load_config(config_path).with_overrides(**overrides)
    except FileNotFoundError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    except ConfigError as e:
        typer.echo(f"Config error: {e}", err=True)
        raise typer.Exit(1)


def _build_target(filename: str, config: RunnerConfig) -> RemoteTarget:
    try:
        return RemoteTarget.from_filename(filename, config.base_url, config.work_dir)
    except TargetValidationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


@app.command()
def run(
    filename: str = typer.Argument(..., help="Target file name, appended to the base URL"),
    base_url: Optional[str] = typer.Option(None, "--base-url", "-u", help="Base URL to fetch from"),
    interval: Optional[int] = typer.Option(None, "--interval", "-i", help="Seconds between ETag checks"),
    work_dir: Optional[str] = typer.Option(None, "--work-dir", "-d", help="Directory for the local copy"),
    interpreter: Optional[str] = typer.Option(None, "--interpreter", help="Command used to run the target"),
    timeout: Optional[float] = typer.Option(None, "--timeout", "-t", help="Kill the target after N seconds"),
    max_cycles: Optional[int] = typer.Option(None, "--max-cycles", help="Stop after N iterations"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Path to config file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Check, maybe download, run, repeat.

    Examples:
        etag-runner run test.lua
        etag-runner run tool.py --interval 30 --work-dir ~/bin
        etag-runner run test.lua --interpreter "craftos --script"
    """
    config = _load(
        config_path,
        base_url=base_url,
        check_interval=interval,
        work_dir=work_dir,
        interpreter=interpreter,
        execution_timeout=timeout,
    )
    setup_logging(verbose=verbose, log_file=config.log_file)
    target = _build_target(filename, config)

    loop = UpdateLoop(target, config=config)
    loop.run_forever(max_cycles=max_cycles)


@app.command()
def check(
    filename: str = typer.Argument(..., help="Target file name, appended to the base URL"),
    base_url: Optional[str] = typer.Option(None, "--base-url", "-u", help="Base URL to fetch from"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Path to config file"),
):
    """Check the remote ETag once and print it."""
    config = _load(config_path, base_url=base_url)
    target = _build_target(filename, config)

    with Fetcher(
        timeout=config.request_timeout,
        retry_strategy=RetryStrategy(max_retries=config.max_retries),
    ) as fetcher:
        result = fetcher.check(target.url)

    if not result.ok:
        typer.echo(f"Check failed: {result.error}", err=True)
        raise typer.Exit(1)

    typer.echo(f"URL: {target.url}")
    typer.echo(f"ETag: {result.etag or 'N/A'}")
    typer.echo(f"Local file: {target.local_path} ({'present' if target.local_path.exists() else 'missing'})")


@app.command()
def version():
    """Show version information."""
    typer.echo(f"etag-runner version {__version__}")


from etag_runner.commands import config as config_command

app.add_typer(config_command.app, name="config")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
