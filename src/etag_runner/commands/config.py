# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Config command for etag-runner.

Shows and validates the effective configuration.
"""

import typer

from etag_runner.config import ConfigError, load_config, resolve_config_path

app = typer.Typer(help="Show and validate configuration", no_args_is_help=True)


@app.command()
def show(
    config_path: str = typer.Option(None, "--config", "-c", help="Path to config file"),
):
    """
    Show the effective configuration.

    Merges defaults, the config file and ETAG_RUNNER_* environment variables.
    """
    try:
        source = resolve_config_path(config_path)
        config = load_config(config_path)
    except (FileNotFoundError, ConfigError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Config file: {source or '(none, using defaults)'}")
    for key, value in config.to_dict().items():
        typer.echo(f"  {key}: {value}")


@app.command()
def validate(
    config_path: str = typer.Option(None, "--config", "-c", help="Path to config file"),
):
    """
    Validate configuration file.

    Checks that the config file exists, is valid YAML and holds valid values.
    """
    typer.echo("Validating configuration...")

    try:
        config = load_config(config_path)
    except FileNotFoundError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    except ConfigError as e:
        typer.echo(f"Validation failed: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"Base URL: {config.base_url}")
    typer.echo(f"Check interval: {config.check_interval}s")
    typer.echo("Configuration validation complete!")
