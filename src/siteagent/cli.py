# src/siteagent/cli.py
"""Site agent command line interface.

Entry point for the siteagent CLI tool.
"""

from __future__ import annotations

import base64
import json
import signal
import threading
from pathlib import Path
from typing import Any

import typer
from pydantic import ValidationError

from siteagent import __version__
from siteagent.contracts.errors import BootstrapError
from siteagent.core.config import SiteAgentSettings, load_settings

__all__ = ["app"]

app = typer.Typer(
    name="siteagent",
    help="Site agent: run resource lifecycle operations against the site controller.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"siteagent version {__version__}")
        raise typer.Exit()


def _load_dotenv(env_file: Path | None = None) -> bool:
    """Load environment variables from .env file.

    Args:
        env_file: Explicit path to .env file. If None, searches for .env
                 in current directory and parent directories.

    Returns:
        True if .env was found and loaded, False otherwise.

    Raises:
        typer.Exit: If explicit env_file path doesn't exist.
    """
    from dotenv import load_dotenv

    if env_file is not None:
        if not env_file.exists():
            typer.secho(f"Error: .env file not found: {env_file}", fg=typer.colors.RED, err=True)
            raise typer.Exit(1)
        return load_dotenv(env_file, override=False)

    return load_dotenv(override=False)  # Don't override existing env vars


def _load_or_exit(settings: Path) -> SiteAgentSettings:
    try:
        return load_settings(settings.expanduser())
    except FileNotFoundError:
        typer.echo(f"Error: Settings file not found: {settings}", err=True)
        raise typer.Exit(1) from None
    except ValidationError as e:
        typer.echo("Configuration errors:", err=True)
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"])
            typer.echo(f"  - {loc}: {error['msg']}", err=True)
        raise typer.Exit(1) from None


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    no_dotenv: bool = typer.Option(False, "--no-dotenv", help="Skip loading .env file."),
    env_file: Path | None = typer.Option(None, "--env-file", help="Path to .env file (skips automatic search)."),
) -> None:
    """Site agent: run resource lifecycle operations against the site controller."""
    if not no_dotenv:
        _load_dotenv(env_file=env_file)
    elif env_file is not None:
        typer.secho("Warning: --env-file ignored because --no-dotenv is set.", fg=typer.colors.YELLOW, err=True)


@app.command()
def run(
    settings: Path = typer.Option(..., "--settings", "-s", help="Path to settings YAML file."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    json_logs: bool | None = typer.Option(None, "--json-logs/--console-logs", help="Override log format."),
) -> None:
    """Bootstrap credentials and serve resource workflows until interrupted."""
    from siteagent.agent import SiteAgent
    from siteagent.core.logging import configure_logging

    config = _load_or_exit(settings)
    configure_logging(
        config.logging,
        site_id=config.site_id,
        is_master=config.is_master,
        level="DEBUG" if verbose else None,
        json_output=json_logs,
    )

    agent = SiteAgent.from_settings(config)
    try:
        agent.start()
    except BootstrapError as e:
        typer.echo(f"Error: bootstrap failed: {e}", err=True)
        agent.stop()
        raise typer.Exit(1) from None

    stop = threading.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, lambda *_: stop.set())
    stop.wait()
    agent.stop()


@app.command()
def check(
    settings: Path = typer.Option(..., "--settings", "-s", help="Path to settings YAML file."),
) -> None:
    """Validate configuration and print the resolved settings."""
    config = _load_or_exit(settings)
    summary: dict[str, Any] = {
        "site_id": config.site_id,
        "is_master": config.is_master,
        "backend": config.backend.address,
        "control_plane": f"{config.control_plane.url} (namespace={config.control_plane.namespace})",
        "secret_backend": config.bootstrap.secret_backend.value,
        "inventory_cron": config.inventory_cron,
        "retry": config.workflow.retry.model_dump(),
    }
    typer.echo(json.dumps(summary, indent=2, default=str))
    typer.secho("Configuration valid.", fg=typer.colors.GREEN)


@app.command("encrypt-token")
def encrypt_token_command(
    site_id: str = typer.Option(..., "--site-id", help="Site identifier the token is encrypted for."),
    token: str = typer.Option(..., "--token", prompt=True, hide_input=True, help="Token to encrypt."),
) -> None:
    """Encrypt a rotation token for delivery to a site (base64 output)."""
    from siteagent.core.security.crypto import encrypt_token

    if not token:
        typer.echo("Error: token must not be empty", err=True)
        raise typer.Exit(1)
    typer.echo(base64.b64encode(encrypt_token(token.encode("utf-8"), site_id)).decode("ascii"))


if __name__ == "__main__":
    app()
