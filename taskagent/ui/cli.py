"""Main CLI entry point - start the agent and a few debugging helpers."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer

from taskagent.core.configs import get_agent_config

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    help="Task Agent - remote task execution for a controller.",
)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once for the whole process."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )


@app.command()
def start(
    server_url: Optional[str] = typer.Argument(None, help="Controller websocket URL"),
    agent_id: Optional[str] = typer.Argument(None, help="Identifier sent to the controller"),
    workspace: Optional[Path] = typer.Option(None, "--workspace", "-w", help="Workspace root"),
    storage_root: Optional[Path] = typer.Option(None, "--storage-root", help="Root for the local storage backend"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level"),
    env_file: Optional[Path] = typer.Option(None, "--env-file", help="Load settings from a .env file"),
) -> None:
    """
    Connect to the controller and execute tasks until disconnected.

    Example: taskagent start ws://localhost:8888/compute worker-1
    """
    try:
        config = get_agent_config(
            env_file=env_file,
            server_url=server_url,
            agent_id=agent_id,
            workspace=workspace,
            storage_root=storage_root,
            log_level=log_level,
        )
    except ValueError as e:
        typer.echo(f"Error loading configuration: {e}", err=True)
        raise typer.Exit(1)

    configure_logging(config.log_level)

    # Heavy imports only when actually starting
    from websockets.exceptions import InvalidHandshake, InvalidURI

    from taskagent.daemon.client import InteractiveClient
    from taskagent.storage import configure_backend

    configure_backend("local", root=str(config.storage_root), chunk_size=config.chunk_size)
    client = InteractiveClient(
        config.agent_id,
        config.server_url,
        workspace=config.workspace,
        chunk_size=config.chunk_size,
    )

    try:
        asyncio.run(client.run())
    except (OSError, InvalidHandshake, InvalidURI) as e:
        typer.echo(f"Error connecting to {config.server_url}: {e}", err=True)
        raise typer.Exit(1)


@app.command()
def tokenize(
    command: str = typer.Argument(..., help="Command string to split"),
) -> None:
    """
    Show how a RUN command string is split into arguments.

    Example: taskagent tokenize 'python -c "print(1)"'
    """
    from taskagent.tools.tokenizer import parse_command

    typer.echo(json.dumps(parse_command(command)))


@app.command()
def backends() -> None:
    """List the registered storage backends."""
    from rich.console import Console
    from rich.table import Table

    from taskagent.storage import available_backends, get_backend

    table = Table(title="Storage backends")
    table.add_column("Name", style="cyan")
    table.add_column("Description")

    for name in available_backends():
        factory = get_backend(name)
        describe = getattr(factory, "get_description", None)
        table.add_row(name, describe() if callable(describe) else "")

    Console().print(table)


def run() -> None:
    """Entry point for console script mapping."""
    app()


if __name__ == "__main__":
    run()
