"""CLI entry point for the fuzzing server client.

Provides commands:
  - login: Validate an API token and store it in the system keyring
  - logout: Remove the stored API token
  - projects: List the projects visible to the stored token
  - remote-run: Upload a bundle and start a remote fuzzing run
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from fuzzlink.auth import InvalidTokenError, check_and_store_token, get_auth_status
from fuzzlink.client import APIClient
from fuzzlink.config import (
    delete_token,
    get_token,
    load_client_config,
    validate_and_normalize_server_url,
)
from fuzzlink.errors import FuzzlinkError, SignalInterruptedError
from fuzzlink.progress import TransferProgress

logger = logging.getLogger(__name__)

app = typer.Typer(
    help="Upload fuzzing bundles to a remote fuzzing server and start runs",
    rich_markup_mode="rich",
)
console = Console()
err_console = Console(stderr=True)

ServerOption = Annotated[
    Optional[str],
    typer.Option("--server", help="Fuzzing server URL (default: from config)"),
]


@app.callback()
def app_callback(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Configure logging for all commands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )


def _make_client(server: str | None) -> APIClient:
    config = load_client_config()
    try:
        url = validate_and_normalize_server_url(server or config.server)
    except ValueError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)
    return APIClient(url, timeout=config.timeout_seconds)


def _require_token(client: APIClient) -> str:
    token = get_token(client.server)
    if not token:
        err_console.print(
            "[red]Error:[/red] No API access token found.\n"
            "Run [bold]fuzzlink login[/bold] first."
        )
        raise typer.Exit(code=1)
    return token


def _fail(exc: FuzzlinkError) -> typer.Exit:
    if isinstance(exc, SignalInterruptedError):
        err_console.print(f"[yellow]{exc}[/yellow]")
        return typer.Exit(code=128 + exc.signum)
    err_console.print(f"[red]Error ({exc.kind.value}):[/red] {exc}")
    return typer.Exit(code=1)


def _stdin_is_terminal() -> bool:
    return sys.stdin.isatty()


def _handle_existing_token(client: APIClient) -> None:
    try:
        valid = asyncio.run(get_auth_status(client))
    except FuzzlinkError as e:
        raise _fail(e)
    if not valid:
        err_console.print(
            "[red]Error:[/red] Failed to authenticate with the stored API access token.\n"
            "It's possible that the token has been revoked. Please try again after\n"
            "running [bold]fuzzlink logout[/bold]."
        )
        raise typer.Exit(code=1)
    console.print(f"[green]✓[/green] You are already logged in to {client.server}.")


@app.command()
def login(server: ServerOption = None) -> None:
    """Authenticate with a fuzzing server.

    The token is read from stdin when it is not a terminal
    (``fuzzlink login < token-file``).  On a terminal, an already stored
    token is checked instead; without one the token is prompted for.
    """
    client = _make_client(server)
    if not _stdin_is_terminal():
        token = sys.stdin.read()
    elif get_token(client.server):
        _handle_existing_token(client)
        return
    else:
        token = typer.prompt("API access token", hide_input=True)

    try:
        asyncio.run(check_and_store_token(client, token))
    except InvalidTokenError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=1)
    except FuzzlinkError as e:
        raise _fail(e)
    console.print(f"[green]✓[/green] Successfully authenticated with {client.server}")


@app.command()
def logout(server: ServerOption = None) -> None:
    """Remove the stored API token for a server."""
    client = _make_client(server)
    if delete_token(client.server):
        console.print(f"[green]✓[/green] Removed API token for {client.server}")
    else:
        console.print(f"[yellow]Warning:[/yellow] No API token stored for {client.server}")


@app.command()
def projects(server: ServerOption = None) -> None:
    """List the projects visible to the stored API token."""
    client = _make_client(server)
    token = _require_token(client)

    try:
        result = asyncio.run(client.list_projects(token))
    except FuzzlinkError as e:
        raise _fail(e)

    if not result:
        console.print("[yellow]No projects found.[/yellow]")
        return

    table = Table(title=f"Projects on {client.server}")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Display Name")
    for project in result:
        table.add_row(project.short_name, project.display_name)
    console.print(table)


@app.command("remote-run")
def remote_run(
    bundle: Annotated[
        Path,
        typer.Argument(help="Path to the fuzzing bundle to upload"),
    ],
    project: Annotated[
        Optional[str],
        typer.Option("--project", "-p", help="Project to upload the bundle to"),
    ] = None,
    server: ServerOption = None,
) -> None:
    """Upload a fuzzing bundle and start a remote fuzzing run."""
    config = load_client_config()
    project = project or config.project
    if not project:
        err_console.print("[red]Error:[/red] No project given. Use [bold]--project[/bold].")
        raise typer.Exit(code=1)

    client = _make_client(server)
    token = _require_token(client)

    async def _run(progress: TransferProgress | None) -> str:
        artifact = await client.upload_bundle(bundle, project, token, progress=progress)
        console.print(f"Uploaded [bold]{artifact.display_name}[/bold] ({artifact.resource_name})")
        return await client.start_remote_fuzzing_run(artifact, token)

    try:
        if console.is_terminal:
            with TransferProgress(f"Uploading {bundle.name}", console=console) as progress:
                run_name = asyncio.run(_run(progress))
        else:
            run_name = asyncio.run(_run(None))
    except FuzzlinkError as e:
        raise _fail(e)

    console.print(f"[green]✓[/green] Started fuzzing run [bold]{run_name}[/bold]")
