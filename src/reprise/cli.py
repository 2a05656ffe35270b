"""
Reprise Command Line Interface (CLI)

Utilities for inspecting and cleaning up the reusable containers Reprise
leaves running between test sessions.
"""

from datetime import datetime, timezone
from typing import List, Optional

import typer
from docker.errors import DockerException
from rich.console import Console
from rich.table import Table

from reprise.core.errors import NotFoundError
from reprise.core.settings import RepriseSettings
from reprise.integrations.docker import DockerRuntime
from reprise.integrations.runtime import ContainerRuntime, LiveContainer

app = typer.Typer(rich_markup_mode="markdown")
console = Console()


def get_runtime() -> ContainerRuntime:
    """Initializes and returns the Docker-backed runtime."""
    try:
        return DockerRuntime(settings=RepriseSettings.from_env())
    except DockerException as e:
        console.print(f"[red]Could not connect to Docker: {e}[/red]")
        raise typer.Exit(1)


def _select(
    containers: List[LiveContainer], fingerprint: Optional[str]
) -> List[LiveContainer]:
    if fingerprint:
        containers = [
            c for c in containers if c.fingerprint and c.fingerprint.startswith(fingerprint)
        ]
    return sorted(containers, key=lambda c: (c.created_at, c.runtime_id))


def _age(created_at: datetime) -> str:
    seconds = (datetime.now(timezone.utc) - created_at).total_seconds()
    if seconds < 120:
        return f"{seconds:.0f}s"
    if seconds < 7200:
        return f"{seconds / 60:.0f}m"
    if seconds < 172800:
        return f"{seconds / 3600:.1f}h"
    return f"{seconds / 86400:.0f}d"


@app.command(name="list")
def list_containers(
    fingerprint: Optional[str] = typer.Option(
        None, "--fingerprint", "-f", help="Only show containers whose fingerprint starts with this prefix."
    ),
) -> None:
    """List running containers that are available for reuse."""
    runtime = get_runtime()
    containers = _select(runtime.list_live_containers(), fingerprint)
    if not containers:
        console.print("[yellow]No reusable containers are running.[/yellow]")
        return

    table = Table(title="Reusable Containers")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="green")
    table.add_column("Fingerprint", style="magenta")
    table.add_column("Created", style="dim")
    table.add_column("Age")
    for c in containers:
        table.add_row(
            c.runtime_id[:12],
            c.name or "",
            (c.fingerprint or "")[:12],
            c.created_at.strftime("%Y-%m-%d %H:%M"),
            _age(c.created_at),
        )
    console.print(table)


@app.command()
def prune(
    fingerprint: Optional[str] = typer.Option(
        None, "--fingerprint", "-f", help="Only remove containers whose fingerprint starts with this prefix."
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    """Stop and remove reusable containers."""
    runtime = get_runtime()
    containers = _select(runtime.list_live_containers(), fingerprint)
    if not containers:
        console.print("[yellow]Nothing to prune.[/yellow]")
        return

    if not yes and not typer.confirm(f"Remove {len(containers)} reusable container(s)?"):
        raise typer.Abort()

    removed = 0
    for c in containers:
        try:
            runtime.remove_container(c.runtime_id)
            removed += 1
        except NotFoundError:
            console.print(f"[dim]{c.runtime_id[:12]} was already gone[/dim]")
    console.print(f"[green]Removed {removed} container(s).[/green]")


if __name__ == "__main__":
    app()
