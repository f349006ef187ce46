"""sitewarden status — show files, services and artifacts in the store."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table

from sitewarden.cli.errors import err_no_db
from sitewarden.cli.runtime import console, load_or_exit, open_store
from sitewarden.db.models import ConfigArtifact, File, Service
from sitewarden.states import STATE_CONFIGURED, TRANSITIONAL_STATES


def status_cmd(
    project_dir: Annotated[
        Path,
        typer.Option("--project-dir", "-C", help="Directory holding sitewarden.yaml."),
    ] = Path("."),
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the sitewarden database."),
    ] = None,
    orphans: Annotated[
        bool,
        typer.Option("--orphans/--no-orphans", help="Include services awaiting cleanup."),
    ] = True,
) -> None:
    """Show what the store currently knows."""
    cfg = load_or_exit(project_dir, db=db)
    db_path = Path(cfg.database.path)
    if not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)

    conn, store = open_store(db_path)
    try:
        files = store.list_files()
        services = store.list_services() if orphans else store.list_live_services()
        artifacts = store.list_artifacts()
    finally:
        conn.close()

    console.print(_files_panel(files))
    console.print(_services_panel(services, {f.id: f for f in files}))
    console.print(_artifacts_panel(artifacts))


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _files_panel(files: list[File]) -> Panel:
    if not files:
        return Panel("[dim]No definition files stored yet.[/]", title="[bold]Files[/]", expand=False)

    table = Table(show_header=True, box=None, padding=(0, 1))
    table.add_column("Path")
    table.add_column("Applied", width=7)
    table.add_column("Modified", style="dim")
    for f in files:
        applied = "[green]✓[/]" if f.is_configured else "[yellow]✗[/]"
        table.add_row(f.path, applied, f.last_modified.strftime("%Y-%m-%d %H:%M"))
    return Panel(table, title=f"[bold]Files[/] [dim]({len(files)})[/]", expand=False)


def _services_panel(services: list[Service], files: dict[int, File]) -> Panel:
    if not services:
        return Panel("[dim]No services.[/]", title="[bold]Services[/]", expand=False)

    table = Table(show_header=True, box=None, padding=(0, 1))
    table.add_column("Id", justify="right", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("File")
    table.add_column("State")
    for s in services:
        owner = files[s.file_id].name if s.file_id in files else "[dim](orphan)[/]"
        table.add_row(str(s.id), s.name, owner, _state_label(s.state))
    orphan_count = sum(1 for s in services if s.is_orphan)
    title = f"[bold]Services[/] [dim]({len(services)}, {orphan_count} orphaned)[/]"
    return Panel(table, title=title, expand=False)


def _artifacts_panel(artifacts: list[ConfigArtifact]) -> Panel:
    if not artifacts:
        return Panel("[dim]No artifacts written.[/]", title="[bold]Artifacts[/]", expand=False)

    table = Table(show_header=True, box=None, padding=(0, 1))
    table.add_column("Type")
    table.add_column("Path")
    table.add_column("Service", justify="right", style="dim")
    for a in artifacts:
        owner = str(a.service_id) if a.service_id is not None else "(orphan)"
        table.add_row(a.type, a.path, owner)
    return Panel(table, title=f"[bold]Artifacts[/] [dim]({len(artifacts)})[/]", expand=False)


def _state_label(state: str) -> str:
    if state == STATE_CONFIGURED:
        return f"[green]{state}[/]"
    if state in TRANSITIONAL_STATES:
        return f"[yellow]{state}[/]"
    return f"[dim]{state}[/]"
