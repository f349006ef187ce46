"""sitewarden clean — one cleaner pass.

Tears down the artifacts of orphaned services, deletes those services, then
removes artifacts that have no owning service. Exits 1 if any artifact could
not be removed (it is retried on the next pass).
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from sitewarden.cleaner import Cleaner
from sitewarden.cli.errors import err_no_db
from sitewarden.cli.runtime import build_writer, console, load_or_exit, open_store


def clean_cmd(
    project_dir: Annotated[
        Path,
        typer.Option("--project-dir", "-C", help="Directory holding sitewarden.yaml."),
    ] = Path("."),
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the sitewarden database."),
    ] = None,
    artifact_dir: Annotated[
        Path | None,
        typer.Option("--artifact-dir", help="Directory for generated proxy config."),
    ] = None,
) -> None:
    """Delete orphaned services and artifacts."""
    cfg = load_or_exit(project_dir, db=db, artifact_dir=artifact_dir)
    db_path = Path(cfg.database.path)
    if not db_path.exists():
        console.print(err_no_db(str(db_path)))
        raise typer.Exit(1)

    conn, store = open_store(db_path)
    try:
        report = Cleaner(store, build_writer(cfg)).run()
    finally:
        conn.close()

    console.print(
        f"[green]✓[/] Services deleted: {report.services_deleted}  |  "
        f"Artifacts deleted: {report.artifacts_deleted}"
    )
    if report.failures:
        console.print(f"[yellow]⚠[/] {report.failures} artifact(s) could not be removed; retry later.")
        raise typer.Exit(1)
