"""sitewarden scan — one reconciliation pass.

Reads every definition file in the watch directory, updates the store
(new / modified / removed files, fresh services), then drives the artifact
writer for every live service. Exits 1 if any file could not be reconciled.

Usage:
  sitewarden scan
  sitewarden scan --watch-dir ./services --no-apply
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.table import Table

from sitewarden.applier import Applier, ApplyReport
from sitewarden.cli.errors import err_watch_dir_missing, warn_failed_files
from sitewarden.cli.runtime import build_writer, console, load_or_exit, open_store
from sitewarden.config import SitewardenConfig
from sitewarden.db.store import Store
from sitewarden.reconciler import Outcome, Reconciler, SyncReport
from sitewarden.scanner import Scanner, WatchDirectoryMissing


def scan_cmd(
    project_dir: Annotated[
        Path,
        typer.Option("--project-dir", "-C", help="Directory holding sitewarden.yaml."),
    ] = Path("."),
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Path to the sitewarden database."),
    ] = None,
    watch_dir: Annotated[
        Path | None,
        typer.Option("--watch-dir", help="Directory of *.toml service definitions."),
    ] = None,
    artifact_dir: Annotated[
        Path | None,
        typer.Option("--artifact-dir", help="Directory for generated proxy config."),
    ] = None,
    apply: Annotated[
        bool,
        typer.Option("--apply/--no-apply", help="Write or remove proxy config after reconciling."),
    ] = True,
) -> None:
    """Reconcile the watch directory into the store once."""
    cfg = load_or_exit(project_dir, db=db, watch_dir=watch_dir, artifact_dir=artifact_dir)
    conn, store = open_store(Path(cfg.database.path))
    try:
        sync, applied = run_scan_pass(cfg, store, apply=apply)
    finally:
        conn.close()

    _print_summary(sync, applied)
    failed = [path for path, outcome in sync.outcomes.items() if outcome is Outcome.FAILED]
    if failed:
        console.print(warn_failed_files(failed))
        raise typer.Exit(1)


def run_scan_pass(
    cfg: SitewardenConfig, store: Store, apply: bool = True
) -> tuple[SyncReport, ApplyReport | None]:
    """Scan, reconcile, and (optionally) apply. Shared with ``sitewarden run``."""
    watch = Path(cfg.watch.directory)
    try:
        events = Scanner(watch, cfg.watch.pattern).scan()
    except WatchDirectoryMissing:
        console.print(err_watch_dir_missing(str(watch)))
        sync = SyncReport()
    else:
        sync = Reconciler(store).sync(events)
    applied = Applier(store, build_writer(cfg)).run() if apply else None
    return sync, applied


def _print_summary(sync: SyncReport, applied: ApplyReport | None) -> None:
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("What", style="bold")
    table.add_column("Count", justify="right")
    for outcome in Outcome:
        table.add_row(outcome.value, str(sync.count(outcome)))
    table.add_row("removed", str(len(sync.removed)))
    if applied is not None:
        table.add_row("artifacts applied", str(applied.applied))
        table.add_row("artifacts failed", str(applied.failed))
        table.add_row("services configured", str(applied.configured))
    console.print(table)
