"""sitewarden run — poll the watch directory and keep the proxy converged.

Every ``intervals.scan_seconds``: scan + reconcile + apply.
Every ``intervals.clean_seconds``: cleaner pass.
Stops on Ctrl-C, or after ``--max-passes`` scan passes.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Annotated

import typer

from sitewarden.cleaner import Cleaner
from sitewarden.cli.runtime import build_writer, console, load_or_exit, open_store
from sitewarden.cli.scan import run_scan_pass
from sitewarden.db.store import StoreBusyError

logger = logging.getLogger("sitewarden.run")


def run_cmd(
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
    max_passes: Annotated[
        int | None,
        typer.Option("--max-passes", min=1, help="Stop after this many scan passes."),
    ] = None,
) -> None:
    """Run the reconcile / apply / clean loop until interrupted."""
    cfg = load_or_exit(project_dir, db=db, watch_dir=watch_dir, artifact_dir=artifact_dir)
    conn, store = open_store(Path(cfg.database.path))
    cleaner = Cleaner(store, build_writer(cfg))

    console.print(
        f"[bold]Watching[/] {cfg.watch.directory} "
        f"[dim](scan every {cfg.intervals.scan_seconds:g}s, clean every {cfg.intervals.clean_seconds:g}s)[/]"
    )

    passes = 0
    last_clean = time.monotonic()
    try:
        try:
            while True:
                try:
                    sync, _ = run_scan_pass(cfg, store)
                    if sync.removed:
                        logger.info("files removed", extra={"files": sync.removed})
                    if time.monotonic() - last_clean >= cfg.intervals.clean_seconds:
                        cleaner.run()
                        last_clean = time.monotonic()
                except StoreBusyError:
                    logger.warning("database busy; pass skipped", exc_info=True)
                passes += 1

                if max_passes is not None and passes >= max_passes:
                    break
                time.sleep(cfg.intervals.scan_seconds)
        except KeyboardInterrupt:
            console.print("\n[dim]Stopped.[/]")
        cleaner.run()
    finally:
        conn.close()
