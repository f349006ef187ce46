"""sitewarden init — scaffold a deployment directory.

Creates:
  sitewarden.yaml   — config with defaults (kept if it already exists)
  .sitewarden.db    — empty store with schema
  services/         — watch directory for *.toml definitions
  sites-enabled/    — artifact directory for generated proxy config
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from sitewarden.cli.runtime import console, load_or_exit, open_store
from sitewarden.config import write_default_config


def init_cmd(
    project_dir: Annotated[
        Path,
        typer.Argument(help="Directory to initialize. Defaults to current directory."),
    ] = Path("."),
) -> None:
    """Create config, database, and directories for a new deployment."""
    project_dir = project_dir.resolve()
    project_dir.mkdir(parents=True, exist_ok=True)

    cfg_path = write_default_config(project_dir)
    console.print(f"  [green]✓[/] {cfg_path}")

    cfg = load_or_exit(project_dir)

    conn, _ = open_store(Path(cfg.database.path))
    conn.close()
    console.print(f"  [green]✓[/] {cfg.database.path}")

    for directory in (cfg.watch.directory, cfg.artifacts.directory):
        Path(directory).mkdir(parents=True, exist_ok=True)
        console.print(f"  [green]✓[/] {directory}/")

    console.print("\n[bold green]✓ Initialized.[/]")
    console.print("\nNext steps:")
    console.print(f"  1. Add service definitions to {cfg.watch.directory}/<name>.toml")
    console.print("  2. sitewarden scan     (reconcile once)")
    console.print("  3. sitewarden run      (keep reconciling)")
