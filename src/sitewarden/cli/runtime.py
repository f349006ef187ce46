"""Shared wiring for CLI commands: config, logging, store and writer."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from sitewarden.artifacts.writer import FileArtifactWriter
from sitewarden.cli.errors import err_config, err_schema
from sitewarden.config import ConfigError, SitewardenConfig, load_config
from sitewarden.db.connection import Database
from sitewarden.db.schema import SchemaError
from sitewarden.db.store import Store

console = Console()


def load_or_exit(
    project_dir: Path,
    db: Path | None = None,
    watch_dir: Path | None = None,
    artifact_dir: Path | None = None,
) -> SitewardenConfig:
    """Load config, apply CLI flag overrides, and configure logging."""
    try:
        cfg = load_config(project_dir)
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc

    cfg.database.path = _under(project_dir, cfg.database.path)
    cfg.watch.directory = _under(project_dir, cfg.watch.directory)
    cfg.artifacts.directory = _under(project_dir, cfg.artifacts.directory)

    if db is not None:
        cfg.database.path = str(db)
    if watch_dir is not None:
        cfg.watch.directory = str(watch_dir)
    if artifact_dir is not None:
        cfg.artifacts.directory = str(artifact_dir)

    configure_logging(cfg.logging.level)
    return cfg


def _under(project_dir: Path, value: str) -> str:
    """Resolve a configured path relative to the project directory."""
    path = Path(value)
    return str(path if path.is_absolute() else project_dir / path)


def configure_logging(level: str) -> None:
    """Route library log records through rich at *level*."""
    root = logging.getLogger("sitewarden")
    root.setLevel(level)
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        root.addHandler(RichHandler(console=console, show_path=False, rich_tracebacks=True))


def open_store(db_path: Path) -> tuple[sqlite3.Connection, Store]:
    """Open the database and ensure its schema. Exits 1 if the schema fails."""
    conn = Database(db_path).connect()
    store = Store(conn)
    try:
        store.ensure_schema()
    except SchemaError as exc:
        conn.close()
        console.print(err_schema(str(db_path), str(exc)))
        raise typer.Exit(1) from exc
    return conn, store


def build_writer(cfg: SitewardenConfig) -> FileArtifactWriter:
    return FileArtifactWriter(
        directory=Path(cfg.artifacts.directory),
        reload_command=cfg.artifacts.reload_command or None,
    )
