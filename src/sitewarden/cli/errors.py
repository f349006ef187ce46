"""Rich error messages — actionable feedback for the CLI.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from sitewarden.cli.errors import err_no_db
    console.print(err_no_db(".sitewarden.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations


def err_no_db(db_path: str = ".sitewarden.db") -> str:
    """No database at the configured path."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  sitewarden init"
    )


def err_schema(db_path: str, detail: str) -> str:
    """The schema could not be created — the store is unusable."""
    return (
        f"[red]Error:[/] Database '{db_path}' could not be initialised.\n"
        f"  {detail}\n"
        "  Check that the file is a writable SQLite database, or move it aside and run:  sitewarden init"
    )


def err_config(detail: str) -> str:
    """sitewarden.yaml holds an invalid value."""
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {detail}\n"
        "  Fix sitewarden.yaml or the SITEWARDEN_* environment variables."
    )


def err_watch_dir_missing(directory: str) -> str:
    """The definitions directory does not exist."""
    return (
        f"[yellow]Warning:[/] Watch directory '{directory}' does not exist.\n"
        f"  Create it:  mkdir -p {directory}\n"
        "  Stored files are kept; nothing is removed until it exists again."
    )


def warn_failed_files(paths: list[str]) -> str:
    """One or more definition files could not be reconciled."""
    listing = "\n".join(f"    {p}" for p in paths)
    return (
        "[yellow]⚠[/] These files could not be reconciled and will be retried next scan:\n"
        f"{listing}\n"
        "  Check the log output above for the decode or store error."
    )
