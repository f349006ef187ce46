"""sitewarden CLI entry point."""

from __future__ import annotations

import importlib.metadata
from typing import Annotated

import typer

from sitewarden.cli.clean import clean_cmd
from sitewarden.cli.init import init_cmd
from sitewarden.cli.run import run_cmd
from sitewarden.cli.scan import scan_cmd
from sitewarden.cli.status import status_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("sitewarden")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"sitewarden {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="sitewarden",
    help=(
        "sitewarden — reconcile TOML service definitions into reverse-proxy config.\n\n"
        "  sitewarden scan   Reconcile the watch directory once.\n"
        "  sitewarden run    Keep reconciling and cleaning on an interval."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
) -> None:
    """sitewarden — reconcile TOML service definitions into reverse-proxy config."""


app.command("init")(init_cmd)
app.command("scan")(scan_cmd)
app.command("clean")(clean_cmd)
app.command("run")(run_cmd)
app.command("status")(status_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed sitewarden version."""
    typer.echo(f"sitewarden {_installed_version()}")


if __name__ == "__main__":
    app()
