"""Inkwell CLI entry point."""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from inkwell.cli.chat import chat_cmd, sessions_app
from inkwell.cli.sources import add_cmd, remove_cmd, sources_cmd
from inkwell.cli.voice import voice_app


def _installed_version() -> str:
    try:
        return importlib.metadata.version("inkwell")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"inkwell {_installed_version()}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    # LiteLLM logs every request at INFO; keep it quiet unless debugging.
    logging.getLogger("LiteLLM").setLevel(logging.DEBUG if verbose else logging.WARNING)


app = typer.Typer(
    name="inkwell",
    help=(
        "Inkwell: research-material chat and voice readiness for authors.\n\n"
        "  inkwell add      Add a source (PDF, article URL, text, transcript).\n"
        "  inkwell chat     Ask questions answered only from your sources."
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
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log debug output to stderr."),
    ] = False,
) -> None:
    """Inkwell: research-material chat and voice readiness for authors."""
    _configure_logging(verbose)


app.command("add")(add_cmd)
app.command("sources")(sources_cmd)
app.command("remove")(remove_cmd)
app.command("chat")(chat_cmd)
app.add_typer(sessions_app, name="sessions")
app.add_typer(voice_app, name="voice")


@app.command("version")
def version_cmd() -> None:
    """Show the installed Inkwell version."""
    typer.echo(f"inkwell {_installed_version()}")


if __name__ == "__main__":
    app()
