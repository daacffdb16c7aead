"""Main CLI entry point using Typer."""

from __future__ import annotations

import typer
from rich.console import Console

from certificate_shim import __version__
from certificate_shim.cli.commands import render, run
from certificate_shim.logging.config import configure_logging

app = typer.Typer(
    name="certificate-shim",
    help="Create cert-manager Certificates from Ingress and Gateway annotations.",
    add_completion=True,
)

console = Console()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"certificate-shim version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output.",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug mode.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Write console logs as JSON.",
    ),
) -> None:
    """certificate-shim - cert-manager Certificates driven by annotations."""
    configure_logging(verbose=verbose, debug=debug, json_output=json_logs)


app.command()(run.run)
app.command()(render.render)


if __name__ == "__main__":
    app()
