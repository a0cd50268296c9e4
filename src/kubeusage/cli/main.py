# src/kubeusage/cli/main.py
"""
This module is the main entry point for the kubeusage CLI.
"""

import logging

import typer

from ..core.config import config
from . import start

# --- Setup Logger ---
logging.basicConfig(
    level=config.LOG_LEVEL.upper(),
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


app = typer.Typer(
    name="kubeusage",
    help="Attribute per-container CPU and memory usage to the nodes of managed Kubernetes clusters.",
    add_completion=False,
)


def version_callback(value: bool):
    """
    Prints the version of kubeusage.
    """
    if value:
        from .. import __version__

        typer.echo(f"kubeusage version: {__version__}")
        raise typer.Exit()


@app.command()
def version():
    """
    Show the version of kubeusage.
    """
    from .. import __version__

    typer.echo(f"kubeusage version: {__version__}")


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
):
    """
    kubeusage CLI main entry point.
    """
    pass


app.add_typer(start.app, name="start")


if __name__ == "__main__":
    app()
