# src/kubecostguard/cli/main.py
"""
Console entry point. One-shot commands live in ``analyze``, the periodic
loop in ``monitor``.
"""

import logging
from typing import Optional

import typer
from typing_extensions import Annotated

from .. import __version__
from ..core.config import config
from . import analyze, monitor

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"

logging.basicConfig(level=config.LOG_LEVEL.upper(), format=LOG_FORMAT)
logger = logging.getLogger(__name__)

app = typer.Typer(
    name="kubecostguard",
    help="Kubernetes cluster health, cost attribution and optimization advice.",
    add_completion=False,
    no_args_is_help=True,
)


def _version_line() -> str:
    return f"KubeCostGuard version: {__version__}"


def _print_version(value: bool):
    if value:
        typer.echo(_version_line())
        raise typer.Exit()


@app.callback()
def main(
    log_level: Annotated[
        Optional[str],
        typer.Option("--log-level", help="Overrides LOG_LEVEL for this invocation (e.g. DEBUG)."),
    ] = None,
    show_version: Annotated[
        bool,
        typer.Option("--version", callback=_print_version, is_eager=True, help="Show the version and exit."),
    ] = False,
):
    """KubeCostGuard: score cluster health, attribute costs and suggest savings."""
    if log_level:
        logging.getLogger().setLevel(log_level.upper())
        logger.debug("Log level set to %s from the command line.", log_level.upper())


@app.command()
def version():
    """Show the version of KubeCostGuard."""
    typer.echo(_version_line())


for command in (analyze.health, analyze.cost, analyze.optimize, analyze.cleanup):
    app.command()(command)
app.add_typer(monitor.app, name="monitor")


if __name__ == "__main__":
    app()
