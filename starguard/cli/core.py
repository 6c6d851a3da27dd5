"""Shared CLI application context and setup helpers."""

from __future__ import annotations

import sys

import typer
from loguru import logger
from rich.console import Console

from starguard import __logo__, __version__

app = typer.Typer(
    name="starguard",
    help=f"{__logo__} starguard - GitHub policy-as-code enforcement",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool) -> None:
    if value:
        console.print(f"{__logo__} starguard v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(None, "--version", "-v", callback=version_callback, is_eager=True),
) -> None:
    """starguard - GitHub policy-as-code enforcement."""


def configure_logging(level: str) -> None:
    logger.remove()
    logger.add(sys.stderr, level=level.upper())
