"""Command-line interface for the prelaud sync engine.

This is the main entry point that delegates to command modules.
"""

from pathlib import Path
from typing import Any, Optional

import click

from ..utils.logging_config import configure_third_party_loggers, setup_logging
from .commands import (
    CliContext,
    albums,
    check_username_command,
    profile,
    reset_command,
    status_command,
    sync_command,
)


@click.group()
@click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
    help="Set logging level",
)
@click.option("--log-file", type=click.Path(), help="Log to file")
@click.pass_context
def cli(ctx: Any, log_level: str, log_file: Optional[str]) -> None:
    """Prelaud sync engine.

    Keeps your artist profile and album library in step with the identity
    service.
    """
    # Set up logging
    setup_logging(log_level=log_level, log_file=Path(log_file) if log_file else None)
    configure_third_party_loggers()

    # Tests may inject a prepared context
    if ctx.obj is None:
        ctx.obj = CliContext()


# Register command groups and commands
cli.add_command(sync_command)
cli.add_command(reset_command)
cli.add_command(status_command)
cli.add_command(check_username_command)
cli.add_command(profile)
cli.add_command(albums)


if __name__ == "__main__":
    cli()
