"""browsertest CLI."""

from pathlib import Path

import click

from browsertest.cli.run import run_command
from browsertest.cli.serve import serve_command
from browsertest.cli.utils import build_logging_config
from browsertest.cli.watch import watch_command
from browsertest.config.models import LoggingConfig
from browsertest.core.logging import configure_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="browsertest")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Also write JSON debug logs to this file",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, log_file: Path | None) -> None:
    """browsertest - run HTML test documents in headless Chromium."""
    ctx.ensure_object(dict)
    # Read back by load_project_config once the config's logging section is known
    ctx.obj["verbose"] = verbose
    ctx.obj["log_file"] = log_file
    configure_logging(
        config=build_logging_config(LoggingConfig(), verbose=verbose, log_file=log_file)
    )


cli.add_command(run_command, name="run")
cli.add_command(watch_command, name="watch")
cli.add_command(serve_command, name="serve")


if __name__ == "__main__":
    cli()
