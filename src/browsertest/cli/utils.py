"""CLI utilities."""

import asyncio
from collections.abc import Callable, Coroutine
from pathlib import Path
from typing import Any

import click

from browsertest.config.loader import load_config, load_server_mappings
from browsertest.config.models import BrowserTestConfig, LoggingConfig, LogOutputConfig
from browsertest.core.errors import ConfigError
from browsertest.core.logging import configure_logging
from browsertest.daemon.browser import BrowserProcess
from browsertest.daemon.lifecycle import ProcessHandles, Supervisor
from browsertest.daemon.server import StaticServer

_CONSOLE_DESTINATIONS = ("stderr", "stdout")


def build_logging_config(
    base: LoggingConfig,
    *,
    verbose: bool = False,
    log_file: Path | None = None,
) -> LoggingConfig:
    """Combine the configured logging section with the -v and --log-file flags.

    -v lowers every console output to DEBUG and --log-file adds a JSON
    DEBUG file output. Without flags the section is used as is.
    """
    outputs = [
        output.model_copy(update={"level": "DEBUG"})
        if verbose and output.destination in _CONSOLE_DESTINATIONS
        else output
        for output in base.outputs
    ]
    if verbose and not any(o.destination in _CONSOLE_DESTINATIONS for o in outputs):
        outputs.append(LogOutputConfig(destination="stderr", format="console", level="DEBUG"))
    if log_file is not None:
        outputs.append(
            LogOutputConfig(destination=str(log_file.resolve()), format="json", level="DEBUG")
        )
    return base.model_copy(
        update={"level": "DEBUG" if verbose else base.level, "outputs": outputs}
    )


def load_project_config(
    project_root: Path,
    overrides: dict[str, dict[str, Any]],
    *,
    verbose: bool = False,
    log_file: Path | None = None,
) -> BrowserTestConfig:
    """Load config for the project and apply its logging section.

    Raises:
        click.ClickException: If the config cannot be loaded.
    """
    try:
        config = load_config(project_root, **overrides)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e
    configure_logging(
        config=build_logging_config(config.logging, verbose=verbose, log_file=log_file)
    )
    return config


def build_server(config: BrowserTestConfig, project_root: Path) -> StaticServer:
    """Static server for the configured mapping file.

    Raises:
        click.ClickException: If the mapping file is missing or invalid.
    """
    try:
        mappings = load_server_mappings(project_root / config.server.mappings_file)
    except ConfigError as e:
        raise click.ClickException(str(e)) from e
    return StaticServer(
        mappings=mappings,
        host=config.server.host,
        port=config.server.port,
        project_root=project_root,
        start_timeout_sec=config.timeouts.server_start_sec,
        stop_timeout_sec=config.timeouts.server_stop_sec,
    )


def build_supervisor(
    config: BrowserTestConfig,
    project_root: Path,
    *,
    with_browser: bool = True,
    interrupt_is_failure: bool = True,
) -> Supervisor:
    """Supervisor owning the static server and, optionally, the browser.

    Commands that run until interrupted pass ``interrupt_is_failure=False``
    so Ctrl+C keeps the exit code.
    """
    handles = ProcessHandles(
        server=build_server(config, project_root),
        browser=BrowserProcess(config.browser) if with_browser else None,
    )
    return Supervisor(
        handles=handles,
        timeouts=config.timeouts,
        interrupt_is_failure=interrupt_is_failure,
    )


def run_supervised(
    supervisor: Supervisor,
    body: Callable[[], Coroutine[Any, Any, bool]],
) -> int:
    """Run ``body`` under the supervisor on a fresh event loop."""
    try:
        return asyncio.run(supervisor.run(body))
    except KeyboardInterrupt:
        click.echo("\nStopped")
        if supervisor.interrupt_is_failure:
            return 1
        return supervisor.exit_code
