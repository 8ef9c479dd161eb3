"""Options shared by the run and watch commands."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import click

F = TypeVar("F", bound=Callable[..., Any])

_RUN_OPTIONS = [
    click.option(
        "--inputs",
        "-i",
        multiple=True,
        help="Test document or folder to run (repeatable). Default: build/test",
    ),
    click.option(
        "--server-mappings",
        "-m",
        type=click.Path(dir_okay=False, path_type=Path),
        help="JSON file mapping folders to URLs. Default: serverMappings.json",
    ),
    click.option(
        "--concurrent",
        "-c",
        type=click.IntRange(min=1),
        help="Number of browser contexts running at once. Default: 8",
    ),
    click.option("--not-headless", is_flag=True, help="Show the browser (runs one context)"),
    click.option("--coverage", is_flag=True, help="Collect coverage and check thresholds"),
    click.option("--port", type=int, help="Port for the static server. Default: 3001"),
    click.option("--errors-only", is_flag=True, help="Only print failing documents"),
    click.option("--no-sandbox", is_flag=True, help="Launch Chromium without its sandbox"),
    click.option(
        "--timeout",
        type=click.FloatRange(min=0, min_open=True),
        help="Seconds each document has to report a result",
    ),
]


def run_options(func: F) -> F:
    """Attach the shared run options to a command."""
    for option in reversed(_RUN_OPTIONS):
        func = option(func)
    return func


def build_overrides(
    *,
    inputs: tuple[str, ...] = (),
    server_mappings: Path | None = None,
    concurrent: int | None = None,
    not_headless: bool = False,
    coverage: bool = False,
    port: int | None = None,
    errors_only: bool = False,
    no_sandbox: bool = False,
    timeout: float | None = None,
    watch_files: tuple[str, ...] = (),
) -> dict[str, dict[str, Any]]:
    """Config overrides for the options the user actually gave.

    Flags only ever switch a setting on, so config files can still enable
    them when the flag is absent.
    """
    overrides: dict[str, dict[str, Any]] = {}

    def put(section: str, key: str, value: Any) -> None:
        overrides.setdefault(section, {})[key] = value

    if inputs:
        put("runner", "inputs", list(inputs))
    if server_mappings is not None:
        put("server", "mappings_file", str(server_mappings))
    if concurrent is not None:
        put("runner", "concurrency", concurrent)
    if not_headless:
        put("browser", "headless", False)
    if coverage:
        put("coverage", "enabled", True)
    if port is not None:
        put("server", "port", port)
    if errors_only:
        put("runner", "errors_only", True)
    if no_sandbox:
        put("browser", "no_sandbox", True)
    if timeout is not None:
        put("runner", "document_timeout_sec", timeout)
    if watch_files:
        put("watch", "paths", list(watch_files))
    return overrides
