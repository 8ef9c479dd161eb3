"""Run pipeline: discover, partition, drive, aggregate."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from rich.console import Console

from browsertest.core.logging import clear_run_id, set_run_id
from browsertest.core.progress import get_output_console, pluralize
from browsertest.runner.aggregate import ResultAggregator
from browsertest.runner.coverage import CoverageWriter
from browsertest.runner.discovery import discover_documents
from browsertest.runner.driver import DriverOptions, ExecutionContextDriver
from browsertest.runner.models import RunOutcome
from browsertest.runner.partition import partition

if TYPE_CHECKING:
    from playwright.async_api import Browser

    from browsertest.config.models import BrowserTestConfig

logger = structlog.get_logger()


async def run_tests(
    inputs: Iterable[str | Path],
    *,
    browser: Browser,
    config: BrowserTestConfig,
    project_root: Path | None = None,
    console: Console | None = None,
) -> RunOutcome:
    """Run every test document found under inputs.

    Each call is one run with its own aggregator and run id. Finding no
    documents prints a warning and returns a skipped, passing outcome.
    """
    inputs = [str(item) for item in inputs]
    console = console or get_output_console()
    project_root = project_root or Path.cwd()
    run_id = set_run_id()

    documents = discover_documents(inputs, suffix=config.runner.test_suffix)
    if not documents:
        joined = ", ".join(inputs)
        console.print(
            f"No tests found for desired inputs: {joined}!",
            style="black on yellow",
            highlight=False,
        )
        logger.warning("no_tests_found", inputs=inputs)
        clear_run_id()
        return RunOutcome()

    width = config.effective_concurrency
    groups = partition(documents, width)
    logger.info(
        "run_started",
        run_id=run_id,
        documents=len(documents),
        groups=len(groups),
    )

    aggregator = ResultAggregator(errors_only=config.runner.errors_only, console=console)
    coverage_writer = (
        CoverageWriter(project_root / config.coverage.output_dir, config.runner.test_suffix)
        if config.coverage.enabled
        else None
    )
    options = DriverOptions.from_config(config)
    drivers = [
        ExecutionContextDriver(browser, group, aggregator, options, coverage_writer)
        for group in groups
    ]

    try:
        group_failures = await asyncio.gather(*(driver.run() for driver in drivers))
        had_failures = any(group_failures) or aggregator.had_failures

        aggregator.render_summary()
        logger.info(
            "run_finished",
            run_id=run_id,
            summary=pluralize(aggregator.documents_seen, "document"),
            had_failures=had_failures,
        )
    finally:
        clear_run_id()
    return RunOutcome(documents=documents, stats=aggregator.stats, had_failures=had_failures)
