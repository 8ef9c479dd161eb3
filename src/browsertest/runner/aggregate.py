"""Run-wide result aggregation and reporting.

Results arrive from concurrent execution contexts in any order. Totals are a
plain sum so arrival order never changes them. Failures are printed the
moment they arrive so they are visible during long runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import structlog
from rich.console import Console
from rich.markup import escape

from browsertest.core.formatting import format_duration
from browsertest.core.progress import get_output_console
from browsertest.runner.models import RunResult, RunStats, TestDocument

logger = structlog.get_logger()

SEPARATOR = "--------------------"
SUCCESS_MESSAGE = "All Tests That Ran Passed - Good Job!"


@dataclass
class ResultAggregator:
    """Accumulates results for one run.

    One instance per run; the caller owns it and passes it to every driver.
    """

    errors_only: bool = False
    console: Console = field(default_factory=get_output_console)

    stats: RunStats = field(default_factory=RunStats, init=False)
    had_failures: bool = field(default=False, init=False)
    documents_seen: int = field(default=0, init=False)

    def record(self, document: TestDocument, result: RunResult) -> None:
        """Fold one document's result into the totals and report it."""
        self.stats = self.stats + result.stats
        self.documents_seen += 1

        if result.failed:
            self.had_failures = True
            self._print_failures(document, result)

        logger.debug(
            "document_finished",
            document=document.basename,
            tests=result.stats.tests,
            failures=len(result.failures),
        )

        if not self.errors_only:
            self.console.print(
                f"Finished: {document.basename}", style="white", highlight=False, markup=False
            )

    def _print_failures(self, document: TestDocument, result: RunResult) -> None:
        console = self.console
        console.print(SEPARATOR, style="white", highlight=False)
        console.print(document.basename, style="yellow", highlight=False, markup=False)
        console.print(f"{len(result.failures)} FAILURES:", style="red", highlight=False)
        for failure in result.failures:
            console.print(f"[red]X[/red] {escape(failure.full_title)}", highlight=False)
            console.print(f"\t{failure.message}", highlight=False, markup=False)
        console.print(SEPARATOR, style="white", highlight=False)

    def render_summary(self) -> None:
        """Print the verdict line (on success) and the stats block."""
        console = self.console
        if not self.had_failures:
            console.print()
            console.print(SUCCESS_MESSAGE, style="green", highlight=False)

        stats = self.stats
        dash = "[white]-[/white]"
        console.print()
        console.print(SEPARATOR, style="white", highlight=False)
        console.print(f"{dash} Stats:", highlight=False)
        console.print(dash, highlight=False)
        console.print(f"{dash} Suites: {stats.suites}", highlight=False)
        console.print(f"{dash} Tests: {stats.tests}", highlight=False)
        console.print(f"{dash} Passed: {stats.passes}", highlight=False)
        console.print(f"{dash} Failed: {stats.failures}", highlight=False)
        console.print(f"{dash} Pending: {stats.pending}", highlight=False)
        console.print(f"{dash} Duration: {format_duration(stats.duration)}", highlight=False)
        console.print(SEPARATOR, style="white", highlight=False)
