"""Regenerate the merged coverage report whenever coverage output changes."""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field
from pathlib import Path

import structlog
from rich.console import Console
from watchfiles import awatch

from browsertest.core.errors import BrowserTestError
from browsertest.core.progress import get_output_console
from browsertest.runner.coverage import run_report_command

logger = structlog.get_logger()


@dataclass
class CoverageReportWatcher:
    """Watches the coverage output folder and reruns the report tool.

    Events are debounced. A request made while a report is being generated
    sets a run-again flag, so a burst collapses to at most one extra report
    and no change goes unreported.
    """

    output_dir: Path
    report_command: list[str]
    project_root: Path
    debounce_window: float = 1.0
    stop_timeout: float = 2.0
    console: Console = field(default_factory=get_output_console)

    _in_flight: bool = field(default=False, init=False)
    _run_again: bool = field(default=False, init=False)
    _reports: int = field(default=0, init=False)
    _timer: asyncio.TimerHandle | None = field(default=None, init=False)
    _report_task: asyncio.Task[None] | None = field(default=None, init=False)
    _watch_task: asyncio.Task[None] | None = field(default=None, init=False)
    _stop_event: asyncio.Event = field(default_factory=asyncio.Event, init=False)

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def reports(self) -> int:
        return self._reports

    async def start(self) -> None:
        if self._watch_task is not None:
            return
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._stop_event.clear()
        self._watch_task = asyncio.create_task(self._watch_loop())
        logger.info("coverage_watcher_started", path=str(self.output_dir))

    async def stop(self) -> None:
        self._stop_event.set()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        for task in (self._watch_task, self._report_task):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError, TimeoutError):
                    await asyncio.wait_for(task, timeout=self.stop_timeout)
        self._watch_task = None
        self._report_task = None
        self._in_flight = False
        self._run_again = False
        logger.info("coverage_watcher_stopped")

    def schedule_report(self) -> None:
        """Debounce: request a report once events stop for the debounce window."""
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.debounce_window, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        self.request_report()

    def request_report(self) -> None:
        """Start a report now, or once the report in flight finishes."""
        if self._in_flight:
            self._run_again = True
            return
        self._in_flight = True
        self._report_task = asyncio.create_task(self._make_reports())

    async def _make_reports(self) -> None:
        try:
            while True:
                self._run_again = False
                await self._make_report()
                if not self._run_again:
                    break
        finally:
            self._in_flight = False

    async def _make_report(self) -> None:
        self._reports += 1
        self.console.print("Updating Coverage Report...", style="cyan", highlight=False)
        try:
            await run_report_command(self.report_command, self.project_root)
        except (BrowserTestError, OSError) as e:
            self.console.print()
            self.console.print("Error while making report:", style="red", highlight=False)
            self.console.print(str(e), highlight=False, markup=False)
            self.console.print()
            logger.warning("coverage_report_error", error=str(e))

    async def _watch_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                async for _changes in awatch(
                    self.output_dir,
                    stop_event=self._stop_event,
                    ignore_permission_denied=True,
                ):
                    self.schedule_report()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if self._stop_event.is_set():
                    return
                logger.error("coverage_watcher_error", error=str(e))
                await asyncio.sleep(1.0)
