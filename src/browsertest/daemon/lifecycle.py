"""Process supervision: startup, signals, and teardown of long-lived handles."""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import structlog

from browsertest.config.models import TimeoutsConfig
from browsertest.core.errors import BrowserTestError, InternalError
from browsertest.core.logging import get_log_file_path
from browsertest.core.progress import spinner, status
from browsertest.daemon.browser import BrowserProcess
from browsertest.daemon.coverage_watcher import CoverageReportWatcher
from browsertest.daemon.server import StaticServer
from browsertest.daemon.watcher import FileWatcher

if TYPE_CHECKING:
    from playwright.async_api import Browser

logger = structlog.get_logger()

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)

# Body of a supervised run; returns True when the run failed
RunBody = Callable[[], Awaitable[bool]]


@dataclass
class ProcessHandles:
    """Long-lived resources owned by the supervisor."""

    server: StaticServer | None = None
    browser: BrowserProcess | None = None
    watcher: FileWatcher | None = None
    coverage_watcher: CoverageReportWatcher | None = None


@dataclass
class Supervisor:
    """
    Owns the process handles for one CLI invocation.

    Lifecycle:
    - start(): server and browser come up concurrently
    - run(): executes the body with SIGINT/SIGTERM and event-loop exception
      handlers installed, then always shuts down
    - shutdown(): one-shot; every handle is closed in its own guarded step,
      so one failing or already-closed handle never blocks the rest

    Exit code: 1 when the run failed or shutdown was triggered by an error,
    otherwise whatever was already set (0 by default). A run cut short by
    SIGINT/SIGTERM counts as failed unless ``interrupt_is_failure`` is off,
    which suits commands that only ever end by being interrupted.
    """

    handles: ProcessHandles = field(default_factory=ProcessHandles)
    timeouts: TimeoutsConfig = field(default_factory=TimeoutsConfig)
    exit_code: int = 0
    interrupt_is_failure: bool = True

    _shutdown_started: bool = field(default=False, init=False)
    _shutdown_done: asyncio.Event = field(default_factory=asyncio.Event, init=False)
    _main_task: asyncio.Task[Any] | None = field(default=None, init=False)
    _interrupted: bool = field(default=False, init=False)
    _error: BaseException | None = field(default=None, init=False)
    _signal_count: int = field(default=0, init=False)

    @property
    def is_shut_down(self) -> bool:
        return self._shutdown_done.is_set()

    @property
    def browser(self) -> Browser:
        """The running browser; raises RuntimeError without a browser handle."""
        if self.handles.browser is None:
            raise RuntimeError("Supervisor has no browser handle")
        return self.handles.browser.browser

    @property
    def interrupted(self) -> bool:
        return self._interrupted

    async def start(self) -> None:
        """Start the static server and the browser concurrently.

        Raises:
            BrowserTestError: If either fails to start. A starter still in
                flight is cancelled and awaited first; shutdown() closes
                whatever already came up.
        """
        starters: list[Coroutine[Any, Any, None]] = []
        if self.handles.server is not None:
            starters.append(self.handles.server.start())
        if self.handles.browser is not None:
            starters.append(self.handles.browser.start())
        if not starters:
            return

        tasks = [asyncio.create_task(starter) for starter in starters]
        with spinner("Starting server and browser"):
            try:
                await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
            finally:
                # Starters still running are cancelled so none comes up after shutdown
                pending = [task for task in tasks if not task.done()]
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

        errors = [
            exc for task in tasks if not task.cancelled() and (exc := task.exception()) is not None
        ]
        if errors:
            raise errors[0]

    async def attach_watchers(
        self,
        watcher: FileWatcher | None = None,
        coverage_watcher: CoverageReportWatcher | None = None,
    ) -> None:
        """Hand watchers to the supervisor and start them."""
        if watcher is not None:
            self.handles.watcher = watcher
            await watcher.start()
        if coverage_watcher is not None:
            self.handles.coverage_watcher = coverage_watcher
            await coverage_watcher.start()

    async def run(self, body: RunBody) -> int:
        """Start the handles, run ``body``, then shut down.

        Returns the process exit code.
        """
        loop = asyncio.get_running_loop()
        self._main_task = asyncio.current_task()
        previous_handler = loop.get_exception_handler()
        self._install_handlers(loop)
        try:
            failed = await self._run_body(body)
            return await self.shutdown(failed=failed)
        finally:
            self._remove_handlers(loop, previous_handler)

    async def _run_body(self, body: RunBody) -> bool:
        """Run start and body; returns True when the run failed."""
        failed = True
        try:
            await self.start()
            failed = await body()
        except asyncio.CancelledError:
            if not self._interrupted and self._error is None:
                await self.shutdown(failed=True)
                raise
            if self._main_task is not None:
                self._main_task.uncancel()
            failed = self._error is not None or self.interrupt_is_failure
        except BrowserTestError as e:
            logger.error("run_aborted", error=str(e), code=e.code.value)
            self._fail(e)
        except Exception as e:
            logger.exception("run_crashed", error=str(e))
            self._fail(InternalError.unexpected(str(e), error_type=type(e).__name__))
        return failed

    def _fail(self, error: BrowserTestError) -> None:
        self._error = error
        log_file = get_log_file_path()
        if log_file is not None:
            status(f"{error}. See {log_file} for details.", style="error")
        else:
            status(str(error), style="error")

    async def shutdown(self, *, failed: bool = False) -> int:
        """Close every handle once; later calls wait for the first and return."""
        if self._shutdown_started:
            await self._shutdown_done.wait()
            return self.exit_code
        self._shutdown_started = True
        logger.info("shutdown_started", failed=failed, interrupted=self._interrupted)

        handles = self.handles
        timeouts = self.timeouts
        if handles.server is not None:
            await self._guarded("server", handles.server.stop, timeouts.server_stop_sec)
        if handles.browser is not None:
            await self._guarded("browser", handles.browser.close, timeouts.browser_close_sec)
        if handles.watcher is not None:
            await self._guarded("watcher", handles.watcher.stop, timeouts.watcher_stop_sec)
        if handles.coverage_watcher is not None:
            await self._guarded(
                "coverage_watcher",
                handles.coverage_watcher.stop,
                timeouts.watcher_stop_sec,
            )

        if failed or self._error is not None:
            self.exit_code = 1
        self._shutdown_done.set()
        logger.info("shutdown_finished", exit_code=self.exit_code)
        return self.exit_code

    async def _guarded(
        self,
        name: str,
        step: Callable[[], Awaitable[None]],
        timeout: float,
    ) -> None:
        try:
            async with asyncio.timeout(timeout):
                await step()
        except TimeoutError:
            logger.warning("shutdown_step_timeout", step=name, timeout_sec=timeout)
        except Exception as e:
            logger.warning("shutdown_step_failed", step=name, error=str(e))

    def _install_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError):
                # Not supported on this platform or outside the main thread
                logger.debug("signal_handler_unavailable", signal=sig.name)
        loop.set_exception_handler(self._on_loop_exception)

    def _remove_handlers(
        self,
        loop: asyncio.AbstractEventLoop,
        previous_handler: Any,
    ) -> None:
        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.remove_signal_handler(sig)
            except (NotImplementedError, RuntimeError):
                pass
        loop.set_exception_handler(previous_handler)

    def _on_signal(self, sig: signal.Signals) -> None:
        self._signal_count += 1
        logger.info("shutdown_signal_received", signal=sig.name, count=self._signal_count)
        if self._signal_count > 1:
            return
        self._interrupted = True
        self._cancel_main()

    def _on_loop_exception(
        self,
        loop: asyncio.AbstractEventLoop,
        context: dict[str, Any],
    ) -> None:
        exc = context.get("exception")
        logger.error(
            "unhandled_async_error",
            message=context.get("message"),
            error=str(exc) if exc is not None else None,
            exc_info=exc,
        )
        if self._error is None:
            self._error = exc or RuntimeError(str(context.get("message")))
        self._cancel_main()

    def _cancel_main(self) -> None:
        task = self._main_task
        if task is not None and not task.done() and not self._shutdown_started:
            task.cancel()
