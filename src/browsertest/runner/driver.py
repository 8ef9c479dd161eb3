"""Execution context driver.

One driver owns one isolated browser context and walks its group of test
documents strictly in order. For every document it:

1. deletes the context's cookies (storage is wiped by an init script the
   moment the next document is created, before any page script runs),
2. navigates to ``<base_url><url_prefix>/<basename>?reporter=<reporter>``,
3. waits for the document to report over the console channel,
4. hands the result to the aggregator and the page's coverage to the writer.

A document that fails, fails to load, or never reports within
``document_timeout_sec`` marks the group failed; the group still runs every
remaining document.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

import structlog
from playwright.async_api import Error as PlaywrightError

from browsertest.runner.models import ExecutionGroup, RunResult, TestDocument
from browsertest.runner.protocol import parse_console_result

if TYPE_CHECKING:
    from playwright.async_api import Browser, BrowserContext, ConsoleMessage, Page

    from browsertest.config.models import BrowserTestConfig
    from browsertest.runner.aggregate import ResultAggregator
    from browsertest.runner.coverage import CoverageWriter

logger = structlog.get_logger()

# Runs at the start of every top-level document in the context
STORAGE_RESET_SCRIPT = """
(() => {
  if (window.top !== window) { return; }
  try { window.localStorage.clear(); } catch (e) {}
  try { window.sessionStorage.clear(); } catch (e) {}
})();
"""

COVERAGE_EXPRESSION = "() => window.__coverage__ || null"


@dataclass(frozen=True)
class DriverOptions:
    """Per-run settings shared by every driver."""

    base_url: str
    url_prefix: str = "/test"
    reporter: str = "json"
    navigation_timeout_sec: float = 1800.0
    document_timeout_sec: float = 1800.0
    viewport_width: int = 1920
    viewport_height: int = 1080
    init_scripts: tuple[str, ...] = ()

    @classmethod
    def from_config(cls, config: BrowserTestConfig) -> DriverOptions:
        return cls(
            base_url=config.server.base_url,
            url_prefix=config.server.url_prefix,
            reporter=config.server.reporter,
            navigation_timeout_sec=config.runner.navigation_timeout_sec,
            document_timeout_sec=config.runner.document_timeout_sec,
            viewport_width=config.browser.viewport_width,
            viewport_height=config.browser.viewport_height,
            init_scripts=tuple(config.browser.init_scripts),
        )

    def document_url(self, document: TestDocument) -> str:
        return (
            f"{self.base_url}{self.url_prefix}/{quote(document.basename)}"
            f"?reporter={quote(self.reporter)}"
        )


class ExecutionContextDriver:
    """Drives one browser context through one execution group."""

    def __init__(
        self,
        browser: Browser,
        group: ExecutionGroup,
        aggregator: ResultAggregator,
        options: DriverOptions,
        coverage_writer: CoverageWriter | None = None,
    ) -> None:
        self.browser = browser
        self.group = group
        self.aggregator = aggregator
        self.options = options
        self.coverage_writer = coverage_writer

        self.had_failures = False
        self.current_index = 0
        self._pending: asyncio.Future[RunResult] | None = None
        self._log = logger.bind(group=group.index)

    async def run(self) -> bool:
        """Run every document in the group; returns True if any failed."""
        if not self.group.documents:
            return False

        self._log.debug("context_opening", documents=len(self.group))
        context = await self._open_context()
        try:
            page = await context.new_page()
            page.on("console", self._on_console)
            for index, document in enumerate(self.group.documents):
                self.current_index = index
                await self._run_document(context, page, document)
        finally:
            # The browser may already be gone during an abrupt shutdown
            with contextlib.suppress(PlaywrightError):
                await context.close()
            self._pending = None
            self._log.debug("context_closed", had_failures=self.had_failures)

        return self.had_failures

    async def _open_context(self) -> BrowserContext:
        context = await self.browser.new_context(
            viewport={
                "width": self.options.viewport_width,
                "height": self.options.viewport_height,
            },
        )
        context.set_default_navigation_timeout(self.options.navigation_timeout_sec * 1000)
        await context.add_init_script(script=STORAGE_RESET_SCRIPT)
        for script in self.options.init_scripts:
            await context.add_init_script(path=script)
        return context

    def _on_console(self, message: ConsoleMessage) -> None:
        pending = self._pending
        if pending is None or pending.done():
            return
        result = parse_console_result(message.text)
        if result is not None:
            pending.set_result(result)

    async def _run_document(
        self,
        context: BrowserContext,
        page: Page,
        document: TestDocument,
    ) -> None:
        log = self._log.bind(document=document.basename)
        await context.clear_cookies()

        loop = asyncio.get_running_loop()
        self._pending = loop.create_future()
        url = self.options.document_url(document)
        log.debug("document_started", url=url)

        try:
            async with asyncio.timeout(self.options.document_timeout_sec):
                await page.goto(url)
                result = await self._pending
        except TimeoutError:
            log.warning("document_timeout", timeout_sec=self.options.document_timeout_sec)
            result = RunResult.synthetic_failure(
                document,
                f"No test result reported within {self.options.document_timeout_sec:g}s",
            )
        except PlaywrightError as e:
            log.warning("document_navigation_failed", error=str(e))
            result = RunResult.synthetic_failure(document, f"Navigation failed: {e.message}")
        else:
            await self._write_coverage(page, document)
        finally:
            self._pending = None

        if result.failed:
            self.had_failures = True
        self.aggregator.record(document, result)

    async def _write_coverage(self, page: Page, document: TestDocument) -> None:
        if self.coverage_writer is None:
            return
        try:
            payload: Any = await page.evaluate(COVERAGE_EXPRESSION)
        except PlaywrightError as e:
            self._log.warning(
                "coverage_read_failed", document=document.basename, error=str(e)
            )
            return
        if isinstance(payload, dict):
            self.coverage_writer.write(document, payload)
