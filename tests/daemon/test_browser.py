"""Tests for the browser process handle."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from playwright.async_api import Error as PlaywrightError

from browsertest.config.models import BrowserConfig
from browsertest.core.errors import BrowserError, ErrorCode
from browsertest.daemon.browser import BASE_CHROME_FLAGS, BrowserProcess, build_chrome_flags


def _playwright(launch: AsyncMock) -> tuple[MagicMock, MagicMock]:
    playwright = MagicMock()
    playwright.chromium.launch = launch
    playwright.stop = AsyncMock()
    manager = MagicMock()
    manager.start = AsyncMock(return_value=playwright)
    return manager, playwright


class TestBuildChromeFlags:
    """build_chrome_flags tests."""

    def test_base_flags(self) -> None:
        """A plain environment gets the base flags only."""
        flags = build_chrome_flags(BrowserConfig(), env={})

        assert flags == list(BASE_CHROME_FLAGS)
        assert "--no-sandbox" not in flags

    def test_root_user_disables_sandbox(self) -> None:
        assert "--no-sandbox" in build_chrome_flags(BrowserConfig(), env={"USER": "root"})

    def test_config_disables_sandbox(self) -> None:
        flags = build_chrome_flags(BrowserConfig(no_sandbox=True), env={})
        assert "--no-sandbox" in flags

    def test_ci_flags(self) -> None:
        """CI adds single-process and shared memory flags once each."""
        flags = build_chrome_flags(BrowserConfig(no_sandbox=True), env={"CI": "true"})

        assert "--single-process" in flags
        assert "--disable-dev-shm-usage" in flags
        assert flags.count("--no-sandbox") == 1

    @pytest.mark.parametrize(
        ("env", "expected"),
        [
            ({"AWS_LAMBDA_FUNCTION_MEMORY_SIZE": "2048"}, True),
            ({"FUNCTION_MEMORY_MB": "1024"}, True),
            ({"FUNCTION_MEMORY_MB": "512"}, False),
            ({"FUNCTION_MEMORY_MB": "lots"}, False),
            ({}, False),
        ],
    )
    def test_memory_pressure(self, env: dict[str, str], expected: bool) -> None:
        """Roomy runtimes switch memory pressure handling off."""
        flags = build_chrome_flags(BrowserConfig(), env=env)
        assert ("--memory-pressure-off" in flags) is expected

    def test_extra_args_appended(self) -> None:
        flags = build_chrome_flags(BrowserConfig(extra_args=["--lang=de"]), env={})
        assert flags[-1] == "--lang=de"


class TestBrowserProcess:
    """BrowserProcess tests."""

    @pytest.mark.asyncio
    async def test_start_and_close(self) -> None:
        """start() launches Chromium with the built flags; close() stops both."""
        browser = MagicMock()
        browser.close = AsyncMock()
        manager, playwright = _playwright(AsyncMock(return_value=browser))
        process = BrowserProcess(BrowserConfig(headless=True))

        with patch("browsertest.daemon.browser.async_playwright", return_value=manager):
            await process.start()

        assert process.browser is browser
        kwargs = playwright.chromium.launch.call_args.kwargs
        assert kwargs["headless"] is True
        assert "--disable-gpu" in kwargs["args"]

        await process.close()
        await process.close()

        browser.close.assert_awaited_once()
        playwright.stop.assert_awaited_once()
        assert process.is_running is False

    @pytest.mark.asyncio
    async def test_launch_failure(self) -> None:
        """A failed launch raises BrowserError and stops the driver."""
        manager, playwright = _playwright(
            AsyncMock(side_effect=PlaywrightError("Executable doesn't exist"))
        )
        process = BrowserProcess(BrowserConfig())

        with (
            patch("browsertest.daemon.browser.async_playwright", return_value=manager),
            pytest.raises(BrowserError) as exc_info,
        ):
            await process.start()

        assert exc_info.value.code == ErrorCode.BROWSER_LAUNCH_FAILED
        assert "Executable doesn't exist" in str(exc_info.value)
        playwright.stop.assert_awaited_once()

    def test_browser_before_start(self) -> None:
        with pytest.raises(RuntimeError):
            _ = BrowserProcess(BrowserConfig()).browser

    @pytest.mark.asyncio
    async def test_close_tolerates_dead_browser(self) -> None:
        """A browser that already went away still lets the driver stop."""
        browser = MagicMock()
        browser.close = AsyncMock(side_effect=PlaywrightError("Target closed"))
        manager, playwright = _playwright(AsyncMock(return_value=browser))
        process = BrowserProcess(BrowserConfig())

        with patch("browsertest.daemon.browser.async_playwright", return_value=manager):
            await process.start()
        await process.close()

        playwright.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cancel_during_launch_stops_driver(self) -> None:
        """Cancelling start() mid-launch leaves no browser behind."""
        launched = asyncio.Event()

        async def slow_launch(**kwargs: object) -> MagicMock:
            launched.set()
            await asyncio.sleep(10)
            return MagicMock()

        manager, playwright = _playwright(AsyncMock(side_effect=slow_launch))
        process = BrowserProcess(BrowserConfig())

        with patch("browsertest.daemon.browser.async_playwright", return_value=manager):
            task = asyncio.create_task(process.start())
            await launched.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        playwright.stop.assert_awaited_once()
        assert process.is_running is False
