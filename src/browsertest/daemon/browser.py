"""Chromium process handle driven through Playwright."""

from __future__ import annotations

import asyncio
import contextlib
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from browsertest.config.models import BrowserConfig
from browsertest.core.errors import BrowserError

if TYPE_CHECKING:
    from playwright.async_api import Browser, Playwright

logger = structlog.get_logger()

BASE_CHROME_FLAGS: tuple[str, ...] = (
    "--allow-insecure-localhost",
    "--auto-open-devtools-for-tabs",
    "--disable-accelerated-2d-canvas",
    "--disable-background-timer-throttling",
    "--disable-breakpad",
    "--disable-client-side-phishing-detection",
    "--disable-cloud-import",
    "--disable-default-apps",
    "--disable-extensions",
    "--disable-gesture-typing",
    "--disable-gpu",
    "--disable-hang-monitor",
    "--disable-infobars",
    "--disable-notifications",
    "--disable-offer-store-unmasked-wallet-cards",
    "--disable-offer-upload-credit-cards",
    "--disable-popup-blocking",
    "--disable-print-preview",
    "--disable-prompt-on-repost",
    "--disable-setuid-sandbox",
    "--disable-software-rasterizer",
    "--disable-speech-api",
    "--disable-sync",
    "--disable-tab-for-desktop-share",
    "--disable-translate",
    "--disable-voice-input",
    "--disable-wake-on-wifi",
    "--enable-async-dns",
    "--enable-simple-cache-backend",
    "--enable-tcp-fast-open",
    "--hide-scrollbars",
    "--media-cache-size=33554432",
    "--metrics-recording-only",
    "--mute-audio",
    "--no-default-browser-check",
    "--no-first-run",
    "--no-pings",
    "--no-zygote",
    "--password-store=basic",
    "--prerender-from-omnibox=disabled",
    "--use-mock-keychain",
)

# Serverless runtimes report their memory size through one of these
_MEMORY_ENV_VARS = ("AWS_LAMBDA_FUNCTION_MEMORY_SIZE", "FUNCTION_MEMORY_MB")
_MEMORY_PRESSURE_OFF_MB = 1024


def _memory_mb(env: Mapping[str, str]) -> int:
    for name in _MEMORY_ENV_VARS:
        if value := env.get(name):
            try:
                return int(value)
            except ValueError:
                continue
    return 512


def build_chrome_flags(
    config: BrowserConfig,
    env: Mapping[str, str] | None = None,
) -> list[str]:
    """Chromium command line flags for the given config and environment."""
    env = os.environ if env is None else env
    flags = list(BASE_CHROME_FLAGS)

    def add(flag: str) -> None:
        if flag not in flags:
            flags.append(flag)

    if env.get("USER") == "root" or config.no_sandbox:
        add("--no-sandbox")

    # CI runners need these
    if env.get("CI"):
        add("--single-process")
        add("--no-sandbox")
        add("--disable-dev-shm-usage")

    if _memory_mb(env) >= _MEMORY_PRESSURE_OFF_MB:
        add("--memory-pressure-off")

    for flag in config.extra_args:
        add(flag)

    return flags


@dataclass
class BrowserProcess:
    """Owns the Playwright driver and the Chromium process it launches."""

    config: BrowserConfig

    _playwright: Playwright | None = field(default=None, init=False)
    _browser: Browser | None = field(default=None, init=False)

    @property
    def browser(self) -> Browser:
        if self._browser is None:
            raise RuntimeError("Browser has not been started")
        return self._browser

    @property
    def is_running(self) -> bool:
        return self._browser is not None

    async def start(self) -> None:
        """Launch Chromium.

        Raises:
            BrowserError: If Playwright or Chromium fails to start.
        """
        if self._browser is not None:
            return

        flags = build_chrome_flags(self.config)
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.config.headless,
                args=flags,
            )
        except PlaywrightError as e:
            await self.close()
            raise BrowserError.launch_failed(e.message) from e
        except asyncio.CancelledError:
            # Stopping the driver also kills a Chromium it was launching
            await self.close()
            raise

        logger.info("browser_started", headless=self.config.headless, flags=len(flags))

    async def close(self) -> None:
        """Close Chromium and stop the Playwright driver. Safe to call twice."""
        browser, self._browser = self._browser, None
        playwright, self._playwright = self._playwright, None

        if browser is not None:
            with contextlib.suppress(PlaywrightError):
                await browser.close()
        if playwright is not None:
            await playwright.stop()

        if browser is not None:
            logger.info("browser_closed")
