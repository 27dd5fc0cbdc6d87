"""Shared headless browser owned by the command processor.

The browser process is launched lazily on the first session and reused for
every later one. ``close()`` tears it down once, whatever the exit path.

Usage:

    host = BrowserHost(cfg)
    context, page = await host.new_page()
    ...
    await host.close()
"""

from __future__ import annotations

import asyncio
import sys

import structlog
from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    Playwright,
    async_playwright,
)

from cfagentbrowser.config import Config
from cfagentbrowser.errors import LaunchError

log = structlog.get_logger(__name__)

# Substrings Playwright uses when the Chromium binary is not installed.
_MISSING_EXECUTABLE_MARKERS = ("executable doesn't exist", "executable not found")


class BrowserHost:
    """Launch-once owner of the Playwright driver and the shared browser."""

    def __init__(self, cfg: Config) -> None:
        self.cfg = cfg
        self._pw: Playwright | None = None
        self._browser: Browser | None = None
        self._downloaded = False
        self._starting: asyncio.Future[Playwright] | None = None
        self._late_stops: set[asyncio.Future] = set()

    @property
    def launched(self) -> bool:
        return self._browser is not None

    # -- Lifecycle -------------------------------------------------------------

    async def ensure_browser(self) -> Browser:
        """Return the shared browser, launching it on first use.

        Raises LaunchError if the driver or browser cannot be started within
        the configured timeout. The host stays un-launched on failure so a
        later call retries.
        """
        if self._browser is not None:
            return self._browser

        try:
            try:
                self._browser = await self._launch()
            except PlaywrightError as e:
                if not self._can_download(e):
                    raise
                await self._install_chromium()
                self._browser = await self._launch()
        except asyncio.TimeoutError as e:
            await self._stop_driver()
            raise LaunchError(
                f"browser launch timed out after {self.cfg.launch_timeout:g}s"
            ) from e
        except PlaywrightError as e:
            await self._stop_driver()
            raise LaunchError(f"browser launch failed: {e.message}") from e
        except LaunchError:
            await self._stop_driver()
            raise

        log.info(
            "browser launched",
            executable=self.cfg.executable_path or "bundled",
            headless=self.cfg.headless,
        )
        return self._browser

    def _can_download(self, exc: PlaywrightError) -> bool:
        return (
            self.cfg.auto_download
            and not self._downloaded
            and _is_missing_executable(exc)
        )

    async def _launch(self) -> Browser:
        return await asyncio.wait_for(
            self._start_and_launch(), timeout=self.cfg.launch_timeout
        )

    async def _start_and_launch(self) -> Browser:
        if self._pw is None:
            # Shielded so a timeout leaves the start running; _stop_driver
            # then stops the driver once it is up.
            if self._starting is None:
                self._starting = asyncio.ensure_future(async_playwright().start())
            self._pw = await asyncio.shield(self._starting)
            self._starting = None
        return await self._launch_chromium()

    async def _launch_chromium(self) -> Browser:
        assert self._pw is not None
        return await self._pw.chromium.launch(
            headless=self.cfg.headless,
            executable_path=self.cfg.executable_path,
            args=list(self.cfg.launch_args),
            timeout=self.cfg.launch_timeout_ms,
        )

    async def _install_chromium(self) -> None:
        """Download Playwright's Chromium build (auto_download only)."""
        self._downloaded = True
        log.warning("chromium executable missing, downloading")
        proc = await asyncio.create_subprocess_exec(
            sys.executable, "-m", "playwright", "install", "chromium",
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        _, stderr = await proc.communicate()
        if proc.returncode != 0:
            detail = stderr.decode(errors="replace").strip()
            raise LaunchError(f"chromium download failed: {detail}")
        log.info("chromium downloaded")

    async def close(self) -> None:
        """Close the browser and stop the driver. Safe to call repeatedly."""
        browser, self._browser = self._browser, None
        if browser is not None:
            try:
                await browser.close()
            except PlaywrightError as e:
                log.warning("browser close failed", error=str(e))
        await self._stop_driver()
        if self._late_stops:
            await asyncio.gather(*self._late_stops)

    async def _stop_driver(self) -> None:
        starting, self._starting = self._starting, None
        if starting is not None:
            starting.add_done_callback(self._stop_late_driver)
        pw, self._pw = self._pw, None
        if pw is not None:
            await _stop_quietly(pw)

    def _stop_late_driver(self, starting: asyncio.Future) -> None:
        if starting.cancelled() or starting.exception() is not None:
            return
        log.warning("driver came up after launch timeout, stopping it")
        stop = asyncio.ensure_future(_stop_quietly(starting.result()))
        self._late_stops.add(stop)
        stop.add_done_callback(self._late_stops.discard)

    # -- Contexts --------------------------------------------------------------

    async def new_page(self) -> tuple[BrowserContext, Page]:
        """Open a new isolated browsing context holding a single page."""
        browser = await self.ensure_browser()
        context = await browser.new_context()
        page = await context.new_page()
        return context, page


async def _stop_quietly(pw: Playwright) -> None:
    try:
        await pw.stop()
    except PlaywrightError as e:
        log.warning("playwright stop failed", error=str(e))


def _is_missing_executable(exc: PlaywrightError) -> bool:
    lowered = str(exc).lower()
    return any(marker in lowered for marker in _MISSING_EXECUTABLE_MARKERS)
