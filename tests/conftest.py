"""Shared test fixtures for cfagentbrowser.

Fixture tiers:
  test_config      — default Config, isolated from the caller's environment
  mock_playwright  — async_playwright patched; no real browser is launched
  registry         — SessionRegistry backed by mock_playwright
  dispatcher       — Dispatcher over that registry
  stdin_pipe       — factory for preloaded stdin pipes
"""
from __future__ import annotations

import itertools
import os
from pathlib import Path
from typing import Generator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from cfagentbrowser.browser import BrowserHost
from cfagentbrowser.commands import Dispatcher
from cfagentbrowser.config import Config
from cfagentbrowser.sessions import SessionRegistry

_ENV_VARS = (
    "CFAGENTBROWSER_EXECUTABLE_PATH",
    "CFAGENTBROWSER_AUTO_DOWNLOAD",
    "CFAGENTBROWSER_LAUNCH_TIMEOUT",
    "CFAGENTBROWSER_LAUNCH_ARGS",
    "CFAGENTBROWSER_LOG_LEVEL",
    "CHROME_PATH",
    "CHROMIUM_PATH",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's browser settings out of every test."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def test_config() -> Config:
    return Config(launch_timeout=5.0)


# ---------------------------------------------------------------------------
# Playwright mocks
# ---------------------------------------------------------------------------

def _make_page() -> MagicMock:
    page = MagicMock(name="page")
    page.goto = AsyncMock(return_value=None)
    page.accessibility.snapshot = AsyncMock(
        return_value={
            "role": "WebArea",
            "name": "Example Domain",
            "children": [{"role": "heading", "name": "Example Domain", "level": 1}],
        }
    )
    page.set_viewport_size = AsyncMock(return_value=None)
    page.mouse.click = AsyncMock(return_value=None)
    page.keyboard.type = AsyncMock(return_value=None)

    async def _screenshot(path=None, **kwargs):
        data = b"\xff\xd8\xff\xe0fake-jpeg"
        if path is not None:
            Path(path).write_bytes(data)
        return data

    page.screenshot = AsyncMock(side_effect=_screenshot)
    return page


@pytest.fixture
def mock_playwright() -> Generator[dict, None, None]:
    """Patch async_playwright to return mock objects.

    Every browser.new_context() call yields a fresh context with its own page;
    created contexts and pages are collected in the returned dict.
    """
    with patch("cfagentbrowser.browser.async_playwright") as mock_ap:
        mock_pw = MagicMock(name="playwright")
        mock_pw.stop = AsyncMock(return_value=None)
        mock_ap.return_value.start = AsyncMock(return_value=mock_pw)

        mock_browser = MagicMock(name="browser")
        mock_browser.close = AsyncMock(return_value=None)
        mock_pw.chromium.launch = AsyncMock(return_value=mock_browser)

        contexts: list[MagicMock] = []
        pages: list[MagicMock] = []
        counter = itertools.count()

        async def _new_context(**kwargs):
            context = MagicMock(name=f"context{next(counter)}")
            page = _make_page()
            context.new_page = AsyncMock(return_value=page)
            context.close = AsyncMock(return_value=None)
            contexts.append(context)
            pages.append(page)
            return context

        mock_browser.new_context = AsyncMock(side_effect=_new_context)

        yield {
            "async_playwright": mock_ap,
            "pw": mock_pw,
            "browser": mock_browser,
            "contexts": contexts,
            "pages": pages,
        }


@pytest.fixture
def host(test_config: Config, mock_playwright) -> BrowserHost:
    return BrowserHost(test_config)


@pytest.fixture
def registry(host: BrowserHost) -> SessionRegistry:
    return SessionRegistry(host)


@pytest.fixture
def dispatcher(registry: SessionRegistry) -> Dispatcher:
    return Dispatcher(registry)


# ---------------------------------------------------------------------------
# pytest markers
# ---------------------------------------------------------------------------

def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "real_browser: mark test as requiring a launchable Chromium",
    )


# ---------------------------------------------------------------------------
# stdin helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def stdin_pipe() -> Generator:
    """Factory fixture: a pipe read-fd preloaded with *text*, write end closed.

    All read ends are closed on teardown.

    Usage:
        fd = stdin_pipe("new-session\\nquit\\n")
    """
    fds: list[int] = []

    def _factory(text: str) -> int:
        read_fd, write_fd = os.pipe()
        os.write(write_fd, text.encode())
        os.close(write_fd)
        fds.append(read_fd)
        return read_fd

    yield _factory

    for fd in fds:
        os.close(fd)
