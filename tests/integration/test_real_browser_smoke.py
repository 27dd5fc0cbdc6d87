"""E2E smoke test against a real headless Chromium.

Runs the full loop: new-session -> navigate -> get-snapshot -> send-click ->
enter-text -> quit. Skipped when Chromium cannot be launched (run
`playwright install chromium` first).

    python -m pytest tests/ -m real_browser -v
"""
from __future__ import annotations

import asyncio
import io
import json
import uuid

import pytest

from cfagentbrowser.app import READY_BANNER, run
from cfagentbrowser.browser import BrowserHost
from cfagentbrowser.config import Config
from cfagentbrowser.errors import LaunchError

pytestmark = pytest.mark.real_browser

_PAGE = (
    "data:text/html,<html><head><title>smoke</title></head>"
    "<body><h1>Hello</h1><input id=q></body></html>"
)


@pytest.fixture
async def real_config() -> Config:
    cfg = Config(launch_timeout=30, launch_args=("--no-sandbox",))
    host = BrowserHost(cfg)
    try:
        await host.ensure_browser()
    except LaunchError as e:
        pytest.skip(f"chromium not available: {e}")
    finally:
        await host.close()
    return cfg


async def test_full_session(real_config, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    stdin = io.StringIO(
        "new-session\n"
        f"navigate {_PAGE}\n"
        "get-snapshot 640 480 shot one\n"
        "send-click 640 480 20.5 40\n"
        "enter-text typed\n"
        "quit\n"
    )
    stdout = io.StringIO()
    await asyncio.wait_for(run(real_config, stdin, stdout), timeout=60)

    out = stdout.getvalue()
    assert out.startswith(READY_BANNER + "\n")
    _, session_line, rest = out.split("\n", 2)
    uuid.UUID(session_line)

    document, tail = rest.split("\n}\n", 1)
    tree = json.loads(document + "\n}")
    assert tree["role"] == "WebArea"
    assert tree["name"] == "smoke"

    assert tail.splitlines() == ["shot one.jpg", "ok", "ok", "bye"]
    data = (tmp_path / "shot one.jpg").read_bytes()
    assert data[:2] == b"\xff\xd8"
