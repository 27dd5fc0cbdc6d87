"""cfagentbrowser main loop.

Reads one command per line from stdin, dispatches it, and prints exactly one
result (a line, or a JSON document) to stdout. Logs go to stderr so stdout
stays a clean protocol channel.

Shutdown sequence (every exit path: EOF, ``quit``, fault, signal):
1. close every session's browsing context
2. close the shared browser
3. stop the Playwright driver
"""
from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import TextIO

import structlog

from cfagentbrowser import config as config_module
from cfagentbrowser.browser import BrowserHost
from cfagentbrowser.commands import Dispatcher
from cfagentbrowser.config import Config
from cfagentbrowser.errors import ConfigError
from cfagentbrowser.reader import LineReader
from cfagentbrowser.sessions import SessionRegistry

log = structlog.get_logger(__name__)

READY_BANNER = "cfagentbrowser ready"


def _configure_logging(level: str) -> None:
    numeric = logging.getLevelName(level)
    if not isinstance(numeric, int):
        numeric = logging.WARNING
    logging.basicConfig(
        stream=sys.stderr,
        level=numeric,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def _emit(stdout: TextIO, text: str) -> None:
    stdout.write(text + "\n")
    stdout.flush()


async def run(cfg: Config, stdin_fd: int, stdout: TextIO) -> int:
    """Run the command loop until end-of-input or ``quit``. Returns exit code.

    *stdin_fd* is read on the event loop; it is not closed here.
    """
    registry = SessionRegistry(BrowserHost(cfg))
    dispatcher = Dispatcher(registry)
    reader = LineReader(stdin_fd)
    reader.start(asyncio.get_running_loop())

    _emit(stdout, READY_BANNER)
    try:
        while True:
            line = await reader.readline()
            if line is None:
                log.info("end of input")
                break
            if not line.strip():
                continue

            try:
                result = await dispatcher.dispatch(line)
            except Exception as e:
                log.warning("command failed", command=line.split(" ", 1)[0], error=str(e))
                _emit(stdout, f"error: {_message(e)}")
                continue

            _emit(stdout, result.render())
            if result.quit:
                break
    finally:
        reader.stop()
        await registry.close_all()
        log.info("shutdown complete")
    return 0


def _message(exc: BaseException) -> str:
    # Playwright errors carry a multi-line call log after the first line.
    text = str(exc).strip() or type(exc).__name__
    return text.splitlines()[0]


async def _main(cfg: Config) -> int:
    loop = asyncio.get_running_loop()
    task = asyncio.current_task()
    assert task is not None
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, task.cancel)
        except (NotImplementedError, RuntimeError):
            pass  # not supported on this platform

    try:
        return await run(cfg, sys.stdin.fileno(), sys.stdout)
    except asyncio.CancelledError:
        return 0


def main() -> int:
    try:
        cfg = config_module.load()
    except ConfigError as e:
        print(f"cfagentbrowser: {e}", file=sys.stderr)
        return 1
    _configure_logging(cfg.log_level)
    return asyncio.run(_main(cfg))
