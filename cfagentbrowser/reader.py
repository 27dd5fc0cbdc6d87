"""Async line reader for the command stream (stdin) using asyncio add_reader.

- Reads happen on the event loop thread; nothing outlives ``stop()``
- One os.read() per readiness event, so the fd can stay in blocking mode
- Regular files cannot be polled; they are read on demand instead
"""
from __future__ import annotations

import asyncio
import os


class LineReader:
    """Split bytes from *fd* into lines; ``await readline()`` per line.

    End-of-stream is delivered as ``None``.
    """

    def __init__(self, fd: int) -> None:
        self.fd = fd
        self._buf = b""
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._polled = False
        self._eof = False

    def start(self, loop: asyncio.AbstractEventLoop) -> None:
        """Register the fd with the event loop."""
        self._loop = loop
        try:
            loop.add_reader(self.fd, self._on_readable)
        except PermissionError:
            # epoll rejects regular files; reads on them never block
            self._polled = False
        else:
            self._polled = True

    def stop(self) -> None:
        """Remove from the event loop. The fd itself is left open."""
        if self._polled and self._loop is not None:
            self._loop.remove_reader(self.fd)
        self._polled = False
        self._loop = None

    async def readline(self) -> str | None:
        """Return the next line without its newline, or None at end-of-stream."""
        while self._queue.empty() and not self._polled and not self._eof:
            self._read_chunk()
        return await self._queue.get()

    def _on_readable(self) -> None:
        self._read_chunk()

    def _read_chunk(self) -> None:
        try:
            data = os.read(self.fd, 4096)
        except BlockingIOError:
            return
        except OSError:
            data = b""

        if not data:
            self._finish()
            return

        self._buf += data
        while b"\n" in self._buf:
            line_bytes, self._buf = self._buf.split(b"\n", 1)
            self._queue.put_nowait(_decode(line_bytes))

    def _finish(self) -> None:
        if self._eof:
            return
        self._eof = True
        if self._buf:
            self._queue.put_nowait(_decode(self._buf))
            self._buf = b""
        self._queue.put_nowait(None)
        self.stop()


def _decode(line_bytes: bytes) -> str:
    return line_bytes.decode("utf-8", errors="replace").rstrip("\r")
