"""One-slot in-memory byte pipe between two coroutines.

The writer cannot get more than one chunk ahead of the reader, which bounds
memory use of a streamed upload to a single chunk regardless of file size.
Exactly one coroutine may write and exactly one may read.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator


class PipeClosedError(Exception):
    """Raised on a write after the reader left, or a read after an abort."""


class BytePipe:
    """Async pipe with a single in-flight chunk.

    Usage::

        pipe = BytePipe()
        # producer
        await pipe.write(b"chunk")
        pipe.close_writer()
        # consumer
        async for chunk in pipe:
            ...
    """

    def __init__(self) -> None:
        self._slot: bytes | None = None
        self._readable = asyncio.Event()
        self._writable = asyncio.Event()
        self._writable.set()
        self._writer_closed = False
        self._aborted = False
        self._reader_closed = False

    async def write(self, data: bytes) -> None:
        """Hand *data* to the reader, waiting until the slot is free.

        Raises:
            PipeClosedError: If either end has been closed.
        """
        if not data:
            return
        while True:
            if self._reader_closed:
                raise PipeClosedError("read end of pipe is closed")
            if self._writer_closed:
                raise PipeClosedError("write on closed pipe")
            if self._slot is None:
                break
            self._writable.clear()
            await self._writable.wait()
        self._slot = bytes(data)
        self._readable.set()

    async def read(self) -> bytes:
        """Return the next chunk, or ``b""`` once the writer closed cleanly.

        Raises:
            PipeClosedError: If the writer aborted or the reader was closed.
        """
        while self._slot is None:
            if self._reader_closed:
                raise PipeClosedError("read on closed pipe")
            if self._writer_closed:
                if self._aborted:
                    raise PipeClosedError("write end of pipe was aborted")
                return b""
            self._readable.clear()
            await self._readable.wait()
        data, self._slot = self._slot, None
        self._writable.set()
        return data

    def close_writer(self, *, abort: bool = False) -> None:
        """Close the write end.

        With ``abort=True`` the reader gets :class:`PipeClosedError` instead
        of end-of-stream once the pending chunk (if any) is drained.
        """
        if self._writer_closed:
            return
        self._writer_closed = True
        self._aborted = abort
        if abort:
            self._slot = None
        self._readable.set()

    def close_reader(self) -> None:
        """Close the read end; pending and future writes fail."""
        self._reader_closed = True
        self._slot = None
        self._writable.set()
        self._readable.set()

    async def __aiter__(self) -> AsyncIterator[bytes]:
        while True:
            chunk = await self.read()
            if not chunk:
                return
            yield chunk
