"""Upload progress reporting.

The upload pipeline only knows the :class:`ProgressSink` protocol
(``report(bytes_so_far, total)``).  :class:`TransferProgress` renders it as a
Rich progress bar and is attached by the CLI when stdout is a terminal;
without a sink the transfer behaves exactly the same, just silently.
"""

from __future__ import annotations

from typing import BinaryIO, Protocol

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)


class ProgressSink(Protocol):
    """Anything that accepts byte-count progress updates.

    ``report`` may be called from a worker thread.
    """

    def report(self, bytes_so_far: int, total: int) -> None: ...


class ProgressReader:
    """File wrapper that reports every read to a :class:`ProgressSink`."""

    def __init__(self, fileobj: BinaryIO, total: int, sink: ProgressSink) -> None:
        self._fileobj = fileobj
        self._total = total
        self._sink = sink
        self.bytes_read = 0

    def read(self, size: int = -1) -> bytes:
        data = self._fileobj.read(size)
        self.bytes_read += len(data)
        self._sink.report(self.bytes_read, self._total)
        return data


class TransferProgress:
    """Rich progress bar for a single upload.

    Usage::

        with TransferProgress("Uploading bundle.tar.gz") as progress:
            artifact = await client.upload_bundle(path, project, token, progress=progress)
    """

    def __init__(
        self,
        description: str = "Uploading...",
        done_message: str = "Upload complete",
        console: Console | None = None,
    ) -> None:
        self._description = description
        self._done_message = done_message
        self._progress = Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeRemainingColumn(),
            console=console,
            transient=False,
        )
        self._task: TaskID | None = None
        self._finished = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        self._progress.start()
        self._task = self._progress.add_task(self._description, total=None)

    def stop(self) -> None:
        self._progress.stop()

    def __enter__(self) -> TransferProgress:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.stop()

    # ------------------------------------------------------------------
    # ProgressSink
    # ------------------------------------------------------------------

    def report(self, bytes_so_far: int, total: int) -> None:
        if self._task is None:
            return
        self._progress.update(self._task, completed=bytes_so_far, total=total)
        if bytes_so_far >= total and not self._finished:
            self._finished = True
            self._progress.update(self._task, description=f"[green]{self._done_message}")
