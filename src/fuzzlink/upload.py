"""Streaming bundle upload with cooperative cancellation.

Three phases run as asyncio tasks for the duration of one upload:

* **signal watcher** -- turns SIGINT/SIGTERM/SIGQUIT into a
  :class:`~fuzzlink.errors.SignalInterruptedError`
* **body producer** -- streams the multipart-encoded file into a
  :class:`~fuzzlink.pipe.BytePipe`
* **request issuer** -- POSTs the read end of the pipe to the server

They are joined by :func:`join_fail_fast`: the first failure cancels the
other phases, and the call returns only once all three have finished.  The
pipe holds at most one chunk, so memory use does not grow with the bundle
size.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Awaitable, Iterable
from typing import Any, BinaryIO

import httpx

from fuzzlink.errors import (
    LocalIOError,
    ProtocolViolationError,
    response_to_api_error,
    wrap_connection_error,
)
from fuzzlink.multipart import MultipartFileEncoder
from fuzzlink.pipe import BytePipe, PipeClosedError
from fuzzlink.progress import ProgressReader, ProgressSink
from fuzzlink.signals import DEFAULT_SIGNALS, SignalWatcher

logger = logging.getLogger(__name__)

FORM_FIELD_NAME = "fuzzing-artifacts"
CHUNK_SIZE = 64 * 1024


async def join_fail_fast(*aws: Awaitable[Any]) -> list[Any]:
    """Run *aws* concurrently and fail fast.

    Waits until every task is done or one of them raises.  On the first
    failure the remaining tasks are cancelled and awaited.  If more than one
    task failed, the failure of the earliest-started one is raised, so the
    argument order is the tie-break.  Cancelled tasks do not count as
    failures.

    Returns:
        The results of all tasks, in argument order.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        if pending:
            for task in pending:
                task.cancel()
            await asyncio.wait(pending)
    except asyncio.CancelledError:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise

    first_error: BaseException | None = None
    cancelled = False
    for task in tasks:
        if task.cancelled():
            cancelled = True
            continue
        exc = task.exception()
        if exc is not None and first_error is None:
            first_error = exc
    if first_error is not None:
        raise first_error
    if cancelled:
        raise asyncio.CancelledError()
    return [task.result() for task in tasks]


def _close_late_bundle(opening: asyncio.Future[tuple[BinaryIO, int]]) -> None:
    if opening.cancelled() or opening.exception() is not None:
        return
    fileobj, _ = opening.result()
    fileobj.close()
    logger.debug("Closed bundle opened after the upload was cancelled")


class BundleUpload:
    """One streamed upload of a bundle file.

    Usage::

        async with httpx.AsyncClient(timeout=None) as http:
            body = await BundleUpload(http, url, "bundle.tar.gz", token, user_agent).run()

    Args:
        http: Client used to send the request.
        url: Full upload endpoint URL.
        path: Bundle file to upload.
        token: Bearer token.
        user_agent: ``User-Agent`` header value.
        progress: Optional sink receiving ``(bytes_so_far, total)`` updates.
        signals: Signals that cancel the upload.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        url: str,
        path: str | os.PathLike[str],
        token: str,
        user_agent: str,
        progress: ProgressSink | None = None,
        signals: Iterable[int] = DEFAULT_SIGNALS,
    ) -> None:
        self._http = http
        self._url = url
        self._path = os.fspath(path)
        self._token = token
        self._user_agent = user_agent
        self._progress = progress
        self._signals = tuple(signals)

        self._pipe = BytePipe()
        self._encoder = MultipartFileEncoder(FORM_FIELD_NAME, self._path)
        self._watcher: SignalWatcher | None = None

    async def run(self) -> bytes:
        """Upload the bundle and return the raw body of the 2xx response.

        Raises:
            SignalInterruptedError: A watched signal arrived first.
            LocalIOError: The bundle could not be read.
            APIConnectionError: No response was obtained.
            APIError: The server answered with a non-2xx status.
            ProtocolViolationError: The response body could not be read.
        """
        with SignalWatcher(self._signals) as watcher:
            self._watcher = watcher
            _, _, body = await join_fail_fast(
                watcher.wait(),
                self._produce_body(),
                self._issue_request(),
            )
        return body

    # ------------------------------------------------------------------
    # Body producer
    # ------------------------------------------------------------------

    async def _produce_body(self) -> None:
        try:
            fileobj, size = await self._open_in_thread()
        except asyncio.CancelledError:
            self._pipe.close_writer(abort=True)
            raise
        except OSError as exc:
            self._pipe.close_writer(abort=True)
            raise LocalIOError(f"Failed to open {self._path}: {exc}") from exc

        logger.debug(
            "Streaming %s (%d bytes, %d encoded)",
            self._path,
            size,
            self._encoder.encoded_length(size),
        )
        source: BinaryIO | ProgressReader = fileobj
        if self._progress is not None:
            source = ProgressReader(fileobj, size, self._progress)

        complete = False
        try:
            await self._pipe.write(self._encoder.part_header())
            while True:
                try:
                    chunk = await asyncio.to_thread(source.read, CHUNK_SIZE)
                except OSError as exc:
                    raise LocalIOError(f"Failed to read {self._path}: {exc}") from exc
                if not chunk:
                    break
                await self._pipe.write(chunk)
            await self._pipe.write(self._encoder.trailer())
            complete = True
        except PipeClosedError:
            # Reader went away; the request issuer reports why.
            logger.debug("Request body consumer closed, stopping producer")
        finally:
            fileobj.close()
            # An aborted writer never looks like a clean end-of-stream
            self._pipe.close_writer(abort=not complete)

    async def _open_in_thread(self) -> tuple[BinaryIO, int]:
        # The worker thread cannot be interrupted; a file it opens after we
        # were cancelled is closed once it arrives.
        opening = asyncio.ensure_future(asyncio.to_thread(self._open_bundle))
        try:
            return await asyncio.shield(opening)
        except asyncio.CancelledError:
            opening.add_done_callback(_close_late_bundle)
            raise

    def _open_bundle(self) -> tuple[BinaryIO, int]:
        size = os.stat(self._path).st_size
        return open(self._path, "rb"), size

    # ------------------------------------------------------------------
    # Request issuer
    # ------------------------------------------------------------------

    async def _issue_request(self) -> bytes:
        try:
            request = self._http.build_request(
                "POST",
                self._url,
                content=self._pipe,
                headers={
                    "User-Agent": self._user_agent,
                    "Content-Type": self._encoder.content_type,
                    "Authorization": f"Bearer {self._token}",
                },
            )
            try:
                response = await self._http.send(request, stream=True)
            except (httpx.TransportError, PipeClosedError) as exc:
                raise wrap_connection_error(exc) from exc

            try:
                if not response.is_success:
                    raise await response_to_api_error(response)
                try:
                    body = await response.aread()
                except httpx.HTTPError as exc:
                    raise ProtocolViolationError(
                        f"Failed to read upload response: {exc}"
                    ) from exc
            finally:
                await response.aclose()
            logger.debug("Upload finished with status %d", response.status_code)
            return body
        finally:
            self._pipe.close_reader()
            if self._watcher is not None:
                self._watcher.stop()
