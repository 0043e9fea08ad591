"""Scoped OS signal subscription for one upload.

A :class:`SignalWatcher` installs handlers on enter and restores the
previous ones on exit, so repeated uploads never accumulate subscriptions.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Iterable
from typing import Any

from fuzzlink.errors import SignalInterruptedError

logger = logging.getLogger(__name__)

DEFAULT_SIGNALS: tuple[signal.Signals, ...] = tuple(
    getattr(signal, name)
    for name in ("SIGINT", "SIGTERM", "SIGQUIT")
    if hasattr(signal, name)
)


class SignalWatcher:
    """Turns the first received signal into a :class:`SignalInterruptedError`.

    Usage::

        with SignalWatcher() as watcher:
            task = asyncio.create_task(watcher.wait())
            ...
            watcher.stop()  # wait() returns None

    Must be entered from a coroutine running on the event loop.
    """

    def __init__(self, signals: Iterable[int] = DEFAULT_SIGNALS) -> None:
        self._signals = tuple(signals)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._outcome: asyncio.Future[int | None] | None = None
        self._previous: dict[int, Any] = {}
        self._via_loop: list[int] = []

    def __enter__(self) -> SignalWatcher:
        loop = self._loop = asyncio.get_running_loop()
        self._outcome = loop.create_future()
        for signum in self._signals:
            try:
                self._previous[signum] = signal.getsignal(signum)
            except ValueError:
                continue
            try:
                loop.add_signal_handler(signum, self._deliver, signum)
                self._via_loop.append(signum)
            except NotImplementedError:
                # No loop-level signal support (Windows); fall back to signal.signal
                self._install_fallback(loop, signum)
            except (OSError, ValueError, RuntimeError):
                # signal handlers can only be set in main thread
                logger.debug("Could not watch signal %s (not main thread)", signum)
                self._previous.pop(signum, None)
        return self

    def __exit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        self.stop()
        for signum, previous in self._previous.items():
            if signum in self._via_loop and self._loop is not None:
                self._loop.remove_signal_handler(signum)
            try:
                signal.signal(signum, previous if previous is not None else signal.SIG_DFL)
            except (OSError, ValueError):
                logger.debug("Could not restore handler for signal %s", signum)
        self._previous.clear()
        self._via_loop.clear()

    def _install_fallback(self, loop: asyncio.AbstractEventLoop, signum: int) -> None:
        def _handler(received: int, frame: Any) -> None:
            loop.call_soon_threadsafe(self._deliver, received)

        try:
            signal.signal(signum, _handler)
        except (OSError, ValueError):
            logger.debug("Could not watch signal %s (not main thread)", signum)
            self._previous.pop(signum, None)

    def _deliver(self, signum: int) -> None:
        if self._outcome is not None and not self._outcome.done():
            self._outcome.set_result(signum)

    def stop(self) -> None:
        """Make :meth:`wait` return cleanly if no signal has arrived yet."""
        if self._outcome is not None and not self._outcome.done():
            self._outcome.set_result(None)

    async def wait(self) -> None:
        """Block until a signal arrives or :meth:`stop` is called.

        Raises:
            SignalInterruptedError: If a watched signal was received.
        """
        if self._outcome is None:
            raise RuntimeError("SignalWatcher.wait() called outside its context")
        signum = await self._outcome
        if signum is None:
            return
        err = SignalInterruptedError(signum)
        logger.warning("Received %s", err.signum.name)
        raise err
