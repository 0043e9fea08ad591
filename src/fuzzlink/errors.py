"""Error taxonomy for the fuzzing server client.

Every error raised by this package derives from :class:`FuzzlinkError` and
carries an explicit :class:`ErrorKind`, so callers can branch on
``err.kind`` instead of type-testing:

* ``connection`` -- the HTTP round trip never completed
* ``api`` -- the server answered with a non-2xx status
* ``local_io`` -- the bundle could not be read from disk
* ``signal`` -- the user interrupted the operation
* ``protocol`` -- a success response could not be understood
"""

from __future__ import annotations

import logging
import signal
from enum import Enum

import httpx
from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    """Enumerated kind carried by every :class:`FuzzlinkError`."""

    CONNECTION = "connection"
    API = "api"
    LOCAL_IO = "local_io"
    SIGNAL = "signal"
    PROTOCOL = "protocol"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class FuzzlinkError(Exception):
    """Base class for all client errors."""

    kind: ErrorKind


class APIConnectionError(FuzzlinkError):
    """Raised when a request fails before a response was obtained.

    Covers DNS, TCP and TLS failures, timeouts, and a request body that was
    aborted before the server answered.  Callers may treat it as "server
    unreachable" and degrade gracefully.
    """

    kind = ErrorKind.CONNECTION


class APIError(FuzzlinkError):
    """Raised when the server answers with a non-2xx status code."""

    kind = ErrorKind.API

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message

    def __repr__(self) -> str:
        return f"APIError(status_code={self.status_code}, message={self.message!r})"


class LocalIOError(FuzzlinkError):
    """Raised when the bundle file cannot be opened, stat'ed or read."""

    kind = ErrorKind.LOCAL_IO


class SignalInterruptedError(FuzzlinkError):
    """Raised when an OS signal cancelled an in-flight upload."""

    kind = ErrorKind.SIGNAL

    def __init__(self, signum: int) -> None:
        self.signum = signal.Signals(signum)
        super().__init__(f"Interrupted by {self.signum.name}")


class ProtocolViolationError(FuzzlinkError):
    """Raised when a success response is malformed or incomplete.

    Not retryable: the server accepted the request but the client cannot
    make sense of its answer.
    """

    kind = ErrorKind.PROTOCOL


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


class _ErrorBody(BaseModel):
    code: int | None = None
    message: str


def status_text(response: httpx.Response) -> str:
    """Return the status line text, e.g. ``"401 Unauthorized"``."""
    return f"{response.status_code} {response.reason_phrase}".rstrip()


async def response_to_api_error(response: httpx.Response) -> APIError:
    """Turn a received non-2xx response into an :class:`APIError`.

    The body is read once.  A JSON ``{code, message}`` body contributes its
    ``message``; any other body is included verbatim.  If the body cannot
    be read, only the status text is used.
    """
    msg = status_text(response)
    try:
        body = await response.aread()
    except (httpx.HTTPError, httpx.StreamError) as exc:
        logger.debug("Could not read error response body: %s", exc)
        return APIError(response.status_code, msg)

    try:
        parsed = _ErrorBody.model_validate_json(body)
    except ValidationError:
        text = body.decode("utf-8", errors="replace")
        return APIError(response.status_code, f"{msg}: {text}")
    return APIError(response.status_code, f"{msg}: {parsed.message}")


def wrap_connection_error(exc: BaseException) -> APIConnectionError:
    """Wrap a failure that happened before any response was received."""
    err = APIConnectionError(str(exc) or exc.__class__.__name__)
    err.__cause__ = exc
    return err
