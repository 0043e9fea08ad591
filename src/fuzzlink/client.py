"""Authenticated client for the fuzzing server REST API.

Simple calls (project listing, starting a run) go through
:meth:`APIClient.send_request`, which enforces a total deadline and reports
any failure to obtain a response as
:class:`~fuzzlink.errors.APIConnectionError`.  Bundle uploads are streamed by
:class:`~fuzzlink.upload.BundleUpload` and have no deadline.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import platform
from typing import Any
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from fuzzlink import __version__
from fuzzlink.errors import (
    APIError,
    ProtocolViolationError,
    response_to_api_error,
    wrap_connection_error,
)
from fuzzlink.models import Artifact, Project, ProjectList
from fuzzlink.progress import ProgressSink
from fuzzlink.transport import build_async_client
from fuzzlink.upload import BundleUpload

logger = logging.getLogger(__name__)

CLIENT_ID = "fuzzlink"

# Conservative deadline for the API server to answer simple requests
DEFAULT_TIMEOUT = 30.0

# Characters Go's url.PathEscape leaves alone in a path
_PATH_SAFE = "/:@!$&'()*+,;="

_ARCH_ALIASES: dict[str, str] = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i686": "386",
}


def build_user_agent(version: str = __version__) -> str:
    """Return ``"fuzzlink/<version> <os>-<arch>"``, e.g. ``fuzzlink/0.1.0 linux-amd64``."""
    system = platform.system().lower() or "unknown"
    machine = platform.machine().lower()
    arch = _ARCH_ALIASES.get(machine, machine or "unknown")
    return f"{CLIENT_ID}/{version} {system}-{arch}"


def join_url(base: str, *parts: str) -> str:
    """Join *parts* onto *base* with exactly one ``/`` between segments.

    Parts are percent-escaped as URL path segments; ``/`` inside a part still
    separates segments, but ``?``, ``#``, spaces and ``%`` cannot change the
    target.
    """
    url = base.rstrip("/")
    for part in parts:
        part = quote(part.strip("/"), safe=_PATH_SAFE)
        if part:
            url = f"{url}/{part}"
    return url


class APIClient:
    """Client for one fuzzing server.

    Usage::

        client = APIClient("https://fuzzing.example.com")
        artifact = await client.upload_bundle("bundle.tar.gz", "my-project", token)
        run_name = await client.start_remote_fuzzing_run(artifact, token)

    Args:
        server: Base server URL.
        version: Client version reported in the ``User-Agent`` header.
        transport: Optional httpx transport; replaces the proxy-aware
            default (used by tests).
        timeout: Default deadline in seconds for :meth:`send_request`.
    """

    def __init__(
        self,
        server: str,
        version: str = __version__,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.server = server
        self.user_agent = build_user_agent(version)
        self.timeout = timeout
        self._transport = transport

    # ------------------------------------------------------------------
    # Generic requests
    # ------------------------------------------------------------------

    async def send_request(
        self,
        method: str,
        path: str,
        token: str,
        content: bytes | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """Send an authenticated request and return the completed response.

        The status code is not interpreted; the body has been read.

        Raises:
            APIConnectionError: No response within *timeout* seconds, or the
                round trip failed.
            ProtocolViolationError: The body failed after the headers arrived.
        """
        if timeout is None:
            timeout = self.timeout
        # path is already escaped (see join_url)
        url = f"{self.server.rstrip('/')}/{path.lstrip('/')}"
        headers = {
            "User-Agent": self.user_agent,
            "Authorization": f"Bearer {token}",
        }
        async with build_async_client(timeout=timeout, transport=self._transport) as http:
            request = http.build_request(method, url, content=content, headers=headers)
            try:
                response = await asyncio.wait_for(http.send(request, stream=True), timeout)
            except (httpx.TransportError, asyncio.TimeoutError) as exc:
                raise wrap_connection_error(exc) from exc

            try:
                await response.aread()
            except httpx.HTTPError as exc:
                raise ProtocolViolationError(
                    f"Failed to read response from {method} {url}: {exc}"
                ) from exc
            finally:
                await response.aclose()
        logger.debug("%s %s -> %d", method, url, response.status_code)
        return response

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    async def list_projects(self, token: str) -> list[Project]:
        """Return the projects visible to *token*.

        Raises:
            APIError: Non-2xx response (401 for an invalid token).
            ProtocolViolationError: Malformed response body.
        """
        response = await self.send_request("GET", "/v1/projects", token)
        if not response.is_success:
            raise await response_to_api_error(response)
        try:
            return ProjectList.model_validate_json(response.content).projects
        except ValidationError as exc:
            raise ProtocolViolationError(
                f"Failed to parse project list: {exc}"
            ) from exc

    async def is_token_valid(self, token: str) -> bool:
        """Probe the server with *token*.

        A 401 means the token is invalid and yields ``False``; every other
        error propagates unchanged.
        """
        # TODO: switch to a dedicated token endpoint once the server exposes one
        try:
            await self.list_projects(token)
        except APIError as exc:
            if exc.status_code == 401:
                return False
            raise
        return True

    # ------------------------------------------------------------------
    # Artifacts and runs
    # ------------------------------------------------------------------

    async def upload_bundle(
        self,
        path: str | os.PathLike[str],
        project: str,
        token: str,
        progress: ProgressSink | None = None,
    ) -> Artifact:
        """Stream *path* to the server as a new artifact of *project*.

        Raises:
            SignalInterruptedError: The user interrupted the upload.
            LocalIOError: The bundle could not be read.
            APIConnectionError: The server could not be reached.
            APIError: The server rejected the upload.
            ProtocolViolationError: The server's answer could not be parsed.
        """
        url = join_url(self.server, "v2", project, "artifacts", "import")
        async with build_async_client(timeout=None, transport=self._transport) as http:
            upload = BundleUpload(
                http,
                url,
                path,
                token,
                self.user_agent,
                progress=progress,
            )
            body = await upload.run()

        try:
            artifact = Artifact.model_validate_json(body)
        except ValidationError as exc:
            logger.error("Failed to parse response from upload bundle API call: %s", exc)
            raise ProtocolViolationError(
                f"Failed to parse response from upload bundle API call: {exc}"
            ) from exc
        logger.info("Uploaded %s as %s", artifact.display_name, artifact.resource_name)
        return artifact

    async def start_remote_fuzzing_run(self, artifact: Artifact, token: str) -> str:
        """Start a fuzzing run for *artifact* and return the run name.

        Raises:
            APIError: Non-2xx response.
            ProtocolViolationError: The response lacks a string ``name``.
        """
        path = join_url("/v1", f"{artifact.resource_name}:run")
        response = await self.send_request("POST", path, token)
        if not response.is_success:
            raise await response_to_api_error(response)

        try:
            payload: Any = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ProtocolViolationError(f"Server response is not JSON: {exc}") from exc

        if not isinstance(payload, dict) or "name" not in payload:
            msg = f"Server response doesn't include run name: {json.dumps(payload, indent=2)}"
            logger.error(msg)
            raise ProtocolViolationError(msg)
        run_name = payload["name"]
        if not isinstance(run_name, str):
            raise ProtocolViolationError(f"Run name is not a string: {run_name!r}")
        return run_name
