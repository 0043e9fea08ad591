"""Client configuration and API token storage."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path

import httpx
import keyring
from keyring.errors import PasswordDeleteError

logger = logging.getLogger(__name__)

SERVICE_NAME = "fuzzlink"
TOKEN_ENV_VAR = "FUZZLINK_API_TOKEN"
SERVER_ENV_VAR = "FUZZLINK_SERVER"

DEFAULT_SERVER = "https://app.code-intelligence.com"
DEFAULT_CONFIG_PATH = Path("~/.config/fuzzlink/config.json")


@dataclass
class ClientConfig:
    """Settings for talking to a fuzzing server."""

    server: str = DEFAULT_SERVER
    timeout_seconds: float = 30.0
    project: str | None = None


def load_client_config(config_path: Path | None = None) -> ClientConfig:
    """Load client configuration from JSON, falling back to defaults.

    Reads ``~/.config/fuzzlink/config.json`` when *config_path* is ``None``.
    Unknown keys are ignored.  ``FUZZLINK_SERVER`` overrides the server.

    Args:
        config_path: Optional explicit path to the config file.

    Returns:
        ClientConfig populated from file + environment overrides.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH.expanduser()

    data: dict = {}
    if config_path.exists():
        with open(config_path) as f:
            data = json.load(f)

    field_names = {f.name for f in fields(ClientConfig)}
    kwargs = {k: v for k, v in data.items() if k in field_names}
    config = ClientConfig(**kwargs)

    server = os.environ.get(SERVER_ENV_VAR)
    if server:
        config.server = server
    return config


def _is_valid_server_url(url: str) -> bool:
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.host)


def validate_and_normalize_server_url(server: str) -> str:
    """Return *server* as an ``http(s)`` URL without trailing slashes.

    A missing scheme is replaced by ``https://``.

    Raises:
        ValueError: If no valid URL can be made from *server*.
    """
    server = server.strip()
    if not _is_valid_server_url(server):
        candidate = f"https://{server}"
        if "://" in server or not _is_valid_server_url(candidate):
            raise ValueError(f"server {server!r} is not a valid URL")
        server = candidate
    return server.rstrip("/")


# ---------------------------------------------------------------------------
# Token storage
# ---------------------------------------------------------------------------


def get_token(server: str) -> str | None:
    """Get the API token for *server*: system keyring first, then env var."""
    token = keyring.get_password(SERVICE_NAME, server)
    if token:
        return token

    token = os.environ.get(TOKEN_ENV_VAR)
    if token:
        return token
    return None


def store_token(server: str, token: str) -> None:
    """Store *token* for *server* in the system keyring."""
    keyring.set_password(SERVICE_NAME, server, token)
    logger.debug("Stored API token for %s in keyring (service: %s)", server, SERVICE_NAME)


def delete_token(server: str) -> bool:
    """Remove the stored token for *server*; returns ``False`` if none existed."""
    try:
        keyring.delete_password(SERVICE_NAME, server)
    except PasswordDeleteError:
        return False
    return True
