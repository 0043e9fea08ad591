"""Authentication status helpers built on :class:`~fuzzlink.client.APIClient`."""

from __future__ import annotations

import logging

from fuzzlink.client import APIClient
from fuzzlink.config import get_token, store_token
from fuzzlink.errors import APIConnectionError

logger = logging.getLogger(__name__)


class InvalidTokenError(Exception):
    """Raised when the server rejects an API token."""


async def check_and_store_token(client: APIClient, token: str) -> None:
    """Validate *token* against the server and store it in the keyring.

    Raises:
        InvalidTokenError: If the server answers 401.
        FuzzlinkError: On any other failure of the check.
    """
    token = token.strip()
    if not token:
        raise InvalidTokenError("API token cannot be empty")
    if not await client.is_token_valid(token):
        raise InvalidTokenError(
            "Failed to authenticate with the provided API access token.\n"
            "Please check that the token is correct and has not been revoked."
        )
    store_token(client.server, token)
    logger.info("Successfully authenticated with %s", client.server)


async def get_auth_status(client: APIClient) -> bool:
    """Return whether a stored token for ``client.server`` is still valid.

    Errors of the validity check (including connection errors) propagate.
    """
    token = get_token(client.server)
    if not token:
        return False

    valid = await client.is_token_valid(token)
    if not valid:
        logger.warning(
            "Failed to authenticate with the configured API access token. "
            "It's possible that the token has been revoked."
        )
    return valid


async def is_authenticated(client: APIClient) -> bool:
    """Like :func:`get_auth_status`, but an unreachable server yields ``False``.

    Used by optional steps that should be skipped rather than fail when the
    server cannot be reached.
    """
    try:
        return await get_auth_status(client)
    except APIConnectionError as exc:
        logger.warning("Connection to API failed. Skipping sync.")
        logger.debug("Connection error: %s (continuing gracefully)", exc)
        return False
