"""Shared pytest fixtures for fuzzlink tests.

Provides bundle files of various sizes, a mock-transport client factory,
an in-memory keyring, and a proxy-free environment.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

from fuzzlink.client import APIClient

SERVER = "https://fuzzing.example.com"

_PROXY_VARS = (
    "http_proxy",
    "https_proxy",
    "all_proxy",
    "no_proxy",
    "HTTP_PROXY",
    "HTTPS_PROXY",
    "ALL_PROXY",
    "NO_PROXY",
)


@pytest.fixture(autouse=True)
def clean_proxy_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Run every test without ambient proxy settings."""
    for var in _PROXY_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def make_bundle(tmp_path: Path) -> Callable[[int], Path]:
    """Factory writing a bundle of *size* pseudo-random bytes."""

    def _make(size: int, name: str = "bundle.tar.gz") -> Path:
        path = tmp_path / name
        path.write_bytes(os.urandom(size))
        return path

    return _make


@pytest.fixture
def make_client() -> Callable[..., APIClient]:
    """Factory returning an APIClient whose requests go to *handler*."""

    def _make(handler: Callable, server: str = SERVER) -> APIClient:
        return APIClient(server, version="1.2.3", transport=httpx.MockTransport(handler))

    return _make


class FakeKeyring:
    """Dict-backed stand-in for the system keyring."""

    def __init__(self) -> None:
        self.passwords: dict[tuple[str, str], str] = {}

    def get_password(self, service: str, username: str) -> str | None:
        return self.passwords.get((service, username))

    def set_password(self, service: str, username: str, password: str) -> None:
        self.passwords[(service, username)] = password

    def delete_password(self, service: str, username: str) -> None:
        from keyring.errors import PasswordDeleteError

        if (service, username) not in self.passwords:
            raise PasswordDeleteError("not found")
        del self.passwords[(service, username)]


@pytest.fixture
def fake_keyring(monkeypatch: pytest.MonkeyPatch) -> FakeKeyring:
    """Replace keyring access in fuzzlink.config with an in-memory store."""
    fake = FakeKeyring()
    monkeypatch.setattr("fuzzlink.config.keyring.get_password", fake.get_password)
    monkeypatch.setattr("fuzzlink.config.keyring.set_password", fake.set_password)
    monkeypatch.setattr("fuzzlink.config.keyring.delete_password", fake.delete_password)
    monkeypatch.delenv("FUZZLINK_API_TOKEN", raising=False)
    return fake
