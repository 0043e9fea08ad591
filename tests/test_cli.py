"""CLI tests driven through typer's CliRunner with a mocked server."""

from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest
from typer.testing import CliRunner

from fuzzlink import cli
from fuzzlink.client import APIClient
from fuzzlink.config import SERVICE_NAME

SERVER = "https://fuzzing.example.com"

runner = CliRunner()


@pytest.fixture
def server_handler(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Route every CLI-created APIClient to a mutable fake server."""
    routes: dict[str, httpx.Response] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        for suffix, response in routes.items():
            if request.url.path.endswith(suffix):
                return response
        return httpx.Response(404, json={"code": 5, "message": "no route"})

    monkeypatch.setattr(
        cli,
        "APIClient",
        lambda server, **kwargs: APIClient(
            server, transport=httpx.MockTransport(handler), **kwargs
        ),
    )
    monkeypatch.setattr("fuzzlink.config.DEFAULT_CONFIG_PATH", tmp_path / "config.json")
    monkeypatch.setenv("FUZZLINK_SERVER", SERVER)
    return routes


class TestLogin:
    def test_token_from_stdin_is_stored(self, server_handler, fake_keyring):
        server_handler["/v1/projects"] = httpx.Response(200, json={"projects": []})

        result = runner.invoke(cli.app, ["login"], input="tok-123\n")

        assert result.exit_code == 0
        assert fake_keyring.passwords[(SERVICE_NAME, SERVER)] == "tok-123"

    def test_rejected_token_fails(self, server_handler, fake_keyring):
        server_handler["/v1/projects"] = httpx.Response(401, json={"code": 16, "message": "bad"})

        result = runner.invoke(cli.app, ["login"], input="tok-123\n")

        assert result.exit_code == 1
        assert fake_keyring.passwords == {}

    def test_valid_stored_token_skips_prompt(self, server_handler, fake_keyring, monkeypatch):
        monkeypatch.setattr(cli, "_stdin_is_terminal", lambda: True)
        fake_keyring.set_password(SERVICE_NAME, SERVER, "tok")
        server_handler["/v1/projects"] = httpx.Response(200, json={"projects": []})

        result = runner.invoke(cli.app, ["login"])

        assert result.exit_code == 0, result.output
        assert "already logged in" in result.output

    def test_revoked_stored_token_fails(self, server_handler, fake_keyring, monkeypatch):
        monkeypatch.setattr(cli, "_stdin_is_terminal", lambda: True)
        fake_keyring.set_password(SERVICE_NAME, SERVER, "tok")
        server_handler["/v1/projects"] = httpx.Response(401, json={"code": 16, "message": "revoked"})

        result = runner.invoke(cli.app, ["login"])

        assert result.exit_code == 1
        assert "already logged in" not in result.output
        assert fake_keyring.passwords[(SERVICE_NAME, SERVER)] == "tok"


class TestClientConfig:
    def test_configured_timeout_reaches_client(self, monkeypatch, tmp_path: Path):
        config_path = tmp_path / "config.json"
        config_path.write_text(json.dumps({"timeout_seconds": 7.5}))
        monkeypatch.setattr("fuzzlink.config.DEFAULT_CONFIG_PATH", config_path)
        monkeypatch.setenv("FUZZLINK_SERVER", SERVER)

        client = cli._make_client(None)

        assert client.timeout == 7.5
        assert client.server == SERVER


class TestRemoteRun:
    def test_upload_then_start_run(self, server_handler, fake_keyring, tmp_path: Path):
        fake_keyring.set_password(SERVICE_NAME, SERVER, "tok")
        server_handler["/artifacts/import"] = httpx.Response(
            200,
            json={"display-name": "bundle.tar", "resource-name": "projects/p1/artifacts/a1"},
        )
        server_handler[":run"] = httpx.Response(200, json={"name": "projects/p1/runs/r1"})
        bundle = tmp_path / "bundle.tar"
        bundle.write_bytes(b"\x00" * 4096)

        result = runner.invoke(cli.app, ["remote-run", str(bundle), "--project", "p1"])

        assert result.exit_code == 0, result.output
        assert "projects/p1/runs/r1" in result.output

    def test_rejected_upload_exits_nonzero(self, server_handler, fake_keyring, tmp_path: Path):
        fake_keyring.set_password(SERVICE_NAME, SERVER, "tok")
        server_handler["/artifacts/import"] = httpx.Response(
            403, json={"code": 7, "message": "forbidden"}
        )
        bundle = tmp_path / "bundle.tar"
        bundle.write_bytes(b"data")

        result = runner.invoke(cli.app, ["remote-run", str(bundle), "--project", "p1"])

        assert result.exit_code == 1

    def test_requires_login(self, server_handler, fake_keyring, tmp_path: Path):
        bundle = tmp_path / "bundle.tar"
        bundle.write_bytes(b"data")

        result = runner.invoke(cli.app, ["remote-run", str(bundle), "--project", "p1"])

        assert result.exit_code == 1
