"""
Pytest configuration and fixtures for o11n-deploy tests.
"""

import base64
from collections import defaultdict
from pathlib import Path
from typing import Dict, List, Tuple

import httpx
import pytest
from structlog.contextvars import clear_contextvars

from o11n_deploy.core.config import DeploySettings
from o11n_deploy.deploy.transport import new_client


PLUGIN_AUTH = ("vcoadmin", "vcoadmin")
CONFIG_AUTH = ("root", "s3cret")


class FakeOrchestratorServer:
    """In-memory Orchestrator speaking through httpx.MockTransport.

    Responses are queued per (method, path); the last queued response of an
    endpoint is repeated once the queue runs dry.
    """

    def __init__(self):
        self._responses: Dict[Tuple[str, str], List] = defaultdict(list)
        self.requests: List[httpx.Request] = []

    def queue(self, method: str, path: str, *responses) -> None:
        """Queue responses: an int status, a (status, json) tuple or an exception."""
        self._responses[(method, path)].extend(responses)

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queued = self._responses.get((request.method, request.url.path))
        if not queued:
            return httpx.Response(500, json={"error": "no response queued"})
        item = queued.pop(0) if len(queued) > 1 else queued[0]
        if isinstance(item, Exception):
            raise item
        if isinstance(item, tuple):
            status, body = item
            if isinstance(body, (bytes, str)):
                return httpx.Response(status, content=body)
            return httpx.Response(status, json=body)
        return httpx.Response(item)

    def client_factory(self, credentials):
        return new_client(True, credentials, transport=httpx.MockTransport(self.handler))


def basic_auth(request: httpx.Request) -> Tuple[str, str]:
    scheme, _, token = request.headers["Authorization"].partition(" ")
    assert scheme == "Basic"
    user, _, password = base64.b64decode(token).decode().partition(":")
    return user, password


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch, tmp_path):
    """Keep O11N_* variables and stray .env files out of the tests."""
    import os

    for key in list(os.environ):
        if key.upper().startswith("O11N_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    clear_contextvars()
    yield
    clear_contextvars()


@pytest.fixture
def fake_server() -> FakeOrchestratorServer:
    return FakeOrchestratorServer()


@pytest.fixture
def bundle_dir(tmp_path: Path) -> Path:
    target = tmp_path / "target"
    target.mkdir()
    (target / "o11nplugin-demo-1.0.dar").write_bytes(b"PK\x03\x04dar-bytes")
    (target / "o11nplugin-demo-1.0.vmoapp").write_bytes(b"PK\x03\x04vmoapp-bytes")
    return target


@pytest.fixture
def make_settings(bundle_dir: Path):
    def _make(**overrides) -> DeploySettings:
        values = dict(
            server="vro.example.com",
            plugin_service_user=PLUGIN_AUTH[0],
            plugin_service_password=PLUGIN_AUTH[1],
            config_service_user=CONFIG_AUTH[0],
            config_service_password=CONFIG_AUTH[1],
            plugin_file_path=bundle_dir,
            plugin_file_name="o11nplugin-demo-1.0",
        )
        values.update(overrides)
        return DeploySettings(**values)

    return _make
