from unittest.mock import patch

import httpx
from pydantic import SecretStr

from o11n_deploy.core.models import Credentials
from o11n_deploy.deploy.transport import new_client


def test_insecure_client_skips_verification():
    with patch("httpx.Client") as Client:
        new_client(True)

    kwargs = Client.call_args.kwargs
    assert kwargs["verify"] is False
    assert kwargs["auth"] is None


def test_secure_client_verifies():
    with patch("httpx.Client") as Client:
        new_client(False, timeout=12.5)

    kwargs = Client.call_args.kwargs
    assert kwargs["verify"] is True
    assert kwargs["timeout"] == httpx.Timeout(12.5)


def test_client_sends_basic_auth():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["authorization"] = request.headers.get("Authorization")
        return httpx.Response(200)

    creds = Credentials(username="vcoadmin", password=SecretStr("vcoadmin"))
    with new_client(True, creds, transport=httpx.MockTransport(handler)) as client:
        client.get("https://vro.example.com:8281/vco/api/plugins")

    assert seen["authorization"] == "Basic dmNvYWRtaW46dmNvYWRtaW4="


def test_client_is_closed_after_context():
    client = new_client(True, transport=httpx.MockTransport(lambda r: httpx.Response(204)))
    with client:
        pass

    assert client.is_closed
