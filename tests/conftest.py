import httpx
import pytest

CREDENTIAL_VARS = (
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "AGENTCI_JUDGE_PROVIDER",
    "AGENTCI_JUDGE_MODEL",
    "AGENTCI_TIMEOUT_SECONDS",
)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch, tmp_path):
    """Keep real credentials and any local .env out of the tests."""
    for var in CREDENTIAL_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def mock_http():
    """Build an ``httpx.MockTransport`` that records requests and returns a canned reply."""

    def factory(json_body=None, status=200, text=None):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if text is not None:
                return httpx.Response(status, text=text)
            return httpx.Response(status, json=json_body)

        return httpx.MockTransport(handler), requests

    return factory

