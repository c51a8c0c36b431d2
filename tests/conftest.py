import json
import os
import sys
from unittest.mock import Mock

import pytest

# Ensure project root is on sys.path so top-level modules (e.g., utils, runway_mcp_server) are importable
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from utils.runwayUtils import RunwayConfig  # noqa: E402


def _response(status_code=200, payload=None, text=None):
    response = Mock()
    response.status_code = status_code
    if payload is not None:
        response.text = json.dumps(payload)
        response.json.return_value = payload
    else:
        response.text = text or ""
        response.json.side_effect = ValueError("Expecting value")
    response.content = response.text.encode()
    return response


@pytest.fixture
def make_response():
    """Factory for stand-ins of requests.Response."""
    return _response


@pytest.fixture
def runway_config():
    return RunwayConfig(apiKey="key_configured_1234", baseUrl="https://api.example.test/v1")


@pytest.fixture
def server(monkeypatch, runway_config):
    import runway_mcp_server

    monkeypatch.setattr(runway_mcp_server, "config", runway_config)
    return runway_mcp_server


@pytest.fixture
def server_without_key(monkeypatch):
    import runway_mcp_server

    monkeypatch.setattr(runway_mcp_server, "config", RunwayConfig(apiKey=None))
    return runway_mcp_server
