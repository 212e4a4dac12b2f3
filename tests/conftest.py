"""Shared fixtures for the OpenDock MCP tests."""
import pytest

from opendock_mcp.models import OpendockConfig

from tests.helpers import API_URL


@pytest.fixture
def credentials_config() -> OpendockConfig:
    return OpendockConfig(api_url=API_URL, username="user@example.com", password="pass")
