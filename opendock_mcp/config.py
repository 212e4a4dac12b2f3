"""Configuration for the OpenDock MCP Server"""
import logging
import os
from typing import Mapping, Optional

from .models import OpendockConfig

logger = logging.getLogger(__name__)

# OpenDock API Configuration
DEFAULT_API_URL = "https://neutron.opendock.com"

# Per-call timeout for auth and data requests (in seconds)
REQUEST_TIMEOUT_SECONDS = 30.0

# Token refresh buffer (refresh if token expires within this many seconds)
TOKEN_REFRESH_BUFFER_SECONDS = 60

# Retry policy (in seconds)
RETRY_DELAY_SECONDS = 1.0
MAX_RETRY_DELAY_SECONDS = 60.0
RETRYABLE_STATUS_CODES = frozenset({502, 503, 504})

# Logging
LOG_LEVEL = os.getenv("OPENDOCK_LOG_LEVEL", "INFO").upper()


class ConfigurationError(ValueError):
    """Raised when the environment does not provide usable credentials."""
    pass


def load_config(environ: Optional[Mapping[str, str]] = None) -> OpendockConfig:
    """Build the server configuration from environment variables.

    Args:
        environ: Mapping to read from (defaults to ``os.environ``)

    Returns:
        The validated configuration

    Raises:
        ConfigurationError: If neither a token nor a username/password pair is set
    """
    env = os.environ if environ is None else environ

    api_url = env.get("OPENDOCK_API_URL") or DEFAULT_API_URL
    username = env.get("OPENDOCK_USERNAME") or None
    password = env.get("OPENDOCK_PASSWORD") or None
    token = env.get("OPENDOCK_TOKEN") or None

    if not token and (not username or not password):
        raise ConfigurationError(
            "Either OPENDOCK_TOKEN or both OPENDOCK_USERNAME and OPENDOCK_PASSWORD must be set"
        )

    if token and username:
        logger.warning(
            "[Config] Both OPENDOCK_TOKEN and OPENDOCK_USERNAME are set. Using OPENDOCK_TOKEN."
        )

    return OpendockConfig(
        api_url=api_url,
        username=username,
        password=password,
        token=token,
    )
