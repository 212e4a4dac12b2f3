"""OpenDock MCP Server.

An MCP server that exposes the OpenDock dock-scheduling API as tools,
with automatic token management and single-shot request retries.

Architecture:
- AuthManager holds the bearer token and renews it via refresh or login
- ApiClient retries once on 401, 429 and 502/503/504
- Tools map agent calls onto ApiClient requests

Run with:
    python -m opendock_mcp.main
"""
from .token_manager import AuthManager, AuthenticationError, TokenRefreshError
from .api_client import ApiClient, APIError, build_query, parse_retry_after
from .config import ConfigurationError, load_config
from .models import OpendockConfig, QueryParams, TokenResponse
from .tools import OpendockTools, register_tools

__all__ = [
    # Token management
    "AuthManager",
    "AuthenticationError",
    "TokenRefreshError",
    # API client
    "ApiClient",
    "APIError",
    "build_query",
    "parse_retry_after",
    # Configuration
    "ConfigurationError",
    "load_config",
    # Models
    "OpendockConfig",
    "QueryParams",
    "TokenResponse",
    # Tools
    "OpendockTools",
    "register_tools",
]
