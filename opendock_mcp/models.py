"""Pydantic models for the OpenDock MCP Server"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Mapping, Optional, Sequence, Union


# ==============================================================================
# Configuration Models
# ==============================================================================

class OpendockConfig(BaseModel):
    """Credentials and endpoint for the OpenDock API.

    Immutable for the lifetime of the process. At least one of ``token`` or
    the ``username``/``password`` pair is present (checked by ``load_config``).
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        frozen=True,
    )

    api_url: str = Field(..., description="Base URL of the OpenDock API")
    username: Optional[str] = Field(default=None, description="Login email")
    password: Optional[str] = Field(default=None, description="Login password")
    token: Optional[str] = Field(default=None, description="Static bearer token")


# ==============================================================================
# Auth Endpoint Models
# ==============================================================================

class TokenResponse(BaseModel):
    """Body returned by /auth/login and /auth/refresh."""
    access_token: str = Field(..., min_length=1, description="Bearer token")


class LoginRequest(BaseModel):
    """Body sent to /auth/login."""
    email: str
    password: str


# ==============================================================================
# Request Types
# ==============================================================================

QueryValue = Union[str, int, float, bool, Sequence[str], None]
QueryParams = Mapping[str, QueryValue]
