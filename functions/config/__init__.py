"""Gracemark configuration.

This package contains:
- settings: Environment variables and configuration
- secrets: Unified secret access (Firebase Secrets Manager)
- errors: Custom exceptions and error codes
"""

from config.settings import settings
from config.errors import GracemarkError
from config.secrets import (
    get_secret,
    get_openai_api_key,
    get_deel_organization_token,
    get_exchangerate_api_key,
)

__all__ = [
    "settings",
    "GracemarkError",
    "get_secret",
    "get_openai_api_key",
    "get_deel_organization_token",
    "get_exchangerate_api_key",
]
