"""Unified secret access for Gracemark Python functions.

Works in both local development (emulator) and production environments.

In production: Uses Google Cloud Secret Manager (Firebase Secrets)
In emulator: Falls back to environment variables

Usage:
    from config.secrets import get_deel_organization_token, get_secret

    token = get_deel_organization_token()
    custom_secret = get_secret('MY_SECRET_NAME')
"""

import os
import logging
from functools import lru_cache
from typing import Optional

logger = logging.getLogger(__name__)


def is_emulator_mode() -> bool:
    """Check if running in Firebase emulator mode."""
    return (
        os.environ.get('FUNCTIONS_EMULATOR') == 'true' or
        os.environ.get('FIRESTORE_EMULATOR_HOST') is not None
    )


def get_secret(secret_id: str) -> Optional[str]:
    """
    Get secret from Firebase Secrets Manager (production) or environment (local).

    Args:
        secret_id: The name of the secret (e.g., 'DEEL_ORGANIZATION_TOKEN')

    Returns:
        The secret value, or None if not found
    """
    if is_emulator_mode():
        value = os.environ.get(secret_id)
        if value:
            logger.debug(f"Secret {secret_id} loaded from environment (emulator mode)")
        else:
            logger.warning(f"Secret {secret_id} not found in environment variables")
        return value

    try:
        from google.cloud import secretmanager

        client = secretmanager.SecretManagerServiceClient()
        project_id = os.environ.get('GCLOUD_PROJECT') or os.environ.get('GOOGLE_CLOUD_PROJECT', 'gracemark-dev')
        name = f"projects/{project_id}/secrets/{secret_id}/versions/latest"

        response = client.access_secret_version(request={"name": name})
        value = response.payload.data.decode("UTF-8")
        logger.debug(f"Secret {secret_id} loaded from Secret Manager")
        return value

    except ImportError:
        logger.warning("google-cloud-secret-manager not installed, falling back to environment")
        return os.environ.get(secret_id)

    except Exception as e:
        logger.warning(f"Failed to load secret {secret_id} from Secret Manager: {e}")
        return os.environ.get(secret_id)


# Cached accessors, one Secret Manager round-trip per process

@lru_cache(maxsize=1)
def get_openai_api_key() -> Optional[str]:
    """Get OpenAI API key from secrets."""
    return get_secret('OPENAI_API_KEY')


@lru_cache(maxsize=1)
def get_deel_organization_token() -> Optional[str]:
    """Get the Deel organization bearer token from secrets."""
    return get_secret('DEEL_ORGANIZATION_TOKEN')


@lru_cache(maxsize=1)
def get_exchangerate_api_key() -> Optional[str]:
    """Get the Exchangerate-API key; the keyless endpoint is used when unset."""
    return get_secret('EXCHANGERATE_API_KEY')


def clear_secret_cache() -> None:
    """Clear cached secrets. Useful for testing or when secrets are rotated."""
    get_openai_api_key.cache_clear()
    get_deel_organization_token.cache_clear()
    get_exchangerate_api_key.cache_clear()
