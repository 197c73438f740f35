"""
Secrets management for docdetect using the system keyring.

Stores provider API keys outside config files. The `keyring` library
supports:
- Windows Credential Manager
- macOS Keychain
- Linux Secret Service (GNOME Keyring, KWallet)
"""

import logging
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

logger = logging.getLogger(__name__)

# Service name for keyring entries
SERVICE_NAME = "docdetect"


def _username(provider: str) -> str:
    return f"{provider}_api_key"


def get_api_key(provider: str) -> Optional[str]:
    """
    Retrieve API key for a provider from secure storage.

    Args:
        provider: Provider name (e.g., 'openai', 'anthropic')

    Returns:
        API key string or None if not found or the keyring is unusable
    """
    try:
        key = keyring.get_password(SERVICE_NAME, _username(provider))
    except KeyringError as e:
        logger.error(f"Failed to retrieve API key for {provider}: {e}")
        return None
    if key:
        logger.debug(f"Retrieved API key for {provider} from keyring")
    return key


def set_api_key(provider: str, api_key: str) -> bool:
    """
    Store API key for a provider in secure storage.

    Returns:
        True if successful, False otherwise
    """
    try:
        keyring.set_password(SERVICE_NAME, _username(provider), api_key)
    except KeyringError as e:
        logger.error(f"Failed to store API key for {provider}: {e}")
        return False
    logger.info(f"Stored API key for {provider} in keyring")
    return True


def delete_api_key(provider: str) -> bool:
    """
    Remove API key for a provider from secure storage.

    Returns:
        True if a key was deleted
    """
    try:
        keyring.delete_password(SERVICE_NAME, _username(provider))
    except PasswordDeleteError:
        logger.warning(f"No API key found for {provider} to delete")
        return False
    except KeyringError as e:
        logger.error(f"Failed to delete API key for {provider}: {e}")
        return False
    logger.info(f"Deleted API key for {provider} from keyring")
    return True
