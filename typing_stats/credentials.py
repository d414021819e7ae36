"""Remote sync token storage using the system keychain."""

import logging
from typing import Optional

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

__all__ = ["CredentialStore"]

logger = logging.getLogger(__name__)

SERVICE_NAME = "Typing Stats"
ACCOUNT_NAME = "remote_sync_token"


class CredentialStore:
    """Keeps the remote store API token out of the JSON config file."""

    def __init__(self, service_name: str = SERVICE_NAME):
        self.service_name = service_name

    def store_token(self, token: str) -> bool:
        """Store the API token.

        Returns:
            True if stored successfully
        """
        try:
            keyring.set_password(self.service_name, ACCOUNT_NAME, token)
            logger.info("Remote sync token stored")
            return True
        except KeyringError as e:
            logger.error(f"Failed to store remote sync token: {e}")
            return False

    def load_token(self) -> Optional[str]:
        """Load the API token, or None if absent or the keychain is unavailable."""
        try:
            return keyring.get_password(self.service_name, ACCOUNT_NAME) or None
        except KeyringError as e:
            logger.error(f"Failed to load remote sync token: {e}")
            return None

    def delete_token(self) -> bool:
        """Delete the stored token.

        Returns:
            True if deleted (or didn't exist)
        """
        try:
            keyring.delete_password(self.service_name, ACCOUNT_NAME)
            logger.info("Remote sync token deleted")
            return True
        except PasswordDeleteError:
            return True
        except KeyringError as e:
            logger.error(f"Failed to delete remote sync token: {e}")
            return False
