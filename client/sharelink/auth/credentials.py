"""Keyring-backed credential storage and token refresh."""

import logging
import os
from typing import Optional, Tuple

import httpx
import keyring
import keyring.errors

from sharelink.api.client import ShareLinkAPI

log = logging.getLogger(__name__)

KEY_EMAIL = "email"
KEY_REFRESH_TOKEN = "refresh_token"


def _keyring_service_name() -> str:
    """Separate keyring namespace when SHARELINK_CONFIG_DIR is set (tests, second profile)."""
    if os.environ.get("SHARELINK_CONFIG_DIR", "").strip():
        return "ShareLink-Profile"
    return "ShareLink"


class CredentialsStore:
    """
    Stores email and refresh token in the OS keyring (Windows Credential Manager,
    macOS Keychain, Linux Secret Service). Passwords are never stored.
    """

    def get_stored(self) -> Optional[Tuple[str, str]]:
        """
        Return (email, refresh_token) if stored, else None.
        An unreadable keyring entry counts as no credentials so login can overwrite it.
        """
        service = _keyring_service_name()
        try:
            email = keyring.get_password(service, KEY_EMAIL)
            token = keyring.get_password(service, KEY_REFRESH_TOKEN)
        except (keyring.errors.KeyringError, UnicodeDecodeError) as e:
            log.warning("Could not read stored credentials: %s", e)
            return None
        if email and token:
            return (email, token)
        return None

    def set_stored(self, email: str, refresh_token: str) -> None:
        service = _keyring_service_name()
        keyring.set_password(service, KEY_EMAIL, email)
        keyring.set_password(service, KEY_REFRESH_TOKEN, refresh_token)

    def clear_stored(self) -> None:
        """Remove stored credentials."""
        service = _keyring_service_name()
        for key in (KEY_EMAIL, KEY_REFRESH_TOKEN):
            try:
                keyring.delete_password(service, key)
            except keyring.errors.PasswordDeleteError:
                log.debug("No stored %s to delete", key)

    def get_valid_access_token(self, api: ShareLinkAPI) -> Optional[str]:
        """
        Exchange the stored refresh token for a new access token (set on api as well).
        Stores the rotated refresh token. None if nothing is stored or refresh fails.
        """
        stored = self.get_stored()
        if not stored:
            log.debug("No stored credentials")
            return None
        email, refresh_token = stored
        try:
            data = api.refresh(refresh_token)
        except httpx.HTTPError as e:
            log.warning("Token refresh failed: %s", e)
            return None
        self.set_stored(email, data["refresh_token"])
        log.debug("Token refresh successful for %s", email)
        return data["access_token"]
