"""
Google OAuth credential handling for the Calendar API.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Sequence

import keyring
from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from keyring.errors import KeyringError
from rich.console import Console

from ..config import GOOGLE_CALENDAR_SCOPES
from ..domain.exceptions import CalendarAuthExpired, CalendarNotConnected, ProviderError

logger = logging.getLogger(__name__)

console = Console()


KEYRING_SERVICE_NAME = "slotengine"
TOKEN_URI = "https://oauth2.googleapis.com/token"


@dataclass(frozen=True)
class TokenUpdate:
    """New token material handed to the refresh callback for persistence."""
    access_token: str | None
    refresh_token: str | None
    expiry: datetime | None


TokenRefreshCallback = Callable[[TokenUpdate], None]


class GoogleAuthenticator:
    """
    Supplies valid Google credentials to the calendar client.

    Credentials come either from the local token cache (after an interactive
    consent via ``authorize``) or from tokens the caller already holds
    (``from_tokens``). Whenever a token is refreshed, ``on_token_refresh`` is
    invoked so the caller can persist the rotated credential.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        scopes: Sequence[str] | None = None,
        cache_file: Path | None = None,
        on_token_refresh: TokenRefreshCallback | None = None,
        use_keyring: bool = True,
        persist: bool = True,
    ):
        """
        Initialize the authenticator.

        Args:
            client_id: Google OAuth client ID
            client_secret: Google OAuth client secret
            scopes: OAuth scopes (defaults to full calendar access)
            cache_file: Optional path to the plaintext token cache file
            on_token_refresh: Called with the new tokens after each refresh
            use_keyring: Prefer the OS keyring over the plaintext file
            persist: Write refreshed tokens to the local cache
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.scopes = list(scopes or GOOGLE_CALENDAR_SCOPES)
        self.cache_file = (cache_file or Path.home() / ".slotengine_token.json").expanduser()
        self._on_token_refresh = on_token_refresh
        self._persist = persist
        self._keyring_supported = use_keyring
        self._cache_backend = "keyring" if use_keyring else "file"
        self._credentials: Optional[Credentials] = None

    @classmethod
    def from_tokens(
        cls,
        access_token: str | None,
        refresh_token: str | None = None,
        *,
        client_id: str,
        client_secret: str,
        scopes: Sequence[str] | None = None,
        on_token_refresh: TokenRefreshCallback | None = None,
    ) -> "GoogleAuthenticator":
        """Build an authenticator around tokens stored by the caller (e.g. a user table)."""
        authenticator = cls(
            client_id=client_id,
            client_secret=client_secret,
            scopes=scopes,
            on_token_refresh=on_token_refresh,
            use_keyring=False,
            persist=False,
        )
        if access_token or refresh_token:
            authenticator._credentials = Credentials(
                token=access_token,
                refresh_token=refresh_token,
                token_uri=TOKEN_URI,
                client_id=client_id,
                client_secret=client_secret,
                scopes=authenticator.scopes,
            )
        return authenticator

    @property
    def cache_backend(self) -> str:
        """Return the active cache backend (keyring or file)."""
        return self._cache_backend

    @property
    def is_connected(self) -> bool:
        return (self._credentials or self._load_credentials()) is not None

    def get_credentials(self) -> Credentials:
        """
        Return valid credentials, refreshing an expired access token.

        Raises:
            CalendarNotConnected: If no credential exists at all
            CalendarAuthExpired: If the credential cannot be refreshed
        """
        credentials = self._current_credentials()

        if not credentials.valid:
            if not credentials.refresh_token:
                raise CalendarAuthExpired(
                    "Google Calendar access expired. Please reconnect your Google account."
                )
            self._refresh(credentials)

        return credentials

    def refresh(self) -> Credentials:
        """Force a token refresh, e.g. after the API rejected the access token."""
        credentials = self._current_credentials()
        if not credentials.refresh_token:
            raise CalendarAuthExpired(
                "Google Calendar access expired. Please reconnect your Google account."
            )
        self._refresh(credentials)
        return credentials

    def authorize(self, port: int = 0) -> Credentials:
        """
        Run the interactive installed-app consent flow in a browser.

        Returns:
            Freshly granted credentials (also written to the cache)
        """
        console.print("\n[bold cyan]🔐 Google Calendar Authorization Required[/bold cyan]")
        console.print("A browser window will open so you can grant calendar access.\n")

        flow = InstalledAppFlow.from_client_config(
            {
                "installed": {
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "auth_uri": "https://accounts.google.com/o/oauth2/auth",
                    "token_uri": TOKEN_URI,
                    "redirect_uris": ["http://localhost"],
                }
            },
            scopes=self.scopes,
        )
        credentials = flow.run_local_server(port=port)

        self._credentials = credentials
        self._save_credentials(credentials)
        console.print("[bold green]✓ Authorization successful![/bold green]\n")
        return credentials

    def clear_cache(self) -> None:
        """Forget stored credentials (the next call needs a new consent)."""
        if self.cache_file.exists():
            self.cache_file.unlink()
        if self._keyring_supported:
            try:
                keyring.delete_password(KEYRING_SERVICE_NAME, self.client_id)
            except KeyringError as exc:
                logger.warning("Could not remove credentials from keyring: %s", exc)
        self._credentials = None

    def _current_credentials(self) -> Credentials:
        credentials = self._credentials or self._load_credentials()
        if credentials is None:
            raise CalendarNotConnected(
                "Google Calendar is not connected. Run `slotengine connect` first."
            )
        self._credentials = credentials
        return credentials

    def _refresh(self, credentials: Credentials) -> None:
        try:
            credentials.refresh(Request())
        except RefreshError as exc:
            raise CalendarAuthExpired(
                f"Google Calendar access was revoked or expired: {exc}"
            ) from exc
        except TransportError as exc:
            raise ProviderError(f"Token refresh failed: {exc}", operation="refresh") from exc

        logger.info("Refreshed Google access token")
        self._save_credentials(credentials)

        if self._on_token_refresh is not None:
            self._on_token_refresh(
                TokenUpdate(
                    access_token=credentials.token,
                    refresh_token=credentials.refresh_token,
                    expiry=credentials.expiry,
                )
            )

    def _load_credentials(self) -> Optional[Credentials]:
        if not self._persist:
            return None

        serialized = self._load_from_keyring()
        if serialized is None:
            serialized = self._load_from_file()
        if not serialized:
            return None

        try:
            return Credentials.from_authorized_user_info(json.loads(serialized), self.scopes)
        except ValueError as exc:
            logger.warning("Could not deserialize stored Google credentials: %s", exc)
            return None

    def _load_from_keyring(self) -> Optional[str]:
        if not self._keyring_supported:
            return None

        try:
            return keyring.get_password(KEYRING_SERVICE_NAME, self.client_id)
        except KeyringError as exc:
            self._handle_keyring_failure(f"reading credentials failed: {exc}")
            return None

    def _load_from_file(self) -> Optional[str]:
        if self.cache_file.exists():
            try:
                return self.cache_file.read_text(encoding="utf-8")
            except OSError as exc:
                logger.warning("Could not load token cache file %s: %s", self.cache_file, exc)
        return None

    def _save_credentials(self, credentials: Credentials) -> None:
        if not self._persist:
            return

        serialized = credentials.to_json()

        if self._keyring_supported and self._save_to_keyring(serialized):
            return

        self._save_to_file(serialized)

    def _save_to_keyring(self, serialized: str) -> bool:
        try:
            keyring.set_password(KEYRING_SERVICE_NAME, self.client_id, serialized)
            self._cache_backend = "keyring"
            return True
        except KeyringError as exc:
            self._handle_keyring_failure(f"writing credentials failed: {exc}")
            return False

    def _save_to_file(self, serialized: str) -> None:
        try:
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)
            self.cache_file.write_text(serialized, encoding="utf-8")
            self.cache_file.chmod(0o600)
        except OSError as exc:
            logger.warning("Could not save token cache to %s: %s", self.cache_file, exc)

    def _handle_keyring_failure(self, reason: str) -> None:
        if self._keyring_supported:
            logger.warning(
                "Secure credential storage unavailable (%s). Falling back to plaintext cache at %s.",
                reason,
                self.cache_file,
            )
        self._keyring_supported = False
        self._cache_backend = "file"
