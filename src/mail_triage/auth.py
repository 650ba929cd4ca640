"""MSAL authentication for the Graph mailbox.

Two modes, chosen by ``Settings.use_client_credentials``:

- delegated (default): device code sign-in. The MSAL token cache is kept at
  ``Settings.token_cache_path`` so later batches sign in silently.
- application: client credentials, for unattended batches against the
  mailbox named by ``Settings.target_user_principal_name``.

Master categories live in the mailbox settings, so the delegated scopes
include ``MailboxSettings.ReadWrite`` next to ``Mail.ReadWrite``.
"""

import logging
from pathlib import Path
from typing import Callable, Optional, Union

import msal

from .config import Settings
from .errors import AuthenticationError, ConfigurationError

logger = logging.getLogger(__name__)

AUTHORITY_URL = "https://login.microsoftonline.com/{tenant}"
DELEGATED_SCOPES = [
    "https://graph.microsoft.com/Mail.ReadWrite",
    "https://graph.microsoft.com/MailboxSettings.ReadWrite",
]
APPLICATION_SCOPES = ["https://graph.microsoft.com/.default"]

MsalApp = Union[msal.PublicClientApplication, msal.ConfidentialClientApplication]


def _token_or_raise(result: Optional[dict], flow: str) -> str:
    if result and "access_token" in result:
        return result["access_token"]

    result = result or {}
    error = result.get("error", "unknown")
    description = result.get("error_description", "no details")
    logger.error(f"{flow} sign-in failed: {error} - {description}")
    raise AuthenticationError(f"{flow} sign-in failed: {description}")


class GraphAuthenticator:
    """
    Supplies bearer tokens to :class:`src.mail_triage.email_client.GraphMailbox`.

    Attributes:
        settings: Application settings (app registration and cache path).
        show_prompt: Receives the device code sign-in instructions.
    """

    def __init__(self, settings: Settings, show_prompt: Callable[[str], None] = print) -> None:
        self.settings = settings
        self.show_prompt = show_prompt
        self._app: Optional[MsalApp] = None
        self._cache: Optional[msal.SerializableTokenCache] = None

    @property
    def cache_path(self) -> Path:
        return Path(self.settings.token_cache_path)

    @property
    def uses_client_credentials(self) -> bool:
        return bool(self.settings.use_client_credentials)

    def _load_token_cache(self) -> msal.SerializableTokenCache:
        """Read the persisted cache; an unreadable file gives an empty cache."""
        cache = msal.SerializableTokenCache()
        if not self.cache_path.exists():
            return cache
        try:
            cache.deserialize(self.cache_path.read_text())
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable token cache {self.cache_path}: {e}")
        return cache

    def _persist_token_cache(self) -> None:
        if self._cache is None or not self._cache.has_state_changed:
            return
        try:
            self.cache_path.write_text(self._cache.serialize())
        except OSError as e:
            logger.warning(f"Could not write token cache {self.cache_path}: {e}")

    def _get_app(self) -> MsalApp:
        """
        Build the MSAL application for the configured mode once.

        Raises:
            ConfigurationError: If client credentials are enabled without a secret.
        """
        if self._app is not None:
            return self._app

        authority = AUTHORITY_URL.format(tenant=self.settings.azure_tenant_id)
        if self.uses_client_credentials:
            if not self.settings.azure_client_secret:
                raise ConfigurationError("USE_CLIENT_CREDENTIALS=true requires AZURE_CLIENT_SECRET")
            self._app = msal.ConfidentialClientApplication(
                client_id=self.settings.azure_client_id,
                client_credential=self.settings.azure_client_secret,
                authority=authority,
            )
        else:
            self._cache = self._load_token_cache()
            self._app = msal.PublicClientApplication(
                client_id=self.settings.azure_client_id,
                authority=authority,
                token_cache=self._cache,
            )
        return self._app

    def _select_account(self, accounts: list[dict]) -> Optional[dict]:
        """Pick the cached account named by ``OUTLOOK_ACCOUNT_USERNAME``, else the first."""
        if not accounts:
            return None

        wanted = (self.settings.outlook_account_username or "").strip().lower()
        if not wanted:
            return accounts[0]

        for account in accounts:
            if str(account.get("username", "")).strip().lower() == wanted:
                return account

        cached = [a.get("username") for a in accounts if a.get("username")]
        raise ConfigurationError(
            f"OUTLOOK_ACCOUNT_USERNAME {wanted!r} is not in the token cache (cached: {cached})"
        )

    def _acquire_delegated(self, app: MsalApp) -> str:
        account = self._select_account(app.get_accounts())
        if account is not None:
            result = app.acquire_token_silent(DELEGATED_SCOPES, account=account)
            if result and "access_token" in result:
                self._persist_token_cache()
                return result["access_token"]
            logger.debug("Silent sign-in for %s failed; using device code", account.get("username"))

        flow = app.initiate_device_flow(scopes=DELEGATED_SCOPES)
        if "user_code" not in flow:
            raise AuthenticationError(
                f"Could not start device code sign-in: {flow.get('error_description', 'no details')}"
            )

        self.show_prompt(flow["message"])
        token = _token_or_raise(app.acquire_token_by_device_flow(flow), "Device code")
        self._persist_token_cache()
        return token

    def get_access_token(self) -> str:
        """
        Return a Graph token for the configured mode.

        Device code sign-in blocks until the user completes it in a browser.

        Raises:
            AuthenticationError: If MSAL returns no token.
            ConfigurationError: If the app registration settings are incomplete.
        """
        app = self._get_app()
        if self.uses_client_credentials:
            result = app.acquire_token_for_client(scopes=APPLICATION_SCOPES)
            return _token_or_raise(result, "Client credentials")
        return self._acquire_delegated(app)

    def get_auth_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.get_access_token()}",
            "Content-Type": "application/json",
        }

    def clear_token_cache(self) -> bool:
        """Forget the signed-in account so the next batch signs in again.

        Returns:
            bool: True when a cache file was removed.
        """
        self._app = None
        self._cache = None
        if not self.cache_path.exists():
            return False
        self.cache_path.unlink()
        logger.info(f"Removed token cache {self.cache_path}")
        return True
