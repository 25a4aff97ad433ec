"""
Per-instance OAuth application credentials.

The first login against an instance registers an app there and stores the result;
afterwards the stored record is returned as-is (no refresh, no secret rotation).

Concurrent first logins for the same instance are not coordinated: both may pass the
lookup, both register upstream, and the later write wins. There is no lock or
conditional write.
"""
import logging
from typing import Callable
from urllib.parse import urlencode

from mastobridge.config import KEY_APP_NAME, KEY_REDIRECT_URI, KEY_SCOPES, KEY_WEBSITE
from mastobridge.errors import ConsistencyError, StoreError
from mastobridge.mastodon import MastodonClient, RegisteredApp
from mastobridge.store import AppCredentials, CredentialStore, GlobalConfig

logger = logging.getLogger(__name__)

Registrar = Callable[..., RegisteredApp]


def compose_redirect_uri(base: str, instance_url: str) -> str:
    """Append instance_url so the callback can tell which instance issued the code."""
    sep = "&" if "?" in base else "?"
    return f"{base}{sep}{urlencode({'instance_url': instance_url})}"


def parse_scopes(value: str) -> str:
    """Comma-separated scalar -> space-joined, trimmed, lowercased scope string."""
    return " ".join(s.strip().lower() for s in value.split(",") if s.strip())


class AppCredentialManager:
    def __init__(self, store: CredentialStore, register: Registrar = MastodonClient.register_app):
        self.store = store
        self.register = register

    def get(self, host: str) -> AppCredentials | None:
        """Lookup only; never registers."""
        return self.store.get_app_credentials(host)

    def get_or_create(self, instance_url: str, host: str) -> AppCredentials:
        existing = self.store.get_app_credentials(host)
        if existing is not None:
            return existing
        return self._create(instance_url, host)

    def _create(self, instance_url: str, host: str) -> AppCredentials:
        config = GlobalConfig(self.store)
        # Each missing scalar fails on its own key; no partial defaults
        base_redirect_uri = config.require(KEY_REDIRECT_URI)
        app_name = config.require(KEY_APP_NAME)
        website = config.require(KEY_WEBSITE)
        scopes = parse_scopes(config.require(KEY_SCOPES))

        redirect_uri = compose_redirect_uri(base_redirect_uri, instance_url)
        app = self.register(
            instance_url=instance_url,
            client_name=app_name,
            redirect_uri=redirect_uri,
            scopes=scopes,
            website=website,
        )

        creds = AppCredentials(
            instance=host,
            app_id=app.app_id,
            name=app_name,
            website=website,
            redirect_uri=redirect_uri,
            client_id=app.client_id,
            client_secret=app.client_secret,
            auth_uri=app.auth_uri,
        )
        try:
            self.store.put_app_credentials(creds)
        except StoreError as e:
            # The app exists upstream with no local record; registering again would duplicate it
            raise ConsistencyError(
                f"registered app {app.app_id} on {host} but could not store credentials: {e.detail}",
                instance=host,
                app_id=app.app_id,
            ) from e
        logger.info("created app credentials for %s (app_id=%s)", host, app.app_id)
        return creds
