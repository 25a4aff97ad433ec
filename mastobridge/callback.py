"""
OAuth callback (GET /auth/callback). Mastodon redirects here with ?code=...&instance_url=...;
the code is exchanged for a user access token, the profile is fetched, and a signed
session token is returned.
"""
import logging

from fastapi import APIRouter, Depends

from mastobridge import tokens
from mastobridge.app_credentials import AppCredentialManager
from mastobridge.config import KEY_APP_NAME
from mastobridge.errors import ClientInputError, ConsistencyError, NotPermittedError, UpstreamError
from mastobridge.keys import load_signing_key
from mastobridge.mastodon import get_upstream
from mastobridge.permit import PermitFilter, parse_instance_url
from mastobridge.store import CredentialStore, GlobalConfig, get_store

logger = logging.getLogger(__name__)
router = APIRouter()


def callback(
    code: str,
    instance_url: str,
    store: CredentialStore,
    upstream,
) -> dict:
    """Finish the handshake and mint a session token. Never registers an app."""
    instance = parse_instance_url(instance_url)
    if not PermitFilter(store).is_permitted(instance.hostname):
        raise NotPermittedError(instance.host)

    # Credentials are created at login; absence means a forged or stale callback
    creds = AppCredentialManager(store).get(instance.host)
    if creds is None:
        raise ConsistencyError("credentials not found", instance=instance.host)

    with upstream(
        instance.url,
        client_id=creds.client_id,
        client_secret=creds.client_secret,
        access_token=None,
    ) as client:
        access_token = client.exchange_code(code, creds.redirect_uri)
        if not access_token:
            raise UpstreamError("code exchange returned no access token", instance=instance.host)
        client.set_access_token(access_token)
        me = client.me()
    subject = me.get("url")
    user_id = me.get("id")
    if not subject or not user_id:
        raise UpstreamError("profile is missing url or id", instance=instance.host)

    config = GlobalConfig(store)
    token = tokens.issue(
        subject_url=subject,
        access_token=access_token,
        user_id=str(user_id),
        issuer=config.require(KEY_APP_NAME),
        signing_key=load_signing_key(store),
    )
    logger.info("issued session token for %s", subject)
    return {"token": token, "type": "Bearer"}


@router.get("/auth/callback")
def auth_callback(
    code: str | None = None,
    instance_url: str | None = None,
    store: CredentialStore = Depends(get_store),
    upstream=Depends(get_upstream),
):
    if not code:
        raise ClientInputError("missing 'code' query param")
    if not instance_url:
        raise ClientInputError("missing 'instance_url' query param")
    return callback(code, instance_url, store, upstream)
