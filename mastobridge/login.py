"""
Login (GET /auth/login): check the instance against the permit list, make sure this
gateway has an app registered there, and hand back the instance's authorization URI.
"""
import logging

from fastapi import APIRouter, Depends

from mastobridge.app_credentials import AppCredentialManager
from mastobridge.errors import ClientInputError, NotPermittedError
from mastobridge.mastodon import get_upstream
from mastobridge.permit import PermitFilter, parse_instance_url
from mastobridge.store import CredentialStore, get_store

logger = logging.getLogger(__name__)
router = APIRouter()


def login(
    username: str | None,
    instance_url: str,
    permit: PermitFilter,
    credentials: AppCredentialManager,
) -> str:
    """
    Return the authorization URI for instance_url, registering an app there on first use.
    `username` is accepted but does not affect the redirect.
    """
    instance = parse_instance_url(instance_url)
    if not permit.is_permitted(instance.hostname):
        raise NotPermittedError(instance.host)
    creds = credentials.get_or_create(instance.url, instance.host)
    logger.debug("login for %s on %s", username or "<unspecified>", instance.host)
    return creds.auth_uri


@router.get("/auth/login")
def auth_login(
    username: str | None = None,
    instance_url: str | None = None,
    store: CredentialStore = Depends(get_store),
    upstream=Depends(get_upstream),
):
    if not instance_url or not instance_url.strip():
        raise ClientInputError("missing 'instance_url' query param")
    authuri = login(
        username,
        instance_url,
        PermitFilter(store),
        AppCredentialManager(store, register=upstream.register_app),
    )
    return {"authuri": authuri}
