"""
Preflight: turn verified session claims into an authenticated upstream client for the caller.
"""
import logging
from dataclasses import dataclass
from typing import Annotated, Any, Iterator
from urllib.parse import urlsplit

from fastapi import Depends

from mastobridge.app_credentials import AppCredentialManager
from mastobridge.auth import get_session_claims
from mastobridge.errors import ConsistencyError
from mastobridge.mastodon import get_upstream
from mastobridge.store import CredentialStore, get_store
from mastobridge.tokens import SessionClaims

logger = logging.getLogger(__name__)


@dataclass
class Flight:
    client: Any
    user_id: str
    username: str
    instance_url: str
    host: str
    subject: str


def split_subject(subject: str) -> tuple[str, str, str]:
    """https://host/@alice -> ("https://host", "host", "alice")."""
    try:
        parts = urlsplit(subject)
        host = parts.netloc.lower()
    except ValueError as e:
        raise ConsistencyError("unable to parse subject as URL from token claims", subject=subject) from e
    if not host:
        raise ConsistencyError("token subject has no host", subject=subject)
    username = parts.path.removeprefix("/@")
    return f"https://{host}", host, username


def preflight(claims: SessionClaims, store: CredentialStore, upstream) -> Flight:
    """Claims must already be verified."""
    instance_url, host, username = split_subject(claims.subject)
    creds = AppCredentialManager(store).get(host)
    if creds is None:
        raise ConsistencyError("app credentials missing for verified token", instance=host)
    client = upstream(
        instance_url,
        client_id=creds.client_id,
        client_secret=creds.client_secret,
        access_token=claims.access_token,
    )
    return Flight(
        client=client,
        user_id=claims.user_id,
        username=username,
        instance_url=instance_url,
        host=host,
        subject=claims.subject,
    )


def get_flight(
    claims: Annotated[SessionClaims, Depends(get_session_claims)],
    store: Annotated[CredentialStore, Depends(get_store)],
    upstream=Depends(get_upstream),
) -> Iterator[Flight]:
    """Dependency for protected routes. The upstream client is closed when the request finishes."""
    flight = preflight(claims, store, upstream)
    try:
        yield flight
    finally:
        flight.client.close()
