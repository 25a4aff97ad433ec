"""
Bearer session token verification for protected routes.

Runs as a dependency, so a bad token is rejected before any handler body or upstream call.
"""
import logging
from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from mastobridge.errors import UnauthorizedError
from mastobridge.keys import load_public_key
from mastobridge.store import CredentialStore, get_store
from mastobridge.tokens import SessionClaims, verify

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


def get_bearer_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> str:
    """Extract Bearer token from Authorization header. Raises 401 if missing or not Bearer."""
    if credentials is None:
        raise UnauthorizedError("Authorization header missing")
    if credentials.scheme.lower() != "bearer":
        raise UnauthorizedError("Bearer scheme required")
    return credentials.credentials


def get_session_claims(
    token: Annotated[str, Depends(get_bearer_token)],
    store: Annotated[CredentialStore, Depends(get_store)],
) -> SessionClaims:
    """Dependency: valid session token -> claims."""
    return verify(token, load_public_key(store))
