"""
Well-known endpoint: the session token verification key as a JWKS.
"""
from fastapi import APIRouter, Depends

from mastobridge.keys import get_jwks
from mastobridge.store import CredentialStore, get_store

router = APIRouter()


@router.get("/.well-known/jwks.json")
def jwks_json(store: CredentialStore = Depends(get_store)):
    """JSON Web Key Set for session token signature verification."""
    return get_jwks(store)
