"""
GET /auth/verify: the caller's Mastodon profile and their most recent status.
"""
from fastapi import APIRouter, Depends

from mastobridge.preflight import Flight, get_flight

router = APIRouter()


@router.get("/auth/verify")
def auth_verify(flight: Flight = Depends(get_flight)):
    """Confirms the session token still works upstream."""
    account = flight.client.me()
    statuses = flight.client.account_statuses(flight.user_id, limit=1)
    return {"account": account, "last_status": statuses[0] if statuses else None}
