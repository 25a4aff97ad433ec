"""
GET /api/instanceInfo: metadata for the caller's instance plus its weekly activity.
"""
from fastapi import APIRouter, Depends

from mastobridge.preflight import Flight, get_flight

router = APIRouter()


@router.get("/api/instanceInfo")
def instance_info(flight: Flight = Depends(get_flight)):
    return {
        "instance": flight.client.instance(),
        "activity": flight.client.instance_activity(),
    }
