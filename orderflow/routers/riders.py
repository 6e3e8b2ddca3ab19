# orderflow/routers/riders.py
from fastapi import APIRouter, Depends

from orderflow.deps import get_coordinator
from orderflow.schemas import LocationIn, NearestIn
from orderflow.services.coordinator import Coordinator

router = APIRouter(prefix="/riders", tags=["riders"])

@router.post("/nearest")
async def nearest(body: NearestIn, co: Coordinator = Depends(get_coordinator)):
    return [m.model_dump(mode="json") for m in co.get_nearest_riders(body.pickup, body.riders)]

@router.post("/{rider_id}/location")
async def update_location(rider_id: str, body: LocationIn, co: Coordinator = Depends(get_coordinator)):
    rider = await co.update_rider_location(rider_id, body.lat, body.lng)
    return rider.model_dump(mode="json")
