# orderflow/routers/notifications.py
from fastapi import APIRouter, Depends, Query

from orderflow.deps import get_coordinator
from orderflow.services.coordinator import Coordinator

router = APIRouter(prefix="/notifications", tags=["notifications"])

@router.get("/recipient/{recipient_id}")
async def list_notifications(recipient_id: str, include_read: bool = Query(False),
                             limit: int = Query(50, ge=1, le=200),
                             co: Coordinator = Depends(get_coordinator)):
    items = await co.dispatcher.list_for(recipient_id, include_read=include_read, limit=limit)
    return [n.model_dump(mode="json") for n in items]

@router.get("/recipient/{recipient_id}/count")
async def unread_count(recipient_id: str, co: Coordinator = Depends(get_coordinator)):
    return {"unread": await co.dispatcher.unread_count(recipient_id)}

@router.post("/recipient/{recipient_id}/read-all")
async def read_all(recipient_id: str, co: Coordinator = Depends(get_coordinator)):
    return {"modified": await co.dispatcher.mark_all_read(recipient_id)}

@router.post("/{notification_id}/read")
async def mark_read(notification_id: str, co: Coordinator = Depends(get_coordinator)):
    return (await co.dispatcher.mark_read(notification_id)).model_dump(mode="json")
