# orderflow/routers/orders.py
from typing import Optional
from fastapi import APIRouter, Depends, Query

from orderflow.deps import get_coordinator
from orderflow.presentation import render_order
from orderflow.schemas import AssignIn, EditIn, StatusIn, VendorIn
from orderflow.services.coordinator import Coordinator

router = APIRouter(prefix="/orders", tags=["orders"])

@router.get("/{order_id}")
async def get_order(order_id: str, legacy: bool = Query(False),
                    co: Coordinator = Depends(get_coordinator)):
    return render_order(await co.get_order(order_id), legacy=legacy)

@router.post("/{order_id}/status")
async def advance_status(order_id: str, body: StatusIn, legacy: bool = Query(False),
                         co: Coordinator = Depends(get_coordinator)):
    order = await co.advance_order_status(order_id, body.status, note=body.note)
    return render_order(order, legacy=legacy)

@router.post("/{order_id}/assign")
async def assign_rider(order_id: str, body: AssignIn, legacy: bool = Query(False),
                       co: Coordinator = Depends(get_coordinator)):
    res = await co.assign_order_to_rider(order_id, body.rider_id, body.vendor_id)
    return {
        "order": render_order(res.order, legacy=legacy),
        "rider_id": res.rider.id,
        "notification_id": res.notification.id if res.notification else None,
        "notification_sent": res.notification_sent,
        "steps": res.steps,
    }

@router.post("/{order_id}/vendor")
async def assign_vendor(order_id: str, body: VendorIn, co: Coordinator = Depends(get_coordinator)):
    return render_order(await co.assign_vendor(order_id, body.vendor_id))

@router.get("/{order_id}/nearest-riders")
async def nearest_riders(order_id: str, radius_km: Optional[float] = Query(None, gt=0),
                         co: Coordinator = Depends(get_coordinator)):
    matches = await co.nearest_riders_for_order(order_id, radius_km)
    return [m.model_dump(mode="json") for m in matches]

@router.post("/{order_id}/edits", status_code=201)
async def propose_edit(order_id: str, body: EditIn, co: Coordinator = Depends(get_coordinator)):
    req = await co.propose_order_edit(order_id, body.items, note=body.note, rider_id=body.rider_id)
    return req.model_dump(mode="json")
