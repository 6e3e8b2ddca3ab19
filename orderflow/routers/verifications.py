# orderflow/routers/verifications.py
from fastapi import APIRouter, Depends

from orderflow.deps import get_coordinator
from orderflow.schemas import DecisionIn
from orderflow.services.coordinator import Coordinator

router = APIRouter(prefix="/verifications", tags=["verifications"])

@router.get("/customer/{customer_id}")
async def pending_for_customer(customer_id: str, co: Coordinator = Depends(get_coordinator)):
    reqs = await co.verifications.list_pending(customer_id)
    return {"verifications": [r.model_dump(mode="json") for r in reqs]}

@router.get("/{verification_id}")
async def get_verification(verification_id: str, co: Coordinator = Depends(get_coordinator)):
    return (await co.verifications.get(verification_id)).model_dump(mode="json")

@router.post("/{verification_id}/decision")
async def decide(verification_id: str, body: DecisionIn, co: Coordinator = Depends(get_coordinator)):
    req = await co.decide_verification(verification_id, body.approved, body.reason)
    return req.model_dump(mode="json")
