# orderflow/routers/otp.py
from fastapi import APIRouter, Depends

from orderflow.deps import get_coordinator
from orderflow.schemas import OtpRequestIn, OtpVerifyIn
from orderflow.services.coordinator import Coordinator

router = APIRouter(prefix="/otp", tags=["otp"])

@router.post("/request")
async def request_otp(body: OtpRequestIn, co: Coordinator = Depends(get_coordinator)):
    challenge = await co.request_otp(body.contact, body.purpose)
    return challenge.model_dump(mode="json", exclude_none=True)

@router.post("/verify")
async def verify_otp(body: OtpVerifyIn, co: Coordinator = Depends(get_coordinator)):
    await co.verify_otp(body.contact, body.purpose, body.code)
    return {"success": True}
