# orderflow/schemas.py
from typing import List, Optional
from pydantic import BaseModel, Field

from orderflow.models.common import LatLng
from orderflow.models.order import OrderItem
from orderflow.models.rider import Rider

# --------------------------
# Orders
# --------------------------
class StatusIn(BaseModel):
    status: str
    note: Optional[str] = None

class AssignIn(BaseModel):
    rider_id: str
    vendor_id: Optional[str] = None

class VendorIn(BaseModel):
    vendor_id: str

# --------------------------
# Verification
# --------------------------
class EditIn(BaseModel):
    items: List[OrderItem] = Field(min_length=1)
    note: Optional[str] = None
    rider_id: Optional[str] = None

class DecisionIn(BaseModel):
    approved: bool
    reason: Optional[str] = None

# --------------------------
# OTP
# --------------------------
class OtpRequestIn(BaseModel):
    contact: str
    purpose: str = "login"

class OtpVerifyIn(BaseModel):
    contact: str
    purpose: str = "login"
    code: str

# --------------------------
# Riders
# --------------------------
class NearestIn(BaseModel):
    pickup: LatLng
    riders: List[Rider]

class LocationIn(LatLng):
    pass
