# orderflow/models/rider.py
from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, Field

from .common import LatLng, new_id

RiderStatus = Literal["pending", "approved", "rejected"]

class Rider(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str = ""
    contact: str
    location: Optional[LatLng] = None
    last_location_update: Optional[datetime] = None
    is_active: bool = False
    status: RiderStatus = "pending"
    assigned_orders: List[str] = []

    @property
    def assignable(self) -> bool:
        return self.is_active and self.status == "approved"
