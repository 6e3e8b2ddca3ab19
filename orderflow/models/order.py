# orderflow/models/order.py
from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, computed_field

from .common import LatLng, new_id, utcnow

OrderStatus = Literal[
    "created", "pickup_assigned", "pickup_completed", "delivered_to_vendor",
    "ready_for_delivery", "delivery_assigned", "completed", "cancelled",
]

class OrderItem(BaseModel):
    name: str = Field(min_length=1)
    quantity: int = Field(ge=0)
    unit_price: float = Field(ge=0)

    @computed_field
    @property
    def line_total(self) -> float:
        return round(self.quantity * self.unit_price, 2)

class StatusEvent(BaseModel):
    at: datetime = Field(default_factory=utcnow)
    from_status: Optional[OrderStatus] = None
    to_status: OrderStatus
    note: Optional[str] = None

def items_total(items: List[OrderItem]) -> float:
    return round(sum(i.line_total for i in items), 2)

class Order(BaseModel):
    id: str = Field(default_factory=new_id)
    status: OrderStatus = "created"
    customer_id: str
    customer_contact: Optional[str] = None
    rider_id: Optional[str] = None
    vendor_id: Optional[str] = None
    items: List[OrderItem] = []
    pickup_location: Optional[LatLng] = None
    scheduled_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    subtotal: float = 0.0
    discount: float = Field(default=0.0, ge=0)
    final_amount: float = Field(default=0.0, ge=0)
    version: int = 1
    history: List[StatusEvent] = []
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def recompute_totals(self) -> None:
        self.subtotal = items_total(self.items)
        self.final_amount = max(round(self.subtotal - self.discount, 2), 0.0)
