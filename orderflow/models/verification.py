# orderflow/models/verification.py
from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, Field

from .common import new_id, utcnow
from .order import OrderItem

VerificationStatus = Literal["pending", "approved", "rejected", "expired"]

class ItemChange(BaseModel):
    name: str
    old: OrderItem
    new: OrderItem

class ItemDiff(BaseModel):
    added: List[OrderItem] = []
    removed: List[OrderItem] = []
    modified: List[ItemChange] = []
    unchanged: List[OrderItem] = []

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.removed or self.modified)

class PriceChange(BaseModel):
    old_total: float
    new_total: float
    price_change: float
    percentage_change: float

class VerificationRequest(BaseModel):
    id: str = Field(default_factory=new_id)
    order_id: str
    customer_id: str
    rider_id: Optional[str] = None
    original_items: List[OrderItem]
    proposed_items: List[OrderItem]
    diff: ItemDiff
    pricing: PriceChange
    note: Optional[str] = None
    status: VerificationStatus = "pending"
    reason: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime
    decided_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at
