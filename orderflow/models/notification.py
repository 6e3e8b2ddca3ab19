# orderflow/models/notification.py
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, Field, model_validator

from .common import new_id, utcnow

Channel = Literal["app", "sms", "push"]
RecipientKind = Literal["customer", "rider"]
Priority = Literal["low", "medium", "high", "urgent"]

NotificationType = Literal[
    "general", "order_assigned", "order_update", "order_cancelled",
    "rider_edit", "customer_verification_response", "booking_status",
]

ActionType = Literal[
    "none", "approve_changes", "view_order", "accept_order", "start_pickup",
]

class Recipient(BaseModel):
    id: str
    kind: RecipientKind
    contact: Optional[str] = None

class NotificationPayload(BaseModel):
    title: str
    message: str
    type: NotificationType = "general"
    data: Dict[str, Any] = {}
    priority: Priority = "medium"
    action_required: bool = False
    action_type: ActionType = "none"
    related_order: Optional[str] = None
    expires_at: Optional[datetime] = None

class DeliveryStatus(BaseModel):
    app: bool = False
    sms: bool = False
    push: bool = False

class Notification(BaseModel):
    id: str = Field(default_factory=new_id)
    recipient_id: str
    recipient_kind: RecipientKind
    title: str
    message: str
    type: NotificationType = "general"
    data: Dict[str, Any] = {}
    priority: Priority = "medium"
    action_required: bool = False
    action_type: ActionType = "none"
    related_order: Optional[str] = None
    sent_via: List[Channel] = ["app"]
    delivery_status: DeliveryStatus = Field(default_factory=DeliveryStatus)
    delivery_errors: Dict[str, str] = {}
    read: bool = False
    read_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _read_at_matches_read(self):
        if self.read != (self.read_at is not None):
            raise ValueError("read_at must be set exactly when read is true")
        return self
