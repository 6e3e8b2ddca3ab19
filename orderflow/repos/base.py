# orderflow/repos/base.py
# Store contracts the coordinator depends on. Persistence details belong
# to the implementations (inmemory.py, mongo.py).
from datetime import datetime
from typing import List, Optional, Protocol

from orderflow.models.notification import Notification
from orderflow.models.order import Order
from orderflow.models.rider import Rider
from orderflow.models.verification import VerificationRequest


class OrderStore(Protocol):
    async def get_by_id(self, order_id: str) -> Optional[Order]: ...
    async def save(self, order: Order) -> Order: ...
    async def query_by_status(self, status: str) -> List[Order]: ...


class RiderStore(Protocol):
    async def get_by_id(self, rider_id: str) -> Optional[Rider]: ...
    async def save(self, rider: Rider) -> Rider: ...
    async def query_active(self) -> List[Rider]: ...
    async def find_active_nearby(self, lat: float, lng: float, radius_km: float = 10) -> List[Rider]: ...
    async def add_assigned_order(self, rider_id: str, order_id: str) -> None: ...
    async def remove_assigned_order(self, rider_id: str, order_id: str) -> None: ...
    async def find_by_assigned_order(self, order_id: str) -> List[Rider]: ...


class VerificationStore(Protocol):
    async def get_by_id(self, verification_id: str) -> Optional[VerificationRequest]: ...
    async def save(self, req: VerificationRequest) -> VerificationRequest: ...
    async def find_pending(self, order_id: str) -> Optional[VerificationRequest]: ...
    async def list_pending(self, customer_id: Optional[str] = None) -> List[VerificationRequest]: ...


class NotificationStore(Protocol):
    async def get_by_id(self, notification_id: str) -> Optional[Notification]: ...
    async def save(self, n: Notification) -> Notification: ...
    async def list_for_recipient(self, recipient_id: str, include_read: bool = False,
                                 limit: int = 50) -> List[Notification]: ...
    async def count_unread(self, recipient_id: str) -> int: ...
    async def mark_read(self, notification_id: str, at: datetime) -> Optional[Notification]: ...
    async def mark_all_read(self, recipient_id: str, at: datetime) -> int: ...
    async def purge(self, read_before: datetime, now: datetime) -> int: ...
    async def delete(self, notification_id: str) -> bool: ...
