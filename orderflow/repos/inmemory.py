# orderflow/repos/inmemory.py
# Dict-backed stores. Every read hands out a copy so callers must save()
# to persist, same as with the Mongo stores. Each method runs without an
# await in between, so on one event loop it is atomic.
from datetime import datetime
from math import cos, degrees, radians
from typing import Dict, List, Optional

from orderflow.models.notification import Notification
from orderflow.models.order import Order
from orderflow.models.rider import Rider
from orderflow.models.verification import VerificationRequest

EARTH_RADIUS_KM = 6371.0


def bounding_box(lat: float, lng: float, radius_km: float) -> dict:
    dlat = degrees(radius_km / EARTH_RADIUS_KM)
    dlng = dlat / max(cos(radians(lat)), 1e-6)
    return {
        "min_lat": lat - dlat, "max_lat": lat + dlat,
        "min_lng": lng - dlng, "max_lng": lng + dlng,
    }


def in_box(rider: Rider, box: dict) -> bool:
    loc = rider.location
    if loc is None:
        return False
    return (box["min_lat"] <= loc.lat <= box["max_lat"]
            and box["min_lng"] <= loc.lng <= box["max_lng"])


class InMemoryOrderStore:
    def __init__(self):
        self.orders: Dict[str, Order] = {}

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        o = self.orders.get(order_id)
        return o.model_copy(deep=True) if o else None

    async def save(self, order: Order) -> Order:
        self.orders[order.id] = order.model_copy(deep=True)
        return order

    async def query_by_status(self, status: str) -> List[Order]:
        return [o.model_copy(deep=True) for o in self.orders.values() if o.status == status]


class InMemoryRiderStore:
    def __init__(self):
        self.riders: Dict[str, Rider] = {}

    async def get_by_id(self, rider_id: str) -> Optional[Rider]:
        r = self.riders.get(rider_id)
        return r.model_copy(deep=True) if r else None

    async def save(self, rider: Rider) -> Rider:
        self.riders[rider.id] = rider.model_copy(deep=True)
        return rider

    async def query_active(self) -> List[Rider]:
        return [r.model_copy(deep=True) for r in self.riders.values() if r.assignable]

    async def find_active_nearby(self, lat: float, lng: float, radius_km: float = 10) -> List[Rider]:
        box = bounding_box(lat, lng, radius_km)
        return [r.model_copy(deep=True) for r in self.riders.values()
                if r.assignable and in_box(r, box)]

    async def add_assigned_order(self, rider_id: str, order_id: str) -> None:
        r = self.riders.get(rider_id)
        if r is not None and order_id not in r.assigned_orders:
            r.assigned_orders.append(order_id)

    async def remove_assigned_order(self, rider_id: str, order_id: str) -> None:
        r = self.riders.get(rider_id)
        if r is not None and order_id in r.assigned_orders:
            r.assigned_orders.remove(order_id)

    async def find_by_assigned_order(self, order_id: str) -> List[Rider]:
        return [r.model_copy(deep=True) for r in self.riders.values() if order_id in r.assigned_orders]


class InMemoryVerificationStore:
    def __init__(self):
        self.requests: Dict[str, VerificationRequest] = {}

    async def get_by_id(self, verification_id: str) -> Optional[VerificationRequest]:
        v = self.requests.get(verification_id)
        return v.model_copy(deep=True) if v else None

    async def save(self, req: VerificationRequest) -> VerificationRequest:
        self.requests[req.id] = req.model_copy(deep=True)
        return req

    async def find_pending(self, order_id: str) -> Optional[VerificationRequest]:
        for v in self.requests.values():
            if v.order_id == order_id and v.status == "pending":
                return v.model_copy(deep=True)
        return None

    async def list_pending(self, customer_id: Optional[str] = None) -> List[VerificationRequest]:
        out = [v for v in self.requests.values()
               if v.status == "pending" and (customer_id is None or v.customer_id == customer_id)]
        out.sort(key=lambda v: v.created_at, reverse=True)
        return [v.model_copy(deep=True) for v in out]


class InMemoryNotificationStore:
    def __init__(self):
        self.notifications: Dict[str, Notification] = {}

    async def get_by_id(self, notification_id: str) -> Optional[Notification]:
        n = self.notifications.get(notification_id)
        return n.model_copy(deep=True) if n else None

    async def save(self, n: Notification) -> Notification:
        self.notifications[n.id] = n.model_copy(deep=True)
        return n

    async def list_for_recipient(self, recipient_id: str, include_read: bool = False,
                                 limit: int = 50) -> List[Notification]:
        out = [n for n in self.notifications.values()
               if n.recipient_id == recipient_id and (include_read or not n.read)]
        out.sort(key=lambda n: n.created_at, reverse=True)
        return [n.model_copy(deep=True) for n in out[:limit]]

    async def count_unread(self, recipient_id: str) -> int:
        return sum(1 for n in self.notifications.values()
                   if n.recipient_id == recipient_id and not n.read)

    async def mark_read(self, notification_id: str, at: datetime) -> Optional[Notification]:
        n = self.notifications.get(notification_id)
        if n is None:
            return None
        if not n.read:
            n.read = True
            n.read_at = at
            n.delivery_status.app = True
        return n.model_copy(deep=True)

    async def mark_all_read(self, recipient_id: str, at: datetime) -> int:
        count = 0
        for n in self.notifications.values():
            if n.recipient_id == recipient_id and not n.read:
                n.read = True
                n.read_at = at
                n.delivery_status.app = True
                count += 1
        return count

    async def purge(self, read_before: datetime, now: datetime) -> int:
        doomed = [
            nid for nid, n in self.notifications.items()
            if (n.read and n.created_at < read_before)
            or (n.expires_at is not None and n.expires_at <= now)
        ]
        for nid in doomed:
            del self.notifications[nid]
        return len(doomed)

    async def delete(self, notification_id: str) -> bool:
        return self.notifications.pop(notification_id, None) is not None
