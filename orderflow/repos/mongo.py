# orderflow/repos/mongo.py
# Motor-backed stores. Documents keep the model fields with id stored as _id.
from datetime import datetime
from functools import lru_cache
from typing import List, Optional, Type, TypeVar

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING

from orderflow.core.config import settings
from orderflow.models.notification import Notification
from orderflow.models.order import Order
from orderflow.models.rider import Rider
from orderflow.models.verification import VerificationRequest
from .inmemory import bounding_box

M = TypeVar("M", bound=BaseModel)


@lru_cache(maxsize=1)
def get_client() -> AsyncIOMotorClient:
    return AsyncIOMotorClient(settings.mongo_uri, tz_aware=True, uuidRepresentation="standard")


def get_db() -> AsyncIOMotorDatabase:
    return get_client()[settings.mongo_db]


def _to_doc(model: BaseModel) -> dict:
    doc = model.model_dump(mode="python")
    doc["_id"] = doc.pop("id")
    return doc


def _from_doc(cls: Type[M], doc: Optional[dict]) -> Optional[M]:
    if not doc:
        return None
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id"))
    return cls.model_validate(doc)


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    await db.orders.create_index([("status", ASCENDING)], name="status_1")
    await db.riders.create_index([("is_active", ASCENDING), ("status", ASCENDING)], name="active_status_1")
    await db.riders.create_index([("location.lat", ASCENDING), ("location.lng", ASCENDING)], name="location_1")
    await db.riders.create_index([("assigned_orders", ASCENDING)], name="assigned_orders_1")
    await db.verifications.create_index([("order_id", ASCENDING), ("status", ASCENDING)], name="order_status_1")
    await db.notifications.create_index([("recipient_id", ASCENDING), ("read", ASCENDING)], name="recipient_read_1")
    await db.notifications.create_index([("recipient_id", ASCENDING), ("created_at", DESCENDING)], name="recipient_created_-1")


class MongoOrderStore:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.col = db.orders

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        return _from_doc(Order, await self.col.find_one({"_id": order_id}))

    async def save(self, order: Order) -> Order:
        await self.col.replace_one({"_id": order.id}, _to_doc(order), upsert=True)
        return order

    async def query_by_status(self, status: str) -> List[Order]:
        return [_from_doc(Order, d) async for d in self.col.find({"status": status})]


class MongoRiderStore:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.col = db.riders

    async def get_by_id(self, rider_id: str) -> Optional[Rider]:
        return _from_doc(Rider, await self.col.find_one({"_id": rider_id}))

    async def save(self, rider: Rider) -> Rider:
        await self.col.replace_one({"_id": rider.id}, _to_doc(rider), upsert=True)
        return rider

    async def query_active(self) -> List[Rider]:
        cur = self.col.find({"is_active": True, "status": "approved"})
        return [_from_doc(Rider, d) async for d in cur]

    async def find_active_nearby(self, lat: float, lng: float, radius_km: float = 10) -> List[Rider]:
        box = bounding_box(lat, lng, radius_km)
        cur = self.col.find({
            "is_active": True,
            "status": "approved",
            "location.lat": {"$gte": box["min_lat"], "$lte": box["max_lat"]},
            "location.lng": {"$gte": box["min_lng"], "$lte": box["max_lng"]},
        })
        return [_from_doc(Rider, d) async for d in cur]

    async def add_assigned_order(self, rider_id: str, order_id: str) -> None:
        await self.col.update_one({"_id": rider_id}, {"$addToSet": {"assigned_orders": order_id}})

    async def remove_assigned_order(self, rider_id: str, order_id: str) -> None:
        await self.col.update_one({"_id": rider_id}, {"$pull": {"assigned_orders": order_id}})

    async def find_by_assigned_order(self, order_id: str) -> List[Rider]:
        return [_from_doc(Rider, d) async for d in self.col.find({"assigned_orders": order_id})]


class MongoVerificationStore:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.col = db.verifications

    async def get_by_id(self, verification_id: str) -> Optional[VerificationRequest]:
        return _from_doc(VerificationRequest, await self.col.find_one({"_id": verification_id}))

    async def save(self, req: VerificationRequest) -> VerificationRequest:
        await self.col.replace_one({"_id": req.id}, _to_doc(req), upsert=True)
        return req

    async def find_pending(self, order_id: str) -> Optional[VerificationRequest]:
        doc = await self.col.find_one({"order_id": order_id, "status": "pending"})
        return _from_doc(VerificationRequest, doc)

    async def list_pending(self, customer_id: Optional[str] = None) -> List[VerificationRequest]:
        q = {"status": "pending"}
        if customer_id is not None:
            q["customer_id"] = customer_id
        cur = self.col.find(q).sort("created_at", DESCENDING)
        return [_from_doc(VerificationRequest, d) async for d in cur]


class MongoNotificationStore:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.col = db.notifications

    async def get_by_id(self, notification_id: str) -> Optional[Notification]:
        return _from_doc(Notification, await self.col.find_one({"_id": notification_id}))

    async def save(self, n: Notification) -> Notification:
        await self.col.replace_one({"_id": n.id}, _to_doc(n), upsert=True)
        return n

    async def list_for_recipient(self, recipient_id: str, include_read: bool = False,
                                 limit: int = 50) -> List[Notification]:
        q = {"recipient_id": recipient_id}
        if not include_read:
            q["read"] = False
        cur = self.col.find(q).sort("created_at", DESCENDING).limit(limit)
        return [_from_doc(Notification, d) async for d in cur]

    async def count_unread(self, recipient_id: str) -> int:
        return await self.col.count_documents({"recipient_id": recipient_id, "read": False})

    async def mark_read(self, notification_id: str, at: datetime) -> Optional[Notification]:
        # filter on read=False keeps the first read_at
        await self.col.update_one(
            {"_id": notification_id, "read": False},
            {"$set": {"read": True, "read_at": at, "delivery_status.app": True}},
        )
        return await self.get_by_id(notification_id)

    async def mark_all_read(self, recipient_id: str, at: datetime) -> int:
        res = await self.col.update_many(
            {"recipient_id": recipient_id, "read": False},
            {"$set": {"read": True, "read_at": at, "delivery_status.app": True}},
        )
        return res.modified_count

    async def purge(self, read_before: datetime, now: datetime) -> int:
        res = await self.col.delete_many({"$or": [
            {"read": True, "created_at": {"$lt": read_before}},
            {"expires_at": {"$ne": None, "$lte": now}},
        ]})
        return res.deleted_count

    async def delete(self, notification_id: str) -> bool:
        res = await self.col.delete_one({"_id": notification_id})
        return res.deleted_count == 1
