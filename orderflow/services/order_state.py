# orderflow/services/order_state.py
import logging
from datetime import datetime
from typing import Callable, List, Optional

from orderflow.core.errors import NotFoundError, ValidationError
from orderflow.core.locks import KeyedLock
from orderflow.core.states import (
    ORDER_STATES, RIDER_STATES, TERMINAL_STATES, can_transition, normalize,
)
from orderflow.models.common import utcnow
from orderflow.models.order import Order, OrderItem, StatusEvent
from orderflow.repos.base import OrderStore, RiderStore

logger = logging.getLogger(__name__)

_KEEP = object()


class OrderStateMachine:
    """
    Sole writer of order status. Writes to one order are serialized on a
    per-order lock; methods named apply_* expect the caller to already
    hold serialized(order.id), everything else takes the lock itself.
    """

    def __init__(self, orders: OrderStore, riders: RiderStore,
                 locks: Optional[KeyedLock] = None, clock: Callable[[], datetime] = utcnow):
        self.orders = orders
        self.riders = riders
        self.locks = locks or KeyedLock()
        self.clock = clock

    def serialized(self, order_id: str):
        return self.locks.hold(order_id)

    async def get(self, order_id: str) -> Order:
        order = await self.orders.get_by_id(order_id)
        if order is None:
            raise NotFoundError("Order not found", order_id=order_id)
        return order

    @staticmethod
    def resolve_target(status: Optional[str]) -> str:
        target = normalize(status)
        if target not in ORDER_STATES:
            raise ValidationError(f"Unknown order status: {status}", status=status)
        return target

    @staticmethod
    def check_transition(order: Order, target: str) -> None:
        if not can_transition(order.status, target):
            raise ValidationError(
                f"Transition {order.status} -> {target} not allowed",
                from_status=order.status, to_status=target,
            )

    async def advance(self, order_id: str, status: str, note: Optional[str] = None) -> Order:
        target = self.resolve_target(status)
        async with self.serialized(order_id):
            order = await self.get(order_id)
            return await self.apply_transition(order, target, note=note)

    async def apply_transition(self, order: Order, target: str, note: Optional[str] = None,
                               rider_id=_KEEP) -> Order:
        self.check_transition(order, target)
        new_rider = order.rider_id if rider_id is _KEEP else rider_id
        released = None
        if target in TERMINAL_STATES:
            released, new_rider = order.rider_id, None
        if new_rider and target not in RIDER_STATES:
            raise ValidationError("A rider can only be attached to an in-flight order",
                                  status=target)
        src = order.status
        now = self.clock()
        order.status = target
        order.rider_id = new_rider
        if target == "completed":
            order.delivered_at = order.delivered_at or now
        order.history.append(StatusEvent(at=now, from_status=src, to_status=target, note=note))
        order.version += 1
        order.updated_at = now
        await self.orders.save(order)
        if released:
            await self.riders.remove_assigned_order(released, order.id)
        logger.info("Order %s: %s -> %s", order.id, src, target)
        return order

    async def apply_rider(self, order: Order, rider_id: Optional[str], note: Optional[str] = None) -> Order:
        """Swap the rider on an order that stays in its current status."""
        if rider_id and order.status not in RIDER_STATES:
            raise ValidationError("A rider can only be attached to an in-flight order",
                                  status=order.status)
        now = self.clock()
        order.rider_id = rider_id
        order.history.append(StatusEvent(at=now, from_status=order.status,
                                         to_status=order.status, note=note or "rider changed"))
        order.version += 1
        order.updated_at = now
        await self.orders.save(order)
        return order

    async def apply_items(self, order: Order, items: List[OrderItem], note: Optional[str] = None) -> Order:
        if order.status in TERMINAL_STATES:
            raise ValidationError("Items of a closed order cannot change", status=order.status)
        now = self.clock()
        order.items = [i.model_copy() for i in items]
        order.recompute_totals()
        order.history.append(StatusEvent(at=now, from_status=order.status,
                                         to_status=order.status, note=note or "items updated"))
        order.version += 1
        order.updated_at = now
        await self.orders.save(order)
        logger.info("Order %s items updated, final amount %.2f", order.id, order.final_amount)
        return order

    async def restore(self, snapshot: Order) -> Order:
        """Put back a pre-change copy of an order; used by compensations."""
        await self.orders.save(snapshot)
        return snapshot

    async def assign_vendor(self, order_id: str, vendor_id: str) -> Order:
        if not vendor_id:
            raise ValidationError("vendor_id is required")
        async with self.serialized(order_id):
            order = await self.get(order_id)
            if order.status in TERMINAL_STATES:
                raise ValidationError("Cannot assign a vendor to a closed order", status=order.status)
            order.vendor_id = vendor_id
            order.version += 1
            order.updated_at = self.clock()
            await self.orders.save(order)
            logger.info("Vendor %s assigned to order %s", vendor_id, order_id)
            return order
