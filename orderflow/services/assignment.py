# orderflow/services/assignment.py
import logging
from typing import List, Optional

from pydantic import BaseModel

from orderflow.core.errors import NotFoundError, ValidationError
from orderflow.core.states import TERMINAL_STATES
from orderflow.models.notification import Notification, Recipient
from orderflow.models.order import Order
from orderflow.models.rider import Rider
from orderflow.repos.base import RiderStore
from . import templates
from .notifications import NotificationDispatcher
from .order_state import OrderStateMachine
from .saga import Saga

logger = logging.getLogger(__name__)

# status an order moves to when a rider is attached; anything absent keeps its status
ASSIGN_TARGET = {
    "created": "pickup_assigned",
    "ready_for_delivery": "delivery_assigned",
}
REASSIGNABLE = {"pickup_assigned", "pickup_completed", "delivered_to_vendor", "delivery_assigned"}


class AssignmentResult(BaseModel):
    order: Order
    rider: Rider
    notification: Optional[Notification] = None
    notification_sent: bool = False
    steps: List[str] = []


class AssignmentOrchestrator:
    def __init__(self, state_machine: OrderStateMachine, riders: RiderStore,
                 dispatcher: NotificationDispatcher, *, notify_retries: int = 2):
        self.sm = state_machine
        self.riders = riders
        self.dispatcher = dispatcher
        self.notify_retries = notify_retries

    async def _load_rider(self, rider_id: str) -> Rider:
        rider = await self.riders.get_by_id(rider_id)
        if rider is None:
            raise NotFoundError("Rider not found", rider_id=rider_id)
        if not rider.assignable:
            raise ValidationError("Rider is not available for assignment", rider_id=rider_id,
                                  is_active=rider.is_active, status=rider.status)
        return rider

    async def assign(self, order_id: str, rider_id: str, vendor_id: Optional[str] = None) -> AssignmentResult:
        rider = await self._load_rider(rider_id)

        async with self.sm.serialized(order_id):
            order = await self.sm.get(order_id)
            if order.status in TERMINAL_STATES:
                raise ValidationError("Cannot assign a closed order", status=order.status)
            target = ASSIGN_TARGET.get(order.status)
            if target is None and order.status not in REASSIGNABLE:
                raise ValidationError("Order is not awaiting a rider", status=order.status)
            if target:
                self.sm.check_transition(order, target)

            snapshot = order.model_copy(deep=True)
            holders = [r.id for r in await self.riders.find_by_assigned_order(order_id) if r.id != rider_id]
            already_held = order_id in rider.assigned_orders
            saga = Saga(f"assign {order_id}")

            async def commit_order():
                if vendor_id:
                    order.vendor_id = vendor_id
                if target:
                    return await self.sm.apply_transition(order, target, rider_id=rider_id,
                                                          note=f"assigned to rider {rider_id}")
                return await self.sm.apply_rider(order, rider_id, note=f"reassigned to rider {rider_id}")

            async def undo_order():
                await self.sm.restore(snapshot)

            async def release_previous():
                for prev in holders:
                    await self.riders.remove_assigned_order(prev, order_id)

            async def restore_previous():
                for prev in holders:
                    await self.riders.add_assigned_order(prev, order_id)

            async def book_rider():
                await self.riders.add_assigned_order(rider_id, order_id)

            async def unbook_rider():
                if not already_held:
                    await self.riders.remove_assigned_order(rider_id, order_id)

            recipient = Recipient(id=rider.id, kind="rider", contact=rider.contact)
            notice: List[Notification] = []

            async def store_notice():
                # composed once so retries upsert the same record
                if not notice:
                    notice.append(self.dispatcher.compose(
                        recipient, templates.order_assigned(order, rider), channels=("app", "sms"),
                    ))
                return await self.dispatcher.store.save(notice[0])

            async def drop_notice():
                await self.dispatcher.discard(notice[0].id)

            async def send_notice():
                return await self.dispatcher.deliver(notice[0], recipient)

            async def record_delivery():
                return await self.dispatcher.store.save(notice[0])

            saga.step("order_status", commit_order, undo_order)
            saga.step("release_previous_rider", release_previous, restore_previous)
            saga.step("rider_bookkeeping", book_rider, unbook_rider)
            saga.step("notification_record", store_notice, drop_notice, retries=self.notify_retries)
            # channels are hit exactly once; only the outcome write is retried
            saga.step("notify_rider", send_notice)
            saga.step("record_delivery", record_delivery, retries=self.notify_retries)
            results = await saga.run()

        notification: Notification = results["record_delivery"]
        rider = await self.riders.get_by_id(rider_id) or rider
        sent = notification.delivery_status.sms
        logger.info("Order %s assigned to rider %s (sms sent: %s)", order_id, rider_id, sent)
        return AssignmentResult(order=results["order_status"], rider=rider, notification=notification,
                                notification_sent=sent, steps=saga.completed)
