# orderflow/services/verification.py
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from orderflow.core.errors import ConflictError, ExpiredError, NotFoundError, ValidationError
from orderflow.core.events import EventChannel, VerificationDecided
from orderflow.core.states import TERMINAL_STATES
from orderflow.models.common import utcnow
from orderflow.models.notification import Recipient
from orderflow.models.order import OrderItem, items_total
from orderflow.models.verification import ItemChange, ItemDiff, PriceChange, VerificationRequest
from orderflow.repos.base import RiderStore, VerificationStore
from . import templates
from .notifications import NotificationDispatcher
from .order_state import OrderStateMachine

logger = logging.getLogger(__name__)

CONFLICT_POLICIES = ("reject", "supersede")


def _by_name(items: List[OrderItem], label: str) -> Dict[str, OrderItem]:
    out: Dict[str, OrderItem] = {}
    for item in items:
        if item.name in out:
            raise ValidationError(f"Duplicate item name in {label} items: {item.name}", item=item.name)
        out[item.name] = item
    return out


def diff_items(original: List[OrderItem], proposed: List[OrderItem]) -> ItemDiff:
    """
    Name-keyed comparison. Every name in either list lands in exactly one
    of added / removed / modified / unchanged.
    """
    old = _by_name(original, "original")
    new = _by_name(proposed, "proposed")
    diff = ItemDiff()
    for name, item in new.items():
        if name not in old:
            diff.added.append(item)
    for name, item in old.items():
        other = new.get(name)
        if other is None:
            diff.removed.append(item)
        elif item.quantity != other.quantity or item.unit_price != other.unit_price:
            diff.modified.append(ItemChange(name=name, old=item, new=other))
        else:
            diff.unchanged.append(item)
    return diff


def price_change(original: List[OrderItem], proposed: List[OrderItem]) -> PriceChange:
    old_total = items_total(original)
    new_total = items_total(proposed)
    delta = round(new_total - old_total, 2)
    pct = round(delta / old_total * 100, 2) if old_total else 0.0
    return PriceChange(old_total=old_total, new_total=new_total,
                       price_change=delta, percentage_change=pct)


class VerificationCoordinator:
    """
    Rider-proposed order edits awaiting the customer's decision.

    A pending request left undecided past its expiry becomes `expired`,
    either lazily when it is next touched or by expire_stale(); the order
    keeps its original items, same as a rejection.
    """

    def __init__(self, store: VerificationStore, state_machine: OrderStateMachine,
                 dispatcher: NotificationDispatcher, riders: RiderStore, *,
                 ttl_hours: int = 24, conflict_policy: str = "reject",
                 clock: Callable[[], datetime] = utcnow):
        if conflict_policy not in CONFLICT_POLICIES:
            raise ValueError(f"conflict_policy must be one of {CONFLICT_POLICIES}")
        self.store = store
        self.sm = state_machine
        self.dispatcher = dispatcher
        self.riders = riders
        self.ttl = timedelta(hours=ttl_hours)
        self.conflict_policy = conflict_policy
        self.clock = clock
        self.decisions: EventChannel[VerificationDecided] = EventChannel("verification.decided")

    def subscribe(self, handler):
        return self.decisions.subscribe(handler)

    async def _close(self, req: VerificationRequest, status: str, reason: Optional[str]) -> VerificationRequest:
        req.status = status
        req.reason = reason
        req.decided_at = self.clock()
        await self.store.save(req)
        return req

    async def _announce(self, closed: List[VerificationRequest]) -> None:
        for req in closed:
            await self.decisions.publish(
                VerificationDecided(order_id=req.order_id, verification_id=req.id, status=req.status)
            )

    async def propose(self, order_id: str, new_items: List[OrderItem], note: Optional[str] = None,
                      rider_id: Optional[str] = None) -> VerificationRequest:
        if not new_items:
            raise ValidationError("A proposed edit needs at least one item")
        closed: List[VerificationRequest] = []
        async with self.sm.serialized(order_id):
            order = await self.sm.get(order_id)
            if order.status in TERMINAL_STATES:
                raise ValidationError("A closed order cannot be edited", status=order.status)
            if rider_id and rider_id != order.rider_id:
                raise ValidationError("Only the assigned rider can edit this order", rider_id=rider_id)

            existing = await self.store.find_pending(order_id)
            if existing is not None:
                if existing.is_expired(self.clock()):
                    closed.append(await self._close(existing, "expired", "no decision before expiry"))
                elif self.conflict_policy == "reject":
                    raise ConflictError("A verification is already pending for this order",
                                        verification_id=existing.id)
                else:
                    closed.append(await self._close(existing, "rejected", "superseded by a newer edit"))

            diff = diff_items(order.items, new_items)
            if not diff.has_changes:
                raise ValidationError("The proposed items match the current order")
            now = self.clock()
            req = VerificationRequest(
                order_id=order.id,
                customer_id=order.customer_id,
                rider_id=rider_id or order.rider_id,
                original_items=[i.model_copy() for i in order.items],
                proposed_items=[i.model_copy() for i in new_items],
                diff=diff,
                pricing=price_change(order.items, new_items),
                note=note,
                created_at=now,
                expires_at=now + self.ttl,
            )
            await self.store.save(req)

        await self._announce(closed)
        rider = await self.riders.get_by_id(req.rider_id) if req.rider_id else None
        await self.dispatcher.dispatch(
            Recipient(id=order.customer_id, kind="customer", contact=order.customer_contact),
            templates.order_edit_request(order, rider, req),
            channels=("app", "sms"),
        )
        logger.info("Verification %s opened for order %s (change %.2f)",
                    req.id, order_id, req.pricing.price_change)
        return req

    async def decide(self, verification_id: str, approved: bool,
                     reason: Optional[str] = None) -> VerificationRequest:
        found = await self.store.get_by_id(verification_id)
        if found is None:
            raise NotFoundError("Verification not found", verification_id=verification_id)

        expired = False
        async with self.sm.serialized(found.order_id):
            req = await self.store.get_by_id(verification_id)
            if req.status != "pending":
                raise ConflictError(f"Verification already {req.status}",
                                    verification_id=req.id, status=req.status)
            if req.is_expired(self.clock()):
                req = await self._close(req, "expired", "no decision before expiry")
                expired = True
            elif approved:
                order = await self.sm.get(req.order_id)
                current = [i.model_dump() for i in order.items]
                if current != [i.model_dump() for i in req.original_items]:
                    raise ConflictError("Order items changed since the edit was proposed",
                                        verification_id=req.id)
                await self.sm.apply_items(order, req.proposed_items,
                                          note=f"verification {req.id} approved")
                req = await self._close(req, "approved", reason)
            else:
                req = await self._close(req, "rejected", reason)

        await self._announce([req])
        if expired:
            raise ExpiredError("Verification expired before a decision was made",
                               verification_id=req.id)
        await self._notify_rider(req)
        logger.info("Verification %s %s", req.id, req.status)
        return req

    async def _notify_rider(self, req: VerificationRequest) -> None:
        if not req.rider_id:
            return
        rider = await self.riders.get_by_id(req.rider_id)
        await self.dispatcher.dispatch(
            Recipient(id=req.rider_id, kind="rider", contact=rider.contact if rider else None),
            templates.verification_response(req, self.clock()),
            channels=("app", "sms", "push"),
        )

    async def expire_stale(self) -> int:
        now = self.clock()
        closed: List[VerificationRequest] = []
        for req in await self.store.list_pending():
            if not req.is_expired(now):
                continue
            async with self.sm.serialized(req.order_id):
                fresh = await self.store.get_by_id(req.id)
                if fresh is not None and fresh.status == "pending":
                    closed.append(await self._close(fresh, "expired", "no decision before expiry"))
        await self._announce(closed)
        if closed:
            logger.info("Expired %d stale verifications", len(closed))
        return len(closed)

    async def list_pending(self, customer_id: Optional[str] = None) -> List[VerificationRequest]:
        return await self.store.list_pending(customer_id)

    async def get(self, verification_id: str) -> VerificationRequest:
        req = await self.store.get_by_id(verification_id)
        if req is None:
            raise NotFoundError("Verification not found", verification_id=verification_id)
        return req
