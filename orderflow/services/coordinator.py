# orderflow/services/coordinator.py
import logging
from datetime import datetime
from typing import Callable, Iterable, List, Optional

from orderflow.core.errors import NotFoundError, ValidationError
from orderflow.models.common import LatLng, utcnow
from orderflow.models.notification import Recipient
from orderflow.models.order import Order, OrderItem
from orderflow.models.otp import OTPChallenge
from orderflow.models.rider import Rider
from orderflow.models.verification import VerificationRequest
from orderflow.repos.base import RiderStore
from . import templates
from .assignment import AssignmentOrchestrator, AssignmentResult
from .matching import RiderMatch, rank_riders
from .notifications import NotificationDispatcher
from .order_state import OrderStateMachine
from .otp import OtpGate
from .verification import VerificationCoordinator

logger = logging.getLogger(__name__)


class Coordinator:
    """Inbound operations offered to the API layer."""

    def __init__(self, *, state_machine: OrderStateMachine, riders: RiderStore,
                 dispatcher: NotificationDispatcher, verifications: VerificationCoordinator,
                 assignments: AssignmentOrchestrator, otp: OtpGate,
                 clock: Callable[[], datetime] = utcnow):
        self.sm = state_machine
        self.riders = riders
        self.dispatcher = dispatcher
        self.verifications = verifications
        self.assignments = assignments
        self.otp = otp
        self.clock = clock

    # ---- orders
    async def get_order(self, order_id: str) -> Order:
        return await self.sm.get(order_id)

    async def advance_order_status(self, order_id: str, status: str, note: Optional[str] = None) -> Order:
        order = await self.sm.advance(order_id, status, note=note)
        await self.dispatcher.dispatch(
            Recipient(id=order.customer_id, kind="customer", contact=order.customer_contact),
            templates.order_status_update(order),
            channels=("app",),
        )
        return order

    async def assign_order_to_rider(self, order_id: str, rider_id: str,
                                    vendor_id: Optional[str] = None) -> AssignmentResult:
        return await self.assignments.assign(order_id, rider_id, vendor_id)

    async def assign_vendor(self, order_id: str, vendor_id: str) -> Order:
        return await self.sm.assign_vendor(order_id, vendor_id)

    # ---- verification
    async def propose_order_edit(self, order_id: str, new_items: List[OrderItem],
                                 note: Optional[str] = None, rider_id: Optional[str] = None) -> VerificationRequest:
        return await self.verifications.propose(order_id, new_items, note=note, rider_id=rider_id)

    async def decide_verification(self, verification_id: str, approved: bool,
                                  reason: Optional[str] = None) -> VerificationRequest:
        return await self.verifications.decide(verification_id, approved, reason)

    # ---- otp
    async def request_otp(self, contact: str, purpose: str = "login") -> OTPChallenge:
        return await self.otp.request(contact, purpose)

    async def verify_otp(self, contact: str, purpose: str, code: str) -> bool:
        return await self.otp.verify(contact, purpose, code)

    # ---- riders
    def get_nearest_riders(self, pickup: LatLng, candidates: Iterable[Rider]) -> List[RiderMatch]:
        return rank_riders(pickup, candidates, now=self.clock())

    async def nearest_riders_for_order(self, order_id: str, radius_km: Optional[float] = None) -> List[RiderMatch]:
        order = await self.sm.get(order_id)
        if order.pickup_location is None:
            raise ValidationError("Order has no pickup location", order_id=order_id)
        loc = order.pickup_location
        if radius_km is None:
            candidates = await self.riders.query_active()
        else:
            candidates = await self.riders.find_active_nearby(loc.lat, loc.lng, radius_km)
        return rank_riders(loc, candidates, now=self.clock())

    async def update_rider_location(self, rider_id: str, lat: float, lng: float) -> Rider:
        rider = await self.riders.get_by_id(rider_id)
        if rider is None:
            raise NotFoundError("Rider not found", rider_id=rider_id)
        rider.location = LatLng(lat=lat, lng=lng)
        rider.last_location_update = self.clock()
        await self.riders.save(rider)
        return rider
