# orderflow/services/templates.py
from datetime import datetime, timedelta
from typing import Optional

from orderflow.models.notification import NotificationPayload
from orderflow.models.order import Order
from orderflow.models.rider import Rider
from orderflow.models.verification import VerificationRequest

RESPONSE_TTL = timedelta(hours=24)


def _ref(order: Order) -> str:
    return order.id[-8:].upper()


def order_assigned(order: Order, rider: Rider) -> NotificationPayload:
    return NotificationPayload(
        title="New Order Assigned",
        message=f"Order #{_ref(order)} has been assigned to you. Please start the pickup.",
        type="order_assigned",
        data={"order_id": order.id, "status": order.status, "total": order.final_amount},
        priority="high",
        action_required=True,
        action_type="start_pickup",
        related_order=order.id,
    )


def order_edit_request(order: Order, rider: Optional[Rider], req: VerificationRequest) -> NotificationPayload:
    by = rider.name if rider and rider.name else "your rider"
    return NotificationPayload(
        title="Order Updated by Rider",
        message=f"Your order #{_ref(order)} has been updated by {by}. Please review the changes.",
        type="rider_edit",
        data={
            "verification_id": req.id,
            "order_id": order.id,
            "changes": req.diff.model_dump(mode="json"),
            "price_change": req.pricing.price_change,
            "new_total": req.pricing.new_total,
            "note": req.note,
        },
        priority="high" if req.pricing.price_change > 0 else "medium",
        action_required=True,
        action_type="approve_changes",
        related_order=order.id,
        expires_at=req.expires_at,
    )


def verification_response(req: VerificationRequest, now: datetime) -> NotificationPayload:
    approved = req.status == "approved"
    if approved:
        title = "Customer Approved Changes"
        message = f"Customer approved the changes for order {req.order_id}. You can now proceed."
    else:
        title = "Customer Rejected Changes"
        tail = f"Reason: {req.reason}" if req.reason else "Please modify the order and try again."
        message = f"Customer rejected the changes for order {req.order_id}. {tail}"
    return NotificationPayload(
        title=title,
        message=message,
        type="customer_verification_response",
        data={
            "verification_id": req.id,
            "order_id": req.order_id,
            "status": req.status,
            "reason": req.reason,
            "price_change": req.pricing.price_change,
        },
        priority="medium" if approved else "high",
        related_order=req.order_id,
        expires_at=now + RESPONSE_TTL,
    )


def order_status_update(order: Order) -> NotificationPayload:
    label = order.status.replace("_", " ").title()
    return NotificationPayload(
        title="Order Status Updated",
        message=f"Your order #{_ref(order)} is now: {label}.",
        type="booking_status",
        data={"order_id": order.id, "status": order.status},
        priority="low",
        action_type="view_order",
        related_order=order.id,
    )
