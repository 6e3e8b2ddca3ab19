# orderflow/core/states.py
from typing import Optional

ORDER_STATES = [
    "created", "pickup_assigned", "pickup_completed", "delivered_to_vendor",
    "ready_for_delivery", "delivery_assigned", "completed", "cancelled",
]

# lifecycle order, cancelled is off-path
ORDER_FLOW = ORDER_STATES[:7]
TERMINAL_STATES = {"completed", "cancelled"}

# statuses during which an order may carry a rider reference
RIDER_STATES = set(ORDER_FLOW[1:6])

LEGACY_STATUS_MAP = {
    "pending": "created",
    "new": "created",
    "new_order": "created",
    "confirmed": "pickup_assigned",
    "accepted": "pickup_assigned",
    "assigned": "pickup_assigned",
    "pickup_scheduled": "pickup_assigned",
    "pickup_in_progress": "pickup_assigned",
    "picked_up": "pickup_completed",
    "processing": "delivered_to_vendor",
    "in_process": "delivered_to_vendor",
    "in_progress": "ready_for_delivery",
    "ready_for_pickup": "ready_for_delivery",
    "out_for_delivery": "delivery_assigned",
    "delivery_in_progress": "delivery_assigned",
    "delivered": "completed",
    "completed": "completed",
    "cancelled": "cancelled",
    "canceled": "cancelled",
}


def normalize(status: Optional[str]) -> str:
    """
    Translate a legacy or canonical status to its canonical value.
    Empty input means a freshly created order; unknown strings pass
    through lower-cased with spaces folded to underscores.
    """
    if not status or not str(status).strip():
        return "created"
    key = "_".join(str(status).strip().lower().split())
    return LEGACY_STATUS_MAP.get(key, key)


def is_canonical(status: str) -> bool:
    return status in ORDER_STATES


def next_state(src: str) -> Optional[str]:
    if src not in ORDER_FLOW or src == "completed":
        return None
    return ORDER_FLOW[ORDER_FLOW.index(src) + 1]


def can_transition(src: str, dst: str) -> bool:
    if src in TERMINAL_STATES:
        return False
    if dst == "cancelled":
        return True
    return next_state(src) == dst
