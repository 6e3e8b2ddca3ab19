# orderflow/presentation.py
# Rendering for consumers that still speak the old status vocabulary.
# One way only: canonical -> legacy. Legacy input is translated by
# core.states.normalize, never by reversing these tables.
from typing import Any, Dict

from orderflow.models.order import Order

LEGACY_FORMATS = {
    "v1": {
        "created": "pending",
        "pickup_assigned": "confirmed",
        "pickup_completed": "in_progress",
        "delivered_to_vendor": "in_progress",
        "ready_for_delivery": "in_progress",
        "delivery_assigned": "in_progress",
        "completed": "completed",
        "cancelled": "cancelled",
    },
}
DEFAULT_LEGACY_FORMAT = "v1"


def to_legacy_status(status: str, version: str = DEFAULT_LEGACY_FORMAT) -> str:
    table = LEGACY_FORMATS.get(version)
    if table is None:
        raise ValueError(f"Unknown legacy status format: {version}")
    return table.get(status, status)


def render_order(order: Order, legacy: bool = False,
                 version: str = DEFAULT_LEGACY_FORMAT) -> Dict[str, Any]:
    out = order.model_dump(mode="json")
    if legacy:
        out["canonical_status"] = order.status
        out["status"] = to_legacy_status(order.status, version)
        out["status_format"] = f"legacy-{version}"
    return out
