# orderflow/services/matching.py
from datetime import datetime
from math import radians, sin, cos, atan2
from typing import Iterable, List, Literal, Optional, Union

from pydantic import BaseModel

from orderflow.models.common import LatLng, utcnow
from orderflow.models.rider import Rider

EARTH_RADIUS_KM = 6371.0

Freshness = Literal["fresh", "recent", "stale", "old", "unknown"]

Point = Union[LatLng, dict]


def _latlng(p: Point) -> tuple:
    if isinstance(p, dict):
        return float(p["lat"]), float(p["lng"])
    return p.lat, p.lng


def haversine(a: Point, b: Point) -> float:
    """
    a, b: LatLng or dicts like {"lat": float, "lng": float}
    returns great-circle distance in km
    """
    lat1, lng1 = _latlng(a)
    lat2, lng2 = _latlng(b)
    dlat = radians(lat2 - lat1)
    dlon = radians(lng2 - lng1)
    s = sin(dlat/2)**2 + cos(radians(lat1)) * cos(radians(lat2)) * sin(dlon/2)**2
    return 2 * EARTH_RADIUS_KM * atan2(s**0.5, (1 - s)**0.5)


def freshness(last_update: Optional[datetime], now: Optional[datetime] = None) -> Freshness:
    if last_update is None:
        return "unknown"
    minutes = ((now or utcnow()) - last_update).total_seconds() / 60
    if minutes < 5:
        return "fresh"
    if minutes < 15:
        return "recent"
    if minutes < 60:
        return "stale"
    return "old"


class RiderMatch(BaseModel):
    rider: Rider
    distance_km: Optional[float] = None
    freshness: Freshness = "unknown"


def rank_riders(pickup: Point, riders: Iterable[Rider],
                now: Optional[datetime] = None) -> List[RiderMatch]:
    """
    Nearest first. Riders without a location go last in input order.
    Freshness is advisory only; nothing is filtered out.
    """
    now = now or utcnow()
    matches = [
        RiderMatch(
            rider=r,
            distance_km=haversine(r.location, pickup) if r.location else None,
            freshness=freshness(r.last_location_update, now),
        )
        for r in riders
    ]
    # sorted() is stable, so ties and the no-location tail keep input order
    return sorted(matches, key=lambda m: (m.distance_km is None, m.distance_km or 0.0))
