"""
Route Statistics for Vehicle Route Playback

This module assembles the display statistics for a route snapshot. The
server-provided trip summary is authoritative where present; the locally
computed Haversine distance is used only when the summary has no mileage.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from . import metrics
from . import utils
from .models import RouteSnapshot


class DistanceSource(str, Enum):
    API = "API"
    CALCULATED = "CALCULATED"


@dataclass(frozen=True)
class RouteStatistics:
    total_points: int
    distance_km: float
    distance_source: DistanceSource
    total_stops: int
    active_time: Optional[str] = None
    idle_time: Optional[str] = None
    fuel_consumption: Optional[float] = None
    max_speed: Optional[float] = None
    avg_speed: Optional[float] = None
    has_trip_summary: bool = False

    @property
    def distance_label(self) -> str:
        if self.distance_source is DistanceSource.API:
            return "API Distance"
        return "Calculated Distance"

    def data_quality(self) -> Dict[str, object]:
        """Indicators shown next to the statistics: GPS points, summary, stops."""
        return {
            "gps_points": "GOOD" if self.total_points > 0 else "NO_DATA",
            "trip_summary": "AVAILABLE" if self.has_trip_summary else "LIMITED",
            "stops_detected": self.total_stops,
        }

    def as_dict(self) -> Dict[str, object]:
        return {
            "total_points": self.total_points,
            "distance_km": utils.round_float(self.distance_km, 2),
            "distance_source": self.distance_source.value,
            "distance_label": self.distance_label,
            "total_stops": self.total_stops,
            "active_time": self.active_time,
            "idle_time": self.idle_time,
            "fuel_consumption": self.fuel_consumption,
            "max_speed": self.max_speed,
            "avg_speed": self.avg_speed,
            "data_quality": self.data_quality(),
        }


def derive_statistics(snapshot: RouteSnapshot) -> RouteStatistics:
    """
    Derive display statistics from a route snapshot.

    Args:
        snapshot: The currently displayed route.

    Returns:
        RouteStatistics. Summary fields the server did not provide are None
        (unknown), never zero.
    """
    summary = snapshot.trip_summary
    calculated = metrics.distance_km(snapshot.coordinates)

    if summary is not None and summary.total_mileage is not None:
        distance, source = summary.total_mileage, DistanceSource.API
    else:
        distance, source = calculated, DistanceSource.CALCULATED

    if snapshot.total_stops is not None:
        total_stops = snapshot.total_stops
    else:
        total_stops = len(snapshot.stops)

    return RouteStatistics(
        total_points=len(snapshot.coordinates),
        distance_km=distance,
        distance_source=source,
        total_stops=total_stops,
        active_time=summary.total_active_time if summary else None,
        idle_time=summary.total_idle_time if summary else None,
        fuel_consumption=summary.total_fuel_consumption if summary else None,
        max_speed=summary.max_speed if summary else None,
        avg_speed=summary.avg_speed if summary else None,
        has_trip_summary=summary is not None,
    )


def route_information(snapshot: RouteSnapshot) -> Dict[str, Optional[str]]:
    """
    Identity and time window of the route, for the information panel.

    Route start/end are the first and last recorded fix timestamps.
    """
    coordinates = snapshot.coordinates
    first = coordinates[0].timestamp if coordinates else None
    last = coordinates[-1].timestamp if coordinates else None
    return {
        "car_id": snapshot.car_id,
        "etit_car_id": snapshot.etit_car_id,
        "from": snapshot.from_timestamp,
        "to": snapshot.to_timestamp,
        "route_start": utils.format_datetime(first) if first is not None else None,
        "route_end": utils.format_datetime(last) if last is not None else None,
        "origin": snapshot.origin.value,
    }
