"""
Data Model for Vehicle Route Playback

This module defines the structures shared by the route store, the statistics
calculator, the playback timeline and the map synchronizer: normalized
coordinates and stops, the route snapshot with its identity token, the
playback state and the date range used to query the Route Data Service.
"""

import itertools
from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Optional, Tuple, Union

from . import constants
from .errors import ValidationError


class RouteOrigin(str, Enum):
    STORED = "STORED"
    FETCHED = "FETCHED"


class PlaybackStatus(str, Enum):
    STOPPED = "STOPPED"
    PAUSED = "PAUSED"
    PLAYING = "PLAYING"


@dataclass(frozen=True)
class Coordinate:
    """A single validated GPS fix."""
    latitude: float
    longitude: float
    timestamp: Union[str, datetime, None] = None

    @property
    def position(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)

    def as_dict(self) -> dict:
        ts = self.timestamp
        if isinstance(ts, datetime):
            ts = ts.isoformat()
        return {"lat": self.latitude, "lng": self.longitude, "timestamp": ts}


@dataclass(frozen=True)
class Stop:
    """A dwell interval reported by the Route Data Service."""
    from_label: Optional[str]
    to_label: Optional[str]
    duration_label: Optional[str]
    latitude: float
    longitude: float
    address: Optional[str] = None

    @property
    def position(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)

    def as_dict(self) -> dict:
        return {
            "from": self.from_label,
            "to": self.to_label,
            "duration": self.duration_label,
            "lat": self.latitude,
            "lng": self.longitude,
            "address": self.address,
        }


@dataclass(frozen=True)
class Landmark:
    """A trip's terminal or drop-off location."""
    kind: str
    latitude: float
    longitude: float
    address: Optional[str] = None

    @property
    def position(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)


@dataclass(frozen=True)
class TripSummary:
    """Authoritative server-side summary. ``None`` means unknown."""
    total_mileage: Optional[float] = None
    total_active_time: Optional[str] = None
    total_idle_time: Optional[str] = None
    total_fuel_consumption: Optional[float] = None
    max_speed: Optional[float] = None
    avg_speed: Optional[float] = None
    number_of_stops: Optional[int] = None


_snapshot_ids = itertools.count(1)


def _next_snapshot_id() -> int:
    return next(_snapshot_ids)


@dataclass(frozen=True)
class RouteSnapshot:
    """
    An immutable recorded route, created wholesale from one service response.

    ``snapshot_id`` is a monotonic identity token: every snapshot built gets a
    fresh id, so a replacement with the same number of points is still
    distinguishable from the one it replaces.
    """
    coordinates: Tuple[Coordinate, ...]
    origin: RouteOrigin
    stops: Tuple[Stop, ...] = ()
    trip_summary: Optional[TripSummary] = None
    trip_id: Optional[Union[int, str]] = None
    car_id: Optional[Union[int, str]] = None
    etit_car_id: Optional[Union[int, str]] = None
    from_timestamp: Optional[str] = None
    to_timestamp: Optional[str] = None
    total_stops: Optional[int] = None
    snapshot_id: int = field(default_factory=_next_snapshot_id)

    def __len__(self) -> int:
        return len(self.coordinates)

    @property
    def is_empty(self) -> bool:
        return not self.coordinates


@dataclass(frozen=True)
class PlaybackState:
    current_index: int = 0
    is_playing: bool = False
    speed_ms: int = constants.DEFAULT_SPEED_MS
    status: PlaybackStatus = PlaybackStatus.STOPPED

    def as_dict(self) -> dict:
        return {
            "current_index": self.current_index,
            "is_playing": self.is_playing,
            "speed_ms": self.speed_ms,
            "status": self.status.value,
        }


def _parse_date(value: Union[str, date, None], label: str) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip().replace("/", "-")
    try:
        return date.fromisoformat(text)
    except ValueError as exc:
        raise ValidationError(f"Invalid {label} date: {value!r}") from exc


def _parse_time(value: Union[str, time, None], default: str, pad_seconds: str,
                label: str) -> time:
    if value is None or value == "":
        value = default
    if isinstance(value, time):
        return value
    text = str(value).strip()
    # "HH:mm" gets the window-edge seconds appended
    if text.count(":") == 1:
        text = f"{text}:{pad_seconds}"
    try:
        return time.fromisoformat(text)
    except ValueError as exc:
        raise ValidationError(f"Invalid {label} time: {value!r}") from exc


@dataclass(frozen=True)
class DateRangeQuery:
    """
    Inclusive datetime window used to query the Route Data Service.

    Dates are ``YYYY-MM-DD`` strings (or ``date`` objects); times are
    ``HH:mm`` or ``HH:mm:ss``. A missing from-time means start of day and a
    missing to-time means end of day.
    """
    from_date: Union[str, date, None] = None
    to_date: Union[str, date, None] = None
    from_time: Union[str, time, None] = None
    to_time: Union[str, time, None] = None

    @classmethod
    def for_trip_date(cls, trip_date: Union[str, date, datetime]) -> "DateRangeQuery":
        """Full-day window on the trip's date."""
        if isinstance(trip_date, str):
            trip_date = datetime.fromisoformat(trip_date.strip().replace("Z", "+00:00"))
        if isinstance(trip_date, datetime):
            trip_date = trip_date.date()
        return cls(from_date=trip_date, to_date=trip_date, from_time="00:00", to_time="23:59")

    def is_complete(self) -> bool:
        return bool(self.from_date) and bool(self.to_date)

    def from_datetime(self) -> str:
        day = _parse_date(self.from_date, "from")
        if day is None:
            raise ValidationError("From date is required")
        moment = _parse_time(self.from_time, constants.DEFAULT_FROM_TIME, "00", "from")
        return datetime.combine(day, moment).strftime(constants.DATETIME_FORMAT)

    def to_datetime(self) -> str:
        day = _parse_date(self.to_date, "to")
        if day is None:
            raise ValidationError("To date is required")
        moment = _parse_time(self.to_time, constants.DEFAULT_TO_TIME, "59", "to")
        return datetime.combine(day, moment).strftime(constants.DATETIME_FORMAT)

    def as_params(self) -> dict:
        return {"from": self.from_datetime(), "to": self.to_datetime()}
