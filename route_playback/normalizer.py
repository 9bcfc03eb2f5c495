"""
Coordinate Normalization for Vehicle Route Playback

This module turns the heterogeneous location records returned by the Route
Data Service into validated, ordered coordinate and stop sequences.
Records that cannot be placed on the map are dropped, not escalated.
"""

import logging
from typing import Iterable, List, Mapping, Optional

from . import utils
from .models import Coordinate, Landmark, Stop

logger = logging.getLogger(__name__)

LATITUDE_KEYS = ("Latitude", "lat", "latitude")
LONGITUDE_KEYS = ("Longitude", "lng", "lon", "longitude")
TIMESTAMP_KEYS = ("DateTime", "dateTime", "timestamp")


def extract_position(record: Mapping):
    """
    Read and validate the latitude/longitude pair of a raw record.

    Args:
        record: Raw mapping with PascalCase or lowercase field names.

    Returns:
        Tuple of (lat, lon) floats, or None if either field is missing,
        unparsable or out of range.
    """
    lat = utils.safe_float(utils.first_present(record, LATITUDE_KEYS))
    lon = utils.safe_float(utils.first_present(record, LONGITUDE_KEYS))
    if not utils.is_valid_position(lat, lon):
        return None
    return lat, lon


def normalize_coordinates(raw_records: Optional[Iterable[Mapping]]) -> List[Coordinate]:
    """
    Convert raw service location records into canonical coordinates.

    Input order is preserved and trusted as chronological. A record is
    dropped when either field fails to parse or falls outside its range.

    Args:
        raw_records: Iterable of raw location mappings (may be None).

    Returns:
        List of Coordinate objects, never longer than the input.
    """
    coordinates = []
    dropped = 0

    for record in raw_records or ():
        position = extract_position(record)
        if position is None:
            dropped += 1
            continue
        coordinates.append(Coordinate(
            latitude=position[0],
            longitude=position[1],
            timestamp=utils.first_present(record, TIMESTAMP_KEYS),
        ))

    if dropped:
        logger.debug("Dropped %d unusable location records", dropped)
    return coordinates


def normalize_stops(raw_stops: Optional[Iterable[Mapping]]) -> List[Stop]:
    """Convert raw stop records into Stop objects, skipping unplaceable ones."""
    stops = []
    for record in raw_stops or ():
        position = extract_position(record)
        if position is None:
            continue
        stops.append(Stop(
            from_label=utils.first_present(record, ("From", "from")),
            to_label=utils.first_present(record, ("To", "to")),
            duration_label=utils.first_present(record, ("Duration", "duration")),
            latitude=position[0],
            longitude=position[1],
            address=utils.first_present(record, ("Address", "address")),
        ))
    return stops


def parse_landmark(kind: str, raw: Optional[Mapping],
                   fallback_address: Optional[str] = None) -> Optional[Landmark]:
    """
    Build a Landmark from a trip's terminal/drop-off location object.

    Args:
        kind: Landmark kind ("terminal" or "drop_off").
        raw: Location mapping with lat/latitude and lng/longitude fields.
        fallback_address: Address to use when the location carries none.

    Returns:
        Landmark, or None when the location is absent or unplaceable.
    """
    if not raw:
        return None
    position = extract_position(raw)
    if position is None:
        return None
    address = utils.first_present(raw, ("address",)) or fallback_address
    return Landmark(kind=kind, latitude=position[0], longitude=position[1], address=address)
