"""
Utility Functions for Vehicle Route Playback

This module provides helper functions for tolerant field lookup, numeric
conversion, rounding and display formatting used throughout the engine.
"""

import re
import numpy as np
from datetime import datetime
from typing import Mapping, Optional, Sequence

_DDMMYYYY = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})\s+(\d{1,2}):(\d{1,2}):(\d{1,2})$")


def safe_float(value) -> float:
    """
    Safely convert a value to float, returning NaN on failure.

    Args:
        value: Value to convert (string, number, etc.).

    Returns:
        Float value, or np.nan if conversion fails.
    """
    try:
        return float(value)
    except (TypeError, ValueError):
        return np.nan


def first_present(record: Mapping, keys: Sequence[str]):
    """
    Return the first non-empty value among several alternative field names.

    Service records arrive with either PascalCase or lowercase field names,
    so lookups try each spelling in turn.

    Args:
        record: Raw mapping from the service response.
        keys: Candidate field names, in order of preference.

    Returns:
        The first value that is neither None nor an empty string, or None.
    """
    if not isinstance(record, Mapping):
        return None
    for key in keys:
        value = record.get(key)
        if value is not None and value != "":
            return value
    return None


def is_valid_position(lat: float, lon: float) -> bool:
    """Finite latitude in [-90, 90] and longitude in [-180, 180]."""
    if not (np.isfinite(lat) and np.isfinite(lon)):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0


def round_float(value, digits: int = 3) -> Optional[float]:
    """
    Round a float value, handling None, NaN, and Inf.

    Args:
        value: Value to round.
        digits: Number of decimal places. Default 3.

    Returns:
        Rounded float, or None if value is None, NaN, or Inf.
    """
    if value is None or (isinstance(value, float) and (np.isnan(value) or np.isinf(value))):
        return None
    return round(float(value), digits)


def optional_number(value) -> Optional[float]:
    """Parse a summary field; absent or unparsable values stay unknown (None)."""
    if value is None or value == "":
        return None
    number = safe_float(value)
    if np.isnan(number):
        return None
    return number


def format_datetime(value) -> str:
    """
    Format a coordinate timestamp for display as ``DD/MM/YYYY HH:mm:ss``.

    Accepts datetime objects, epoch milliseconds, ISO strings and strings
    already in ``DD/MM/YYYY HH:mm:ss`` form. Values that cannot be parsed are
    returned unchanged as strings.
    """
    if value is None or value == "":
        return "N/A"

    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, (int, float)):
        try:
            moment = datetime.fromtimestamp(value / 1000.0)
        except (OverflowError, OSError, ValueError):
            return str(value)
    else:
        text = str(value).strip()
        match = _DDMMYYYY.match(text)
        try:
            if match:
                day, month, year, hour, minute, second = (int(g) for g in match.groups())
                moment = datetime(year, month, day, hour, minute, second)
            else:
                moment = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return text

    return moment.strftime("%d/%m/%Y %H:%M:%S")


def coordinate_string(lat: float, lon: float) -> str:
    """Six-decimal ``lat, lon`` label used in popups and timeline readouts."""
    if not (np.isfinite(lat) and np.isfinite(lon)):
        return "Invalid coordinates"
    return f"{lat:.6f}, {lon:.6f}"
