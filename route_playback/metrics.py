"""
Distance Metrics for Vehicle Route Playback

This module computes great-circle distances over recorded routes: the total
route length and the cumulative distance travelled at each sample, used for
route statistics and playback progress.
"""

import numpy as np
import pandas as pd
from typing import Iterable, Sequence, Union

from . import constants
from . import utils
from .models import Coordinate
from .normalizer import LATITUDE_KEYS, LONGITUDE_KEYS, TIMESTAMP_KEYS


def haversine_km(lat1, lon1, lat2, lon2):
    """
    Calculate the great-circle distance between two points on Earth.

    Uses the Haversine formula with R = 6371 km. Works element-wise on numpy
    arrays as well as on scalars; NaN inputs yield NaN.

    Args:
        lat1, lon1: Latitude and longitude of first point(s) in degrees.
        lat2, lon2: Latitude and longitude of second point(s) in degrees.

    Returns:
        Distance in kilometers between the points.
    """
    R = constants.EARTH_RADIUS_KM
    lat1_rad, lon1_rad = np.deg2rad(lat1), np.deg2rad(lon1)
    lat2_rad, lon2_rad = np.deg2rad(lat2), np.deg2rad(lon2)

    dlat = lat2_rad - lat1_rad
    dlon = lon2_rad - lon1_rad

    a = np.sin(dlat / 2) ** 2 + np.cos(lat1_rad) * np.cos(lat2_rad) * np.sin(dlon / 2) ** 2
    a = np.clip(a, 0.0, 1.0)
    c = 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))

    return R * c


def coordinates_to_frame(coordinates: Iterable[Union[Coordinate, dict]]) -> pd.DataFrame:
    """
    Convert a coordinate sequence into a DataFrame with lat/lon/timestamp.

    Accepts normalized Coordinate objects or raw service records; raw values
    that cannot be parsed become NaN instead of raising.

    Args:
        coordinates: Sequence of Coordinate objects or raw mappings.

    Returns:
        DataFrame with columns lat, lon, timestamp, in input order.
    """
    rows = []
    for coord in coordinates:
        if isinstance(coord, Coordinate):
            rows.append({"lat": coord.latitude, "lon": coord.longitude,
                         "timestamp": coord.timestamp})
        else:
            rows.append({
                "lat": utils.safe_float(utils.first_present(coord, LATITUDE_KEYS)),
                "lon": utils.safe_float(utils.first_present(coord, LONGITUDE_KEYS)),
                "timestamp": utils.first_present(coord, TIMESTAMP_KEYS),
            })
    return pd.DataFrame(rows, columns=["lat", "lon", "timestamp"])


def segment_distances_km(df: pd.DataFrame) -> pd.Series:
    """
    Distance from the previous sample to each sample.

    The first sample, and any pair containing a NaN coordinate, contributes 0.
    """
    if df.empty:
        return pd.Series(dtype=float)

    segment = haversine_km(
        df["lat"].shift(), df["lon"].shift(), df["lat"], df["lon"]
    )
    return pd.Series(segment, index=df.index).fillna(0.0)


def cumulative_distance_km(coordinates: Sequence[Union[Coordinate, dict]]) -> np.ndarray:
    """
    Distance travelled along the route at each sample index.

    Args:
        coordinates: Ordered coordinate sequence.

    Returns:
        Numpy array of the same length, starting at 0.
    """
    df = coordinates_to_frame(coordinates)
    if df.empty:
        return np.zeros(0)
    return segment_distances_km(df).cumsum().to_numpy()


def distance_km(coordinates: Sequence[Union[Coordinate, dict]]) -> float:
    """
    Total route length by pairwise Haversine summation.

    Pairs with an unparsable value are skipped; the rest still count.

    Args:
        coordinates: Ordered coordinate sequence.

    Returns:
        Total distance in kilometers (0 for fewer than two points).
    """
    if coordinates is None or len(coordinates) < 2:
        return 0.0
    df = coordinates_to_frame(coordinates)
    return float(segment_distances_km(df).sum())
