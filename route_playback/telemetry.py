"""
Route Telemetry and GeoJSON Rendering for Vehicle Route Playback

This module converts route snapshots into per-sample records for the
timeline readout and implements a MapLibraryAdapter that renders the map
state as a GeoJSON FeatureCollection for the web frontend.
"""

from typing import Dict, List, Optional, Sequence

from . import metrics
from . import utils
from .map_sync import MapLibraryAdapter, Position
from .models import RouteSnapshot


def build_coordinate_records(snapshot: Optional[RouteSnapshot]) -> List[Dict]:
    """
    Convert a snapshot's coordinates into timeline record dictionaries.

    Args:
        snapshot: Displayed route snapshot (may be None).

    Returns:
        List of dictionaries, one per coordinate, with index, raw and display
        timestamp, position and cumulative distance travelled in km.
    """
    if snapshot is None:
        return []

    along = metrics.cumulative_distance_km(snapshot.coordinates)
    records = []

    for idx, coord in enumerate(snapshot.coordinates):
        record = coord.as_dict()
        record.update({
            "index": idx,
            "display_time": utils.format_datetime(coord.timestamp),
            "distance_km": utils.round_float(along[idx], 3),
        })
        records.append(record)

    return records


def _point(position: Position) -> Dict:
    lat, lon = position
    return {"type": "Point", "coordinates": [lon, lat]}


class GeoJsonMapAdapter(MapLibraryAdapter):
    """
    Map adapter that keeps the rendered map as GeoJSON.

    Marker and layer handles are indices into the feature list. The frontend
    draws the FeatureCollection returned by ``to_geojson()``.
    """

    def __init__(self):
        self.features: List[Dict] = []
        self.bounds: Optional[List[List[float]]] = None
        self.base_layer: Optional[str] = None
        self.view: Optional[Dict] = None
        self.destroyed_count = 0

    def create_map(self, bounds: Sequence[Position]) -> None:
        lats = [lat for lat, _ in bounds]
        lons = [lon for _, lon in bounds]
        self.features = []
        self.view = None
        self.bounds = [[min(lats), min(lons)], [max(lats), max(lons)]]

    def set_base_layer(self, name: str) -> None:
        self.base_layer = name

    def add_polyline(self, points: Sequence[Position]) -> int:
        self.features.append({
            "type": "Feature",
            "geometry": {
                "type": "LineString",
                "coordinates": [[lon, lat] for lat, lon in points],
            },
            "properties": {"layer": "route", "sampleCount": len(points)},
        })
        return len(self.features) - 1

    def add_marker(self, kind: str, position: Position, popup: Dict,
                   label: Optional[str] = None) -> int:
        self.features.append({
            "type": "Feature",
            "geometry": _point(position),
            "properties": {"marker": kind, "label": label, "popup": popup},
        })
        return len(self.features) - 1

    def move_marker(self, handle: int, position: Position, popup: Dict) -> None:
        feature = self.features[handle]
        feature["geometry"] = _point(position)
        feature["properties"]["popup"] = popup

    def set_view(self, position: Position, zoom: int) -> None:
        self.view = {"center": list(position), "zoom": zoom}

    def destroy(self) -> None:
        self.features = []
        self.bounds = None
        self.view = None
        self.destroyed_count += 1

    def to_geojson(self) -> Dict:
        """
        Current map as GeoJSON plus the view metadata.

        Returns:
            FeatureCollection with the route LineString and marker Points;
            ``bounds``, ``baseLayer`` and ``view`` are foreign members.
        """
        return {
            "type": "FeatureCollection",
            "features": self.features,
            "bounds": self.bounds,
            "baseLayer": self.base_layer,
            "view": self.view,
        }
