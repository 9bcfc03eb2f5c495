"""
Map Synchronization for Vehicle Route Playback

This module keeps a map view in step with the displayed route snapshot and
the playback position. The mapping library is reached only through an
injected MapLibraryAdapter, so nothing here depends on a global map object.

The marker/layer set is rebuilt whenever the snapshot identity changes;
between rebuilds only the vehicle marker moves.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Tuple

from . import constants
from . import utils
from .models import Coordinate, Landmark, RouteSnapshot, Stop

logger = logging.getLogger(__name__)

Position = Tuple[float, float]

MARKER_TERMINAL = "terminal"
MARKER_DROP_OFF = "drop_off"
MARKER_START = "route_start"
MARKER_END = "route_end"
MARKER_STOP = "stop"
MARKER_VEHICLE = "vehicle"


class MapLibraryAdapter(ABC):
    """Operations MapSync needs from a mapping library."""

    @abstractmethod
    def create_map(self, bounds: Sequence[Position]) -> None:
        """Create the map fitted to ``bounds``."""

    @abstractmethod
    def set_base_layer(self, name: str) -> None:
        """Show the ``street`` or ``satellite`` tile layer."""

    @abstractmethod
    def add_polyline(self, points: Sequence[Position]):
        """Draw the route line; returns a layer handle."""

    @abstractmethod
    def add_marker(self, kind: str, position: Position, popup: Dict,
                   label: Optional[str] = None):
        """Add a marker; returns a handle usable with ``move_marker``."""

    @abstractmethod
    def move_marker(self, handle, position: Position, popup: Dict) -> None:
        """Reposition a marker and replace its popup."""

    @abstractmethod
    def set_view(self, position: Position, zoom: int) -> None:
        """Pan/zoom the view."""

    @abstractmethod
    def destroy(self) -> None:
        """Remove the map and every layer on it."""


def landmark_popup(landmark: Landmark) -> Dict:
    title = "Terminal Location" if landmark.kind == MARKER_TERMINAL else "Fuel Station"
    details = [utils.coordinate_string(landmark.latitude, landmark.longitude)]
    if landmark.address:
        details.append(landmark.address)
    return {"title": title, "details": details}


def stop_popup(stop: Stop, number: int) -> Dict:
    details = [
        f"From: {stop.from_label or 'N/A'}",
        f"To: {stop.to_label or 'N/A'}",
        f"Duration: {stop.duration_label or 'N/A'}",
        f"Coordinates: {utils.coordinate_string(stop.latitude, stop.longitude)}",
    ]
    if stop.address:
        details.append(f"Address: {stop.address}")
    return {
        "title": f"Stop {number}",
        "details": details,
        "link": f"https://www.google.com/maps?q={stop.latitude},{stop.longitude}",
    }


def vehicle_popup(coordinate: Coordinate) -> Dict:
    return {
        "title": "Vehicle Position",
        "details": [
            utils.format_datetime(coordinate.timestamp),
            utils.coordinate_string(coordinate.latitude, coordinate.longitude),
        ],
    }


class MapSync:
    """
    Renders a route snapshot and the playback position through an adapter.

    Args:
        adapter: Mapping library adapter.
        landmarks: Static terminal/drop-off landmarks for the trip.
    """

    def __init__(self, adapter: MapLibraryAdapter, landmarks: Sequence[Landmark] = ()):
        self._adapter = adapter
        self._landmarks = list(landmarks)
        self._rendered_id: Optional[int] = None
        self._snapshot: Optional[RouteSnapshot] = None
        self._vehicle = None
        self._markers: List = []
        self._route_layer = None
        self.base_layer = constants.BASE_LAYERS[0]

    @property
    def is_initialized(self) -> bool:
        return self._rendered_id is not None

    @property
    def rendered_snapshot_id(self) -> Optional[int]:
        return self._rendered_id

    def set_landmarks(self, landmarks: Sequence[Landmark]) -> None:
        """Replace the landmarks; the next render rebuilds the map."""
        self._landmarks = list(landmarks)
        if self.is_initialized:
            self.teardown()

    def render(self, snapshot: Optional[RouteSnapshot], current_index: int) -> None:
        """
        Bring the map in line with ``(snapshot, current_index)``.

        Args:
            snapshot: Displayed route, or None for nothing to show.
            current_index: Playback position into ``snapshot.coordinates``.
        """
        if snapshot is None or snapshot.is_empty:
            if self.is_initialized:
                self.teardown()
            return

        if snapshot.snapshot_id != self._rendered_id:
            self._initialize(snapshot)

        self._move_vehicle(current_index)

    def _initialize(self, snapshot: RouteSnapshot) -> None:
        if self.is_initialized:
            self._adapter.destroy()
            self._reset_handles()

        points = [c.position for c in snapshot.coordinates]
        bounds = points + [s.position for s in snapshot.stops]
        bounds += [landmark.position for landmark in self._landmarks]

        self._adapter.create_map(bounds)
        self._adapter.set_base_layer(self.base_layer)
        if len(points) > 1:
            self._route_layer = self._adapter.add_polyline(points)

        markers = []
        for landmark in self._landmarks:
            markers.append(self._adapter.add_marker(
                landmark.kind, landmark.position, landmark_popup(landmark)))

        markers.append(self._adapter.add_marker(
            MARKER_START, points[0], {"title": "Route Start", "details": []}, label="S"))
        if len(points) > 1:
            markers.append(self._adapter.add_marker(
                MARKER_END, points[-1], {"title": "Route End", "details": []}, label="E"))

        for number, stop in enumerate(snapshot.stops, start=1):
            markers.append(self._adapter.add_marker(
                MARKER_STOP, stop.position, stop_popup(stop, number)))

        # vehicle goes last so it draws on top
        self._vehicle = self._adapter.add_marker(
            MARKER_VEHICLE, points[0], vehicle_popup(snapshot.coordinates[0]))
        markers.append(self._vehicle)

        self._markers = markers
        self._snapshot = snapshot
        self._rendered_id = snapshot.snapshot_id
        logger.debug("Map rebuilt for snapshot %s with %d markers",
                     snapshot.snapshot_id, len(markers))

    def _move_vehicle(self, current_index: int) -> None:
        coordinates = self._snapshot.coordinates
        if not 0 <= current_index < len(coordinates):
            return
        coordinate = coordinates[current_index]
        self._adapter.move_marker(self._vehicle, coordinate.position, vehicle_popup(coordinate))

    def focus_on_location(self, latitude: float, longitude: float,
                          zoom: int = constants.DEFAULT_FOCUS_ZOOM) -> bool:
        """
        Pan/zoom to a location. Playback state is not touched.

        Returns:
            False when there is no map to focus.
        """
        if not self.is_initialized:
            return False
        if not utils.is_valid_position(utils.safe_float(latitude), utils.safe_float(longitude)):
            return False
        self._adapter.set_view((float(latitude), float(longitude)), zoom)
        return True

    def toggle_satellite(self) -> str:
        """Switch between street and satellite tiles; returns the active layer."""
        street, satellite = constants.BASE_LAYERS
        self.base_layer = satellite if self.base_layer == street else street
        if self.is_initialized:
            self._adapter.set_base_layer(self.base_layer)
        return self.base_layer

    def _reset_handles(self) -> None:
        self._rendered_id = None
        self._snapshot = None
        self._vehicle = None
        self._route_layer = None
        self._markers = []

    def teardown(self) -> None:
        if self.is_initialized:
            self._adapter.destroy()
        self._reset_handles()
