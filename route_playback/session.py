"""
Playback Session for Vehicle Route Playback

This module wires the route store, the playback timeline, the statistics
calculator and the map synchronizer together for one trip context. It is
the single owner of the displayed RouteSnapshot and PlaybackState:

1. RouteStore produces a snapshot
2. TimelineController is reset against it
3. Statistics are derived from it
4. MapSync renders it and follows the playback index
"""

import logging
from typing import Callable, Dict, List, Mapping, Optional

from . import constants
from . import normalizer
from . import statistics
from . import telemetry
from .map_sync import MARKER_DROP_OFF, MARKER_TERMINAL, MapLibraryAdapter, MapSync
from .models import DateRangeQuery, PlaybackState, RouteSnapshot
from .service import RouteDataSource
from .store import RouteStore
from .timeline import Scheduler, TimelineController

logger = logging.getLogger(__name__)


def trip_landmarks(trip_details: Mapping) -> List:
    """
    Extract the terminal and drop-off landmarks from trip details.

    Args:
        trip_details: Trip mapping with optional ``terminal_location`` and
            ``drop_off_location`` objects.

    Returns:
        List of Landmark objects (0 to 2 entries).
    """
    landmarks = [
        normalizer.parse_landmark(MARKER_TERMINAL, trip_details.get("terminal_location"),
                                  trip_details.get("terminal")),
        normalizer.parse_landmark(MARKER_DROP_OFF, trip_details.get("drop_off_location"),
                                  trip_details.get("drop_off_point")),
    ]
    return [landmark for landmark in landmarks if landmark is not None]


class PlaybackSession:
    """
    Route playback for one trip.

    Args:
        service: Route Data Service implementation.
        adapter: Map adapter. Defaults to a GeoJSON adapter.
        scheduler: Timer scheduler for playback. Defaults to asyncio.
        speed_ms: Initial playback interval.
    """

    def __init__(self, service: RouteDataSource,
                 adapter: Optional[MapLibraryAdapter] = None,
                 scheduler: Optional[Scheduler] = None,
                 speed_ms: int = constants.DEFAULT_SPEED_MS):
        self.store = RouteStore(service)
        self.timeline = TimelineController(scheduler, speed_ms)
        self.adapter = adapter if adapter is not None else telemetry.GeoJsonMapAdapter()
        self.map = MapSync(self.adapter)
        self.trip: Dict = {}
        self.query: Optional[DateRangeQuery] = None
        self._closed = False
        self._unsubscribers: List[Callable[[], None]] = [
            self.store.subscribe(self._on_snapshot),
            self.timeline.subscribe(self._on_playback),
        ]

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def _on_snapshot(self, snapshot: Optional[RouteSnapshot]) -> None:
        if snapshot is None:
            self.timeline.load((), None)
        else:
            self.timeline.load(snapshot.coordinates, snapshot.snapshot_id)
        self.map.render(snapshot, self.timeline.current_index)

    def _on_playback(self, state: PlaybackState) -> None:
        self.map.render(self.store.snapshot, state.current_index)

    # ------------------------------------------------------------------
    # Trip context
    # ------------------------------------------------------------------

    @property
    def trip_id(self):
        return self.trip.get("id")

    @property
    def car_id(self):
        return self.trip.get("car_id")

    @property
    def snapshot(self) -> Optional[RouteSnapshot]:
        return self.store.snapshot

    async def open_trip(self, trip_details: Mapping) -> Optional[RouteSnapshot]:
        """
        Switch to a trip and look up its stored route.

        Changing to a different trip discards the displayed snapshot. The
        date range defaults to the whole day of the trip's date.
        """
        trip_details = dict(trip_details or {})
        if trip_details.get("id") != self.trip_id:
            self.store.reset()
            self.query = None

        self.trip = trip_details
        self.map.set_landmarks(trip_landmarks(trip_details))
        if self.query is None and trip_details.get("date"):
            try:
                self.query = DateRangeQuery.for_trip_date(trip_details["date"])
            except ValueError:
                logger.debug("Unparsable trip date %r", trip_details["date"])

        self.map.render(self.store.snapshot, self.timeline.current_index)
        if not self.trip_id:
            return None
        return await self.store.check_stored_route(self.trip_id)

    def set_date_range(self, query: DateRangeQuery) -> None:
        self.query = query

    # ------------------------------------------------------------------
    # Route commands
    # ------------------------------------------------------------------

    async def check_stored_route(self) -> Optional[RouteSnapshot]:
        return await self.store.check_stored_route(self.trip_id)

    async def fetch_route(self, query: Optional[DateRangeQuery] = None) -> Optional[RouteSnapshot]:
        if query is not None:
            self.query = query
        return await self.store.fetch_route_data_by_date(self.car_id, self.query)

    async def store_route(self, query: Optional[DateRangeQuery] = None) -> Optional[RouteSnapshot]:
        if query is not None:
            self.query = query
        return await self.store.store_route_data(self.trip_id, self.query)

    def enter_editing(self) -> None:
        self.store.enter_editing()

    def cancel_editing(self) -> None:
        self.store.cancel_editing()

    def focus_on_location(self, latitude: float, longitude: float,
                          zoom: int = constants.DEFAULT_FOCUS_ZOOM) -> bool:
        return self.map.focus_on_location(latitude, longitude, zoom)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def statistics(self) -> Optional[statistics.RouteStatistics]:
        if self.store.snapshot is None:
            return None
        return statistics.derive_statistics(self.store.snapshot)

    def payload(self) -> Dict:
        """
        Build the complete view payload for the frontend.

        Returns:
            Dictionary containing:
            - route: store state, editing flag, loading flags, error message
            - snapshot: identity and summary of the displayed route (or None)
            - statistics: display statistics (or None)
            - playback: timeline state and position readout
            - records: per-coordinate timeline records
            - map: GeoJSON of the rendered map, when the adapter provides it
        """
        store = self.store
        snapshot = store.snapshot
        stored = store.stored_snapshot
        current = self.timeline.current_coordinate
        stats = self.statistics()

        playback = self.timeline.state.as_dict()
        playback.update({
            "total": self.timeline.length,
            "progress_percentage": round(self.timeline.progress_percentage, 2),
            "can_play": self.timeline.can_play,
            "can_pause": self.timeline.can_pause,
            "is_at_start": self.timeline.is_at_start,
            "is_at_end": self.timeline.is_at_end,
            "current_coordinate": current.as_dict() if current else None,
        })

        payload = {
            "trip_id": self.trip_id,
            "route": {
                "state": store.state.value,
                "has_stored_route": store.has_stored_route,
                "is_editing": store.is_editing,
                "loading": store.loading,
                "storage_loading": store.storage_loading,
                "no_data": store.no_data,
                "error": store.error_message or None,
                "can_fetch": store.can_fetch(self.car_id, self.query),
                "can_store": store.can_store(self.trip_id, self.query),
                "stored_summary": {
                    "from": stored.from_timestamp,
                    "to": stored.to_timestamp,
                    "points": len(stored),
                } if stored is not None else None,
            },
            "snapshot": {
                "snapshot_id": snapshot.snapshot_id,
                **statistics.route_information(snapshot),
                "stops": [stop.as_dict() for stop in snapshot.stops],
            } if snapshot is not None else None,
            "statistics": stats.as_dict() if stats is not None else None,
            "playback": playback,
            "records": telemetry.build_coordinate_records(snapshot),
        }

        if hasattr(self.adapter, "to_geojson"):
            payload["map"] = self.adapter.to_geojson()
        return payload

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Cancel the playback timer, drop subscriptions and the map."""
        if self._closed:
            return
        self._closed = True
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        self.timeline.close()
        self.map.teardown()
        self.store.close()
        logger.debug("Playback session for trip %s closed", self.trip_id)
