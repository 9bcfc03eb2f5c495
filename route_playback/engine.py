"""
Vehicle Route Playback Module

This module gathers the public API of the route playback engine in one
place: normalization, distance metrics, statistics, the Route Data Service
client, the route store, the playback timeline, map synchronization and the
playback session that wires them together.
"""

# Import constants
from .constants import DEFAULT_SPEED_MS, SPEED_OPTIONS, DEFAULT_FOCUS_ZOOM

# Import errors
from .errors import (
    RouteError,
    ValidationError,
    ServiceError,
    DataQualityError,
)

# Import data model
from .models import (
    Coordinate,
    Stop,
    Landmark,
    TripSummary,
    RouteSnapshot,
    RouteOrigin,
    PlaybackState,
    PlaybackStatus,
    DateRangeQuery,
)

# Import normalization functions
from .normalizer import (
    normalize_coordinates,
    normalize_stops,
    parse_landmark,
)

# Import metrics functions
from .metrics import (
    haversine_km,
    distance_km,
    cumulative_distance_km,
)

# Import statistics functions
from .statistics import (
    DistanceSource,
    RouteStatistics,
    derive_statistics,
    route_information,
)

# Import service client
from .service import (
    RouteDataSource,
    HttpRouteDataService,
    build_snapshot,
)

# Import route store
from .store import (
    RouteState,
    RouteStore,
)

# Import timeline
from .timeline import (
    Scheduler,
    AsyncioScheduler,
    TimelineController,
)

# Import map synchronization
from .map_sync import (
    MapLibraryAdapter,
    MapSync,
)

# Import telemetry/GeoJSON rendering
from .telemetry import (
    GeoJsonMapAdapter,
    build_coordinate_records,
)

# Import session
from .session import (
    PlaybackSession,
    trip_landmarks,
)

__all__ = [
    # Constants
    "DEFAULT_SPEED_MS",
    "SPEED_OPTIONS",
    "DEFAULT_FOCUS_ZOOM",
    # Errors
    "RouteError",
    "ValidationError",
    "ServiceError",
    "DataQualityError",
    # Data model
    "Coordinate",
    "Stop",
    "Landmark",
    "TripSummary",
    "RouteSnapshot",
    "RouteOrigin",
    "PlaybackState",
    "PlaybackStatus",
    "DateRangeQuery",
    # Normalization
    "normalize_coordinates",
    "normalize_stops",
    "parse_landmark",
    # Metrics
    "haversine_km",
    "distance_km",
    "cumulative_distance_km",
    # Statistics
    "DistanceSource",
    "RouteStatistics",
    "derive_statistics",
    "route_information",
    # Service
    "RouteDataSource",
    "HttpRouteDataService",
    "build_snapshot",
    # Store
    "RouteState",
    "RouteStore",
    # Timeline
    "Scheduler",
    "AsyncioScheduler",
    "TimelineController",
    # Map
    "MapLibraryAdapter",
    "MapSync",
    "GeoJsonMapAdapter",
    "build_coordinate_records",
    # Session
    "PlaybackSession",
    "trip_landmarks",
]
