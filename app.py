"""
FastAPI Web Application for Vehicle Route Playback

This module exposes the route playback engine to the dashboard frontend:
stored-route lookup, date-range fetch and store, editing mode, timeline
controls and map commands for one playback session per trip.
"""

import logging
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import Body, Depends, FastAPI, HTTPException, Query

from route_playback import constants
from route_playback import engine
from route_playback import logging_config

logging_config.configure(constants.LOG_LEVEL)
logger = logging.getLogger(__name__)


# ============================================================================
# SERVICE & SESSION REGISTRY
# ============================================================================

# One Route Data Service client shared by every session
_route_service: Optional[engine.RouteDataSource] = None

# Open playback sessions (trip_id -> session), capped at constants.MAX_OPEN_SESSIONS
sessions: Dict[str, engine.PlaybackSession] = {}


def get_route_service() -> engine.RouteDataSource:
    """
    Return the shared Route Data Service client, creating it on first use.

    Returns:
        HttpRouteDataService configured from route_playback.constants.
    """
    global _route_service
    if _route_service is None:
        _route_service = engine.HttpRouteDataService()
    return _route_service


def get_session(trip_id: str) -> engine.PlaybackSession:
    """
    Look up the open playback session for a trip.

    Raises:
        HTTPException: If no session is open for the trip (status 404).
    """
    session = sessions.get(trip_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"No route session open for trip {trip_id}")
    return session


def evict_stale_sessions() -> None:
    """Close the least recently opened sessions until there is room for one more."""
    while sessions and len(sessions) >= constants.MAX_OPEN_SESSIONS:
        trip_id = next(iter(sessions))
        logger.info("Closing idle route session for trip %s", trip_id)
        sessions.pop(trip_id).close()


def build_query(from_date: Optional[str], to_date: Optional[str],
                from_time: Optional[str], to_time: Optional[str]) -> Optional[engine.DateRangeQuery]:
    """Date range from query parameters, or None to keep the session's range."""
    if not any((from_date, to_date, from_time, to_time)):
        return None
    return engine.DateRangeQuery(
        from_date=from_date,
        to_date=to_date,
        from_time=from_time,
        to_time=to_time,
    )


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    for session in sessions.values():
        session.close()
    sessions.clear()
    if _route_service is not None:
        await _route_service.aclose()


# ============================================================================
# APPLICATION SETUP
# ============================================================================

app = FastAPI(lifespan=lifespan)


# ============================================================================
# API ROUTES - SESSION MANAGEMENT
# ============================================================================

@app.post("/api/trips/{trip_id}/route/open")
async def open_route(trip_id: str, trip_details: Optional[Dict] = Body(None),
                     service: engine.RouteDataSource = Depends(get_route_service)):
    """
    Open (or re-open) the playback session for a trip.

    Checks the Route Data Service for a stored route. Trip details may carry
    car_id, date, terminal_location and drop_off_location.

    Args:
        trip_id: Trip identifier.
        trip_details: Trip metadata from the dashboard.

    Returns:
        Complete session payload.
    """
    session = sessions.pop(trip_id, None)
    if session is None:
        evict_stale_sessions()
        session = engine.PlaybackSession(service)
    # re-inserting keeps the registry ordered oldest-opened first
    sessions[trip_id] = session

    details = dict(trip_details or {})
    details.setdefault("id", trip_id)
    await session.open_trip(details)
    return session.payload()


@app.get("/api/trips/{trip_id}/route")
async def get_route(trip_id: str):
    """
    Get the complete payload of an open session.

    Returns:
        Dictionary with route state, snapshot, statistics, playback, per-point
        records and the rendered map GeoJSON.
    """
    return get_session(trip_id).payload()


@app.delete("/api/trips/{trip_id}/route")
async def close_route(trip_id: str):
    """Close a session: cancels playback and drops the displayed route."""
    session = get_session(trip_id)
    session.close()
    del sessions[trip_id]
    return {"closed": trip_id}


# ============================================================================
# API ROUTES - ROUTE DATA
# ============================================================================

@app.post("/api/trips/{trip_id}/route/check")
async def check_route(trip_id: str):
    """Re-check the Route Data Service for the trip's stored route."""
    session = get_session(trip_id)
    try:
        await session.check_stored_route()
    except engine.ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return session.payload()


@app.post("/api/trips/{trip_id}/route/fetch")
async def fetch_route(trip_id: str,
                      from_date: Optional[str] = Query(None, description="YYYY-MM-DD"),
                      to_date: Optional[str] = Query(None, description="YYYY-MM-DD"),
                      from_time: Optional[str] = Query(None, description="HH:mm"),
                      to_time: Optional[str] = Query(None, description="HH:mm")):
    """
    Fetch the vehicle's route for a date range without storing it.

    Service failures and empty results are reported in the payload's
    ``route.error`` field; the previously displayed route is kept.

    Raises:
        HTTPException: If car id or date range is missing (status 400).
    """
    session = get_session(trip_id)
    try:
        await session.fetch_route(build_query(from_date, to_date, from_time, to_time))
    except engine.ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return session.payload()


@app.post("/api/trips/{trip_id}/route/store")
async def store_route(trip_id: str,
                      from_date: Optional[str] = Query(None, description="YYYY-MM-DD"),
                      to_date: Optional[str] = Query(None, description="YYYY-MM-DD"),
                      from_time: Optional[str] = Query(None, description="HH:mm"),
                      to_time: Optional[str] = Query(None, description="HH:mm")):
    """
    Fetch and persist the trip's route for a date range.

    Raises:
        HTTPException: If trip id or date range is missing (status 400).
    """
    session = get_session(trip_id)
    try:
        await session.store_route(build_query(from_date, to_date, from_time, to_time))
    except engine.ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return session.payload()


@app.post("/api/trips/{trip_id}/route/edit")
async def edit_route(trip_id: str):
    """Switch to the route configuration view."""
    session = get_session(trip_id)
    session.enter_editing()
    return session.payload()


@app.post("/api/trips/{trip_id}/route/cancel-edit")
async def cancel_edit_route(trip_id: str):
    """Leave the configuration view; the displayed route is unchanged."""
    session = get_session(trip_id)
    session.cancel_editing()
    return session.payload()


# ============================================================================
# API ROUTES - TIMELINE
# ============================================================================

TIMELINE_ACTIONS = {
    "play": lambda timeline: timeline.play(),
    "pause": lambda timeline: timeline.pause(),
    "reset": lambda timeline: timeline.reset(),
    "step-forward": lambda timeline: timeline.step_forward(),
    "step-backward": lambda timeline: timeline.step_backward(),
    "jump-start": lambda timeline: timeline.jump_to_start(),
    "jump-end": lambda timeline: timeline.jump_to_end(),
}


@app.get("/api/timeline/speeds")
async def get_speeds():
    """Playback speed presets, slowest first."""
    return [{"value": value, "label": label} for value, label in constants.SPEED_OPTIONS]


@app.post("/api/trips/{trip_id}/timeline/seek")
async def seek_timeline(trip_id: str, index: int = Query(..., description="Coordinate index")):
    """Scrub the timeline to a coordinate index (clamped)."""
    session = get_session(trip_id)
    session.timeline.set_index(index)
    return session.payload()["playback"]


@app.post("/api/trips/{trip_id}/timeline/speed")
async def set_timeline_speed(trip_id: str,
                             speed_ms: int = Query(..., description="Milliseconds per step")):
    """
    Change the playback interval.

    Raises:
        HTTPException: If speed_ms is not positive (status 400).
    """
    session = get_session(trip_id)
    try:
        session.timeline.set_speed(speed_ms)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return session.payload()["playback"]


@app.post("/api/trips/{trip_id}/timeline/{action}")
async def control_timeline(trip_id: str, action: str):
    """
    Run a timeline command: play, pause, reset, step-forward, step-backward,
    jump-start or jump-end.

    Raises:
        HTTPException: If the action is unknown (status 404).
    """
    session = get_session(trip_id)
    command = TIMELINE_ACTIONS.get(action)
    if command is None:
        raise HTTPException(status_code=404, detail=f"Unknown timeline action: {action}")
    command(session.timeline)
    return session.payload()["playback"]


# ============================================================================
# API ROUTES - MAP
# ============================================================================

@app.post("/api/trips/{trip_id}/map/focus")
async def focus_map(trip_id: str,
                    lat: float = Query(..., description="Latitude"),
                    lng: float = Query(..., description="Longitude"),
                    zoom: int = Query(constants.DEFAULT_FOCUS_ZOOM, description="Zoom level")):
    """Pan/zoom the map to a location; playback is not affected."""
    session = get_session(trip_id)
    focused = session.focus_on_location(lat, lng, zoom)
    return {"focused": focused, "map": session.payload().get("map")}


@app.post("/api/trips/{trip_id}/map/toggle-satellite")
async def toggle_satellite(trip_id: str):
    """Switch between street and satellite tiles."""
    session = get_session(trip_id)
    return {"base_layer": session.map.toggle_satellite()}


# ============================================================================
# RUN INSTRUCTIONS
# ============================================================================
# Run with: uvicorn app:app --reload
