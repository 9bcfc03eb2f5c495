"""
Route Store for Vehicle Route Playback

This module reconciles the route persisted for a trip with routes freshly
queried for a vehicle and date range. It owns the currently displayed
RouteSnapshot and the fetch/store/edit transitions against the Route Data
Service.

A failed or empty call never replaces or clears a previously good snapshot:
it only sets ``error_message``. When requests overlap, the most recently
issued one wins and responses to superseded requests are discarded.
"""

import logging
from enum import Enum
from typing import Callable, List, Optional, Union

from .errors import DataQualityError, RouteError, ServiceError, ValidationError
from .models import DateRangeQuery, RouteOrigin, RouteSnapshot
from .service import RouteDataSource

logger = logging.getLogger(__name__)

Identifier = Union[int, str]
SnapshotListener = Callable[[Optional[RouteSnapshot]], None]

FETCH_REQUIRED_MESSAGE = "Car ID and date range are required"
STORE_REQUIRED_MESSAGE = "Trip ID and date range are required"
FETCH_EMPTY_MESSAGE = "No route data found for the selected date range"
FETCH_FAILED_MESSAGE = "Failed to fetch route data"
STORE_EMPTY_MESSAGE = "No route data found for the specified time range"
STORE_FAILED_MESSAGE = "Failed to store route data"


class RouteState(str, Enum):
    NO_ROUTE = "NO_ROUTE"
    STORED_FOUND = "STORED_FOUND"
    FETCHED = "FETCHED"
    EDITING = "EDITING"


class RouteStore:
    """
    Owner of the displayed route snapshot for one trip context.

    Args:
        service: Route Data Service implementation.
    """

    def __init__(self, service: RouteDataSource):
        self._service = service
        self._listeners: List[SnapshotListener] = []
        self._closed = False
        self._request_token = 0
        self._latest_token = {"fetch": 0, "store": 0}
        self._clear()

    def _clear(self) -> None:
        self.snapshot: Optional[RouteSnapshot] = None
        self.stored_snapshot: Optional[RouteSnapshot] = None
        self.has_stored_route = False
        self.state = RouteState.NO_ROUTE
        self._state_before_editing = RouteState.NO_ROUTE
        self.error_message = ""
        self.no_data = False
        self.loading = False
        self.storage_loading = False

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """Register a snapshot-change listener; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_snapshot(self, snapshot: Optional[RouteSnapshot]) -> None:
        if snapshot is self.snapshot:
            return
        self.snapshot = snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                # the snapshot is already committed; remaining listeners still need it
                logger.exception("Snapshot listener %r failed", listener)

    # ------------------------------------------------------------------
    # Request bookkeeping
    # ------------------------------------------------------------------

    @property
    def is_editing(self) -> bool:
        return self.state is RouteState.EDITING

    def _begin(self, kind: Optional[str] = None) -> int:
        self._request_token += 1
        if kind is not None:
            self._latest_token[kind] = self._request_token
        return self._request_token

    def _is_current(self, token: int) -> bool:
        return not self._closed and token == self._request_token

    def _finish(self, kind: str, token: int) -> None:
        if self._latest_token[kind] != token:
            return
        if kind == "fetch":
            self.loading = False
        else:
            self.storage_loading = False

    def _settle(self, state: RouteState) -> None:
        """Move to ``state``, or remember it as the state to resume after editing."""
        if self.is_editing:
            self._state_before_editing = state
        else:
            self.state = state

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def can_fetch(self, car_id: Optional[Identifier], query: Optional[DateRangeQuery]) -> bool:
        return bool(car_id) and query is not None and query.is_complete() and not self.loading

    def can_store(self, trip_id: Optional[Identifier], query: Optional[DateRangeQuery]) -> bool:
        return bool(trip_id) and query is not None and query.is_complete() and not self.storage_loading

    def _validate(self, identifier: Optional[Identifier], query: Optional[DateRangeQuery],
                  message: str) -> None:
        if not identifier or query is None or not query.is_complete():
            self.error_message = message
            raise ValidationError(message)
        try:
            query.as_params()
        except ValidationError as exc:
            self.error_message = str(exc)
            raise

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def check_stored_route(self, trip_id: Identifier) -> Optional[RouteSnapshot]:
        """
        Look up the route persisted for a trip.

        Success with at least one coordinate makes it the displayed snapshot
        (state STORED_FOUND). Any other outcome means the trip has no stored
        route: ``has_stored_route`` is cleared, but whatever route is on
        screen stays there and listeners are not notified. The state becomes
        NO_ROUTE, or FETCHED while a fetched route is displayed.

        Args:
            trip_id: Trip to look up.

        Returns:
            The stored snapshot, or None.
        """
        if not trip_id:
            raise ValidationError("Trip ID is required")

        token = self._begin()
        try:
            snapshot = await self._service.stored_route_by_trip(trip_id)
        except RouteError as exc:
            if not self._is_current(token):
                logger.debug("Discarding superseded stored-route lookup for trip %s", trip_id)
                return None
            if isinstance(exc, ServiceError):
                logger.warning("Stored-route lookup for trip %s failed: %s", trip_id, exc)
            else:
                logger.info("No stored route for trip %s: %s", trip_id, exc)
            self.has_stored_route = False
            self.stored_snapshot = None
            if self.snapshot is not None and self.snapshot.origin is RouteOrigin.FETCHED:
                self._settle(RouteState.FETCHED)
            else:
                self._settle(RouteState.NO_ROUTE)
            return None

        if not self._is_current(token):
            logger.debug("Discarding superseded stored-route lookup for trip %s", trip_id)
            return None

        logger.info("Stored route found for trip %s (%d points)", trip_id, len(snapshot))
        self.stored_snapshot = snapshot
        self.has_stored_route = True
        self.state = RouteState.STORED_FOUND
        self.error_message = ""
        self.no_data = False
        self._set_snapshot(snapshot)
        return snapshot

    async def fetch_route_data_by_date(self, car_id: Identifier,
                                       query: DateRangeQuery) -> Optional[RouteSnapshot]:
        """
        Query a vehicle's route for a date range without persisting it.

        Success replaces the displayed snapshot (origin FETCHED) but leaves
        ``has_stored_route`` alone. Failure only sets ``error_message``.

        Args:
            car_id: Vehicle to query.
            query: Inclusive datetime window.

        Returns:
            The new snapshot, or None when the call failed or was superseded.

        Raises:
            ValidationError: If the car id or date range is missing.
        """
        self._validate(car_id, query, FETCH_REQUIRED_MESSAGE)

        token = self._begin("fetch")
        self.loading = True
        self.error_message = ""
        try:
            snapshot = await self._service.route_by_date_range(car_id, query)
        except DataQualityError:
            if self._is_current(token):
                logger.info("No route data for car %s in %s", car_id, query.as_params())
                self.error_message = FETCH_EMPTY_MESSAGE
                self.no_data = True
            return None
        except ServiceError as exc:
            if self._is_current(token):
                logger.warning("Fetching route for car %s failed: %s", car_id, exc)
                self.error_message = exc.server_error or FETCH_FAILED_MESSAGE
            return None
        finally:
            self._finish("fetch", token)

        if not self._is_current(token):
            logger.debug("Discarding superseded route fetch for car %s", car_id)
            return None

        logger.info("Fetched route for car %s (%d points)", car_id, len(snapshot))
        self.error_message = ""
        self.no_data = False
        self._settle(RouteState.FETCHED)
        self._set_snapshot(snapshot)
        return snapshot

    async def store_route_data(self, trip_id: Identifier,
                               query: DateRangeQuery) -> Optional[RouteSnapshot]:
        """
        Ask the service to fetch and persist a trip's route for a date range.

        Success makes the persisted route the displayed snapshot, sets
        ``has_stored_route`` and leaves editing mode. Failure only sets
        ``error_message``.

        Args:
            trip_id: Trip to store the route for.
            query: Inclusive datetime window.

        Returns:
            The stored snapshot, or None when the call failed or was superseded.

        Raises:
            ValidationError: If the trip id or date range is missing.
        """
        self._validate(trip_id, query, STORE_REQUIRED_MESSAGE)

        token = self._begin("store")
        self.storage_loading = True
        self.error_message = ""
        try:
            snapshot = await self._service.store_route(trip_id, query)
        except DataQualityError as exc:
            if self._is_current(token):
                logger.info("No route data to store for trip %s", trip_id)
                self.error_message = exc.server_error or STORE_EMPTY_MESSAGE
                self.no_data = True
            return None
        except ServiceError as exc:
            if self._is_current(token):
                logger.warning("Storing route for trip %s failed: %s", trip_id, exc)
                self.error_message = exc.server_error or STORE_FAILED_MESSAGE
            return None
        finally:
            self._finish("store", token)

        if not self._is_current(token):
            logger.debug("Discarding superseded route store for trip %s", trip_id)
            return None

        logger.info("Stored route for trip %s (%d points)", trip_id, len(snapshot))
        self.stored_snapshot = snapshot
        self.has_stored_route = True
        self.state = RouteState.STORED_FOUND
        self._state_before_editing = RouteState.STORED_FOUND
        self.error_message = ""
        self.no_data = False
        self._set_snapshot(snapshot)
        return snapshot

    def enter_editing(self) -> None:
        """Switch to the configuration view; the displayed snapshot is kept."""
        if self.is_editing:
            return
        self._state_before_editing = self.state
        self.state = RouteState.EDITING

    def cancel_editing(self) -> None:
        """Leave the configuration view without touching the snapshot."""
        if not self.is_editing:
            return
        self.state = self._state_before_editing

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Drop everything for a new trip context; in-flight responses are ignored."""
        self._begin()
        previous = self.snapshot
        self._clear()
        if previous is not None:
            self.snapshot = previous
            self._set_snapshot(None)

    def close(self) -> None:
        """Tear down: no response arriving after this point mutates the store."""
        self._closed = True
        self._begin()
        self._listeners.clear()
        self.snapshot = None
        self.stored_snapshot = None
