"""
Route Data Service Client for Vehicle Route Playback

This module talks to the REST backend that supplies and persists GPS tracks.
Responses are normalized into RouteSnapshot objects; every failure is raised
as a ServiceError or DataQualityError so the route store can keep its
current snapshot and report a single message.
"""

import logging
from abc import ABC, abstractmethod
from typing import Mapping, Optional, Union

import httpx

from . import constants
from . import normalizer
from . import utils
from .errors import DataQualityError, ServiceError
from .models import DateRangeQuery, RouteOrigin, RouteSnapshot, TripSummary

logger = logging.getLogger(__name__)

Identifier = Union[int, str]


class RouteDataSource(ABC):
    """
    Abstract interface of the Route Data Service collaborator.

    Each call returns a fully built snapshot or raises; implementations never
    return an empty route.
    """

    @abstractmethod
    async def stored_route_by_trip(self, trip_id: Identifier) -> RouteSnapshot:
        """Persisted route for a trip."""

    @abstractmethod
    async def route_by_date_range(self, car_id: Identifier,
                                  query: DateRangeQuery) -> RouteSnapshot:
        """Route of a vehicle over a datetime window, not persisted."""

    @abstractmethod
    async def store_route(self, trip_id: Identifier,
                          query: DateRangeQuery) -> RouteSnapshot:
        """Fetch-and-persist the route of a trip over a datetime window."""

    async def aclose(self) -> None:
        return None


def parse_trip_summary(raw: Optional[Mapping]) -> Optional[TripSummary]:
    """
    Build a TripSummary from the service's ``trip_summary`` object.

    Args:
        raw: Mapping with TotalMileage, TotalActiveTime, ... (or None).

    Returns:
        TripSummary with None for every absent field, or None when the
        response carried no summary at all.
    """
    if not isinstance(raw, Mapping) or not raw:
        return None

    stops = utils.optional_number(utils.first_present(raw, ("NumberOfStops", "number_of_stops")))
    return TripSummary(
        total_mileage=utils.optional_number(utils.first_present(raw, ("TotalMileage", "total_mileage"))),
        total_active_time=utils.first_present(raw, ("TotalActiveTime", "total_active_time")),
        total_idle_time=utils.first_present(raw, ("TotalIdleTime", "total_idle_time")),
        total_fuel_consumption=utils.optional_number(
            utils.first_present(raw, ("TotalFuelConsumption", "total_fuel_consumption"))),
        max_speed=utils.optional_number(utils.first_present(raw, ("MaxSpeed", "max_speed"))),
        avg_speed=utils.optional_number(utils.first_present(raw, ("AvgSpeed", "avg_speed"))),
        number_of_stops=int(stops) if stops is not None else None,
    )


def build_snapshot(payload: Mapping, origin: RouteOrigin,
                   trip_id: Optional[Identifier] = None,
                   car_id: Optional[Identifier] = None) -> RouteSnapshot:
    """
    Turn a service response body into a RouteSnapshot.

    Args:
        payload: Decoded JSON response body.
        origin: Whether the route is the persisted one or a fresh query.
        trip_id: Trip the request was made for, if any.
        car_id: Vehicle the request was made for, if any.

    Returns:
        RouteSnapshot with at least one coordinate.

    Raises:
        ServiceError: If the response reports ``success: false``.
        DataQualityError: If no usable coordinate survives normalization.
    """
    server_error = payload.get("error")
    if not payload.get("success"):
        raise ServiceError(server_error or "Route Data Service reported failure",
                           server_error=server_error)

    coordinates = normalizer.normalize_coordinates(payload.get("coordinates"))
    if not coordinates:
        raise DataQualityError("Route Data Service returned no usable coordinates",
                               server_error=server_error)

    total_stops = utils.optional_number(payload.get("total_stops"))
    return RouteSnapshot(
        coordinates=tuple(coordinates),
        origin=origin,
        stops=tuple(normalizer.normalize_stops(payload.get("stops"))),
        trip_summary=parse_trip_summary(payload.get("trip_summary")),
        trip_id=payload.get("trip_id", trip_id),
        car_id=payload.get("car_id", car_id),
        etit_car_id=payload.get("etit_car_id"),
        from_timestamp=payload.get("from"),
        to_timestamp=payload.get("to"),
        total_stops=int(total_stops) if total_stops is not None else None,
    )


class HttpRouteDataService(RouteDataSource):
    """Route Data Service over HTTP, using a shared httpx.AsyncClient."""

    def __init__(self, base_url: str = constants.ROUTE_SERVICE_URL,
                 token: Optional[str] = constants.ROUTE_SERVICE_TOKEN,
                 timeout: float = constants.ROUTE_SERVICE_TIMEOUT_S,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def _get(self, path: str, params: dict) -> Mapping:
        try:
            response = await self._client.get(path, params=params)
        except httpx.HTTPError as exc:
            logger.warning("Route Data Service request to %s failed: %s", path, exc)
            raise ServiceError(f"Route Data Service unreachable: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_error:
            server_error = body.get("error") if isinstance(body, Mapping) else None
            logger.warning("Route Data Service %s returned HTTP %d", path, response.status_code)
            raise ServiceError(
                server_error or f"Route Data Service returned HTTP {response.status_code}",
                server_error=server_error,
                status_code=response.status_code,
            )

        if not isinstance(body, Mapping):
            raise ServiceError("Route Data Service returned a malformed response",
                               status_code=response.status_code)
        return body

    async def stored_route_by_trip(self, trip_id: Identifier) -> RouteSnapshot:
        body = await self._get(constants.STORED_ROUTE_PATH, {"trip_id": trip_id})
        return build_snapshot(body, RouteOrigin.STORED, trip_id=trip_id)

    async def route_by_date_range(self, car_id: Identifier,
                                  query: DateRangeQuery) -> RouteSnapshot:
        params = {"car_id": car_id, **query.as_params()}
        body = await self._get(constants.ROUTE_BY_DATE_PATH, params)
        return build_snapshot(body, RouteOrigin.FETCHED, car_id=car_id)

    async def store_route(self, trip_id: Identifier,
                          query: DateRangeQuery) -> RouteSnapshot:
        params = {"trip_id": trip_id, **query.as_params()}
        body = await self._get(constants.STORE_ROUTE_PATH, params)
        return build_snapshot(body, RouteOrigin.STORED, trip_id=trip_id)

    async def aclose(self) -> None:
        await self._client.aclose()
