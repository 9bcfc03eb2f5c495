import asyncio

import httpx
import pytest

from route_playback import constants
from route_playback.errors import DataQualityError, ServiceError
from route_playback.models import DateRangeQuery, RouteOrigin
from route_playback.service import HttpRouteDataService, build_snapshot

ROUTE_BODY = {
    "success": True,
    "car_id": 12,
    "etit_car_id": "E-77",
    "from": "2024/05/01 00:00:00",
    "to": "2024/05/01 23:59:59",
    "coordinates": [
        {"Latitude": "30.0", "Longitude": "31.0", "DateTime": "01/05/2024 10:00:00"},
        {"Latitude": "bad", "Longitude": "31.0"},
        {"lat": 30.1, "lng": 31.1, "dateTime": "01/05/2024 10:01:00"},
    ],
    "stops": [{"From": "10:00", "To": "10:10", "Duration": "10 min", "Latitude": 30.05, "Longitude": 31.05}],
    "trip_summary": {"TotalMileage": "15.4", "MaxSpeed": 88, "TotalActiveTime": "0h 40m"},
}


def run(coro):
    return asyncio.run(coro)


def make_service(handler, token=None):
    return HttpRouteDataService(base_url="http://routes.test", token=token,
                                transport=httpx.MockTransport(handler))


def test_route_by_date_range_sends_formatted_window_and_builds_snapshot():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json=ROUTE_BODY)

    async def scenario():
        service = make_service(handler, token="secret")
        query = DateRangeQuery(from_date="2024-05-01", to_date="2024-05-01",
                               from_time="09:00", to_time="18:00")
        try:
            return await service.route_by_date_range(12, query)
        finally:
            await service.aclose()

    snapshot = run(scenario())

    assert seen["path"] == constants.ROUTE_BY_DATE_PATH
    assert seen["params"] == {"car_id": "12", "from": "2024/05/01 09:00:00", "to": "2024/05/01 18:00:59"}
    assert seen["auth"] == "Bearer secret"
    assert snapshot.origin is RouteOrigin.FETCHED
    assert len(snapshot.coordinates) == 2
    assert snapshot.stops[0].duration_label == "10 min"
    assert snapshot.trip_summary.total_mileage == 15.4
    assert snapshot.trip_summary.total_idle_time is None
    assert snapshot.etit_car_id == "E-77"


def test_stored_route_by_trip_is_marked_stored():
    def handler(request):
        assert request.url.path == constants.STORED_ROUTE_PATH
        assert request.url.params["trip_id"] == "55"
        return httpx.Response(200, json=ROUTE_BODY)

    async def scenario():
        service = make_service(handler)
        try:
            return await service.stored_route_by_trip(55)
        finally:
            await service.aclose()

    snapshot = run(scenario())
    assert snapshot.origin is RouteOrigin.STORED
    assert snapshot.trip_id == 55


def test_unsuccessful_response_raises_service_error_with_server_message():
    def handler(request):
        return httpx.Response(200, json={"success": False, "error": "ETIT unavailable"})

    async def scenario():
        service = make_service(handler)
        try:
            await service.stored_route_by_trip(1)
        finally:
            await service.aclose()

    with pytest.raises(ServiceError) as excinfo:
        run(scenario())
    assert excinfo.value.server_error == "ETIT unavailable"


def test_empty_coordinates_raise_data_quality_error():
    def handler(request):
        return httpx.Response(200, json={"success": True, "coordinates": [{"lat": "x", "lng": "y"}]})

    async def scenario():
        service = make_service(handler)
        query = DateRangeQuery(from_date="2024-05-01", to_date="2024-05-01")
        try:
            await service.store_route(3, query)
        finally:
            await service.aclose()

    with pytest.raises(DataQualityError):
        run(scenario())


def test_http_error_status_raises_service_error():
    def handler(request):
        return httpx.Response(500, json={"error": "database down"})

    async def scenario():
        service = make_service(handler)
        try:
            await service.stored_route_by_trip(1)
        finally:
            await service.aclose()

    with pytest.raises(ServiceError) as excinfo:
        run(scenario())
    assert excinfo.value.status_code == 500
    assert excinfo.value.server_error == "database down"


def test_transport_failure_raises_service_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async def scenario():
        service = make_service(handler)
        try:
            await service.stored_route_by_trip(1)
        finally:
            await service.aclose()

    with pytest.raises(ServiceError):
        run(scenario())


def test_non_json_body_raises_service_error():
    def handler(request):
        return httpx.Response(200, text="<html>login</html>")

    async def scenario():
        service = make_service(handler)
        try:
            await service.stored_route_by_trip(1)
        finally:
            await service.aclose()

    with pytest.raises(ServiceError):
        run(scenario())


def test_build_snapshot_prefers_response_total_stops():
    body = dict(ROUTE_BODY, total_stops=6)
    snapshot = build_snapshot(body, RouteOrigin.FETCHED)
    assert snapshot.total_stops == 6
