import pytest
from fastapi.testclient import TestClient

import app as app_module
from route_playback.errors import ServiceError
from route_playback.models import RouteOrigin

from conftest import make_snapshot

TRIP = {"car_id": 12, "date": "2024-05-01",
        "terminal_location": {"lat": 29.95, "lng": 31.1}}


@pytest.fixture
def client(stub_service):
    app_module.app.dependency_overrides[app_module.get_route_service] = lambda: stub_service
    with TestClient(app_module.app) as test_client:
        yield test_client
    app_module.app.dependency_overrides.clear()
    app_module.sessions.clear()


def open_trip(client, stub_service, snapshot=None, trip_id="9"):
    stub_service.queue("stored", snapshot if snapshot is not None else make_snapshot(4))
    response = client.post(f"/api/trips/{trip_id}/route/open", json=TRIP)
    assert response.status_code == 200
    return response.json()


def test_open_returns_full_payload(client, stub_service):
    payload = open_trip(client, stub_service)

    assert payload["trip_id"] == "9"
    assert payload["route"]["state"] == "STORED_FOUND"
    assert payload["route"]["has_stored_route"] is True
    assert payload["statistics"]["total_points"] == 4
    assert payload["playback"]["status"] == "STOPPED"
    assert len(payload["records"]) == 4
    assert payload["map"]["type"] == "FeatureCollection"
    assert stub_service.calls[0] == ("stored", "9")


def test_unknown_session_is_404(client):
    assert client.get("/api/trips/404/route").status_code == 404
    assert client.post("/api/trips/404/timeline/play").status_code == 404


def test_fetch_with_query_parameters(client, stub_service):
    open_trip(client, stub_service)
    stub_service.queue("by_date", make_snapshot(6, origin=RouteOrigin.FETCHED))

    response = client.post("/api/trips/9/route/fetch",
                           params={"from_date": "2024-05-02", "to_date": "2024-05-02",
                                   "from_time": "08:00", "to_time": "09:30"})
    payload = response.json()

    assert response.status_code == 200
    assert payload["route"]["state"] == "FETCHED"
    assert payload["statistics"]["total_points"] == 6
    _, car_id, query = stub_service.calls[-1]
    assert car_id == 12
    assert query.as_params() == {"from": "2024/05/02 08:00:00", "to": "2024/05/02 09:30:59"}


def test_failed_fetch_reports_error_in_payload(client, stub_service):
    open_trip(client, stub_service)
    stub_service.queue("by_date", ServiceError("down", server_error="ETIT timeout"))

    payload = client.post("/api/trips/9/route/fetch").json()

    assert payload["route"]["error"] == "ETIT timeout"
    assert payload["statistics"]["total_points"] == 4


def test_fetch_without_date_range_is_400(client, stub_service):
    stub_service.queue("stored", ServiceError("none"))
    client.post("/api/trips/3/route/open", json={"car_id": 5})

    response = client.post("/api/trips/3/route/fetch")

    assert response.status_code == 400
    assert stub_service.calls == [("stored", "3")]


def test_store_and_edit_flow(client, stub_service):
    open_trip(client, stub_service)
    client.post("/api/trips/9/route/edit")
    stub_service.queue("store", make_snapshot(8))

    payload = client.post("/api/trips/9/route/store").json()

    assert payload["route"]["state"] == "STORED_FOUND"
    assert payload["route"]["is_editing"] is False
    assert payload["route"]["stored_summary"]["points"] == 8


def test_cancel_edit_keeps_route(client, stub_service):
    open_trip(client, stub_service)

    editing = client.post("/api/trips/9/route/edit").json()
    cancelled = client.post("/api/trips/9/route/cancel-edit").json()

    assert editing["route"]["state"] == "EDITING"
    assert cancelled["route"]["state"] == "STORED_FOUND"
    assert cancelled["snapshot"] == editing["snapshot"]


def test_timeline_controls(client, stub_service):
    open_trip(client, stub_service)

    assert client.post("/api/trips/9/timeline/step-forward").json()["current_index"] == 1
    assert client.post("/api/trips/9/timeline/jump-end").json()["current_index"] == 3
    assert client.post("/api/trips/9/timeline/seek", params={"index": 99}).json()["current_index"] == 3
    assert client.post("/api/trips/9/timeline/reset").json()["status"] == "STOPPED"

    playing = client.post("/api/trips/9/timeline/play").json()
    assert playing["is_playing"] is True
    paused = client.post("/api/trips/9/timeline/pause").json()
    assert paused["is_playing"] is False
    assert paused["status"] == "PAUSED"


def test_timeline_speed_validation(client, stub_service):
    open_trip(client, stub_service)

    assert client.post("/api/trips/9/timeline/speed", params={"speed_ms": 250}).json()["speed_ms"] == 250
    assert client.post("/api/trips/9/timeline/speed", params={"speed_ms": 0}).status_code == 400
    assert client.post("/api/trips/9/timeline/rewind").status_code == 404


def test_speed_presets(client):
    speeds = client.get("/api/timeline/speeds").json()
    assert {"value": 1000, "label": "1x"} in speeds


def test_map_commands(client, stub_service):
    open_trip(client, stub_service)

    focus = client.post("/api/trips/9/map/focus", params={"lat": 30.0, "lng": 31.0}).json()
    assert focus["focused"] is True
    assert focus["map"]["view"] == {"center": [30.0, 31.0], "zoom": 16}

    assert client.post("/api/trips/9/map/toggle-satellite").json() == {"base_layer": "satellite"}


def test_close_session(client, stub_service):
    open_trip(client, stub_service)

    assert client.delete("/api/trips/9/route").json() == {"closed": "9"}
    assert "9" not in app_module.sessions
    assert client.get("/api/trips/9/route").status_code == 404


def test_oldest_session_is_closed_when_registry_is_full(client, stub_service, monkeypatch):
    monkeypatch.setattr(app_module.constants, "MAX_OPEN_SESSIONS", 2)
    open_trip(client, stub_service, trip_id="1")
    open_trip(client, stub_service, trip_id="2")
    first = app_module.sessions["1"]
    open_trip(client, stub_service, trip_id="1")

    open_trip(client, stub_service, trip_id="3")

    assert list(app_module.sessions) == ["1", "3"]
    assert app_module.sessions["1"] is first
    assert client.get("/api/trips/2/route").status_code == 404
