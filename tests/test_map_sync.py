from route_playback.map_sync import (
    MARKER_END,
    MARKER_START,
    MARKER_STOP,
    MARKER_TERMINAL,
    MARKER_VEHICLE,
    MapLibraryAdapter,
    MapSync,
)
from route_playback.models import Landmark
from route_playback.telemetry import GeoJsonMapAdapter, build_coordinate_records

from conftest import make_coordinates, make_snapshot


class RecordingAdapter(MapLibraryAdapter):
    def __init__(self):
        self.created = 0
        self.destroyed = 0
        self.markers = []
        self.moves = []
        self.views = []
        self.layers = []

    def create_map(self, bounds):
        self.created += 1
        self.bounds = list(bounds)
        self.markers = []

    def set_base_layer(self, name):
        self.layers.append(name)

    def add_polyline(self, points):
        return "route"

    def add_marker(self, kind, position, popup, label=None):
        self.markers.append((kind, position, popup, label))
        return len(self.markers) - 1

    def move_marker(self, handle, position, popup):
        self.moves.append((handle, position))

    def set_view(self, position, zoom):
        self.views.append((position, zoom))

    def destroy(self):
        self.destroyed += 1


def test_initial_render_places_all_markers_with_vehicle_last(stop):
    adapter = RecordingAdapter()
    terminal = Landmark(MARKER_TERMINAL, 29.9, 31.1, "Terminal A")
    sync = MapSync(adapter, landmarks=[terminal])
    snapshot = make_snapshot(4, stops=(stop,))

    sync.render(snapshot, 0)

    kinds = [kind for kind, _, _, _ in adapter.markers]
    assert kinds == [MARKER_TERMINAL, MARKER_START, MARKER_END, MARKER_STOP, MARKER_VEHICLE]
    assert adapter.markers[1][3] == "S" and adapter.markers[2][3] == "E"
    assert adapter.markers[3][2]["title"] == "Stop 1"
    assert (29.9, 31.1) in adapter.bounds
    assert stop.position in adapter.bounds


def test_single_point_route_has_no_end_marker():
    adapter = RecordingAdapter()
    MapSync(adapter).render(make_snapshot(1), 0)

    kinds = [kind for kind, _, _, _ in adapter.markers]
    assert kinds == [MARKER_START, MARKER_VEHICLE]


def test_index_change_moves_only_the_vehicle():
    adapter = RecordingAdapter()
    sync = MapSync(adapter)
    snapshot = make_snapshot(5)
    sync.render(snapshot, 0)

    sync.render(snapshot, 3)

    assert adapter.created == 1
    vehicle_handle = len(adapter.markers) - 1
    assert adapter.moves[-1] == (vehicle_handle, snapshot.coordinates[3].position)


def test_same_length_new_snapshot_reinitializes():
    adapter = RecordingAdapter()
    sync = MapSync(adapter)
    first = make_snapshot(5)
    second = make_snapshot(coordinates=make_coordinates(5, lat0=50.0))
    sync.render(first, 2)

    sync.render(second, 0)

    assert adapter.created == 2
    assert adapter.destroyed == 1
    assert sync.rendered_snapshot_id == second.snapshot_id
    assert adapter.markers[0][1] == (50.0, 31.0)


def test_focus_does_not_require_playback_and_needs_a_map():
    adapter = RecordingAdapter()
    sync = MapSync(adapter)
    assert not sync.focus_on_location(30.0, 31.0)

    sync.render(make_snapshot(3), 0)
    assert sync.focus_on_location(30.0, 31.0)
    assert adapter.views == [((30.0, 31.0), 16)]
    assert not sync.focus_on_location(95.0, 31.0)


def test_toggle_satellite_switches_base_layer():
    adapter = RecordingAdapter()
    sync = MapSync(adapter)
    sync.render(make_snapshot(3), 0)

    assert sync.toggle_satellite() == "satellite"
    assert sync.toggle_satellite() == "street"
    assert adapter.layers == ["street", "satellite", "street"]


def test_empty_snapshot_tears_map_down():
    adapter = RecordingAdapter()
    sync = MapSync(adapter)
    sync.render(make_snapshot(3), 0)

    sync.render(None, 0)

    assert adapter.destroyed == 1
    assert not sync.is_initialized


def test_geojson_adapter_renders_track_and_markers():
    adapter = GeoJsonMapAdapter()
    sync = MapSync(adapter)
    snapshot = make_snapshot(3)
    sync.render(snapshot, 2)

    geojson = adapter.to_geojson()
    line = geojson["features"][0]
    vehicle = geojson["features"][-1]

    assert geojson["type"] == "FeatureCollection"
    assert line["geometry"]["type"] == "LineString"
    assert line["geometry"]["coordinates"][0] == [31.0, 30.0]
    assert vehicle["properties"]["marker"] == MARKER_VEHICLE
    lat, lon = snapshot.coordinates[2].position
    assert vehicle["geometry"]["coordinates"] == [lon, lat]
    assert geojson["baseLayer"] == "street"


def test_coordinate_records_carry_cumulative_distance():
    records = build_coordinate_records(make_snapshot(3))

    assert [r["index"] for r in records] == [0, 1, 2]
    assert records[0]["distance_km"] == 0
    assert records[2]["distance_km"] > records[1]["distance_km"] > 0
    assert records[0]["display_time"] == "01/05/2024 10:00:00"
    assert build_coordinate_records(None) == []
