import asyncio
from typing import Dict, List, Optional

import pytest

from route_playback.models import Coordinate, RouteOrigin, RouteSnapshot, Stop, TripSummary
from route_playback.service import RouteDataSource
from route_playback.timeline import Scheduler


class FakeHandle:
    def __init__(self, when: float, callback):
        self.when = when
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler(Scheduler):
    """Manual clock: callbacks run only when the test advances time."""

    def __init__(self):
        self.now = 0.0
        self.handles: List[FakeHandle] = []

    def call_later(self, delay_s, callback):
        handle = FakeHandle(self.now + delay_s, callback)
        self.handles.append(handle)
        return handle

    def pending(self) -> List[FakeHandle]:
        return [h for h in self.handles if not h.cancelled and not h.fired]

    def advance(self, ms: float) -> None:
        target = self.now + ms / 1000.0
        while True:
            due = [h for h in self.pending() if h.when <= target + 1e-9]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self.now = handle.when
            handle.fired = True
            handle.callback()
        self.now = target


def make_coordinates(count: int, lat0: float = 30.0, lon0: float = 31.0, step: float = 0.01):
    return tuple(
        Coordinate(latitude=lat0 + i * step, longitude=lon0 + i * step,
                   timestamp=f"01/05/2024 10:{i % 60:02d}:00")
        for i in range(count)
    )


def make_snapshot(count: int = 5, origin: RouteOrigin = RouteOrigin.STORED, **kwargs) -> RouteSnapshot:
    kwargs.setdefault("coordinates", make_coordinates(count))
    return RouteSnapshot(origin=origin, **kwargs)


class StubRouteService(RouteDataSource):
    """
    In-memory Route Data Service. Each method pops the next queued result
    (a RouteSnapshot to return or an exception to raise). A result may be
    gated on an asyncio.Event to control completion order.
    """

    def __init__(self):
        self.results: Dict[str, list] = {"stored": [], "by_date": [], "store": []}
        self.calls: List[tuple] = []
        self.closed = False

    def queue(self, kind: str, result, gate: Optional[asyncio.Event] = None):
        self.results[kind].append((result, gate))

    async def _next(self, kind: str):
        result, gate = self.results[kind].pop(0)
        if gate is not None:
            await gate.wait()
        if isinstance(result, Exception):
            raise result
        return result

    async def stored_route_by_trip(self, trip_id):
        self.calls.append(("stored", trip_id))
        return await self._next("stored")

    async def route_by_date_range(self, car_id, query):
        self.calls.append(("by_date", car_id, query))
        return await self._next("by_date")

    async def store_route(self, trip_id, query):
        self.calls.append(("store", trip_id, query))
        return await self._next("store")

    async def aclose(self):
        self.closed = True


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def stub_service():
    return StubRouteService()


@pytest.fixture
def snapshot_factory():
    return make_snapshot


@pytest.fixture
def summary():
    return TripSummary(
        total_mileage=42.5,
        total_active_time="2h 10m",
        total_idle_time="0h 25m",
        total_fuel_consumption=12.3,
        max_speed=96.0,
        avg_speed=54.0,
    )


@pytest.fixture
def stop():
    return Stop(from_label="10:05", to_label="10:20", duration_label="15 min",
                latitude=30.02, longitude=31.02, address="Ring Road")
