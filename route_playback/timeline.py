"""
Playback Timeline for Vehicle Route Playback

This module implements the state machine that drives the playback position
over a route's coordinate sequence: play/pause/reset, stepping, scrubbing and
speed changes, with one repeating timer scheduled on the event loop.

States are Stopped (index 0), Paused (index i) and Playing (index i, speed s).
Playback never loops: reaching the last coordinate clears the timer and
pauses.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Hashable, List, Optional, Sequence

from . import constants
from .models import Coordinate, PlaybackState, PlaybackStatus

logger = logging.getLogger(__name__)

PlaybackListener = Callable[[PlaybackState], None]


class Scheduler(ABC):
    """Schedules one-shot callbacks; returned handles expose ``cancel()``."""

    @abstractmethod
    def call_later(self, delay_s: float, callback: Callable[[], None]):
        """Run ``callback`` once after ``delay_s`` seconds."""


class AsyncioScheduler(Scheduler):
    """Scheduler backed by the asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def call_later(self, delay_s: float, callback: Callable[[], None]):
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay_s, callback)


class IntervalTimer:
    """
    Repeating timer: fires ``callback`` every ``interval_ms`` until cancelled.

    The next tick is scheduled before the callback runs, so the cadence stays
    fixed regardless of what the callback does. ``cancel()`` is idempotent.
    """

    def __init__(self, scheduler: Scheduler, interval_ms: int, callback: Callable[[], None]):
        self.interval_ms = interval_ms
        self._scheduler = scheduler
        self._callback = callback
        self._handle = None
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def start(self) -> None:
        self._active = True
        self._schedule()

    def _schedule(self) -> None:
        self._handle = self._scheduler.call_later(self.interval_ms / 1000.0, self._fire)

    def _fire(self) -> None:
        if not self._active:
            return
        self._schedule()
        self._callback()

    def cancel(self) -> None:
        self._active = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


class TimelineController:
    """
    Playback state machine over one coordinate sequence.

    Args:
        scheduler: Timer scheduler. Defaults to the running asyncio loop.
        speed_ms: Initial interval between playback ticks, in milliseconds.
    """

    def __init__(self, scheduler: Optional[Scheduler] = None,
                 speed_ms: int = constants.DEFAULT_SPEED_MS):
        self._scheduler = scheduler or AsyncioScheduler()
        self._coordinates: Sequence[Coordinate] = ()
        self._identity: Optional[Hashable] = None
        self._index = 0
        self._playing = False
        self._speed_ms = self._validate_speed(speed_ms)
        self._status = PlaybackStatus.STOPPED
        self._timer: Optional[IntervalTimer] = None
        self._listeners: List[PlaybackListener] = []
        self._closed = False

    # ------------------------------------------------------------------
    # Read-only view
    # ------------------------------------------------------------------

    @property
    def state(self) -> PlaybackState:
        return PlaybackState(
            current_index=self._index,
            is_playing=self._playing,
            speed_ms=self._speed_ms,
            status=self._status,
        )

    @property
    def length(self) -> int:
        return len(self._coordinates)

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def is_playing(self) -> bool:
        return self._playing

    @property
    def speed_ms(self) -> int:
        return self._speed_ms

    @property
    def current_coordinate(self) -> Optional[Coordinate]:
        if not self._coordinates:
            return None
        return self._coordinates[self._index]

    @property
    def is_at_start(self) -> bool:
        return self._index == 0

    @property
    def is_at_end(self) -> bool:
        return self._index >= self.length - 1

    @property
    def can_play(self) -> bool:
        return self.length > 0 and not self.is_at_end and not self._playing

    @property
    def can_pause(self) -> bool:
        return self._playing

    @property
    def progress_percentage(self) -> float:
        if not self._coordinates:
            return 0.0
        return (self._index + 1) / self.length * 100.0

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, listener: PlaybackListener) -> Callable[[], None]:
        """Register a playback-state listener; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        state = self.state
        for listener in list(self._listeners):
            listener(state)

    # ------------------------------------------------------------------
    # Timer management
    # ------------------------------------------------------------------

    def _clear_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _start_timer(self) -> None:
        self._clear_timer()
        self._timer = IntervalTimer(self._scheduler, self._speed_ms, self._tick)
        self._timer.start()

    def _tick(self) -> None:
        if self._closed or not self._playing:
            return
        if self._index < self.length - 1:
            self._index += 1
        if self._index >= self.length - 1:
            self._stop_at_current()
        self._notify()

    def _stop_at_current(self) -> None:
        self._clear_timer()
        self._playing = False
        self._status = PlaybackStatus.PAUSED

    def _settle_idle_status(self) -> None:
        if self._playing:
            return
        if self._status is PlaybackStatus.STOPPED and self._index == 0:
            return
        self._status = PlaybackStatus.PAUSED

    @staticmethod
    def _validate_speed(speed_ms) -> int:
        speed = int(speed_ms)
        if speed <= 0:
            raise ValueError(f"Playback speed must be positive, got {speed_ms!r}")
        return speed

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def load(self, coordinates: Sequence[Coordinate], identity: Hashable) -> None:
        """
        Point the timeline at a coordinate sequence.

        A different identity always resets playback, even when the new
        sequence has the same length as the old one.
        """
        if identity == self._identity and coordinates is self._coordinates:
            return
        changed = identity != self._identity
        self._coordinates = tuple(coordinates) if coordinates is not None else ()
        self._identity = identity
        if changed:
            self.reset()

    def reset(self) -> None:
        """Back to Stopped at index 0; speed is kept."""
        self._clear_timer()
        self._index = 0
        self._playing = False
        self._status = PlaybackStatus.STOPPED
        self._notify()

    def play(self) -> bool:
        """
        Start timed playback from the current index.

        Returns:
            False (no-op) when there is nothing left to play or playback is
            already running.
        """
        if self._closed or self._playing or self.length == 0 or self.is_at_end:
            return False
        self._playing = True
        self._status = PlaybackStatus.PLAYING
        self._start_timer()
        logger.debug("Playback started at index %d, %d ms/step", self._index, self._speed_ms)
        self._notify()
        return True

    def pause(self) -> None:
        self._clear_timer()
        was_playing = self._playing
        self._playing = False
        if was_playing:
            self._status = PlaybackStatus.PAUSED
        self._notify()

    def set_index(self, index: int) -> None:
        """
        Scrub to ``index`` (clamped to the sequence).

        A running timer is not rephased: its next tick still fires on the
        original schedule and advances from the new index. Scrubbing onto the
        last coordinate ends playback.
        """
        if self.length == 0:
            self._index = 0
        else:
            self._index = max(0, min(int(index), self.length - 1))
        if self._playing and self.is_at_end:
            self._stop_at_current()
        self._settle_idle_status()
        self._notify()

    def set_speed(self, speed_ms: int) -> None:
        """
        Change the tick interval. While playing, the pending tick is dropped
        and a new timer starts at the new interval right away.
        """
        self._speed_ms = self._validate_speed(speed_ms)
        if self._playing:
            self._start_timer()
        self._notify()

    def step_forward(self) -> None:
        if self._index < self.length - 1:
            self.set_index(self._index + 1)

    def step_backward(self) -> None:
        if self._index > 0:
            self.set_index(self._index - 1)

    def jump_to_start(self) -> None:
        self.set_index(0)

    def jump_to_end(self) -> None:
        self.set_index(self.length - 1)

    def close(self) -> None:
        """Tear down: clear the timer and drop listeners. Safe to call twice."""
        self._closed = True
        self._clear_timer()
        self._playing = False
        self._listeners.clear()
