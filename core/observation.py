"""Observation surface: what the playback core exposes to a UI.

Three independently subscribable channels, split by update frequency:

- identity/flags: PlayerSnapshot, republished only when it changes
- time: TimeSnapshot, throttled so position ticks never force a full refresh
- commands: PlayerActions, created once so its callables keep their identity
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Tuple

from core.events import EventBus
from core.models import RepeatMode, Track

# Fraction of the throttle interval an update may arrive early
TICK_TOLERANCE = 0.1


class PlayerState(Enum):
    """Coordinator state machine."""

    IDLE = "idle"  # no current track, or player closed
    LOADING = "loading"  # track assigned, device not yet ready
    PLAYING = "playing"
    PAUSED = "paused"
    TRANSITIONING = "transitioning"  # processing lock held, command being applied


@dataclass(frozen=True)
class PlayerSnapshot:
    """Identity/flags channel payload."""

    state: PlayerState = PlayerState.IDLE
    current_track: Optional[Track] = None
    is_playing: bool = False
    volume: float = 1.0
    queue: Tuple[Track, ...] = ()
    position_index: int = -1
    is_loading: bool = False
    is_shuffled: bool = False
    repeat_mode: RepeatMode = RepeatMode.OFF
    show_player: bool = False


@dataclass(frozen=True)
class TimeSnapshot:
    """Time channel payload, in seconds."""

    position: float = 0.0
    duration: float = 0.0


@dataclass(frozen=True)
class PlayerActions:
    """Command channel. Built once per coordinator."""

    play_track: Callable[..., bool]
    pause_song: Callable[[], bool]
    next_song: Callable[[], bool]
    previous_song: Callable[[], bool]
    seek_to: Callable[[float], float]
    set_volume: Callable[[float], float]
    toggle_shuffle: Callable[[], bool]
    cycle_repeat: Callable[[], RepeatMode]
    close_player: Callable[[], None]
    share_track: Callable[..., Optional[dict]]


class TimeThrottle:
    """Rate limiter for the time channel.

    Updates arriving up to TICK_TOLERANCE of an interval early still pass,
    so ticks at exactly the throttle rate all get through.
    """

    def __init__(self, max_hz: float, clock: Callable[[], float] = time.monotonic):
        self._interval = 1.0 / max_hz
        self._min_gap = self._interval * (1.0 - TICK_TOLERANCE)
        self._clock = clock
        self._last: Optional[float] = None

    @property
    def interval(self) -> float:
        return self._interval

    def ready(self, force: bool = False) -> bool:
        """True if an update may go out now; records the emission when it does."""
        now = self._clock()
        if force or self._last is None or now - self._last >= self._min_gap:
            self._last = now
            return True
        return False

    def reset(self) -> None:
        self._last = None


class ObservationSurface:
    """Subscribable view over the coordinator's broadcast topics."""

    def __init__(self, event_bus: EventBus, actions: PlayerActions):
        self._events = event_bus
        self._actions = actions
        self._state = PlayerSnapshot()
        self._time = TimeSnapshot()
        self._events.subscribe(EventBus.PLAYER_STATE_CHANGED, self._remember_state)
        self._events.subscribe(EventBus.PLAYER_TIME_CHANGED, self._remember_time)

    def _remember_state(self, snapshot: PlayerSnapshot) -> None:
        self._state = snapshot

    def _remember_time(self, snapshot: TimeSnapshot) -> None:
        self._time = snapshot

    @property
    def state(self) -> PlayerSnapshot:
        """Latest identity/flags snapshot."""
        return self._state

    @property
    def time(self) -> TimeSnapshot:
        """Latest time snapshot."""
        return self._time

    @property
    def commands(self) -> PlayerActions:
        return self._actions

    def subscribe_state(self, callback: Callable[[PlayerSnapshot], Any]) -> Callable[[], None]:
        return self._subscribe(EventBus.PLAYER_STATE_CHANGED, callback)

    def subscribe_time(self, callback: Callable[[TimeSnapshot], Any]) -> Callable[[], None]:
        return self._subscribe(EventBus.PLAYER_TIME_CHANGED, callback)

    def _subscribe(self, event: str, callback: Callable[[Any], Any]) -> Callable[[], None]:
        self._events.subscribe(event, callback)

        def unsubscribe() -> None:
            self._events.unsubscribe(event, callback)

        return unsubscribe

    def close(self) -> None:
        self._events.unsubscribe(EventBus.PLAYER_STATE_CHANGED, self._remember_state)
        self._events.unsubscribe(EventBus.PLAYER_TIME_CHANGED, self._remember_time)
