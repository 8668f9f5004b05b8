"""Centralized event bus for decoupled component communication."""

from typing import Any, Callable, Dict, List
from core.logging import get_logger

logger = get_logger(__name__)


class EventBus:
    """Publish-subscribe event system. Components publish/subscribe without knowing each other.

    Event Flow Architecture:
    - The Transport publishes TRANSPORT_* events (device lifecycle)
    - The PlaybackCoordinator publishes PLAYER_* events (observation channels)
    - UI code publishes ACTION_* events (requests) or calls PlayerActions directly
    - This separation keeps data flowing one way: UI -> Coordinator -> Transport -> Coordinator -> UI
    """

    # =========================================================================
    # Transport -> Coordinator: device lifecycle
    # Every payload carries "track_id" of the track loaded in the device.
    # =========================================================================

    TRANSPORT_LOAD_START = "transport.load_start"
    # {"track_id", "duration"}
    TRANSPORT_CAN_PLAY = "transport.can_play"
    TRANSPORT_PLAYING = "transport.playing"
    TRANSPORT_PAUSED = "transport.paused"
    TRANSPORT_ENDED = "transport.ended"
    # {"track_id", "message"}
    TRANSPORT_ERROR = "transport.error"
    # {"track_id", "position", "duration"}
    TRANSPORT_TIME_UPDATE = "transport.time_update"
    TRANSPORT_DURATION_CHANGED = "transport.duration_changed"

    # =========================================================================
    # Coordinator -> UI: observation channels
    # =========================================================================

    # Identity/flags channel: PlayerSnapshot
    PLAYER_STATE_CHANGED = "player.state_changed"
    # Time channel: TimeSnapshot (throttled)
    PLAYER_TIME_CHANGED = "player.time_changed"

    # =========================================================================
    # UI -> Coordinator: action requests (command channel)
    # =========================================================================

    # {"track": Track, "queue": [Track]?}
    ACTION_PLAY_TRACK = "action.play_track"
    ACTION_PAUSE = "action.pause"
    ACTION_NEXT = "action.next"
    ACTION_PREV = "action.previous"
    # {"position": float}
    ACTION_SEEK = "action.seek"
    # {"volume": float}
    ACTION_SET_VOLUME = "action.set_volume"
    ACTION_TOGGLE_SHUFFLE = "action.toggle_shuffle"
    ACTION_CYCLE_REPEAT = "action.cycle_repeat"
    ACTION_CLOSE_PLAYER = "action.close_player"
    # {"track": Track?}
    ACTION_SHARE_TRACK = "action.share_track"

    def __init__(self):
        self._subscribers: Dict[str, List[Callable[[Any], None]]] = {}

    def subscribe(self, event: str, callback: Callable[[Any], None]) -> None:
        if event not in self._subscribers:
            self._subscribers[event] = []
        self._subscribers[event].append(callback)

    def unsubscribe(self, event: str, callback: Callable[[Any], None]) -> None:
        if event in self._subscribers:
            try:
                self._subscribers[event].remove(callback)
            except ValueError:
                pass

    def subscriber_count(self, event: str) -> int:
        return len(self._subscribers.get(event, []))

    def publish(self, event: str, data: Any = None) -> None:
        # Copy: callbacks may (un)subscribe while we iterate
        for callback in list(self._subscribers.get(event, [])):
            try:
                callback(data)
            except Exception as e:
                logger.error(
                    "Error in event callback for %s: %s", event, e, exc_info=True
                )
