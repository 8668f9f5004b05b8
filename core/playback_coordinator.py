"""Playback coordinator - mediates the play queue and the transport; publishes player state."""
import time
from concurrent.futures import Future
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import gi
gi.require_version("GLib", "2.0")
from gi.repository import GLib

from core.config import get_config
from core.events import EventBus
from core.logging import get_logger
from core.models import RepeatMode, Track
from core.observation import (
    PlayerActions,
    PlayerSnapshot,
    PlayerState,
    TimeSnapshot,
    TimeThrottle,
)
from core.play_queue import PlayQueue
from core.sharing import build_share_payload

logger = get_logger(__name__)


class ProcessingLock:
    """At most one playback transition in flight.

    The lock is released one grace period after a transition was applied,
    not immediately, so device events fired in quick succession (a pause
    right after a play while toggling) settle before the next command.
    """

    def __init__(self, scheduler: Any, grace_period_ms: int):
        self._scheduler = scheduler
        self._grace_period_ms = int(grace_period_ms)
        self._held = False
        self._release_id: Optional[int] = None

    @property
    def held(self) -> bool:
        return self._held

    @property
    def grace_period_ms(self) -> int:
        return self._grace_period_ms

    def acquire(self, force: bool = False) -> bool:
        """Take the lock. Returns False (and does nothing) if it is held, unless forced."""
        if self._held and not force:
            return False
        self._cancel_release()
        self._held = True
        return True

    def release_later(self) -> None:
        """Release after the grace period."""
        self._cancel_release()
        self._release_id = self._scheduler.timeout_add(self._grace_period_ms, self._expire)

    def release_now(self) -> None:
        self._cancel_release()
        self._held = False

    def _cancel_release(self) -> None:
        if self._release_id is not None:
            self._scheduler.source_remove(self._release_id)
            self._release_id = None

    def _expire(self) -> bool:
        self._release_id = None
        self._held = False
        return False  # one-shot


class PlaybackCoordinator:
    """State machine between the queue and the transport.

    Commands arrive as direct calls (see `actions`) or ACTION_* events.
    Device feedback arrives only as TRANSPORT_* events. State leaves as
    PLAYER_STATE_CHANGED / PLAYER_TIME_CHANGED events.
    """

    def __init__(
        self,
        event_bus: EventBus,
        transport: Any,
        queue: Optional[PlayQueue] = None,
        track_store: Any = None,
        scheduler: Any = None,
        clock: Callable[[], float] = time.monotonic,
        grace_period_ms: Optional[int] = None,
        time_update_hz: Optional[float] = None,
        volume: Optional[float] = None,
        share_base_url: Optional[str] = None,
        share_sink: Optional[Callable[[Dict[str, str]], Any]] = None,
    ):
        if None in (grace_period_ms, time_update_hz, volume, share_base_url):
            config = get_config()
            if grace_period_ms is None:
                grace_period_ms = config.grace_period_ms
            if time_update_hz is None:
                time_update_hz = config.time_update_hz
            if volume is None:
                volume = config.initial_volume
            if share_base_url is None:
                share_base_url = config.share_base_url

        self._events = event_bus
        self._transport = transport
        self._queue = queue if queue is not None else PlayQueue()
        self._track_store = track_store
        self._scheduler = scheduler if scheduler is not None else GLib
        self._share_base_url = share_base_url
        self._share_sink = share_sink

        self._lock = ProcessingLock(self._scheduler, grace_period_ms)
        self._throttle = TimeThrottle(time_update_hz, clock)

        # Player state (published as snapshots)
        self._state = PlayerState.IDLE
        self._current_track: Optional[Track] = None
        self._is_playing = False
        self._is_loading = False
        self._show_player = False
        self._volume = max(0.0, min(1.0, float(volume)))
        self._position = 0.0
        self._duration = 0.0
        # Whether the current track ever reached PLAYING
        self._has_started = False
        # Track id whose play count is recorded once playback starts
        self._play_count_due: Optional[str] = None

        self._last_snapshot: Optional[PlayerSnapshot] = None
        self._last_time: Optional[TimeSnapshot] = None

        self._actions = PlayerActions(
            play_track=self.play_track,
            pause_song=self.pause_song,
            next_song=self.next_song,
            previous_song=self.previous_song,
            seek_to=self.seek_to,
            set_volume=self.set_volume,
            toggle_shuffle=self.toggle_shuffle,
            cycle_repeat=self.cycle_repeat,
            close_player=self.close_player,
            share_track=self.share_track,
        )

        self._subscriptions: List[Tuple[str, Callable[[Any], None]]] = [
            # Device lifecycle
            (EventBus.TRANSPORT_LOAD_START, self._on_transport_load_start),
            (EventBus.TRANSPORT_CAN_PLAY, self._on_transport_can_play),
            (EventBus.TRANSPORT_PLAYING, self._on_transport_playing),
            (EventBus.TRANSPORT_PAUSED, self._on_transport_paused),
            (EventBus.TRANSPORT_ENDED, self._on_transport_ended),
            (EventBus.TRANSPORT_ERROR, self._on_transport_error),
            (EventBus.TRANSPORT_TIME_UPDATE, self._on_transport_time_update),
            (EventBus.TRANSPORT_DURATION_CHANGED, self._on_transport_duration_changed),
            # Commands
            (EventBus.ACTION_PLAY_TRACK, self._on_action_play_track),
            (EventBus.ACTION_PAUSE, self._on_action_pause),
            (EventBus.ACTION_NEXT, self._on_action_next),
            (EventBus.ACTION_PREV, self._on_action_previous),
            (EventBus.ACTION_SEEK, self._on_action_seek),
            (EventBus.ACTION_SET_VOLUME, self._on_action_set_volume),
            (EventBus.ACTION_TOGGLE_SHUFFLE, self._on_action_toggle_shuffle),
            (EventBus.ACTION_CYCLE_REPEAT, self._on_action_cycle_repeat),
            (EventBus.ACTION_CLOSE_PLAYER, self._on_action_close_player),
            (EventBus.ACTION_SHARE_TRACK, self._on_action_share_track),
        ]
        for event, handler in self._subscriptions:
            self._events.subscribe(event, handler)

        self._transport.set_volume(self._volume)

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def actions(self) -> PlayerActions:
        return self._actions

    @property
    def queue(self) -> PlayQueue:
        return self._queue

    @property
    def state(self) -> PlayerState:
        return self._state

    @property
    def current_track(self) -> Optional[Track]:
        return self._current_track

    @property
    def is_playing(self) -> bool:
        return self._is_playing

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def is_processing(self) -> bool:
        """True while the processing lock is held."""
        return self._lock.held

    @property
    def show_player(self) -> bool:
        return self._show_player

    @property
    def volume(self) -> float:
        return self._volume

    @property
    def position(self) -> float:
        return self._position

    @property
    def duration(self) -> float:
        return self._duration

    def snapshot(self) -> PlayerSnapshot:
        return PlayerSnapshot(
            state=self._state,
            current_track=self._current_track,
            is_playing=self._is_playing,
            volume=self._volume,
            queue=self._queue.tracks,
            position_index=self._queue.position,
            is_loading=self._is_loading,
            is_shuffled=self._queue.is_shuffled,
            repeat_mode=self._queue.repeat_mode,
            show_player=self._show_player,
        )

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def _publish_state(self) -> None:
        snapshot = self.snapshot()
        if snapshot == self._last_snapshot:
            return
        self._last_snapshot = snapshot
        self._events.publish(EventBus.PLAYER_STATE_CHANGED, snapshot)

    def _publish_time(self, force: bool = False) -> None:
        snapshot = TimeSnapshot(position=self._position, duration=self._duration)
        if snapshot == self._last_time:
            return
        if not self._throttle.ready(force):
            return
        self._last_time = snapshot
        self._events.publish(EventBus.PLAYER_TIME_CHANGED, snapshot)

    def publish_initial_state(self) -> None:
        """Publish current state so late subscribers can sync without polling."""
        self._last_snapshot = None
        self._last_time = None
        self._publish_state()
        self._publish_time(force=True)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def play_track(self, track: Track, queue: Optional[Sequence[Track]] = None) -> bool:
        """Play a track, or toggle pause/resume if it is already the current one.

        Returns False when the request was dropped because another transition
        is in flight.
        """
        if track is None:
            return False
        if not self._lock.acquire():
            logger.debug("Dropped play request for %s: transition in flight", track.id)
            return False
        try:
            current = self._current_track
            if current is not None and current.id == track.id:
                self._toggle_playback()
            else:
                self._adopt_queue(track, queue)
                self._start_track(track)
        finally:
            self._lock.release_later()
        return True

    def pause_song(self) -> bool:
        if self._lock.held:
            logger.debug("Dropped pause request: transition in flight")
            return False
        if self._current_track is None:
            return False
        self._transport.pause()
        self._is_playing = False
        if self._state is not PlayerState.IDLE:
            self._state = PlayerState.PAUSED
        self._publish_state()
        self._publish_time(force=True)
        return True

    def next_song(self) -> bool:
        return self._step(forward=True)

    def previous_song(self) -> bool:
        return self._step(forward=False)

    def seek_to(self, seconds: float) -> float:
        """Seek within the current track. Returns the clamped position."""
        if self._current_track is None:
            return self._position
        self._position = self._transport.seek(seconds)
        self._publish_time(force=True)
        return self._position

    def set_volume(self, level: float) -> float:
        self._volume = self._transport.set_volume(level)
        self._publish_state()
        return self._volume

    def toggle_shuffle(self) -> bool:
        enabled = self._queue.toggle_shuffle()
        self._publish_state()
        return enabled

    def cycle_repeat(self) -> RepeatMode:
        mode = self._queue.cycle_repeat()
        self._publish_state()
        return mode

    def close_player(self) -> None:
        """Stop and hide the player. Track and queue are kept for a later resume."""
        self._transport.pause()
        self._is_playing = False
        self._show_player = False
        self._state = PlayerState.IDLE
        self._publish_state()

    def share_track(self, track: Optional[Track] = None) -> Optional[Dict[str, str]]:
        track = track or self._current_track
        if track is None:
            return None
        payload = build_share_payload(track, self._share_base_url)
        if self._share_sink is None:
            logger.info("Share link for %s: %s", track.id, payload['url'])
            return payload
        try:
            self._share_sink(payload)
        except Exception as e:
            logger.error("Error sharing %s: %s", track.id, e, exc_info=True)
        return payload

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _adopt_queue(self, track: Track, queue: Optional[Sequence[Track]]) -> None:
        """Point the queue at track, replacing it only when the id sequence differs."""
        if not queue:
            if not self._queue.jump_to(track.id):
                self._queue.set_queue([track], start_at=track.id)
            return
        queue = list(queue)
        if self._queue.same_tracks(queue) and self._queue.jump_to(track.id):
            return
        self._queue.set_queue(queue, start_at=track.id)

    def _start_track(self, track: Track) -> None:
        """Load a new track into the transport and request playback."""
        logger.info("Loading %s (%s - %s)", track.id, track.artist, track.title)
        self._current_track = track
        self._has_started = False
        self._play_count_due = track.id
        self._show_player = True
        self._is_playing = False
        self._is_loading = True
        self._position = 0.0
        self._duration = float(track.duration or 0.0)
        self._state = PlayerState.LOADING

        self._transport.load(track)
        if self._current_track is not track:
            # load() reported an error synchronously
            return

        self._publish_state()
        self._publish_time(force=True)
        self._request_play(track)

    def _toggle_playback(self) -> None:
        if self._is_playing:
            self._transport.pause()
            self._is_playing = False
            self._state = PlayerState.PAUSED
            self._publish_state()
            self._publish_time(force=True)
            return
        self._show_player = True
        self._state = PlayerState.TRANSITIONING
        self._publish_state()
        self._request_play(self._current_track)

    def _replay_current(self) -> None:
        self._position = self._transport.seek(0.0)
        self._state = PlayerState.TRANSITIONING
        self._publish_state()
        self._publish_time(force=True)
        self._request_play(self._current_track)

    def _request_play(self, track: Track) -> None:
        pending: Future = self._transport.play()
        pending.add_done_callback(partial(self._on_play_settled, track.id))

    def _on_play_settled(self, track_id: str, pending: Future) -> None:
        if pending.cancelled():
            return
        current = self._current_track
        if current is None or current.id != track_id:
            logger.debug("Discarding stale play result for %s", track_id)
            return
        error = pending.exception()
        if error is not None:
            logger.warning("Playback of %s did not start: %s", track_id, error)
            self._is_playing = False
            self._is_loading = False
            if self._state is not PlayerState.IDLE:
                self._state = PlayerState.PAUSED
        else:
            self._mark_playing()
        self._publish_state()

    def _mark_playing(self) -> None:
        self._is_playing = True
        self._is_loading = False
        self._has_started = True
        self._state = PlayerState.PLAYING
        track = self._current_track
        if track is not None and self._play_count_due == track.id:
            self._play_count_due = None
            self._record_play(track)

    def _step(self, forward: bool) -> bool:
        if len(self._queue) == 0:
            return False
        if not self._lock.acquire():
            logger.debug("Dropped %s request: transition in flight", "next" if forward else "previous")
            return False
        try:
            step = self._queue.next() if forward else self._queue.previous()
            track = self._queue.current_track
            if not step.moved or track is None:
                return False
            self._start_track(track)
            return True
        finally:
            self._lock.release_later()

    def _handle_track_ended(self) -> None:
        # Device events are not user commands: never dropped
        self._lock.acquire(force=True)
        try:
            self._is_playing = False
            finished = self._current_track
            if self._queue.repeat_mode is RepeatMode.ONE:
                self._replay_current()
                return

            step = self._queue.next()
            if step.exhausted:
                logger.info("Queue finished")
                self._position = self._duration
                self._state = PlayerState.PAUSED
                self._publish_state()
                self._publish_time(force=True)
                return

            upcoming = self._queue.current_track
            if upcoming is None or not step.moved or upcoming.id == finished.id:
                # Shuffle drew the same track
                self._replay_current()
            else:
                self._start_track(upcoming)
        finally:
            self._lock.release_later()

    def _record_play(self, track: Track) -> None:
        if self._track_store is None:
            return
        self._scheduler.idle_add(self._increment_play_count, track.id)

    def _increment_play_count(self, track_id: str) -> bool:
        try:
            self._track_store.increment_play_count(track_id)
        except Exception as e:
            logger.warning("Failed to increment play count for %s: %s", track_id, e)
        return False

    # ------------------------------------------------------------------
    # Transport events
    # ------------------------------------------------------------------

    def _is_current(self, data: Optional[Dict[str, Any]]) -> bool:
        track = self._current_track
        return bool(data) and track is not None and data.get("track_id") == track.id

    def _on_transport_load_start(self, data: Optional[Dict[str, Any]]) -> None:
        if not self._is_current(data):
            return
        self._is_loading = True
        self._publish_state()

    def _on_transport_can_play(self, data: Optional[Dict[str, Any]]) -> None:
        if not self._is_current(data):
            return
        self._is_loading = False
        duration = data.get("duration")
        if duration:
            self._duration = float(duration)
        self._publish_state()
        self._publish_time(force=True)

    def _on_transport_playing(self, data: Optional[Dict[str, Any]]) -> None:
        if not self._is_current(data):
            return
        self._mark_playing()
        self._publish_state()

    def _on_transport_paused(self, data: Optional[Dict[str, Any]]) -> None:
        if not self._is_current(data):
            return
        if self._state is PlayerState.PLAYING:
            self._is_playing = False
            self._state = PlayerState.PAUSED
            self._publish_state()
            self._publish_time(force=True)

    def _on_transport_ended(self, data: Optional[Dict[str, Any]]) -> None:
        if not self._is_current(data):
            return
        self._handle_track_ended()

    def _on_transport_error(self, data: Optional[Dict[str, Any]]) -> None:
        if not self._is_current(data):
            return
        track = self._current_track
        logger.warning("Device error on %s: %s", track.id, data.get("message"))
        self._is_playing = False
        self._is_loading = False
        if self._has_started:
            self._state = PlayerState.PAUSED
        else:
            # Never played: nothing to resume
            self._state = PlayerState.IDLE
            self._current_track = None
            self._play_count_due = None
        self._publish_state()

    def _on_transport_time_update(self, data: Optional[Dict[str, Any]]) -> None:
        if not self._is_current(data):
            return
        self._position = float(data.get("position") or 0.0)
        duration = data.get("duration")
        if duration:
            self._duration = float(duration)
        self._publish_time()

    def _on_transport_duration_changed(self, data: Optional[Dict[str, Any]]) -> None:
        if not self._is_current(data):
            return
        duration = data.get("duration")
        if duration:
            self._duration = float(duration)
            self._publish_time(force=True)

    # ------------------------------------------------------------------
    # Action events
    # ------------------------------------------------------------------

    def _on_action_play_track(self, data: Optional[Dict[str, Any]]) -> None:
        if not data or "track" not in data:
            return
        self.play_track(data["track"], data.get("queue"))

    def _on_action_pause(self, data: Optional[Dict[str, Any]]) -> None:
        self.pause_song()

    def _on_action_next(self, data: Optional[Dict[str, Any]]) -> None:
        self.next_song()

    def _on_action_previous(self, data: Optional[Dict[str, Any]]) -> None:
        self.previous_song()

    def _on_action_seek(self, data: Optional[Dict[str, Any]]) -> None:
        if not data or "position" not in data:
            return
        self.seek_to(float(data["position"]))

    def _on_action_set_volume(self, data: Optional[Dict[str, Any]]) -> None:
        if not data or "volume" not in data:
            return
        self.set_volume(float(data["volume"]))

    def _on_action_toggle_shuffle(self, data: Optional[Dict[str, Any]]) -> None:
        self.toggle_shuffle()

    def _on_action_cycle_repeat(self, data: Optional[Dict[str, Any]]) -> None:
        self.cycle_repeat()

    def _on_action_close_player(self, data: Optional[Dict[str, Any]]) -> None:
        self.close_player()

    def _on_action_share_track(self, data: Optional[Dict[str, Any]]) -> None:
        self.share_track((data or {}).get("track"))

    def shutdown(self) -> None:
        for event, handler in self._subscriptions:
            self._events.unsubscribe(event, handler)
        self._lock.release_now()
