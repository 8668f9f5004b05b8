"""GStreamer transport: the single audio output of the application.

The Transport owns one playbin element for the whole process lifetime and
streams track media URLs through it. It never calls into the coordinator;
every state change is published on the event bus as a TRANSPORT_* event
carrying the id of the loaded track. Device failures are reported as
TRANSPORT_ERROR events and never raised to callers.

play() is the only pending operation: it returns a Future that resolves
with the track id once the pipeline reaches PLAYING, or fails with
PlaybackRejectedError.
"""

from concurrent.futures import Future
from typing import Any, Dict, Optional, Tuple

import gi
gi.require_version('Gst', '1.0')
gi.require_version('GLib', '2.0')
from gi.repository import Gst, GLib

from core.events import EventBus
from core.exceptions import PlaybackRejectedError, TransportError
from core.logging import get_logger
from core.models import Track

logger = get_logger(__name__)


# GStreamer playbin flags: audio only, software volume
GST_FLAG_AUDIO = 0x02
GST_FLAG_SOFT_VOLUME = 0x10

# Position ticks while playing (milliseconds); 4 Hz
POSITION_UPDATE_INTERVAL = 250


class Transport:
    """Wraps one persistent GStreamer playbin."""

    def __init__(self, event_bus: EventBus):
        if not Gst.is_initialized():
            Gst.init(None)

        self._events = event_bus
        self.playbin: Optional[Gst.Element] = None
        self.current_track: Optional[Track] = None
        self.volume: float = 1.0
        self.position: float = 0.0
        self.duration: float = 0.0
        self.is_playing: bool = False

        self._prerolling: bool = False
        self._pending_play: Optional[Tuple[str, Future]] = None
        self._position_timeout_id: Optional[int] = None

        self._setup_pipeline()

    def _setup_pipeline(self) -> None:
        """Create the playbin and attach the message bus."""
        self.playbin = Gst.ElementFactory.make("playbin", "songstream-playbin")
        if not self.playbin:
            raise TransportError("Failed to create GStreamer playbin")

        audio_sink = Gst.ElementFactory.make("autoaudiosink", "audiosink")
        if audio_sink:
            self.playbin.set_property("audio-sink", audio_sink)
        try:
            self.playbin.set_property("flags", GST_FLAG_AUDIO | GST_FLAG_SOFT_VOLUME)
        except (AttributeError, TypeError) as e:
            logger.debug("playbin flags not supported: %s", e)
        self.playbin.set_property("volume", self.volume)

        bus = self.playbin.get_bus()
        bus.add_signal_watch()
        bus.connect("message", self._on_message)

    # ------------------------------------------------------------------
    # Event helpers
    # ------------------------------------------------------------------

    @property
    def track_id(self) -> Optional[str]:
        return self.current_track.id if self.current_track else None

    def _emit(self, event: str, **data: Any) -> None:
        payload: Dict[str, Any] = {"track_id": self.track_id}
        payload.update(data)
        self._events.publish(event, payload)

    def _set_playing(self, playing: bool) -> None:
        """Flip the playing flag, emitting exactly one event per change."""
        if self.is_playing == playing:
            return
        self.is_playing = playing
        if playing:
            self._start_position_updates()
            self._emit(EventBus.TRANSPORT_PLAYING)
        else:
            self._stop_position_updates()
            self._emit(EventBus.TRANSPORT_PAUSED)

    def _resolve_pending(self) -> None:
        if self._pending_play is None:
            return
        track_id, future = self._pending_play
        self._pending_play = None
        if not future.done():
            future.set_result(track_id)

    def _fail_pending(self, reason: str) -> None:
        if self._pending_play is None:
            return
        _, future = self._pending_play
        self._pending_play = None
        if not future.done():
            future.set_exception(PlaybackRejectedError(reason))

    def _cancel_pending(self) -> None:
        if self._pending_play is None:
            return
        _, future = self._pending_play
        self._pending_play = None
        future.cancel()

    # ------------------------------------------------------------------
    # Bus messages
    # ------------------------------------------------------------------

    def _on_message(self, bus: Gst.Bus, message: Gst.Message) -> bool:
        """
        Handle GStreamer bus messages.

        Args:
            bus: GStreamer message bus
            message: GStreamer message

        Returns:
            True to continue receiving messages
        """
        msg_type = message.type

        if msg_type == Gst.MessageType.ERROR:
            err, debug = message.parse_error()
            self._handle_error(err.message, debug)

        elif msg_type == Gst.MessageType.EOS:
            self._stop_position_updates()
            self.position = self.duration
            self.is_playing = False
            # Park in PAUSED so a later play() produces a real state change
            if self.playbin:
                self.playbin.set_state(Gst.State.PAUSED)
            self._emit(EventBus.TRANSPORT_ENDED)

        elif msg_type == Gst.MessageType.ASYNC_DONE:
            if self._prerolling:
                self._prerolling = False
                self._query_duration()
                self._emit(EventBus.TRANSPORT_CAN_PLAY, duration=self.duration)

        elif msg_type == Gst.MessageType.STATE_CHANGED:
            if message.src == self.playbin:
                _, new_state, _ = message.parse_state_changed()
                if new_state == Gst.State.PLAYING:
                    self._set_playing(True)
                    self._resolve_pending()
                elif new_state == Gst.State.PAUSED:
                    self._set_playing(False)

        elif msg_type == Gst.MessageType.DURATION_CHANGED:
            if self._query_duration():
                self._emit(EventBus.TRANSPORT_DURATION_CHANGED, duration=self.duration)

        return True

    def _handle_error(self, message: str, debug: Optional[str] = None) -> None:
        logger.error("Playback error for %s: %s", self.track_id, message)
        if debug:
            logger.debug("GStreamer debug: %s", debug)
        self._stop_position_updates()
        self._prerolling = False
        self.is_playing = False
        if self.playbin:
            self.playbin.set_state(Gst.State.NULL)
        # Pending play fails before the error event so listeners see the final word last
        self._fail_pending(message)
        self._emit(EventBus.TRANSPORT_ERROR, message=message)

    def _query_duration(self) -> bool:
        """Refresh duration from the pipeline. Returns True if it changed."""
        if not self.playbin:
            return False
        success, duration = self.playbin.query_duration(Gst.Format.TIME)
        if success and duration > 0:
            seconds = duration / Gst.SECOND
            changed = abs(seconds - self.duration) > 0.001
            self.duration = seconds
            return changed
        return False

    def _start_position_updates(self) -> None:
        self._stop_position_updates()
        self._position_timeout_id = GLib.timeout_add(
            POSITION_UPDATE_INTERVAL, self._update_position
        )

    def _stop_position_updates(self) -> None:
        if self._position_timeout_id is not None:
            GLib.source_remove(self._position_timeout_id)
            self._position_timeout_id = None

    def _update_position(self) -> bool:
        """Publish the playback position (called periodically while playing)."""
        if not self.playbin or not self.is_playing:
            self._position_timeout_id = None
            return False
        success, position = self.playbin.query_position(Gst.Format.TIME)
        if success:
            self.position = position / Gst.SECOND
            self._emit(
                EventBus.TRANSPORT_TIME_UPDATE,
                position=self.position,
                duration=self.duration,
            )
        return True

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    def load(self, track: Track) -> None:
        """Point the device at a track's media URL and preroll it."""
        self._cancel_pending()
        self._stop_position_updates()
        if self.playbin:
            self.playbin.set_state(Gst.State.NULL)

        self.current_track = track
        self.is_playing = False
        self.position = 0.0
        self.duration = float(track.duration or 0.0)
        self._emit(EventBus.TRANSPORT_LOAD_START, duration=self.duration)

        if not track.media_url:
            self._handle_error("Track has no media URL")
            return

        self.playbin.set_property("uri", track.media_url)
        self._prerolling = True
        ret = self.playbin.set_state(Gst.State.PAUSED)
        if ret == Gst.StateChangeReturn.FAILURE:
            self._handle_error(f"Failed to load {track.media_url}")

    def play(self) -> Future:
        """Request playback. The returned future settles when playback starts or fails."""
        future: Future = Future()
        if not self.playbin or not self.current_track:
            future.set_exception(PlaybackRejectedError("No track loaded"))
            return future

        if self.is_playing:
            future.set_result(self.current_track.id)
            return future

        # Only the latest request is tracked; an older one is superseded
        self._cancel_pending()
        self._pending_play = (self.current_track.id, future)

        ret = self.playbin.set_state(Gst.State.PLAYING)
        if ret == Gst.StateChangeReturn.FAILURE:
            logger.error("Failed to start playback of %s", self.track_id)
            self._fail_pending("Device refused to start playback")
        return future

    def pause(self) -> None:
        """Pause playback. Synchronous."""
        if self.playbin:
            self.playbin.set_state(Gst.State.PAUSED)
        self._cancel_pending()
        self._set_playing(False)

    def seek(self, seconds: float) -> float:
        """
        Seek to a position in seconds.

        Args:
            seconds: Target position (clamped to 0..duration)

        Returns:
            The clamped position
        """
        position = max(0.0, float(seconds))
        if self.duration > 0:
            position = min(position, self.duration)
        self.position = position

        if self.playbin and self.current_track:
            success = self.playbin.seek_simple(
                Gst.Format.TIME,
                Gst.SeekFlags.FLUSH | Gst.SeekFlags.KEY_UNIT,
                int(position * Gst.SECOND),
            )
            if not success:
                logger.warning("Seek failed for position %.2fs", position)
            self._emit(
                EventBus.TRANSPORT_TIME_UPDATE,
                position=self.position,
                duration=self.duration,
            )
        return position

    def set_volume(self, level: float) -> float:
        """
        Set volume (0.0 to 1.0).

        Args:
            level: Volume level (will be clamped)

        Returns:
            The clamped volume
        """
        self.volume = max(0.0, min(1.0, float(level)))
        if self.playbin:
            self.playbin.set_property("volume", self.volume)
        return self.volume

    def get_volume(self) -> float:
        return self.volume

    def shutdown(self) -> None:
        """
        Release the device.

        Only called once, at application exit.
        """
        self._cancel_pending()
        self._stop_position_updates()
        if self.playbin:
            try:
                bus = self.playbin.get_bus()
                if bus:
                    bus.remove_signal_watch()
            except (AttributeError, RuntimeError) as e:
                logger.debug("Bus already gone at shutdown: %s", e)
            self.playbin.set_state(Gst.State.NULL)
            self.playbin = None
        self.is_playing = False
