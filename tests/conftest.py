"""Pytest configuration and fixtures."""

import pytest
import tempfile
import shutil
from concurrent.futures import Future
from pathlib import Path
from unittest.mock import MagicMock

# Mock GStreamer/GLib before imports
import sys

# Mock gi.repository
sys.modules['gi'] = MagicMock()
sys.modules['gi.repository'] = MagicMock()
sys.modules['gi.repository.Gst'] = MagicMock()
sys.modules['gi.repository.GLib'] = MagicMock()

from core.events import EventBus  # noqa: E402
from core.exceptions import PlaybackRejectedError  # noqa: E402
from core.models import Track  # noqa: E402


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, temp_dir):
    """Point XDG directories at a temp dir and drop the config singleton."""
    from core.config import Config

    monkeypatch.setenv('XDG_CONFIG_HOME', str(temp_dir / 'config'))
    monkeypatch.setenv('XDG_CACHE_HOME', str(temp_dir / 'cache'))
    monkeypatch.setenv('XDG_DATA_HOME', str(temp_dir / 'data'))
    monkeypatch.delenv('SONGSTREAM_CLOUDINARY_CLOUD_NAME', raising=False)
    monkeypatch.delenv('SONGSTREAM_CLOUDINARY_UPLOAD_PRESET', raising=False)
    Config.reset_instance()
    yield
    Config.reset_instance()


@pytest.fixture
def mock_config():
    """Configuration backed by temporary directories."""
    from core.config import get_config
    return get_config()


class ManualScheduler:
    """GLib-style timeout/idle scheduler driven by the test."""

    def __init__(self):
        self.now = 0
        self._next_id = 1
        self._timeouts = {}
        self._idle = []

    def timeout_add(self, interval_ms, callback, *args):
        source_id = self._next_id
        self._next_id += 1
        self._timeouts[source_id] = (self.now + interval_ms, interval_ms, callback, args)
        return source_id

    def idle_add(self, callback, *args):
        source_id = self._next_id
        self._next_id += 1
        self._idle.append((callback, args))
        return source_id

    def source_remove(self, source_id):
        return self._timeouts.pop(source_id, None) is not None

    @property
    def pending_timeouts(self):
        return len(self._timeouts)

    def advance(self, ms):
        """Move time forward, firing due timeouts in order."""
        self.now += ms
        while True:
            due = [(when, sid) for sid, (when, _, _, _) in self._timeouts.items() if when <= self.now]
            if not due:
                break
            _, source_id = min(due)
            when, interval, callback, args = self._timeouts.pop(source_id)
            if callback(*args):
                self._timeouts[source_id] = (when + interval, interval, callback, args)

    def run_idle(self):
        idle, self._idle = self._idle, []
        for callback, args in idle:
            callback(*args)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class FakeTransport:
    """In-memory audio device publishing the same events as the GStreamer one."""

    def __init__(self, event_bus):
        self.events = event_bus
        self.current_track = None
        self.volume = 1.0
        self.position = 0.0
        self.duration = 0.0
        self.is_playing = False
        self.calls = []
        self.shut_down = False
        self._pending = None

    @property
    def pending_play(self):
        return self._pending

    def _emit(self, event, **data):
        payload = {'track_id': self.current_track.id if self.current_track else None}
        payload.update(data)
        self.events.publish(event, payload)

    def _cancel_pending(self):
        if self._pending is not None:
            pending, self._pending = self._pending, None
            pending.cancel()

    # Primitives

    def load(self, track):
        self.calls.append(('load', track.id))
        self._cancel_pending()
        self.current_track = track
        self.is_playing = False
        self.position = 0.0
        self.duration = float(track.duration or 0.0)
        self._emit(EventBus.TRANSPORT_LOAD_START, duration=self.duration)
        if not track.media_url:
            self._emit(EventBus.TRANSPORT_ERROR, message='Track has no media URL')

    def play(self):
        self.calls.append('play')
        self._cancel_pending()
        self._pending = Future()
        return self._pending

    def pause(self):
        self.calls.append('pause')
        self._cancel_pending()
        if self.is_playing:
            self.is_playing = False
            self._emit(EventBus.TRANSPORT_PAUSED)

    def seek(self, seconds):
        self.calls.append(('seek', seconds))
        position = max(0.0, float(seconds))
        if self.duration > 0:
            position = min(position, self.duration)
        self.position = position
        if self.current_track:
            self._emit(EventBus.TRANSPORT_TIME_UPDATE, position=position, duration=self.duration)
        return position

    def set_volume(self, level):
        self.volume = max(0.0, min(1.0, float(level)))
        return self.volume

    def get_volume(self):
        return self.volume

    def shutdown(self):
        self.shut_down = True

    # Device simulation

    def start(self):
        """The device reached PLAYING."""
        self.is_playing = True
        self._emit(EventBus.TRANSPORT_PLAYING)
        if self._pending is not None:
            pending, self._pending = self._pending, None
            pending.set_result(self.current_track.id)

    def reject(self, reason='rejected'):
        if self._pending is not None:
            pending, self._pending = self._pending, None
            pending.set_exception(PlaybackRejectedError(reason))

    def can_play(self, duration):
        self.duration = duration
        self._emit(EventBus.TRANSPORT_CAN_PLAY, duration=duration)

    def tick(self, position):
        self.position = position
        self._emit(EventBus.TRANSPORT_TIME_UPDATE, position=position, duration=self.duration)

    def finish(self):
        self.position = self.duration
        self.is_playing = False
        self._emit(EventBus.TRANSPORT_ENDED)

    def fail(self, message='decode error'):
        self.is_playing = False
        self.reject(message)
        self._emit(EventBus.TRANSPORT_ERROR, message=message)


def make_track(track_id, duration=180.0, **fields):
    values = {
        'title': f'Song {track_id}',
        'artist': 'Artist',
        'media_url': f'https://cdn.example.com/{track_id}.mp3',
        'duration': duration,
    }
    values.update(fields)
    return Track(id=track_id, **values)


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_transport(event_bus):
    return FakeTransport(event_bus)


@pytest.fixture
def tracks():
    return [make_track('a'), make_track('b'), make_track('c')]
