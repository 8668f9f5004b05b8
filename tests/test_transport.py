"""Tests for the GStreamer transport."""

import pytest
from unittest.mock import Mock, patch

from conftest import make_track
from core.events import EventBus
from core.exceptions import PlaybackRejectedError

SECOND = 10 ** 9

TRANSPORT_EVENTS = [
    EventBus.TRANSPORT_LOAD_START,
    EventBus.TRANSPORT_CAN_PLAY,
    EventBus.TRANSPORT_PLAYING,
    EventBus.TRANSPORT_PAUSED,
    EventBus.TRANSPORT_ENDED,
    EventBus.TRANSPORT_ERROR,
    EventBus.TRANSPORT_TIME_UPDATE,
    EventBus.TRANSPORT_DURATION_CHANGED,
]


class TestTransport:
    """Test Transport class."""

    @pytest.fixture
    def gst(self):
        with patch('core.transport.Gst') as gst, patch('core.transport.GLib'):
            gst.SECOND = SECOND
            gst.is_initialized.return_value = True
            yield gst

    @pytest.fixture
    def transport(self, gst, event_bus):
        """Create Transport instance."""
        from core.transport import Transport
        return Transport(event_bus)

    @pytest.fixture
    def published(self, event_bus):
        events = []
        for name in TRANSPORT_EVENTS:
            event_bus.subscribe(name, lambda data, name=name: events.append((name, data)))
        return events

    @staticmethod
    def _state_message(gst, transport, new_state):
        message = Mock()
        message.type = gst.MessageType.STATE_CHANGED
        message.src = transport.playbin
        message.parse_state_changed.return_value = (gst.State.PAUSED, new_state, gst.State.VOID_PENDING)
        return message

    def test_initialization(self, transport):
        assert transport.current_track is None
        assert transport.volume == 1.0
        assert transport.position == 0.0
        assert transport.is_playing is False

    def test_load_sets_uri_and_publishes(self, transport, published):
        track = make_track('a')
        transport.load(track)

        transport.playbin.set_property.assert_any_call('uri', track.media_url)
        assert published == [(EventBus.TRANSPORT_LOAD_START, {'track_id': 'a', 'duration': 180.0})]
        assert transport.position == 0.0

    def test_load_without_url_reports_error(self, transport, gst, published):
        transport.load(make_track('a', media_url=''))

        names = [name for name, _ in published]
        assert names == [EventBus.TRANSPORT_LOAD_START, EventBus.TRANSPORT_ERROR]
        assert published[-1][1]['track_id'] == 'a'
        transport.playbin.set_state.assert_called_with(gst.State.NULL)

    def test_play_resolves_when_playing(self, transport, gst, published):
        transport.load(make_track('a'))
        pending = transport.play()
        assert not pending.done()

        message = self._state_message(gst, transport, gst.State.PLAYING)
        transport._on_message(None, message)
        transport._on_message(None, message)

        assert pending.result() == 'a'
        assert transport.is_playing is True
        playing = [name for name, _ in published if name == EventBus.TRANSPORT_PLAYING]
        assert len(playing) == 1

    def test_play_without_track_is_rejected(self, transport):
        pending = transport.play()
        with pytest.raises(PlaybackRejectedError):
            pending.result()

    def test_play_refused_by_device(self, transport, gst):
        transport.load(make_track('a'))
        transport.playbin.set_state.return_value = gst.StateChangeReturn.FAILURE
        pending = transport.play()
        assert isinstance(pending.exception(), PlaybackRejectedError)

    def test_load_cancels_pending_play(self, transport):
        transport.load(make_track('a'))
        pending = transport.play()
        transport.load(make_track('b'))
        assert pending.cancelled()

    def test_error_message_fails_pending_play(self, transport, gst, published):
        transport.load(make_track('a'))
        pending = transport.play()

        message = Mock()
        message.type = gst.MessageType.ERROR
        message.parse_error.return_value = (Mock(message='decoder failed'), 'debug info')
        transport._on_message(None, message)

        assert isinstance(pending.exception(), PlaybackRejectedError)
        assert published[-1] == (
            EventBus.TRANSPORT_ERROR, {'track_id': 'a', 'message': 'decoder failed'}
        )

    def test_end_of_stream(self, transport, gst, published):
        transport.load(make_track('a'))
        message = Mock()
        message.type = gst.MessageType.EOS
        transport._on_message(None, message)

        assert transport.position == 180.0
        assert transport.is_playing is False
        assert published[-1] == (EventBus.TRANSPORT_ENDED, {'track_id': 'a'})
        transport.playbin.set_state.assert_called_with(gst.State.PAUSED)

    def test_preroll_reports_can_play(self, transport, gst, published):
        transport.load(make_track('a', duration=None))
        transport.playbin.query_duration.return_value = (True, 200 * SECOND)
        message = Mock()
        message.type = gst.MessageType.ASYNC_DONE
        transport._on_message(None, message)
        transport._on_message(None, message)

        can_play = [data for name, data in published if name == EventBus.TRANSPORT_CAN_PLAY]
        assert can_play == [{'track_id': 'a', 'duration': 200.0}]
        assert transport.duration == 200.0

    def test_pause_publishes_only_when_playing(self, transport, gst, published):
        transport.load(make_track('a'))
        transport.pause()
        assert EventBus.TRANSPORT_PAUSED not in [name for name, _ in published]

        transport._on_message(None, self._state_message(gst, transport, gst.State.PLAYING))
        transport.pause()
        assert published[-1] == (EventBus.TRANSPORT_PAUSED, {'track_id': 'a'})
        assert transport.is_playing is False

    def test_seek_clamps(self, transport, gst):
        transport.playbin.seek_simple.return_value = True
        transport.load(make_track('a'))

        assert transport.seek(500.0) == 180.0
        assert transport.seek(-3.0) == 0.0
        assert transport.seek(12.5) == 12.5
        args = transport.playbin.seek_simple.call_args[0]
        assert args[2] == int(12.5 * SECOND)

    def test_seek_unknown_duration_only_clamps_below(self, transport):
        transport.load(make_track('a', duration=None))
        assert transport.seek(999.0) == 999.0
        assert transport.seek(-1.0) == 0.0

    def test_volume_range(self, transport):
        """Test volume clamping."""
        assert transport.set_volume(2.0) == 1.0
        assert transport.get_volume() == 1.0

        transport.set_volume(-1.0)
        assert transport.get_volume() == 0.0

        transport.set_volume(0.5)
        assert transport.get_volume() == 0.5
        transport.playbin.set_property.assert_called_with('volume', 0.5)

    def test_position_tick(self, transport, gst, published):
        transport.load(make_track('a'))
        transport.is_playing = True
        transport.playbin.query_position.return_value = (True, 5 * SECOND)

        assert transport._update_position() is True
        assert published[-1] == (
            EventBus.TRANSPORT_TIME_UPDATE, {'track_id': 'a', 'position': 5.0, 'duration': 180.0}
        )

    def test_shutdown_releases_pipeline(self, transport, gst):
        playbin = transport.playbin
        transport.shutdown()
        playbin.set_state.assert_called_with(gst.State.NULL)
        assert transport.playbin is None
