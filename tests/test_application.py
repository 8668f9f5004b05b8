"""Tests for the application root."""

import pytest

from conftest import FakeTransport
from core.application import SongStreamApplication
from core.events import EventBus
from core.exceptions import NotFoundError
from core.library_store import PlaylistStore, TrackStore
from core.models import RepeatMode
from core.observation import PlayerState


@pytest.fixture
def stores(temp_dir):
    track_store = TrackStore(temp_dir / 'library')
    return track_store, PlaylistStore(temp_dir / 'library', track_store=track_store)


@pytest.fixture
def created():
    return []


@pytest.fixture
def app(stores, scheduler, created):
    track_store, playlist_store = stores

    def factory(event_bus):
        transport = FakeTransport(event_bus)
        created.append(transport)
        return transport

    application = SongStreamApplication(
        transport_factory=factory,
        track_store=track_store,
        playlist_store=playlist_store,
        scheduler=scheduler,
        grace_period_ms=100,
        time_update_hz=4.0,
        volume=0.8,
        share_base_url='https://songs.example',
    )
    yield application
    application.shutdown()


def _add_songs(track_store, *titles):
    return [
        track_store.create({'title': t, 'artist': 'Artist', 'audioUrl': f'https://cdn.example.com/{t}.mp3'})
        for t in titles
    ]


class TestSongStreamApplication:
    """Test SongStreamApplication class."""

    def test_single_transport(self, app, created):
        assert created == [app.transport]
        assert app.transport.volume == 0.8

    def test_initial_state_published(self, app):
        assert app.surface.state.state is PlayerState.IDLE
        assert app.surface.state.volume == 0.8
        assert app.surface.commands is app.actions

    def test_play_tracks(self, app, stores):
        songs = _add_songs(stores[0], 'One', 'Two')
        assert app.play_tracks(songs, repeat=RepeatMode.ALL) is True
        assert app.surface.state.current_track == songs[0]
        assert app.queue.track_ids == tuple(s.id for s in songs)
        assert app.queue.repeat_mode is RepeatMode.ALL

        app.transport.start()
        assert app.surface.state.is_playing is True

    def test_play_nothing(self, app):
        assert app.play_tracks([]) is False

    def test_resolve_tracks(self, app, stores):
        songs = _add_songs(stores[0], 'One', 'Two')
        assert app.resolve_tracks() == songs
        assert app.resolve_tracks([songs[1].id]) == [songs[1]]
        with pytest.raises(NotFoundError):
            app.resolve_tracks(['missing'])

    def test_play_playlist(self, app, stores):
        track_store, playlist_store = stores
        songs = _add_songs(track_store, 'One', 'Two', 'Three')
        playlist = playlist_store.create('Mix', song_ids=[songs[2].id, songs[0].id])

        assert app.play_playlist(playlist.id) is True
        assert app.coordinator.current_track == songs[2]
        assert app.queue.track_ids == (songs[2].id, songs[0].id)

    def test_play_count_recorded(self, app, stores, scheduler):
        songs = _add_songs(stores[0], 'One')
        app.play_tracks(songs)
        app.transport.start()
        scheduler.run_idle()
        assert stores[0].get_by_id(songs[0].id).play_count == 1

    def test_shutdown(self, stores, scheduler):
        track_store, playlist_store = stores
        application = SongStreamApplication(
            transport_factory=FakeTransport,
            track_store=track_store,
            playlist_store=playlist_store,
            scheduler=scheduler,
            grace_period_ms=100,
            time_update_hz=4.0,
            volume=1.0,
            share_base_url='https://songs.example',
        )
        application.shutdown()
        assert application.transport.shut_down is True
        assert application.event_bus.subscriber_count(EventBus.TRANSPORT_PLAYING) == 0
        assert application.event_bus.subscriber_count(EventBus.PLAYER_STATE_CHANGED) == 0
