"""Application root: wires the bus, the single transport, the queue and the coordinator."""

import random
from typing import Any, Callable, Dict, List, Optional, Sequence

from core.events import EventBus
from core.exceptions import NotFoundError
from core.library_store import PlaylistStore, TrackStore
from core.logging import get_logger
from core.models import RepeatMode, Track
from core.observation import ObservationSurface
from core.play_queue import PlayQueue
from core.playback_coordinator import PlaybackCoordinator

logger = get_logger(__name__)


def _default_transport(event_bus: EventBus) -> Any:
    from core.transport import Transport
    return Transport(event_bus)


class SongStreamApplication:
    """Owns the process-wide playback components.

    Exactly one transport is created here; everything else reaches the
    device through the coordinator.
    """

    def __init__(
        self,
        transport_factory: Callable[[EventBus], Any] = _default_transport,
        track_store: Optional[TrackStore] = None,
        playlist_store: Optional[PlaylistStore] = None,
        scheduler: Any = None,
        rng: Optional[random.Random] = None,
        share_sink: Optional[Callable[[Dict[str, str]], Any]] = None,
        **coordinator_options: Any,
    ):
        self.event_bus = EventBus()
        self.track_store = track_store if track_store is not None else TrackStore()
        self.playlist_store = (
            playlist_store if playlist_store is not None
            else PlaylistStore(track_store=self.track_store)
        )

        self.transport = transport_factory(self.event_bus)
        self.queue = PlayQueue(rng)
        self.coordinator = PlaybackCoordinator(
            self.event_bus,
            self.transport,
            queue=self.queue,
            track_store=self.track_store,
            scheduler=scheduler,
            share_sink=share_sink,
            **coordinator_options,
        )
        self.surface = ObservationSurface(self.event_bus, self.coordinator.actions)
        self.coordinator.publish_initial_state()

    @property
    def actions(self):
        return self.coordinator.actions

    def resolve_tracks(self, track_ids: Optional[Sequence[str]] = None) -> List[Track]:
        """Look up songs by id, in order. None means the whole library."""
        if not track_ids:
            return self.track_store.get_all()
        tracks = []
        for track_id in track_ids:
            track = self.track_store.get_by_id(track_id)
            if track is None:
                raise NotFoundError(f"Song not found: {track_id}")
            tracks.append(track)
        return tracks

    def play_tracks(
        self,
        tracks: Sequence[Track],
        shuffle: bool = False,
        repeat: RepeatMode = RepeatMode.OFF,
    ) -> bool:
        """Queue tracks and start the first one."""
        if not tracks:
            logger.warning("Nothing to play")
            return False
        self.queue.set_shuffle(shuffle)
        self.queue.set_repeat_mode(repeat)
        return self.coordinator.play_track(tracks[0], list(tracks))

    def play_playlist(self, playlist_id: str, shuffle: bool = False) -> bool:
        tracks = self.playlist_store.get_tracks(playlist_id)
        return self.play_tracks(tracks, shuffle=shuffle, repeat=self.queue.repeat_mode)

    def shutdown(self) -> None:
        """Tear down in reverse order of construction."""
        self.surface.close()
        self.coordinator.shutdown()
        self.transport.shutdown()
        logger.info("Application shut down")
