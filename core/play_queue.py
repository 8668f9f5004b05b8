"""Play queue: ordered tracks, current position, shuffle and repeat policy.

Pure logic, no I/O. The track sequence is replaced wholesale by set_queue()
and never spliced, so an index computed against it stays meaningful.
"""

import random
from typing import Iterable, NamedTuple, Optional, Tuple

from core.logging import get_logger
from core.models import RepeatMode, Track

logger = get_logger(__name__)


class QueueStep(NamedTuple):
    """Result of next()/previous()."""

    index: int
    moved: bool
    # True when the queue ran out and repeat did not allow wrapping
    exhausted: bool


class PlayQueue:
    """Owns the ordered queue and computes next/previous positions."""

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        """
        Initialize an empty queue.

        Args:
            rng: Random source for shuffle (injectable for tests)
        """
        self._rng = rng or random.Random()
        self._tracks: Tuple[Track, ...] = ()
        self._position: int = -1
        self._shuffle: bool = False
        self._repeat_mode: RepeatMode = RepeatMode.OFF

    def __len__(self) -> int:
        return len(self._tracks)

    @property
    def tracks(self) -> Tuple[Track, ...]:
        return self._tracks

    @property
    def track_ids(self) -> Tuple[str, ...]:
        return tuple(t.id for t in self._tracks)

    @property
    def position(self) -> int:
        """Current index, -1 when the queue is empty."""
        return self._position

    @property
    def current_track(self) -> Optional[Track]:
        if 0 <= self._position < len(self._tracks):
            return self._tracks[self._position]
        return None

    @property
    def is_shuffled(self) -> bool:
        return self._shuffle

    @property
    def repeat_mode(self) -> RepeatMode:
        return self._repeat_mode

    def index_of(self, track_id: str) -> int:
        for idx, track in enumerate(self._tracks):
            if track.id == track_id:
                return idx
        return -1

    def same_tracks(self, tracks: Iterable[Track]) -> bool:
        """True when tracks has the same id sequence as the queue."""
        return tuple(t.id for t in tracks) == self.track_ids

    def set_queue(self, tracks: Iterable[Track], start_at: Optional[str] = None) -> int:
        """
        Replace the queue wholesale.

        Args:
            tracks: New queue contents
            start_at: Track id to start at (0 when absent or not found)

        Returns:
            The new position
        """
        self._tracks = tuple(tracks)
        if not self._tracks:
            self._position = -1
            return self._position
        index = self.index_of(start_at) if start_at is not None else -1
        self._position = index if index >= 0 else 0
        logger.debug("Queue replaced: %d tracks, position %d", len(self._tracks), self._position)
        return self._position

    def jump_to(self, track_id: str) -> bool:
        """Move the position to an already queued track."""
        index = self.index_of(track_id)
        if index < 0:
            return False
        self._position = index
        return True

    def clear(self) -> None:
        self._tracks = ()
        self._position = -1

    def next(self) -> QueueStep:
        """Advance the position according to shuffle and repeat."""
        count = len(self._tracks)
        if count == 0:
            return QueueStep(-1, False, True)

        current = self._position
        if self._shuffle:
            # May draw the current index again
            index = self._rng.randrange(count)
        else:
            index = current + 1
            if index >= count:
                if self._repeat_mode is not RepeatMode.ALL:
                    return QueueStep(current, False, True)
                index = 0

        self._position = index
        return QueueStep(index, index != current, False)

    def previous(self) -> QueueStep:
        """Step the position back according to shuffle and repeat."""
        count = len(self._tracks)
        if count == 0:
            return QueueStep(-1, False, True)

        current = self._position
        if self._shuffle:
            index = self._rng.randrange(count)
        else:
            index = current - 1
            if index < 0:
                if self._repeat_mode is not RepeatMode.ALL:
                    return QueueStep(current, False, True)
                index = count - 1

        self._position = index
        return QueueStep(index, index != current, False)

    def set_shuffle(self, enabled: bool) -> None:
        self._shuffle = bool(enabled)

    def toggle_shuffle(self) -> bool:
        self._shuffle = not self._shuffle
        return self._shuffle

    def set_repeat_mode(self, mode: RepeatMode) -> None:
        self._repeat_mode = RepeatMode(mode)

    def cycle_repeat(self) -> RepeatMode:
        self._repeat_mode = self._repeat_mode.next()
        return self._repeat_mode
