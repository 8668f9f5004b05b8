"""Song, playlist and repeat-mode types shared by the player and the stores."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class RepeatMode(Enum):
    """What happens when the queue runs out."""

    OFF = "off"  # stop at queue end
    ALL = "all"  # wrap to start
    ONE = "one"  # replay current track indefinitely

    def next(self) -> "RepeatMode":
        """Cycle off -> all -> one -> off."""
        order = list(RepeatMode)
        return order[(order.index(self) + 1) % len(order)]


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class Track:
    """A single playable song. Owned by the track store; read-only to the player."""

    id: str
    title: str
    artist: str
    media_url: str
    album: Optional[str] = None
    genre: Optional[str] = None
    artwork_url: Optional[str] = None
    duration: Optional[float] = None
    play_count: int = 0
    created_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the document field names."""
        return {
            'id': self.id,
            'title': self.title,
            'artist': self.artist,
            'audioUrl': self.media_url,
            'album': self.album,
            'genre': self.genre,
            'imageUrl': self.artwork_url,
            'duration': self.duration,
            'playCount': self.play_count,
            'createdAt': self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Track':
        """Build a track from a stored document."""
        return cls(
            id=str(data['id']),
            title=data.get('title') or '',
            artist=data.get('artist') or '',
            media_url=data.get('audioUrl') or '',
            album=data.get('album') or None,
            genre=data.get('genre') or None,
            artwork_url=data.get('imageUrl') or None,
            duration=_optional_float(data.get('duration')),
            play_count=int(data.get('playCount') or 0),
            created_at=data.get('createdAt'),
        )


@dataclass
class Playlist:
    """A named, ordered list of song ids."""

    id: str
    name: str
    description: str = ''
    song_ids: List[str] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'songIds': list(self.song_ids),
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Playlist':
        return cls(
            id=str(data['id']),
            name=data.get('name') or '',
            description=data.get('description') or '',
            song_ids=[str(s) for s in data.get('songIds') or []],
            created_at=data.get('createdAt'),
            updated_at=data.get('updatedAt'),
        )
