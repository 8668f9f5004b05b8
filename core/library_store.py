"""Song and playlist documents, persisted as JSON files in the library directory."""

import json
import os
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from core.exceptions import NotFoundError, PersistenceError
from core.logging import get_logger
from core.models import Playlist, Track
from core.validation import MAX_DESCRIPTION_LENGTH, Validator, ensure_valid

logger = get_logger(__name__)

SONGS_FILE = 'songs.json'
PLAYLISTS_FILE = 'playlists.json'
DEFAULT_LIST_LIMIT = 10


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return uuid.uuid4().hex


def _default_library_dir() -> Path:
    from core.config import get_config
    return get_config().library_dir


class JsonDocumentStore:
    """A list of JSON documents in one file, guarded by a lock."""

    def __init__(self, file_path: Path) -> None:
        self.file_path = Path(file_path)
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    def _read(self) -> List[Dict[str, Any]]:
        if not self.file_path.exists():
            return []
        try:
            with open(self.file_path, 'r', encoding='utf-8') as f:
                documents = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Cannot read {self.file_path}: {e}") from e
        if not isinstance(documents, list):
            raise PersistenceError(f"{self.file_path} does not contain a document list")
        return documents

    def _write(self, documents: List[Dict[str, Any]]) -> None:
        # Write to a sibling file first so a crash never leaves a truncated store
        tmp_path = self.file_path.with_suffix(self.file_path.suffix + '.tmp')
        try:
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(documents, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self.file_path)
        except OSError as e:
            raise PersistenceError(f"Cannot write {self.file_path}: {e}") from e

    @staticmethod
    def _find(documents: List[Dict[str, Any]], doc_id: str) -> Optional[Dict[str, Any]]:
        for document in documents:
            if document.get('id') == doc_id:
                return document
        return None


class TrackStore(JsonDocumentStore):
    """Song documents."""

    def __init__(self, library_dir: Optional[Path] = None) -> None:
        if library_dir is None:
            library_dir = _default_library_dir()
        super().__init__(Path(library_dir) / SONGS_FILE)

    def get_all(self) -> List[Track]:
        with self._lock:
            return [Track.from_dict(d) for d in self._read()]

    def get_by_id(self, track_id: str) -> Optional[Track]:
        with self._lock:
            document = self._find(self._read(), track_id)
        return Track.from_dict(document) if document else None

    def get_many(self, track_ids: Iterable[str]) -> List[Track]:
        """Tracks for the given ids in that order; unknown ids are skipped."""
        with self._lock:
            by_id = {d.get('id'): d for d in self._read()}
        return [Track.from_dict(by_id[i]) for i in track_ids if i in by_id]

    def create(self, data: Dict[str, Any]) -> Track:
        """
        Create a song document.

        Args:
            data: Song fields (title, artist, audioUrl, ...)

        Returns:
            The stored track with its new id

        Raises:
            ValidationError: If title or artist are missing or too long
            PersistenceError: If the library cannot be written
        """
        ensure_valid(Validator.validate_song_data(data))
        document = dict(data)
        document['id'] = _new_id()
        document['title'] = Validator.sanitize_text(data.get('title'))
        document['artist'] = Validator.sanitize_text(data.get('artist'))
        document['createdAt'] = _now()
        document['playCount'] = 0
        with self._lock:
            documents = self._read()
            documents.append(document)
            self._write(documents)
        logger.info("Created song %s (%s - %s)", document['id'], document['artist'], document['title'])
        return Track.from_dict(document)

    def update(self, track_id: str, updates: Dict[str, Any]) -> Track:
        with self._lock:
            documents = self._read()
            document = self._find(documents, track_id)
            if document is None:
                raise NotFoundError(f"Song not found: {track_id}")
            merged = dict(document, **updates)
            ensure_valid(Validator.validate_song_data(merged))
            document.update(updates)
            document['id'] = track_id
            document['updatedAt'] = _now()
            self._write(documents)
        return Track.from_dict(document)

    def delete(self, track_id: str) -> bool:
        """Delete a song. Returns False if it did not exist."""
        with self._lock:
            documents = self._read()
            remaining = [d for d in documents if d.get('id') != track_id]
            if len(remaining) == len(documents):
                return False
            self._write(remaining)
        logger.info("Deleted song %s", track_id)
        return True

    def increment_play_count(self, track_id: str) -> Optional[int]:
        """Add one play. Unknown ids are ignored (returns None)."""
        with self._lock:
            documents = self._read()
            document = self._find(documents, track_id)
            if document is None:
                logger.debug("Play count skipped, unknown song %s", track_id)
                return None
            document['playCount'] = int(document.get('playCount') or 0) + 1
            self._write(documents)
            return document['playCount']

    def search(self, term: str) -> List[Track]:
        """Case-insensitive substring match on title, artist, album and genre.

        Queries rejected by Validator.validate_search_query match nothing.
        """
        errors = Validator.validate_search_query(term)
        if errors:
            logger.debug("Search %r skipped: %s", term, "; ".join(errors))
            return []
        needle = term.strip().lower()
        results = []
        for track in self.get_all():
            fields = (track.title, track.artist, track.album or '', track.genre or '')
            if any(needle in value.lower() for value in fields):
                results.append(track)
        return results

    def get_by_genre(self, genre: str) -> List[Track]:
        """Songs of one genre, newest first."""
        tracks = [t for t in self.get_all() if t.genre == genre]
        return sorted(tracks, key=lambda t: t.created_at or '', reverse=True)

    def get_popular(self, limit: int = DEFAULT_LIST_LIMIT) -> List[Track]:
        tracks = sorted(self.get_all(), key=lambda t: t.play_count, reverse=True)
        return tracks[:limit]

    def get_recent(self, limit: int = DEFAULT_LIST_LIMIT) -> List[Track]:
        tracks = sorted(self.get_all(), key=lambda t: t.created_at or '', reverse=True)
        return tracks[:limit]


class PlaylistStore(JsonDocumentStore):
    """Playlist documents. Songs are referenced by id."""

    def __init__(self, library_dir: Optional[Path] = None, track_store: Optional[TrackStore] = None) -> None:
        if library_dir is None:
            library_dir = _default_library_dir()
        super().__init__(Path(library_dir) / PLAYLISTS_FILE)
        self.track_store = track_store if track_store is not None else TrackStore(library_dir)

    def get_all(self) -> List[Playlist]:
        with self._lock:
            return [Playlist.from_dict(d) for d in self._read()]

    def get_by_id(self, playlist_id: str) -> Optional[Playlist]:
        with self._lock:
            document = self._find(self._read(), playlist_id)
        return Playlist.from_dict(document) if document else None

    def get_tracks(self, playlist_id: str) -> List[Track]:
        """Resolve a playlist's songs in order. Songs deleted since are dropped."""
        playlist = self.get_by_id(playlist_id)
        if playlist is None:
            raise NotFoundError(f"Playlist not found: {playlist_id}")
        return self.track_store.get_many(playlist.song_ids)

    def create(self, name: str, description: str = '', song_ids: Optional[List[str]] = None) -> Playlist:
        ensure_valid(Validator.validate_playlist_data({'name': name, 'description': description}))
        now = _now()
        playlist = Playlist(
            id=_new_id(),
            name=Validator.sanitize_text(name),
            description=Validator.sanitize_text(description, MAX_DESCRIPTION_LENGTH),
            song_ids=list(dict.fromkeys(song_ids or [])),
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            documents = self._read()
            documents.append(playlist.to_dict())
            self._write(documents)
        logger.info("Created playlist '%s' (%s)", playlist.name, playlist.id)
        return playlist

    def update(self, playlist_id: str, name: Optional[str] = None, description: Optional[str] = None) -> Playlist:
        with self._lock:
            documents = self._read()
            document = self._find(documents, playlist_id)
            if document is None:
                raise NotFoundError(f"Playlist not found: {playlist_id}")
            new_name = document.get('name') if name is None else name
            new_description = document.get('description') if description is None else description
            ensure_valid(Validator.validate_playlist_data({'name': new_name, 'description': new_description}))
            document['name'] = Validator.sanitize_text(new_name)
            document['description'] = Validator.sanitize_text(new_description, MAX_DESCRIPTION_LENGTH)
            document['updatedAt'] = _now()
            self._write(documents)
        return Playlist.from_dict(document)

    def delete(self, playlist_id: str) -> bool:
        with self._lock:
            documents = self._read()
            remaining = [d for d in documents if d.get('id') != playlist_id]
            if len(remaining) == len(documents):
                return False
            self._write(remaining)
        logger.info("Deleted playlist %s", playlist_id)
        return True

    def add_song(self, playlist_id: str, song_id: str) -> bool:
        """Append a song. Returns False if the playlist is unknown or already has it."""
        with self._lock:
            documents = self._read()
            document = self._find(documents, playlist_id)
            if document is None:
                logger.warning("Cannot add song to unknown playlist %s", playlist_id)
                return False
            song_ids = list(document.get('songIds') or [])
            if song_id in song_ids:
                return False
            song_ids.append(song_id)
            document['songIds'] = song_ids
            document['updatedAt'] = _now()
            self._write(documents)
        return True

    def remove_song(self, playlist_id: str, song_id: str) -> bool:
        with self._lock:
            documents = self._read()
            document = self._find(documents, playlist_id)
            if document is None:
                logger.warning("Cannot remove song from unknown playlist %s", playlist_id)
                return False
            song_ids = list(document.get('songIds') or [])
            if song_id not in song_ids:
                return False
            document['songIds'] = [s for s in song_ids if s != song_id]
            document['updatedAt'] = _now()
            self._write(documents)
        return True
