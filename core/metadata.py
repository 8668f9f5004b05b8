"""Audio file probing using mutagen."""

from pathlib import Path
from typing import Any, List, Optional

from mutagen import File, MutagenError

from core.exceptions import MetadataError
from core.logging import get_logger

logger = get_logger(__name__)


class AudioProbe:
    """Duration and basic tags read from a local audio file before upload."""

    def __init__(self, file_path: str):
        self.file_path = file_path
        self.title: Optional[str] = None
        self.artist: Optional[str] = None
        self.album: Optional[str] = None
        self.genre: Optional[str] = None
        self.duration: Optional[float] = None

    def to_dict(self):
        return {
            'title': self.title,
            'artist': self.artist,
            'album': self.album,
            'genre': self.genre,
            'duration': self.duration,
        }


def _first_tag(audio_file: Any, keys: List[str]) -> Optional[str]:
    """Get a tag value trying multiple possible keys across formats."""
    tags = getattr(audio_file, 'tags', None)
    if tags is None:
        return None
    for key in keys:
        try:
            if key not in tags:
                continue
            value = tags[key]
        except (KeyError, TypeError, ValueError):
            continue
        # Vorbis/MP4 return lists, ID3 returns frames with .text
        if hasattr(value, 'text'):
            value = value.text
        if isinstance(value, (list, tuple)):
            if not value:
                continue
            value = value[0]
        if isinstance(value, bytes):
            value = value.decode('utf-8', errors='ignore')
        result = str(value).strip()
        if result:
            return result
    return None


def probe_audio(file_path: str) -> AudioProbe:
    """
    Read duration and tags from an audio file.

    Args:
        file_path: Local audio file

    Returns:
        AudioProbe with whatever could be read

    Raises:
        MetadataError: If the file cannot be read or is not audio
    """
    probe = AudioProbe(file_path)
    try:
        audio_file = File(file_path)
    except (MutagenError, OSError) as e:
        raise MetadataError(f"Cannot read {file_path}: {e}") from e
    if audio_file is None:
        raise MetadataError(f"Unrecognized audio format: {file_path}")

    info = getattr(audio_file, 'info', None)
    length = getattr(info, 'length', None)
    if length:
        probe.duration = float(length)

    probe.title = _first_tag(audio_file, ['TITLE', 'title', 'TIT2', '\xa9nam'])
    probe.artist = _first_tag(audio_file, ['ARTIST', 'artist', 'TPE1', '\xa9ART'])
    probe.album = _first_tag(audio_file, ['ALBUM', 'album', 'TALB', '\xa9alb'])
    probe.genre = _first_tag(audio_file, ['GENRE', 'genre', 'TCON', '\xa9gen'])

    if not probe.title:
        probe.title = Path(file_path).stem

    logger.debug("Probed %s: duration=%s", file_path, probe.duration)
    return probe
