"""Exception hierarchy for SongStream.

Device failures never cross the transport boundary as exceptions; these
types are used by the collaborators (stores, uploader) and to fail pending
play requests.
"""

from typing import List, Optional


class SongStreamError(Exception):
    """Base exception for all SongStream errors."""

    pass


class TransportError(SongStreamError):
    """Errors raised by the audio output device."""

    pass


class PlaybackRejectedError(TransportError):
    """The device refused or failed to start playback."""

    pass


class PersistenceError(SongStreamError):
    """Errors reading or writing the song/playlist documents."""

    pass


class NotFoundError(PersistenceError):
    """A requested document does not exist."""

    pass


class UploadError(SongStreamError):
    """Errors talking to the media hosting service."""

    pass


class ValidationError(SongStreamError):
    """User supplied data failed validation."""

    def __init__(self, errors: List[str], message: Optional[str] = None):
        self.errors = list(errors)
        super().__init__(message or "; ".join(self.errors))


class ConfigurationError(SongStreamError):
    """Errors related to configuration."""

    pass


class MetadataError(SongStreamError):
    """Errors related to metadata operations."""

    pass
