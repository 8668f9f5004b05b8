"""Input validation for uploads, song/playlist forms and search queries."""

# ============================================================================
# Standard Library Imports (alphabetical)
# ============================================================================
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

# ============================================================================
# Local Imports (grouped by package, alphabetical)
# ============================================================================
from core.exceptions import ValidationError
from core.logging import get_logger

logger = get_logger(__name__)

MB = 1024 * 1024

# Accepted upload types, keyed by MIME type
AUDIO_FORMATS = {
    "audio/mpeg": {".mp3"},
    "audio/wav": {".wav"},
    "audio/ogg": {".ogg", ".oga"},
    "audio/aac": {".aac", ".m4a"},
    "audio/flac": {".flac"},
}
IMAGE_FORMATS = {
    "image/jpeg": {".jpg", ".jpeg"},
    "image/png": {".png"},
    "image/webp": {".webp"},
    "image/gif": {".gif"},
}

MAX_AUDIO_SIZE = 50 * MB
MAX_IMAGE_SIZE = 5 * MB

MAX_NAME_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 500
MIN_QUERY_LENGTH = 2
MAX_QUERY_LENGTH = 100

GENRES = [
    "Pop", "Rock", "Hip Hop", "Electronic", "Classical", "Jazz", "Country", "R&B",
    "Reggae", "Blues", "Folk", "Alternative", "Metal", "Punk", "Disco", "Funk",
]

PathLike = Union[str, Path]


def _mime_for(path: Path, formats: Dict[str, set]) -> Optional[str]:
    ext = path.suffix.lower()
    for mime, extensions in formats.items():
        if ext in extensions:
            return mime
    return None


class Validator:
    """Validation rules. Every check returns a list of messages; empty means valid."""

    @staticmethod
    def validate_audio_file(file_path: Optional[PathLike], mime_type: Optional[str] = None) -> List[str]:
        """
        Validate an audio file for upload.

        Args:
            file_path: Local file to upload
            mime_type: Declared MIME type (guessed from the extension when omitted)

        Returns:
            List of error messages
        """
        if not file_path:
            return ["Audio file is required"]

        errors = []
        path = Path(file_path)
        mime_type = mime_type or _mime_for(path, AUDIO_FORMATS)
        if mime_type not in AUDIO_FORMATS:
            errors.append("Invalid audio format. Supported formats: MP3, WAV, OGG, AAC, FLAC")

        size = Validator._file_size(path)
        if size is None:
            errors.append(f"Audio file not found: {path}")
        elif size > MAX_AUDIO_SIZE:
            errors.append(f"Audio file size must be less than {MAX_AUDIO_SIZE // MB}MB")
        return errors

    @staticmethod
    def validate_image_file(file_path: Optional[PathLike], mime_type: Optional[str] = None) -> List[str]:
        """Validate cover artwork. Artwork is optional, so None is valid."""
        if not file_path:
            return []

        errors = []
        path = Path(file_path)
        mime_type = mime_type or _mime_for(path, IMAGE_FORMATS)
        if mime_type not in IMAGE_FORMATS:
            errors.append("Invalid image format. Supported formats: JPEG, PNG, WebP, GIF")

        size = Validator._file_size(path)
        if size is None:
            errors.append(f"Image file not found: {path}")
        elif size > MAX_IMAGE_SIZE:
            errors.append(f"Image file size must be less than {MAX_IMAGE_SIZE // MB}MB")
        return errors

    @staticmethod
    def validate_song_data(data: Dict[str, Any]) -> List[str]:
        errors = []
        title = data.get("title") or ""
        artist = data.get("artist") or ""
        album = data.get("album") or ""

        if not title.strip():
            errors.append("Song title is required")
        if not artist.strip():
            errors.append("Artist name is required")
        if len(title) > MAX_NAME_LENGTH:
            errors.append("Song title must be less than 100 characters")
        if len(artist) > MAX_NAME_LENGTH:
            errors.append("Artist name must be less than 100 characters")
        if len(album) > MAX_NAME_LENGTH:
            errors.append("Album name must be less than 100 characters")
        genre = data.get("genre")
        if genre and genre not in GENRES:
            errors.append(f"Unknown genre: {genre}")
        return errors

    @staticmethod
    def validate_playlist_data(data: Dict[str, Any]) -> List[str]:
        errors = []
        name = data.get("name") or ""
        description = data.get("description") or ""

        if not name.strip():
            errors.append("Playlist name is required")
        if len(name) > MAX_NAME_LENGTH:
            errors.append("Playlist name must be less than 100 characters")
        if len(description) > MAX_DESCRIPTION_LENGTH:
            errors.append("Playlist description must be less than 500 characters")
        return errors

    @staticmethod
    def validate_search_query(query: Optional[str]) -> List[str]:
        errors = []
        if not query or not query.strip():
            errors.append("Search query is required")
        if query and len(query) < MIN_QUERY_LENGTH:
            errors.append("Search query must be at least 2 characters")
        if query and len(query) > MAX_QUERY_LENGTH:
            errors.append("Search query must be less than 100 characters")
        return errors

    @staticmethod
    def sanitize_text(text: Optional[str], max_length: int = MAX_NAME_LENGTH) -> str:
        """
        Strip control characters and surrounding whitespace, then truncate.

        Args:
            text: User supplied text
            max_length: Maximum length to keep

        Returns:
            Sanitized text (empty string for None)
        """
        if not text:
            return ""
        # Remove null bytes and control characters
        text = "".join(c for c in text if ord(c) >= 32 or c in "\t\n")
        text = text.strip()
        if len(text) > max_length:
            text = text[:max_length]
        return text

    @staticmethod
    def _file_size(path: Path) -> Optional[int]:
        try:
            return path.stat().st_size
        except OSError as e:
            logger.debug("Cannot stat %s: %s", path, e)
            return None


def ensure_valid(errors: List[str]) -> None:
    """Raise ValidationError if any check produced messages."""
    if errors:
        logger.warning("Validation failed: %s", "; ".join(errors))
        raise ValidationError(errors)
