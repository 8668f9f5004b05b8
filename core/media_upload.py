"""Media hosting: unsigned Cloudinary uploads for song audio and artwork."""

from pathlib import Path
from typing import Any, Callable, Dict, NamedTuple, Optional

import requests

from core.exceptions import ConfigurationError, MetadataError, UploadError
from core.logging import get_logger
from core.metadata import probe_audio
from core.models import Track
from core.validation import Validator, ensure_valid

logger = get_logger(__name__)

API_BASE = "https://api.cloudinary.com/v1_1"


class UploadResult(NamedTuple):
    """Where an uploaded file ended up."""

    url: str
    public_id: str
    duration: Optional[float] = None
    format: Optional[str] = None


class MediaUploader:
    """Uploads local files with an unsigned upload preset."""

    def __init__(
        self,
        cloud_name: Optional[str] = None,
        upload_preset: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        if cloud_name is None or upload_preset is None or timeout is None:
            from core.config import get_config
            config = get_config()
            cloud_name = config.cloudinary_cloud_name if cloud_name is None else cloud_name
            upload_preset = config.cloudinary_upload_preset if upload_preset is None else upload_preset
            timeout = config.upload_timeout if timeout is None else timeout
        self.cloud_name = cloud_name
        self.upload_preset = upload_preset
        self.timeout = timeout
        self._http = session or requests

    def _endpoint(self, resource: str) -> str:
        if not self.cloud_name or not self.upload_preset:
            raise ConfigurationError(
                "Media upload is not configured: set [media] cloud_name and upload_preset"
            )
        return f"{API_BASE}/{self.cloud_name}/{resource}"

    def _post(self, url: str, path: Path, fields: Dict[str, str]) -> Dict[str, Any]:
        try:
            with open(path, 'rb') as f:
                response = self._http.post(
                    url,
                    data=fields,
                    files={'file': (path.name, f)},
                    timeout=self.timeout,
                )
        except OSError as e:
            raise UploadError(f"Cannot read {path}: {e}") from e
        except requests.RequestException as e:
            raise UploadError(f"Upload of {path.name} failed: {e}") from e

        if not response.ok:
            logger.error("Upload of %s rejected: HTTP %s %s", path.name, response.status_code, response.text)
            raise UploadError(f"Upload of {path.name} failed: HTTP {response.status_code}")
        try:
            data = response.json()
        except ValueError as e:
            raise UploadError(f"Upload of {path.name} returned an invalid response") from e
        if not data.get('secure_url'):
            raise UploadError(f"Upload of {path.name} returned no URL")
        return data

    def upload_audio(self, file_path: str, on_progress: Optional[Callable[[float], Any]] = None) -> UploadResult:
        """
        Upload an audio file.

        Args:
            file_path: Local audio file
            on_progress: Called with a fraction in 0.0..1.0 (start and finish only)

        Returns:
            UploadResult with the hosted URL and duration

        Raises:
            UploadError: If the upload fails
            ConfigurationError: If no cloud name or preset is configured
        """
        path = Path(file_path)
        url = self._endpoint('upload')
        if on_progress:
            on_progress(0.0)
        logger.info("Uploading audio %s", path.name)
        data = self._post(url, path, {'upload_preset': self.upload_preset, 'resource_type': 'auto'})
        if on_progress:
            on_progress(1.0)

        duration = data.get('duration')
        if duration is None:
            try:
                duration = probe_audio(str(path)).duration
            except MetadataError as e:
                logger.warning("No duration for %s: %s", path.name, e)
        return UploadResult(
            url=data['secure_url'],
            public_id=data.get('public_id', ''),
            duration=float(duration) if duration is not None else None,
            format=data.get('format'),
        )

    def upload_image(self, file_path: str) -> UploadResult:
        """Upload cover artwork."""
        path = Path(file_path)
        url = self._endpoint('image/upload')
        logger.info("Uploading image %s", path.name)
        data = self._post(url, path, {'upload_preset': self.upload_preset})
        return UploadResult(
            url=data['secure_url'],
            public_id=data.get('public_id', ''),
            format=data.get('format'),
        )


def publish_song(
    uploader: MediaUploader,
    track_store: Any,
    audio_path: str,
    song_data: Dict[str, Any],
    image_path: Optional[str] = None,
    on_progress: Optional[Callable[[float], Any]] = None,
) -> Track:
    """
    Validate, upload and register a new song.

    Args:
        uploader: Media uploader
        track_store: Store the song document is created in
        audio_path: Local audio file
        song_data: title, artist, album, genre
        image_path: Optional local artwork
        on_progress: Forwarded to the audio upload

    Returns:
        The created track

    Raises:
        ValidationError: If the form data or files are invalid
        UploadError: If an upload fails (nothing is stored)
    """
    errors = Validator.validate_song_data(song_data)
    errors += Validator.validate_audio_file(audio_path)
    errors += Validator.validate_image_file(image_path)
    ensure_valid(errors)

    audio = uploader.upload_audio(audio_path, on_progress)
    image = uploader.upload_image(image_path) if image_path else None

    document = {
        'title': song_data.get('title'),
        'artist': song_data.get('artist'),
        'album': Validator.sanitize_text(song_data.get('album')) or None,
        'genre': song_data.get('genre') or None,
        'audioUrl': audio.url,
        'imageUrl': image.url if image else None,
        'duration': audio.duration,
        'cloudinaryPublicId': audio.public_id,
    }
    track = track_store.create(document)
    logger.info("Published %s (%s - %s)", track.id, track.artist, track.title)
    return track
