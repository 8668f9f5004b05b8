"""SongStream settings, stored in an INI file under the XDG config directory.

Layout:
- ~/.config/songstream/config.ini   settings (XDG_CONFIG_HOME)
- ~/.cache/songstream/              scratch space (XDG_CACHE_HOME)
- ~/.local/share/songstream/        song/playlist documents and logs (XDG_DATA_HOME)
"""

import configparser
import os
from pathlib import Path
from typing import Dict, Optional

from core.exceptions import ConfigurationError

APP_NAME = 'songstream'

# Processing lock quiescence window after a playback transition
DEFAULT_GRACE_PERIOD_MS = 100
# Time channel cadence
DEFAULT_TIME_UPDATE_HZ = 4.0
DEFAULT_SHARE_BASE_URL = 'http://localhost:5173'
DEFAULT_UPLOAD_TIMEOUT = 60.0

# Media credentials can come from the environment instead of the file
ENV_CLOUD_NAME = 'SONGSTREAM_CLOUDINARY_CLOUD_NAME'
ENV_UPLOAD_PRESET = 'SONGSTREAM_CLOUDINARY_UPLOAD_PRESET'


def _xdg_home(variable: str, *fallback: str) -> Path:
    value = os.getenv(variable)
    return Path(value) if value else Path.home().joinpath(*fallback)


def _defaults(data_dir: Path) -> Dict[str, Dict[str, str]]:
    return {
        'playback': {
            'grace_period_ms': str(DEFAULT_GRACE_PERIOD_MS),
            'time_update_hz': str(DEFAULT_TIME_UPDATE_HZ),
            'volume': '1.0',
        },
        'library': {
            'data_dir': str(data_dir / 'library'),
        },
        # Cloudinary unsigned upload settings
        'media': {
            'cloud_name': '',
            'upload_preset': '',
            'timeout': str(DEFAULT_UPLOAD_TIMEOUT),
        },
        'share': {
            'base_url': DEFAULT_SHARE_BASE_URL,
        },
    }


class Config:
    """Settings singleton. Missing keys in an existing file fall back to defaults."""

    _instance: Optional['Config'] = None

    def __init__(self) -> None:
        self.config_dir = _xdg_home('XDG_CONFIG_HOME', '.config') / APP_NAME
        self.cache_dir = _xdg_home('XDG_CACHE_HOME', '.cache') / APP_NAME
        self.data_dir = _xdg_home('XDG_DATA_HOME', '.local', 'share') / APP_NAME
        for directory in (self.config_dir, self.cache_dir, self.data_dir):
            directory.mkdir(parents=True, exist_ok=True)

        self.config_file = self.config_dir / 'config.ini'
        self.config = configparser.ConfigParser()
        self.config.read_dict(_defaults(self.data_dir))

        if self.config_file.exists():
            try:
                self.config.read(self.config_file, encoding='utf-8')
            except configparser.Error as e:
                raise ConfigurationError(f"Invalid config file {self.config_file}: {e}") from e
        else:
            self.save()

    @classmethod
    def get_instance(cls) -> 'Config':
        """Get the singleton config instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Drop the singleton so the next access re-reads the environment."""
        cls._instance = None

    def save(self) -> None:
        """Write the current settings to config.ini."""
        try:
            with open(self.config_file, 'w', encoding='utf-8') as f:
                self.config.write(f)
        except OSError as e:
            from core.logging import get_logger
            get_logger(__name__).error("Failed to save config %s: %s", self.config_file, e)

    def get(self, section: str, key: str, fallback: Optional[str] = None) -> Optional[str]:
        return self.config.get(section, key, fallback=fallback)

    def set(self, section: str, key: str, value: str) -> None:
        """Set a value and persist it immediately."""
        if not self.config.has_section(section):
            self.config.add_section(section)
        self.config.set(section, key, value)
        self.save()

    def get_int(self, section: str, key: str, fallback: int = 0) -> int:
        try:
            return self.config.getint(section, key, fallback=fallback)
        except ValueError as e:
            raise ConfigurationError(f"[{section}] {key} must be an integer") from e

    def get_float(self, section: str, key: str, fallback: float = 0.0) -> float:
        try:
            return self.config.getfloat(section, key, fallback=fallback)
        except ValueError as e:
            raise ConfigurationError(f"[{section}] {key} must be a number") from e

    def get_path(self, section: str, key: str, fallback: Optional[Path] = None) -> Optional[Path]:
        value = self.get(section, key)
        return Path(value).expanduser() if value else fallback

    # Typed accessors

    @property
    def grace_period_ms(self) -> int:
        """Processing lock release delay in milliseconds."""
        return max(0, self.get_int('playback', 'grace_period_ms', DEFAULT_GRACE_PERIOD_MS))

    @property
    def time_update_hz(self) -> float:
        """Maximum time channel update rate."""
        hz = self.get_float('playback', 'time_update_hz', DEFAULT_TIME_UPDATE_HZ)
        if hz <= 0:
            raise ConfigurationError("[playback] time_update_hz must be positive")
        return hz

    @property
    def initial_volume(self) -> float:
        return max(0.0, min(1.0, self.get_float('playback', 'volume', 1.0)))

    @property
    def library_dir(self) -> Path:
        """Directory holding the song and playlist documents."""
        return self.get_path('library', 'data_dir', self.data_dir / 'library')

    @property
    def cloudinary_cloud_name(self) -> str:
        return os.getenv(ENV_CLOUD_NAME) or self.get('media', 'cloud_name', '') or ''

    @property
    def cloudinary_upload_preset(self) -> str:
        return os.getenv(ENV_UPLOAD_PRESET) or self.get('media', 'upload_preset', '') or ''

    @property
    def upload_timeout(self) -> float:
        """HTTP timeout for media uploads in seconds."""
        return self.get_float('media', 'timeout', DEFAULT_UPLOAD_TIMEOUT)

    @property
    def share_base_url(self) -> str:
        """Origin used to build song share links."""
        return self.get('share', 'base_url', DEFAULT_SHARE_BASE_URL) or DEFAULT_SHARE_BASE_URL

    @property
    def log_dir(self) -> Path:
        log_dir = self.data_dir / 'logs'
        log_dir.mkdir(parents=True, exist_ok=True)
        return log_dir


def get_config() -> Config:
    """Get the configuration instance."""
    return Config.get_instance()
