"""Logging setup for SongStream.

Everything logs under the ``songstream`` logger. Records go to a rotating
file in the XDG data directory; warnings and errors are also echoed to
stderr so the command line player stays quiet during normal playback.
Set SONGSTREAM_DEBUG=1 for debug records.
"""

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Optional

ROOT_LOGGER_NAME = "songstream"
LOG_FILE_NAME = "songstream.log"
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUPS = 3
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def _default_log_dir() -> Path:
    data_home = os.getenv("XDG_DATA_HOME") or str(Path.home() / ".local" / "share")
    return Path(data_home) / ROOT_LOGGER_NAME / "logs"


class LinuxLogger:
    """Process-wide handler setup for the ``songstream`` logger tree.

    The first instance wins. main() creates it with the configured log
    directory before anything is logged. get_logger() only hands out loggers
    in the tree and never installs handlers itself.
    """

    _instance: Optional["LinuxLogger"] = None

    def __init__(self, log_dir: Optional[Path] = None):
        self.logger = logging.getLogger(ROOT_LOGGER_NAME)
        if LinuxLogger._instance is not None:
            return
        LinuxLogger._instance = self

        debug = bool(os.getenv("SONGSTREAM_DEBUG"))
        self.logger.setLevel(logging.DEBUG if debug else logging.INFO)
        self.log_file: Optional[Path] = None

        # Already configured by the embedding process (pytest caplog, etc.)
        if self.logger.handlers:
            return

        formatter = logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S")
        self.logger.addHandler(self._stderr_handler(formatter))
        file_handler = self._file_handler(log_dir or _default_log_dir(), formatter)
        if file_handler is not None:
            self.logger.addHandler(file_handler)

    @staticmethod
    def _stderr_handler(formatter: logging.Formatter) -> logging.Handler:
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.WARNING)
        handler.setFormatter(formatter)
        return handler

    def _file_handler(self, log_dir: Path, formatter: logging.Formatter) -> Optional[logging.Handler]:
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            handler = logging.handlers.RotatingFileHandler(
                log_dir / LOG_FILE_NAME,
                maxBytes=LOG_FILE_MAX_BYTES,
                backupCount=LOG_FILE_BACKUPS,
                encoding="utf-8",
            )
        except OSError as e:
            # Read-only home (sandboxes, CI): stderr only
            self.logger.warning("File logging disabled: %s", e)
            return None
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(formatter)
        self.log_file = log_dir / LOG_FILE_NAME
        return handler

    @classmethod
    def get_logger(cls, name: str = ROOT_LOGGER_NAME) -> logging.Logger:
        """
        Get a logger in the ``songstream`` tree.

        Args:
            name: Module name; becomes a child of the root logger

        Returns:
            Logger instance
        """
        root = logging.getLogger(ROOT_LOGGER_NAME)
        return root if name == ROOT_LOGGER_NAME else root.getChild(name)


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """Get a logger instance."""
    return LinuxLogger.get_logger(name)
