"""Image storage module for Sunlapse."""

import re
import shutil
from dataclasses import dataclass
from datetime import date
from pathlib import Path

from sunlapse.config import StorageConfig
from sunlapse.logger import get_logger, with_fields

logger = get_logger(__name__)

IMAGES_DIR = "images"
VIDEOS_DIR = "videos"
ARCHIVES_DIR = "archives"

IMAGE_NAME_RE = re.compile(r"^image_(\d+)\.jpg$")


class StorageError(Exception):
    """Exception raised for storage-related errors."""

    pass


def date_key(day: date) -> str:
    """Per-date key used for directories and artifacts (YYYY-MM-DD)."""
    return day.strftime("%Y-%m-%d")


def image_name(index: int) -> str:
    """Sequence-numbered image filename, 1-based and 5-digit zero padded."""
    return f"image_{index:05d}.jpg"


@dataclass
class StorageInfo:
    """Storage usage information."""

    base_path: Path
    total_bytes: int
    used_bytes: int
    free_bytes: int
    image_count: int

    @property
    def total_gb(self) -> float:
        """Total storage in GB."""
        return self.total_bytes / (1024**3)

    @property
    def free_gb(self) -> float:
        """Free storage in GB."""
        return self.free_bytes / (1024**3)

    @property
    def free_mb(self) -> float:
        """Free storage in MB."""
        return self.free_bytes / (1024**2)


class ImageStorage:
    """Filesystem layout for images, videos and archives.

    Layout under ``base_path``::

        images/YYYY-MM-DD/image_00001.jpg
        videos/YYYY-MM-DD.mp4
        archives/YYYY-MM-DD.tar.gz
    """

    def __init__(self, config: StorageConfig):
        """Initialize storage manager and create working directories.

        Args:
            config: Storage configuration.

        Raises:
            StorageError: If a working directory cannot be created.
        """
        self.config = config
        self.images_path = config.base_path / IMAGES_DIR
        self.videos_path = config.base_path / VIDEOS_DIR
        self.archives_path = config.base_path / ARCHIVES_DIR
        for path in (self.images_path, self.videos_path, self.archives_path):
            self._create_directory(path)

    @staticmethod
    def _create_directory(path: Path) -> None:
        """Create a directory if it does not exist yet."""
        if path.is_dir():
            return
        logger.info(f"Creating {path} directory")
        try:
            path.mkdir(parents=True, exist_ok=True)
        except PermissionError:
            raise StorageError(f"Permission denied creating directory: {path}")
        except OSError as e:
            raise StorageError(f"Error creating directory {path}: {e}")

    def day_path(self, day: date) -> Path:
        """Image directory for a date."""
        return self.images_path / date_key(day)

    def video_path(self, day: date) -> Path:
        """Timelapse video path for a date."""
        return self.videos_path / f"{date_key(day)}.mp4"

    def archive_path(self, day: date) -> Path:
        """Image archive path for a date."""
        return self.archives_path / f"{date_key(day)}.tar.gz"

    def image_pattern(self, day: date) -> str:
        """printf-style input pattern for the day's images (for ffmpeg)."""
        return str(self.day_path(day) / "image_%05d.jpg")

    def ensure_day_directory(self, day: date) -> Path:
        """Create the image directory for a date. Idempotent.

        Raises:
            StorageError: If the directory cannot be created.
        """
        path = self.day_path(day)
        self._create_directory(path)
        return path

    def write_image(self, day: date, index: int, image: bytes) -> Path:
        """Persist one captured image under its sequence name.

        Raises:
            StorageError: If the file cannot be written.
        """
        path = self.day_path(day) / image_name(index)
        try:
            path.write_bytes(image)
        except OSError as e:
            raise StorageError(f"Error writing image {path}: {e}")
        return path

    def list_day_files(self, day: date) -> list[Path]:
        """List the entries in a date's image directory, sorted by name.

        Raises:
            StorageError: If the directory cannot be read.
        """
        path = self.day_path(day)
        try:
            return sorted(path.iterdir())
        except OSError as e:
            raise StorageError(f"Error reading directory {path}: {e}")

    def last_image_index(self, day: date) -> int:
        """Highest sequence number already stored for a date, 0 if none.

        Raises:
            StorageError: If an existing directory cannot be read.
        """
        if not self.day_path(day).is_dir():
            return 0
        indexes = [
            int(match.group(1))
            for match in (IMAGE_NAME_RE.match(p.name) for p in self.list_day_files(day))
            if match
        ]
        return max(indexes, default=0)

    def remove_day_directory(self, day: date) -> None:
        """Delete a date's image directory and everything in it.

        A directory that does not exist counts as removed.

        Raises:
            StorageError: If deletion fails.
        """
        path = self.day_path(day)
        log = with_fields(logger, date=date_key(day), dir=path)
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            log.debug("Image directory already removed")
        except OSError as e:
            raise StorageError(f"Error deleting {path}: {e}")

    def list_days(self) -> list[str]:
        """Date keys that still have an image directory, oldest first."""
        if not self.images_path.exists():
            return []
        return sorted(p.name for p in self.images_path.iterdir() if p.is_dir())

    def get_storage_info(self) -> StorageInfo:
        """Get storage usage information.

        Returns:
            StorageInfo object with current storage stats.
        """
        try:
            usage = shutil.disk_usage(self.config.base_path)
            image_count = len(list(self.images_path.rglob("*.jpg")))

            return StorageInfo(
                base_path=self.config.base_path,
                total_bytes=usage.total,
                used_bytes=usage.used,
                free_bytes=usage.free,
                image_count=image_count,
            )

        except OSError as e:
            logger.error(f"Error getting storage info: {e}")
            return StorageInfo(
                base_path=self.config.base_path,
                total_bytes=0,
                used_bytes=0,
                free_bytes=0,
                image_count=0,
            )

    def check_capacity(self) -> bool:
        """Check if storage capacity is sufficient.

        Returns:
            True if free space is above threshold, False otherwise.
        """
        info = self.get_storage_info()
        threshold_bytes = self.config.min_free_space_mb * 1024 * 1024

        if info.free_bytes < threshold_bytes:
            logger.warning(
                f"Low disk space: {info.free_mb:.1f}MB free "
                f"(threshold: {self.config.min_free_space_mb}MB)"
            )
            return False

        return True
