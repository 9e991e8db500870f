"""Configuration management module for Sunlapse."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

import yaml


class ConfigError(ValueError):
    """Exception raised when configuration is invalid or incomplete."""

    pass


@dataclass
class LocationConfig:
    """Observer location settings."""

    latitude: Optional[float] = None  # degrees, north positive
    longitude: Optional[float] = None  # degrees, east positive
    utc_offset: Optional[float] = None  # hours

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.latitude is not None and not -90 <= self.latitude <= 90:
            raise ValueError("latitude must be between -90 and 90")
        if self.longitude is not None and not -180 <= self.longitude <= 180:
            raise ValueError("longitude must be between -180 and 180")
        if self.utc_offset is not None and not -14 <= self.utc_offset <= 14:
            raise ValueError("utc_offset must be between -14 and 14 hours")


@dataclass
class CaptureConfig:
    """Image capture settings."""

    endpoint: str = ""
    period_s: int = 30
    timeout_s: int = 5
    verify_images: bool = True

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.period_s < 1:
            raise ValueError("period_s must be positive")
        if self.timeout_s < 1:
            raise ValueError("timeout_s must be positive")


@dataclass
class StorageConfig:
    """Storage configuration settings."""

    base_path: Path = field(default_factory=lambda: Path("./tmp"))
    min_free_space_mb: int = 1024

    def __post_init__(self) -> None:
        """Convert string path to Path object if necessary."""
        if isinstance(self.base_path, str):
            self.base_path = Path(self.base_path)
        if self.min_free_space_mb < 0:
            raise ValueError("min_free_space_mb must be non-negative")


@dataclass
class VideoConfig:
    """Timelapse encoding settings passed to ffmpeg."""

    ffmpeg: str = "ffmpeg"
    framerate: int = 30
    quality: int = 2  # -q:v, 2 is near lossless
    pix_fmt: str = "yuvj420p"
    codec: str = "libx264"

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.framerate < 1:
            raise ValueError("framerate must be positive")
        if not 1 <= self.quality <= 31:
            raise ValueError("quality must be between 1 and 31")


@dataclass
class SyncConfig:
    """Remote sync configuration (rclone)."""

    enabled: bool = False
    remote: str = ""  # e.g. "gdrive:sunlapse"
    timeout_s: int = 300

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.enabled and not self.remote:
            raise ValueError("remote must be set when sync is enabled")


@dataclass
class LoggingConfig:
    """Logging configuration settings."""

    level: str = "INFO"
    file: Optional[Path] = field(default_factory=lambda: Path("/var/log/sunlapse/sunlapse.log"))
    max_size_mb: int = 10
    backup_count: int = 5

    def __post_init__(self) -> None:
        """Validate and convert configuration values."""
        if isinstance(self.file, str):
            self.file = Path(self.file)
        valid_levels = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        if self.level.upper() not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}")
        self.level = self.level.upper()


# Environment variable -> (section, key, type)
ENV_OVERRIDES = {
    "SUNLAPSE_ENDPOINT": ("capture", "endpoint", str),
    "SUNLAPSE_PERIOD": ("capture", "period_s", int),
    "SUNLAPSE_TIMEOUT": ("capture", "timeout_s", int),
    "SUNLAPSE_LATITUDE": ("location", "latitude", float),
    "SUNLAPSE_LONGITUDE": ("location", "longitude", float),
    "SUNLAPSE_OFFSET": ("location", "utc_offset", float),
    "SUNLAPSE_LOGLEVEL": ("logging", "level", str),
}


@dataclass
class Config:
    """Main configuration container."""

    location: LocationConfig = field(default_factory=LocationConfig)
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    video: VideoConfig = field(default_factory=VideoConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: dict) -> "Config":
        """Create Config from dictionary."""
        try:
            return cls(
                location=LocationConfig(**data.get("location", {})),
                capture=CaptureConfig(**data.get("capture", {})),
                storage=StorageConfig(**data.get("storage", {})),
                video=VideoConfig(**data.get("video", {})),
                sync=SyncConfig(**data.get("sync", {})),
                logging=LoggingConfig(**data.get("logging", {})),
            )
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    def to_dict(self) -> dict:
        """Convert Config to dictionary."""
        return {
            "location": {
                "latitude": self.location.latitude,
                "longitude": self.location.longitude,
                "utc_offset": self.location.utc_offset,
            },
            "capture": {
                "endpoint": self.capture.endpoint,
                "period_s": self.capture.period_s,
                "timeout_s": self.capture.timeout_s,
                "verify_images": self.capture.verify_images,
            },
            "storage": {
                "base_path": str(self.storage.base_path),
                "min_free_space_mb": self.storage.min_free_space_mb,
            },
            "video": {
                "ffmpeg": self.video.ffmpeg,
                "framerate": self.video.framerate,
                "quality": self.video.quality,
                "pix_fmt": self.video.pix_fmt,
                "codec": self.video.codec,
            },
            "sync": {
                "enabled": self.sync.enabled,
                "remote": self.sync.remote,
                "timeout_s": self.sync.timeout_s,
            },
            "logging": {
                "level": self.logging.level,
                "file": str(self.logging.file) if self.logging.file else None,
                "max_size_mb": self.logging.max_size_mb,
                "backup_count": self.logging.backup_count,
            },
        }

    def check_required(self, require_endpoint: bool = True) -> None:
        """Ensure settings needed by the daemon are present.

        Args:
            require_endpoint: Also require capture.endpoint. Commands that
                never fetch images only need the location.

        Raises:
            ConfigError: Listing every missing setting.
        """
        missing = []
        if require_endpoint and not self.capture.endpoint:
            missing.append("capture.endpoint")
        for name in ("latitude", "longitude", "utc_offset"):
            if getattr(self.location, name) is None:
                missing.append(f"location.{name}")
        if missing:
            raise ConfigError(f"Missing required settings: {', '.join(missing)}")


def apply_env_overrides(data: dict, environ: Optional[Mapping[str, str]] = None) -> dict:
    """Overlay SUNLAPSE_* environment variables onto raw config data.

    Args:
        data: Raw configuration dictionary (modified in place).
        environ: Environment mapping. Defaults to os.environ.

    Returns:
        The updated dictionary.

    Raises:
        ConfigError: If a variable cannot be converted to its type.
    """
    if environ is None:
        environ = os.environ

    for var, (section, key, cast) in ENV_OVERRIDES.items():
        raw = environ.get(var)
        if raw is None or raw == "":
            continue
        try:
            value = cast(raw)
        except ValueError:
            raise ConfigError(f"Invalid value for {var}: '{raw}'")
        data.setdefault(section, {})[key] = value

    return data


def load_config(
    config_path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Config:
    """Load configuration from YAML file and environment.

    Args:
        config_path: Path to configuration file. If None, uses default path.
        environ: Environment mapping for overrides. Defaults to os.environ.

    Returns:
        Config object with loaded or default values.

    Raises:
        ConfigError: If the file cannot be parsed or holds invalid values.
    """
    # Default config paths to try
    if config_path is None:
        default_paths = [
            Path("config/config.yaml"),
            Path("/etc/sunlapse/config.yaml"),
            Path.home() / ".config" / "sunlapse" / "config.yaml",
        ]
        for path in default_paths:
            if path.exists():
                config_path = path
                break

    data = None
    if config_path is not None and config_path.exists():
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Cannot parse {config_path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration root must be a mapping: {config_path}")

    return Config.from_dict(apply_env_overrides(data, environ))


def save_config(config: Config, config_path: Path) -> None:
    """Save configuration to YAML file.

    Args:
        config: Config object to save.
        config_path: Path to save configuration file.
    """
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "w", encoding="utf-8") as f:
        yaml.dump(config.to_dict(), f, default_flow_style=False, allow_unicode=True)
