"""
Configuration dataclass for the story extractor.
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional
import os


MB = 1024 * 1024


def _default_cache_dir() -> Path:
    return Path.home() / ".storyforge" / "storyforge-images"


@dataclass
class ExtractorConfig:
    """
    Configuration for extraction, hydration and the image cache.

    All settings can be overridden via CLI arguments or by passing
    values directly when instantiating.
    """

    # Cache settings
    cache_dir: Path = field(default_factory=_default_cache_dir)
    cache_max_size_mb: int = 500
    cache_cleanup_threshold_mb: int = 400
    cache_cleanup_interval_sec: float = 3600.0
    cache_file_extension: str = ".png"

    # Network settings
    http_connect_timeout_sec: float = 10.0
    http_read_timeout_sec: float = 30.0
    http_user_agent: str = "Mozilla/5.0 (StoryForge/1.0)"
    http_referer: Optional[str] = "https://gemini.google.com/"
    retry_attempts: int = 3
    retry_delay_sec: float = 1.0

    # Hydration settings
    hydration_concurrency: int = 5
    image_download_timeout_sec: float = 30.0

    # Extraction settings
    extraction_timeout_sec: float = 300.0

    # Post-processing
    remove_watermark: bool = False
    watermark_crop_bottom_px: int = 40

    # Worker pools
    compute_workers: Optional[int] = None
    io_workers: int = 16

    def __post_init__(self):
        """Convert string paths, apply environment overrides and validate."""
        env_dir = os.environ.get("STORY_EXTRACTOR_CACHE_DIR")
        if env_dir and self.cache_dir == _default_cache_dir():
            self.cache_dir = Path(env_dir)
        if isinstance(self.cache_dir, str):
            self.cache_dir = Path(self.cache_dir)
        self.cache_dir = self.cache_dir.expanduser().resolve()

        if not self.cache_file_extension.startswith("."):
            self.cache_file_extension = f".{self.cache_file_extension}"

        if self.compute_workers is None:
            self.compute_workers = os.cpu_count() or 4

        self._validate()

    def _validate(self) -> None:
        if self.cache_cleanup_threshold_mb >= self.cache_max_size_mb:
            raise ValueError(
                f"Cache cleanup threshold ({self.cache_cleanup_threshold_mb}MB) "
                f"must be below the maximum size ({self.cache_max_size_mb}MB)"
            )
        if self.cache_cleanup_threshold_mb < 0:
            raise ValueError("Cache cleanup threshold must not be negative")
        if self.retry_attempts < 0:
            raise ValueError("retry_attempts must not be negative")
        if self.hydration_concurrency < 1:
            raise ValueError("hydration_concurrency must be at least 1")
        if self.extraction_timeout_sec <= 0:
            raise ValueError("extraction_timeout_sec must be positive")

    @property
    def cache_max_size_bytes(self) -> int:
        """Hard ceiling for the cache directory, in bytes."""
        return self.cache_max_size_mb * MB

    @property
    def cache_cleanup_threshold_bytes(self) -> int:
        """Size the eviction sweep brings the cache back under, in bytes."""
        return self.cache_cleanup_threshold_mb * MB

    @property
    def http_timeout(self) -> tuple:
        """(connect, read) timeout pair as accepted by requests."""
        return (self.http_connect_timeout_sec, self.http_read_timeout_sec)

    def to_dict(self) -> dict:
        """Convert config to dictionary (for serialization)."""
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        data["cache_dir"] = str(self.cache_dir)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ExtractorConfig":
        """Create config from dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})
