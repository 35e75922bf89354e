"""
Story Extractor - turns scraped storybook pages into cached, deduplicated stories.

This package decodes a page-scrape payload into a Story, delivers it
immediately, then downloads its images into a size-bounded local cache
and delivers the refreshed story.
"""

from .config import ExtractorConfig
from .coordinator import ExtractionCoordinator
from .core.cache import ContentCache
from .core.models import Scene, Story
from .errors import (
    CacheIOError,
    DecodeError,
    ExtractionTimeout,
    FetchError,
    StoryExtractorError,
)

__version__ = "0.1.0"
__all__ = [
    "ExtractorConfig",
    "ExtractionCoordinator",
    "ContentCache",
    "Scene",
    "Story",
    "StoryExtractorError",
    "DecodeError",
    "ExtractionTimeout",
    "FetchError",
    "CacheIOError",
]
