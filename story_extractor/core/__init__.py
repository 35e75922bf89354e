"""
Core utilities for the story extractor.
"""

from .cache import ContentCache, build_cache
from .fetcher import RetryingFetcher
from .models import CacheEntry, Scene, Story
from .pools import WorkerPools
from .session import ExtractionSession, SessionState

__all__ = [
    "ContentCache",
    "build_cache",
    "RetryingFetcher",
    "CacheEntry",
    "Scene",
    "Story",
    "WorkerPools",
    "ExtractionSession",
    "SessionState",
]
