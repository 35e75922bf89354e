"""
Exception types raised by the story extractor.
"""

from typing import Optional


class StoryExtractorError(Exception):
    """Base class for all extractor errors."""


class DecodeError(StoryExtractorError):
    """The raw scrape payload is malformed and cannot become a Story."""


class ExtractionTimeout(StoryExtractorError):
    """No decoded result arrived before the session deadline."""

    def __init__(self, session_id: int, timeout_sec: float):
        super().__init__(
            f"Extraction session {session_id} timed out after {timeout_sec:.1f}s"
        )
        self.session_id = session_id
        self.timeout_sec = timeout_sec


class FetchError(StoryExtractorError):
    """All download attempts for one image reference failed."""

    def __init__(self, ref: str, attempts: int, cause: Optional[BaseException] = None):
        message = f"Failed to fetch {ref} after {attempts} attempt(s)"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.ref = ref
        self.attempts = attempts


class CacheIOError(StoryExtractorError):
    """A cache file could not be written or removed."""
