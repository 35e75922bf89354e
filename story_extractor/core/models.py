"""
Data models shared by the decoder, the hydrator and the image cache.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse


REMOTE_SCHEMES = ("http", "https")


@dataclass
class Scene:
    """One page of a story: a block of text and an optional image."""

    text: str = ""
    image_ref: Optional[str] = None
    image_width: Optional[int] = None
    image_height: Optional[int] = None

    @property
    def has_image(self) -> bool:
        return bool(self.image_ref)

    @property
    def is_local_image(self) -> bool:
        """True once the image reference points at the local cache."""
        if not self.image_ref:
            return False
        return urlparse(self.image_ref).scheme not in REMOTE_SCHEMES

    @property
    def is_empty(self) -> bool:
        return not self.text and not self.image_ref

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"text": self.text, "imageUrl": self.image_ref}
        if self.image_width is not None:
            data["imageWidth"] = self.image_width
        if self.image_height is not None:
            data["imageHeight"] = self.image_height
        return data

    def __repr__(self) -> str:
        preview = self.text[:20] + "..." if len(self.text) > 20 else self.text
        return f"Scene(text='{preview}', image_ref={self.image_ref!r})"


@dataclass
class Story:
    """A decoded story. ``scenes`` is always a list, never None."""

    title: str = "Untitled Story"
    author: str = ""
    scenes: List[Scene] = field(default_factory=list)

    def __post_init__(self):
        if self.scenes is None:
            self.scenes = []

    @property
    def image_count(self) -> int:
        return sum(1 for scene in self.scenes if scene.has_image)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize back to the scrape payload shape."""
        return {
            "title": self.title,
            "author": self.author,
            "scenes": [scene.to_dict() for scene in self.scenes],
        }


@dataclass
class CacheEntry:
    """A file held by the image cache."""

    key: str
    path: Path
    size_bytes: int
    last_access: float
