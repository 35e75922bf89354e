"""
Story decoding step - validates a raw scrape payload into a Story.
"""

import hashlib
import json
import logging
from typing import Any, List, Mapping, Optional, Set, Union

from .base import ExtractionStep
from ..config import ExtractorConfig
from ..core.models import Scene, Story
from ..errors import DecodeError

logger = logging.getLogger(__name__)

RawPayload = Union[str, bytes, bytearray, Mapping[str, Any]]

DEFAULT_TITLE = "Untitled Story"


def scene_key(scene: Scene) -> str:
    """Identity of a scene: trimmed text plus a hash of its image reference."""
    image = scene.image_ref if scene.image_ref else "null"
    image_hash = hashlib.md5(image.encode("utf-8")).hexdigest()
    return f"{scene.text.strip()}||{image_hash}"


def deduplicate_scenes(scenes: List[Scene]) -> List[Scene]:
    """Drop repeated scenes, keeping the first occurrence and the order."""
    seen: Set[str] = set()
    unique = []
    for scene in scenes:
        key = scene_key(scene)
        if key in seen:
            continue
        seen.add(key)
        unique.append(scene)
    return unique


class StoryDecoderStep(ExtractionStep[RawPayload, Story]):
    """
    Turns the scrape collaborator's JSON into a Story.

    Input: JSON text, bytes, or an already parsed mapping
    Output: Story with empty scenes dropped and duplicates removed

    Normalization:
    - missing or null `scenes` becomes an empty list
    - missing title becomes "Untitled Story", missing author ""
    - scene text is stripped, blank image URLs become None
    """

    name = "story_decoding"
    description = "Validate and deduplicate scraped scenes"

    def __init__(self, config: Optional[ExtractorConfig] = None):
        super().__init__(config)

    def run(self, raw: RawPayload) -> Story:
        return self.decode(raw)

    def decode(self, raw: RawPayload) -> Story:
        """
        Decode a raw payload.

        Raises:
            DecodeError: If the payload is structurally invalid
        """
        data = self._load(raw)

        title = _optional_str(data, "title", "story") or DEFAULT_TITLE
        author = _optional_str(data, "author", "story") or ""

        raw_scenes = data.get("scenes")
        if raw_scenes is None:
            logger.info("No scenes in story '%s', using empty list", title)
            raw_scenes = []
        if not isinstance(raw_scenes, list):
            raise DecodeError(f"'scenes' must be a list, got {type(raw_scenes).__name__}")

        scenes = []
        for idx, raw_scene in enumerate(raw_scenes):
            scene = self._decode_scene(raw_scene, idx)
            if scene.is_empty:
                logger.debug("Dropping empty scene %d", idx)
                continue
            scenes.append(scene)

        unique = deduplicate_scenes(scenes)
        dropped = len(scenes) - len(unique)
        if dropped:
            logger.info("Dropped %d duplicate scene(s)", dropped)

        story = Story(title=title, author=author, scenes=unique)
        logger.info(
            "Decoded story '%s' with %d scenes (%d with images)",
            story.title, len(story.scenes), story.image_count,
        )
        return story

    def _load(self, raw: RawPayload) -> Mapping[str, Any]:
        if raw is None:
            raise DecodeError("Empty payload received")
        if isinstance(raw, (bytes, bytearray)):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError as e:
                raise DecodeError(f"Payload is not valid UTF-8: {e}") from e
        if isinstance(raw, str):
            if not raw.strip():
                raise DecodeError("Empty payload received")
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError as e:
                raise DecodeError(f"Payload is not valid JSON: {e}") from e
        if not isinstance(raw, Mapping):
            raise DecodeError(f"Payload must be a JSON object, got {type(raw).__name__}")
        return raw

    def _decode_scene(self, raw_scene: Any, idx: int) -> Scene:
        if not isinstance(raw_scene, Mapping):
            raise DecodeError(f"Scene {idx} must be an object, got {type(raw_scene).__name__}")
        where = f"scene {idx}"
        text = _optional_str(raw_scene, "text", where) or ""
        image_url = _optional_str(raw_scene, "imageUrl", where)
        return Scene(
            text=text.strip(),
            image_ref=image_url.strip() if image_url and image_url.strip() else None,
            image_width=_optional_int(raw_scene, "imageWidth", where),
            image_height=_optional_int(raw_scene, "imageHeight", where),
        )


def _optional_str(data: Mapping[str, Any], field: str, where: str) -> Optional[str]:
    value = data.get(field)
    if value is None or isinstance(value, str):
        return value
    raise DecodeError(f"'{field}' in {where} must be a string, got {type(value).__name__}")


def _optional_int(data: Mapping[str, Any], field: str, where: str) -> Optional[int]:
    value = data.get(field)
    if value is None:
        return None
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DecodeError(f"'{field}' in {where} must be an integer, got {type(value).__name__}")
    if isinstance(value, float):
        if not value.is_integer():
            raise DecodeError(f"'{field}' in {where} must be an integer, got {value}")
        value = int(value)
    return value
