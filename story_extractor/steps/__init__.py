"""
Extraction steps for the story extractor.
"""

from .base import ExtractionStep
from .decoder import StoryDecoderStep, deduplicate_scenes
from .hydrator import HydrationReport, ImageHydratorStep

__all__ = [
    "ExtractionStep",
    "StoryDecoderStep",
    "deduplicate_scenes",
    "ImageHydratorStep",
    "HydrationReport",
]
