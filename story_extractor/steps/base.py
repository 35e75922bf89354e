"""
Abstract base class for extraction steps.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Generic, Optional, TypeVar

from ..config import ExtractorConfig
from ..core.cache import ContentCache

logger = logging.getLogger(__name__)

# Type variables for input/output types
InputT = TypeVar('InputT')
OutputT = TypeVar('OutputT')


class ExtractionStep(ABC, Generic[InputT, OutputT]):
    """
    Abstract base class for all extraction steps.

    Each step inherits from this class and implements the `run` method
    to perform its specific task.

    Attributes:
        name: Unique identifier for this step
        config: Extractor configuration
        cache: Image cache, for steps that need one
    """

    name: str = "base_step"
    description: str = "Base extraction step"

    def __init__(self, config: ExtractorConfig, cache: Optional[ContentCache] = None):
        """
        Initialize the step.

        Args:
            config: Extractor configuration
            cache: Image cache instance
        """
        self.config = config
        self.cache = cache
        self.last_duration: Optional[float] = None

    @abstractmethod
    def run(self, input_data: InputT) -> OutputT:
        """
        Execute the step's main logic.

        Args:
            input_data: Input data from previous step

        Returns:
            Output data to pass to next step
        """
        pass

    def execute(self, input_data: InputT) -> OutputT:
        """
        Execute the step with timing and logging.

        Raises:
            Exception: Re-raises any exception from run() after logging it
        """
        start = time.perf_counter()
        logger.debug("[%s] started...", self.name)
        try:
            result = self.run(input_data)
        except Exception as e:
            self.last_duration = time.perf_counter() - start
            logger.warning("[%s] FAILED after %.2fs: %s", self.name, self.last_duration, e)
            raise
        self.last_duration = time.perf_counter() - start
        logger.debug("[%s] completed in %.2fs.", self.name, self.last_duration)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}')"
