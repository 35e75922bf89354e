"""
Image hydration step - replaces remote scene images with cached local files.
"""

import logging
import math
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .base import ExtractionStep
from ..config import ExtractorConfig
from ..core.cache import ContentCache
from ..core.models import Scene, Story
from ..core.pools import DaemonThreadPool

logger = logging.getLogger(__name__)


@dataclass
class HydrationReport:
    """Outcome of one hydration run."""

    requested: int = 0
    resolved: int = 0
    failed: List[str] = field(default_factory=list)
    timed_out: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed and not self.timed_out


class _FetchTask:
    """One reference being fetched; tracks when a worker picked it up."""

    def __init__(self, ref: str):
        self.ref = ref
        self.started_at: Optional[float] = None
        self.abandoned = threading.Event()
        self.future: Optional[Future] = None

    def run(self, cache: ContentCache) -> Optional[Path]:
        if self.abandoned.is_set():
            return None
        self.started_at = time.monotonic()
        return cache.fetch(self.ref)

    def overdue(self, now: float, timeout: float) -> bool:
        return self.started_at is not None and now - self.started_at > timeout


class ImageHydratorStep(ExtractionStep[Story, Story]):
    """
    Downloads every distinct remote image of a story into the cache.

    Input: Decoded Story with remote image references
    Output: The same Story, mutated so each image reference is a local
    file URI, or None where the image could not be fetched in time.

    One task per distinct reference runs on a pool of `concurrency_limit`
    workers. A task running longer than `image_download_timeout_sec` is
    abandoned and its scenes lose their image; the rest carry on.
    """

    name = "image_hydration"
    description = "Download and cache scene images"

    poll_interval = 0.05

    def __init__(self, config: ExtractorConfig, cache: ContentCache):
        super().__init__(config, cache)
        self.last_report: Optional[HydrationReport] = None

    def run(self, story: Story) -> Story:
        return self.hydrate(story)

    def hydrate(self, story: Story, concurrency_limit: Optional[int] = None) -> Story:
        """
        Fetch all remote images of ``story`` and substitute local references.

        Args:
            story: Story to update in place
            concurrency_limit: Worker count, defaults to the configured value

        Returns:
            The same story object
        """
        limit = concurrency_limit or self.config.hydration_concurrency
        task_timeout = self.config.image_download_timeout_sec

        by_ref: Dict[str, List[Scene]] = {}
        for scene in story.scenes:
            if scene.image_ref and not scene.is_local_image:
                by_ref.setdefault(scene.image_ref, []).append(scene)

        report = HydrationReport(requested=len(by_ref))
        self.last_report = report
        if not by_ref:
            return story

        logger.info(
            "Hydrating %d image(s) for '%s' (concurrency=%d)",
            len(by_ref), story.title, limit,
        )

        tasks = {ref: _FetchTask(ref) for ref in by_ref}
        # Bounds the run even when every worker is stuck on a hung download.
        deadline = time.monotonic() + task_timeout * (math.ceil(len(tasks) / limit) + 1)

        executor = DaemonThreadPool(limit, thread_name_prefix="hydrate")
        try:
            pending = {}
            for task in tasks.values():
                task.future = executor.submit(task.run, self.cache)
                pending[task.future] = task

            while pending:
                done, _ = wait(list(pending), timeout=self.poll_interval, return_when=FIRST_COMPLETED)
                for future in done:
                    task = pending.pop(future)
                    self._apply(task, future, by_ref[task.ref], report)

                now = time.monotonic()
                for future, task in list(pending.items()):
                    if now > deadline or task.overdue(now, task_timeout):
                        pending.pop(future)
                        self._abandon(task, by_ref[task.ref], report)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        logger.info(
            "Hydration complete for '%s': %d/%d images resolved (%d failed, %d timed out)",
            story.title, report.resolved, report.requested,
            len(report.failed), len(report.timed_out),
        )
        return story

    def _apply(self, task: _FetchTask, future: Future, scenes: List[Scene], report: HydrationReport) -> None:
        try:
            path = future.result()
        except Exception as e:
            logger.error("Unexpected error hydrating %s: %s", task.ref[:60], e)
            path = None

        if path is None:
            report.failed.append(task.ref)
            local_ref = None
        else:
            report.resolved += 1
            local_ref = Path(path).resolve().as_uri()
        for scene in scenes:
            scene.image_ref = local_ref

    def _abandon(self, task: _FetchTask, scenes: List[Scene], report: HydrationReport) -> None:
        task.abandoned.set()
        if task.future is not None:
            task.future.cancel()
        logger.warning(
            "Image download timed out after %.1fs, clearing image: %s",
            self.config.image_download_timeout_sec, task.ref[:60],
        )
        report.timed_out.append(task.ref)
        for scene in scenes:
            scene.image_ref = None
