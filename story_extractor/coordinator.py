"""
Single-flight coordinator for the extraction workflow.
"""

import logging
import threading
from concurrent.futures import Future
from typing import Any, Callable, Optional, Union

from .config import ExtractorConfig
from .core.cache import ContentCache, build_cache
from .core.models import Story
from .core.pools import WorkerPools
from .core.session import ExtractionSession
from .errors import ExtractionTimeout
from .steps import ImageHydratorStep, StoryDecoderStep
from .steps.decoder import RawPayload

logger = logging.getLogger(__name__)

StoryCallback = Callable[[Story], None]
ErrorCallback = Callable[[BaseException], None]
Dispatcher = Callable[[Callable[[], None]], None]
PayloadSource = Union[RawPayload, Callable[[], RawPayload]]


def inline_dispatcher(fn: Callable[[], None]) -> None:
    """Run callbacks directly on the worker thread that produced them."""
    fn()


class ExtractionCoordinator:
    """
    Public entry point: one scrape payload in, one hydrated Story out.

    The workflow for a submission is:
    1. Pull the raw payload from its source (per-session daemon thread)
    2. Decode and deduplicate it into a Story (compute pool)
    3. Fire the fast callback with remote image URLs still in place
    4. Download images into the cache (io pool)
    5. Fire the refresh callback with local image references

    Only one session is active at a time. A submission arriving while the
    previous session is still extracting resets that session and takes
    over; results that arrive later for the old session are dropped.

    Example:
        ```python
        config = ExtractorConfig(cache_dir="~/.storyforge/images")
        with ExtractionCoordinator(config) as coordinator:
            future = coordinator.submit(payload_json, on_fast=show_story)
            story = future.result()
        ```
    """

    def __init__(
        self,
        config: ExtractorConfig,
        cache: Optional[ContentCache] = None,
        pools: Optional[WorkerPools] = None,
        dispatcher: Dispatcher = inline_dispatcher,
    ):
        """
        Initialize the coordinator.

        Args:
            config: Extractor configuration
            cache: Image cache; built from config when omitted
            pools: Worker pools; created from config when omitted
            dispatcher: Marshals callbacks onto the caller's execution context
        """
        self.config = config
        self._owns_pools = pools is None
        self.pools = pools or WorkerPools(config.compute_workers, config.io_workers)
        self._owns_cache = cache is None
        self.cache = cache or build_cache(config, self.pools)
        self.dispatcher = dispatcher

        self.decoder = StoryDecoderStep(config)
        self.hydrator = ImageHydratorStep(config, self.cache)

        self._lock = threading.Lock()
        self._session_counter = 0
        self._active: Optional[ExtractionSession] = None
        self._active_future: Optional[Future] = None
        self._active_timer: Optional[threading.Timer] = None
        self._closed = False

    # --- Public API ---

    def submit(
        self,
        source: PayloadSource,
        on_fast: StoryCallback,
        on_refresh: Optional[StoryCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> Future:
        """
        Start an extraction session.

        Args:
            source: Raw payload, or a callable that produces it
            on_fast: Called once with the decoded story (remote image URLs)
            on_refresh: Called once after hydration (local image references)
            on_error: Called once if decoding fails or the session times out

        Returns:
            Future resolving to the hydrated story. It raises DecodeError or
            ExtractionTimeout on failure, and is cancelled when a later
            submission supersedes the session.
        """
        if self._closed:
            raise RuntimeError("ExtractionCoordinator has been shut down")

        future: Future = Future()
        with self._lock:
            stale, stale_future, stale_timer = self._active, self._active_future, self._active_timer
            if stale is not None and stale.supersede():
                logger.warning(
                    "Session %d still in progress; forcing reset for new request",
                    stale.session_id,
                )
                if stale_timer is not None:
                    stale_timer.cancel()
                if stale_future is not None:
                    stale_future.cancel()
            self._session_counter += 1
            session = ExtractionSession(self._session_counter, self.config.extraction_timeout_sec)
            timer = threading.Timer(
                session.timeout_sec, self._on_timeout, args=(session, future, on_error)
            )
            timer.name = f"extraction-timeout-{session.session_id}"
            timer.daemon = True
            self._active = session
            self._active_future = future
            self._active_timer = timer
            session.start()
            timer.start()

        # A stuck source holds only this thread, never a compute worker.
        threading.Thread(
            target=self._extract,
            args=(session, future, timer, source, on_fast, on_refresh, on_error),
            name=f"extraction-session-{session.session_id}",
            daemon=True,
        ).start()
        return future

    @property
    def is_busy(self) -> bool:
        """True while a session is waiting for its decoded result."""
        with self._lock:
            return self._active is not None and self._active.is_active

    @property
    def active_session_id(self) -> Optional[int]:
        with self._lock:
            if self._active is not None and self._active.is_active:
                return self._active.session_id
            return None

    def shutdown(self, wait: bool = False) -> None:
        """Stop worker pools and run the final cache sweep."""
        if self._closed:
            return
        self._closed = True
        if self._owns_pools:
            self.pools.shutdown(wait=wait)
        if self._owns_cache:
            self.cache.close()

    def __enter__(self) -> "ExtractionCoordinator":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    # --- Session workflow ---

    def _extract(
        self,
        session: ExtractionSession,
        future: Future,
        timer: threading.Timer,
        source: PayloadSource,
        on_fast: StoryCallback,
        on_refresh: Optional[StoryCallback],
        on_error: Optional[ErrorCallback],
    ) -> None:
        try:
            raw = source() if callable(source) else source
        except Exception as e:
            self._fail(session, future, timer, on_error, e)
            return

        if not session.is_active:
            logger.info("Discarding late payload for session %d", session.session_id)
            return
        try:
            self.pools.submit_compute(
                self._decode, session, future, timer, raw, on_fast, on_refresh, on_error
            )
        except RuntimeError as e:
            self._fail(session, future, timer, on_error, e)

    def _decode(
        self,
        session: ExtractionSession,
        future: Future,
        timer: threading.Timer,
        raw: RawPayload,
        on_fast: StoryCallback,
        on_refresh: Optional[StoryCallback],
        on_error: Optional[ErrorCallback],
    ) -> None:
        try:
            story = self.decoder.execute(raw)
        except Exception as e:
            self._fail(session, future, timer, on_error, e)
            return

        if not session.claim_callback():
            logger.info("Discarding late result for session %d", session.session_id)
            return
        timer.cancel()
        self._dispatch(on_fast, story)

        session.mark_hydrating()
        try:
            self.pools.submit_io(self._hydrate, session, future, story, on_refresh)
        except RuntimeError as e:
            logger.warning("Skipping hydration for session %d: %s", session.session_id, e)
            session.complete()
            future.set_result(story)

    def _fail(
        self,
        session: ExtractionSession,
        future: Future,
        timer: threading.Timer,
        on_error: Optional[ErrorCallback],
        error: BaseException,
    ) -> None:
        timer.cancel()
        if session.fail(error):
            future.set_exception(error)
            self._dispatch(on_error, error)
        else:
            logger.info("Discarding failure of settled session %d: %s", session.session_id, error)

    def _hydrate(
        self,
        session: ExtractionSession,
        future: Future,
        story: Story,
        on_refresh: Optional[StoryCallback],
    ) -> None:
        try:
            self.hydrator.execute(story)
        except Exception:
            # Per-image failures are handled inside the hydrator; anything
            # reaching here still leaves a displayable story.
            logger.exception("Image hydration failed for session %d", session.session_id)
        session.complete()
        self._dispatch(on_refresh, story)
        future.set_result(story)

    def _on_timeout(
        self,
        session: ExtractionSession,
        future: Future,
        on_error: Optional[ErrorCallback],
    ) -> None:
        error = ExtractionTimeout(session.session_id, session.timeout_sec)
        if session.fail(error):
            future.set_exception(error)
            self._dispatch(on_error, error)

    def _dispatch(self, callback: Optional[Callable[[Any], None]], arg: Any) -> None:
        if callback is None:
            return

        def invoke() -> None:
            try:
                callback(arg)
            except Exception:
                logger.exception("Extraction callback raised")

        self.dispatcher(invoke)
