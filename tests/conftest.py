"""Shared fixtures for story extractor tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from story_extractor.config import ExtractorConfig
from story_extractor.core.cache import ContentCache
from story_extractor.core.fetcher import RetryingFetcher
from tests.helpers import FakeSession


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def config(tmp_path: Path) -> ExtractorConfig:
    return ExtractorConfig(
        cache_dir=tmp_path / "cache",
        cache_max_size_mb=2,
        cache_cleanup_threshold_mb=1,
        retry_attempts=2,
        retry_delay_sec=0.0,
        hydration_concurrency=3,
        image_download_timeout_sec=5.0,
        extraction_timeout_sec=5.0,
        compute_workers=2,
        io_workers=4,
    )


@pytest.fixture
def make_fetcher(fake_session):
    def factory(max_retries: int = 2, **kwargs) -> RetryingFetcher:
        return RetryingFetcher(
            connect_timeout=1.0,
            read_timeout=1.0,
            max_retries=max_retries,
            base_delay=0.0,
            session=fake_session,
            **kwargs,
        )
    return factory


@pytest.fixture
def make_cache(tmp_path: Path, make_fetcher):
    def factory(
        max_size: int = 10_000_000,
        cleanup_threshold: int = 5_000_000,
        max_retries: int = 2,
        **kwargs,
    ) -> ContentCache:
        return ContentCache(
            tmp_path / "cache",
            make_fetcher(max_retries=max_retries),
            max_size=max_size,
            cleanup_threshold=cleanup_threshold,
            **kwargs,
        )
    return factory


@pytest.fixture
def sync_dispatcher():
    """Dispatcher that records every callback it runs."""
    calls = []

    def dispatch(fn):
        calls.append(fn)
        fn()

    dispatch.calls = calls
    return dispatch
