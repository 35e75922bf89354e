"""Tests for the retrying fetcher."""

import logging

import pytest
import requests

from story_extractor.core.fetcher import RetryingFetcher
from story_extractor.errors import FetchError

URL = "https://img.example.com/picture.png"


def test_returns_body_on_first_success(make_fetcher, fake_session):
    fake_session.script(URL, b"image-bytes")
    fetcher = make_fetcher()

    assert fetcher.fetch(URL) == b"image-bytes"
    assert fake_session.count(URL) == 1


def test_retries_transport_http_and_empty_failures(make_fetcher, fake_session):
    fake_session.script(
        URL,
        requests.ConnectionError("refused"),
        503,
        b"",
        b"finally",
    )
    fetcher = make_fetcher(max_retries=3)

    assert fetcher.fetch(URL) == b"finally"
    assert fake_session.count(URL) == 4


def test_timeouts_are_retried(make_fetcher, fake_session):
    fake_session.script(URL, requests.Timeout("read timed out"), b"ok")
    assert make_fetcher(max_retries=1).fetch(URL) == b"ok"


def test_gives_up_after_max_retries_plus_one(make_fetcher, fake_session, caplog):
    fake_session.script(URL, *[requests.ConnectionError("down")] * 10)
    fetcher = make_fetcher(max_retries=2)

    with caplog.at_level(logging.WARNING, logger="story_extractor.core.fetcher"):
        with pytest.raises(FetchError) as excinfo:
            fetcher.fetch(URL)

    assert fake_session.count(URL) == 3
    assert excinfo.value.attempts == 3
    assert excinfo.value.ref == URL
    attempt_logs = [r.getMessage() for r in caplog.records if "attempt" in r.getMessage()]
    assert any("attempt 1/3" in msg for msg in attempt_logs)
    assert any("attempt 3/3" in msg for msg in attempt_logs)


def test_zero_retries_means_single_attempt(make_fetcher, fake_session):
    fake_session.script(URL, 500)
    with pytest.raises(FetchError):
        make_fetcher(max_retries=0).fetch(URL)
    assert fake_session.count(URL) == 1


def test_backoff_is_linear(fake_session):
    fake_session.script(URL, 500, 500, 500, b"ok")
    delays = []
    fetcher = RetryingFetcher(
        max_retries=3, base_delay=0.5, session=fake_session, sleep=delays.append
    )

    assert fetcher.fetch(URL) == b"ok"
    assert delays == [0.5, 1.0, 1.5]


def test_sends_configured_headers_and_timeouts(fake_session):
    fetcher = RetryingFetcher(
        connect_timeout=3.0,
        read_timeout=7.0,
        session=fake_session,
        headers={"User-Agent": "StoryForge-Test", "Referer": "https://gemini.google.com/"},
    )
    fetcher.fetch(URL)

    assert fetcher.timeout == (3.0, 7.0)
    assert fake_session.headers_seen[0]["User-Agent"] == "StoryForge-Test"
    assert fake_session.headers_seen[0]["Referer"] == "https://gemini.google.com/"
