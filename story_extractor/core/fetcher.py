"""
Single-resource HTTP fetching with a fixed retry budget.
"""

import logging
import time
from typing import Callable, Dict, Optional, Tuple

import requests
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from ..errors import FetchError

logger = logging.getLogger(__name__)


class EmptyResponseError(requests.RequestException):
    """The server answered with a zero-byte body."""


class RetryingFetcher:
    """
    Downloads one resource with a connect/read timeout and linear backoff.

    After failed attempt ``n`` the fetcher waits ``base_delay * n`` seconds
    before trying again, for ``max_retries + 1`` attempts in total. HTTP
    errors, transport errors, timeouts and empty bodies are all retried.
    """

    def __init__(
        self,
        connect_timeout: float = 10.0,
        read_timeout: float = 30.0,
        max_retries: int = 3,
        base_delay: float = 1.0,
        session: Optional[requests.Session] = None,
        headers: Optional[Dict[str, str]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.timeout: Tuple[float, float] = (connect_timeout, read_timeout)
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.session = session if session is not None else requests.Session()
        self.headers = dict(headers or {})
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def fetch(self, ref: str) -> bytes:
        """
        Download ``ref`` and return its body.

        Raises:
            FetchError: If every attempt failed
        """
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_incrementing(start=self.base_delay, increment=self.base_delay),
            retry=retry_if_exception_type(requests.RequestException),
            after=self._log_failed_attempt(ref),
            sleep=self._sleep,
            reraise=True,
        )
        try:
            return retrying(self._fetch_once, ref)
        except requests.RequestException as e:
            logger.error(
                "Giving up on %s after %d attempt(s): %s",
                _shorten(ref), self.max_attempts, e,
            )
            raise FetchError(ref, self.max_attempts, e) from e

    def _fetch_once(self, ref: str) -> bytes:
        response = self.session.get(ref, headers=self.headers, timeout=self.timeout)
        try:
            response.raise_for_status()
            data = response.content
        finally:
            response.close()
        if not data:
            raise EmptyResponseError(f"Empty response body from {_shorten(ref)}")
        return data

    def _log_failed_attempt(self, ref: str) -> Callable[[RetryCallState], None]:
        def log(state: RetryCallState) -> None:
            exc = state.outcome.exception() if state.outcome else None
            logger.warning(
                "Download failed (attempt %d/%d) for %s: %s",
                state.attempt_number, self.max_attempts, _shorten(ref), exc,
            )
        return log

    def close(self) -> None:
        self.session.close()


def _shorten(ref: str, limit: int = 60) -> str:
    return ref if len(ref) <= limit else ref[:limit] + "..."
