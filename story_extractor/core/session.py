"""
Extraction session state with atomic check-and-transition methods.
"""

import logging
import threading
import time
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    EXTRACTING = "extracting"
    DECODED = "decoded"
    HYDRATING = "hydrating"
    DONE = "done"
    FAILED = "failed"
    SUPERSEDED = "superseded"


TERMINAL_STATES = {SessionState.DONE, SessionState.FAILED, SessionState.SUPERSEDED}


class ExtractionSession:
    """
    Tracks one extraction from submission to completion.

    A single lock guards ``in_progress`` and ``callback_fired`` together, so
    a timeout racing a late decode can never both succeed. Only the first
    of ``claim_callback``, ``fail`` and ``supersede`` wins; the rest return
    False.
    """

    def __init__(self, session_id: int, timeout_sec: float):
        self.session_id = session_id
        self.timeout_sec = timeout_sec
        self.state = SessionState.IDLE
        self.in_progress = False
        self.callback_fired = False
        self.error: Optional[BaseException] = None
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None
        self._lock = threading.Lock()

    def start(self) -> "ExtractionSession":
        """Mark session as extracting. Returns self for chaining."""
        with self._lock:
            self.state = SessionState.EXTRACTING
            self.in_progress = True
            self.start_time = time.monotonic()
        logger.info("[session %d] started...", self.session_id)
        return self

    def claim_callback(self) -> bool:
        """
        Claim the right to fire the fast callback.

        Returns:
            True exactly once, for the first caller while the session is live
        """
        with self._lock:
            if self.callback_fired or not self.in_progress:
                logger.warning(
                    "[session %d] callback already invoked or session %s, ignoring",
                    self.session_id, self.state.value,
                )
                return False
            self.callback_fired = True
            self.in_progress = False
            self.state = SessionState.DECODED
        return True

    def fail(self, error: BaseException) -> bool:
        """Fail a live session. Returns False if it already settled."""
        with self._lock:
            if not self.in_progress:
                return False
            self.in_progress = False
            self.state = SessionState.FAILED
            self.error = error
            self.end_time = time.monotonic()
        logger.error("[session %d] FAILED: %s", self.session_id, error)
        return True

    def supersede(self) -> bool:
        """Forcibly reset a session that is still in progress."""
        with self._lock:
            if not self.in_progress:
                return False
            self.in_progress = False
            self.state = SessionState.SUPERSEDED
            self.end_time = time.monotonic()
        return True

    def mark_hydrating(self) -> None:
        with self._lock:
            if self.state == SessionState.DECODED:
                self.state = SessionState.HYDRATING

    def complete(self) -> None:
        with self._lock:
            if self.state in (SessionState.DECODED, SessionState.HYDRATING):
                self.state = SessionState.DONE
                self.end_time = time.monotonic()
        logger.info("[session %d] completed.", self.session_id)

    @property
    def is_active(self) -> bool:
        with self._lock:
            return self.in_progress

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def duration(self) -> Optional[float]:
        """Session duration in seconds, if finished."""
        if self.start_time is not None and self.end_time is not None:
            return self.end_time - self.start_time
        return None

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "state": self.state.value,
            "in_progress": self.in_progress,
            "callback_fired": self.callback_fired,
            "error": str(self.error) if self.error else None,
            "duration": self.duration,
        }

    def __repr__(self) -> str:
        return f"ExtractionSession(id={self.session_id}, state='{self.state.value}')"
