"""Thread-safe registry of live onboarding sessions.

Sessions live only for the lifetime of the process. Each DIDSession
serializes its own mutations; this lock only guards the registry itself.
Sessions idle for SESSION_TTL seconds or more are evicted on the next
registry access.
"""

import logging
import threading
import time
import uuid
from typing import Optional

from did_onboarding.config import config
from did_onboarding.state_machine import DIDSession

logger = logging.getLogger(__name__)


_lock = threading.Lock()
_sessions: dict[str, DIDSession] = {}
_last_access: dict[str, float] = {}


def _evict_idle(now: float) -> None:
    # Caller holds _lock
    expired = [sid for sid, seen in _last_access.items() if now - seen >= config.SESSION_TTL]
    for session_id in expired:
        _sessions.pop(session_id, None)
        _last_access.pop(session_id, None)
    if expired:
        logger.info("Evicted %d idle session(s)", len(expired))


def create() -> tuple[str, DIDSession]:
    """Start a new session in its initial state."""
    session_id = uuid.uuid4().hex
    session = DIDSession()
    now = time.monotonic()
    with _lock:
        _evict_idle(now)
        _sessions[session_id] = session
        _last_access[session_id] = now
    return session_id, session


def get(session_id: str) -> Optional[DIDSession]:
    """Look up a session and refresh its idle timer."""
    now = time.monotonic()
    with _lock:
        _evict_idle(now)
        session = _sessions.get(session_id)
        if session is not None:
            _last_access[session_id] = now
        return session


def discard(session_id: str) -> bool:
    """End a session. Returns False if it did not exist."""
    with _lock:
        _last_access.pop(session_id, None)
        return _sessions.pop(session_id, None) is not None


def count() -> int:
    with _lock:
        _evict_idle(time.monotonic())
        return len(_sessions)


def reset() -> None:
    """Drop all sessions. Used for testing."""
    with _lock:
        _sessions.clear()
        _last_access.clear()
