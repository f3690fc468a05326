"""Challenge sessions held by the resource-locking side.

A Session is a single-assignment result: it resolves at most once, and
later resolve calls are no-ops. Sessions are kept in a registry keyed by
resource id so several locked resources can wait on challenges at the
same time.

Usage:
    registry = SessionRegistry()
    registry.open("file:///notes.txt", "notes.txt",
                  on_complete=lambda ok: unlock() if ok else None,
                  on_error=lambda msg: log.error(msg))
    # ... later, from the control server:
    registry.resolve("file:///notes.txt", success=True)
"""

from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from typing import Callable, Optional

from gesture_lock.config import SessionConfig

logger = logging.getLogger("gesture_lock.session")

EXPIRED_MESSAGE = "Challenge expired"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"


class Session:
    """One in-flight challenge attempt tied to a locked resource."""

    def __init__(
        self,
        resource_id: str,
        display_name: str = "",
        on_complete: Optional[Callable[[bool], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
        created_at: Optional[float] = None,
    ):
        self.resource_id = resource_id
        self.display_name = display_name or resource_id
        self.status = SessionStatus.ACTIVE
        self.result: Optional[bool] = None
        self.created_at = created_at if created_at is not None else time.monotonic()
        self.plan: list[str] = []  # gesture kinds served for this session
        self._on_complete = on_complete
        self._on_error = on_error
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self.status == SessionStatus.ACTIVE

    def resolve(self, success: bool = True) -> bool:
        """Resolve once and invoke on_complete. Returns False if already resolved."""
        with self._lock:
            if self.status == SessionStatus.RESOLVED:
                return False
            self.status = SessionStatus.RESOLVED
            self.result = success

        logger.info(f"Session resolved for {self.display_name} (success={success})")
        self._invoke(self._on_complete, success)
        return True

    def fail(self, message: str) -> bool:
        """Report an error to the caller. The session stays active."""
        if not self.active:
            return False
        logger.warning(f"Session error for {self.display_name}: {message}")
        self._invoke(self._on_error, message)
        return True

    def cancel(self) -> bool:
        """Resolve without invoking any callback."""
        with self._lock:
            if self.status == SessionStatus.RESOLVED:
                return False
            self.status = SessionStatus.RESOLVED
        logger.info(f"Session cancelled for {self.display_name}")
        return True

    def _invoke(self, callback: Optional[Callable], *args):
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception(f"Session callback failed for {self.display_name}")

    def to_dict(self) -> dict:
        return {
            "resource": self.resource_id,
            "name": self.display_name,
            "status": self.status.value,
            "plan": list(self.plan),
        }

    def __repr__(self) -> str:
        return f"Session({self.resource_id!r}, status={self.status.value})"


class SessionRegistry:
    """Active sessions keyed by resource id, in the order they were opened."""

    def __init__(
        self,
        config: Optional[SessionConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or SessionConfig()
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def open(
        self,
        resource_id: str,
        display_name: str = "",
        on_complete: Optional[Callable[[bool], None]] = None,
        on_error: Optional[Callable[[str], None]] = None,
    ) -> Session:
        """Create a session. An active session for the same resource is superseded."""
        session = Session(
            resource_id,
            display_name,
            on_complete=on_complete,
            on_error=on_error,
            created_at=self._clock(),
        )
        with self._lock:
            previous = self._sessions.pop(resource_id, None)
            self._sessions[resource_id] = session

        if previous is not None and previous.active:
            logger.warning(f"Superseding active session for {previous.display_name}")
            previous.cancel()
        logger.info(f"Session opened for {session.display_name}")
        return session

    def get(self, resource_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(resource_id)

    def latest(self) -> Optional[Session]:
        """Most recently opened active session."""
        with self._lock:
            for session in reversed(list(self._sessions.values())):
                if session.active:
                    return session
        return None

    def active(self) -> list[Session]:
        with self._lock:
            return [s for s in self._sessions.values() if s.active]

    def _take(self, resource_id: Optional[str]) -> Optional[Session]:
        with self._lock:
            if resource_id is None:
                candidates = [k for k, s in self._sessions.items() if s.active]
                if not candidates:
                    return None
                resource_id = candidates[-1]
            return self._sessions.pop(resource_id, None)

    def resolve(self, resource_id: Optional[str] = None, success: bool = True) -> Optional[Session]:
        """Resolve and remove a session (the latest one when no id is given).

        Returns None when there is nothing to resolve; that is not an error.
        """
        session = self._take(resource_id)
        if session is None:
            logger.info("Completion received with no active session")
            return None
        session.resolve(success)
        return session

    def fail(self, resource_id: str, message: str) -> bool:
        session = self.get(resource_id)
        if session is None:
            return False
        return session.fail(message)

    def cancel(self, resource_id: str) -> bool:
        session = self._take(resource_id)
        if session is None:
            return False
        return session.cancel()

    def expire(self, now: Optional[float] = None) -> list[Session]:
        """Fail and remove sessions older than the configured ttl.

        Does nothing when no ttl is configured.
        """
        ttl = self.config.ttl
        if ttl is None:
            return []
        now = now if now is not None else self._clock()

        with self._lock:
            expired = [s for s in self._sessions.values() if now - s.created_at >= ttl]
            for session in expired:
                del self._sessions[session.resource_id]

        for session in expired:
            session.fail(EXPIRED_MESSAGE)
            session.resolve(False)
        return expired

    def clear(self):
        """Cancel every session without invoking callbacks."""
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.cancel()

    def __len__(self) -> int:
        return len(self.active())
