"""Session registry.

Tracks active relay sessions for status and control. Every listener
connection has its own session and its own transcoder process, so
``count()`` is the number of connections currently streaming.
"""

import logging
import threading
import uuid
import weakref
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from transcoder.process_manager import TranscodeHandle

logger = logging.getLogger(__name__)


@dataclass
class RelaySession:
    """One listener connection being relayed."""

    session_id: str
    station_id: str
    started_at: datetime
    _handle_ref: "weakref.ref[TranscodeHandle]" = field(repr=False)

    @property
    def handle(self) -> Optional[TranscodeHandle]:
        """The transcoder handle, if it is still alive."""
        return self._handle_ref()

    def to_dict(self) -> Dict:
        handle = self.handle
        return {
            "session_id": self.session_id,
            "station_id": self.station_id,
            "started_at": self.started_at.isoformat(),
            "uptime_seconds": (datetime.now() - self.started_at).total_seconds(),
            "transcoder": handle.get_status() if handle else None,
        }


class SessionRegistry:
    """Thread-safe map of active relay sessions.

    Entries reference their transcoder handle weakly: the registry never keeps
    a process alive, and an entry whose handle has been collected is dropped.
    """

    def __init__(self):
        self._sessions: Dict[str, RelaySession] = {}
        # Re-entrant: weakref callbacks may fire while the lock is held
        self._lock = threading.RLock()

    def register(self, station_id: str, handle: TranscodeHandle) -> RelaySession:
        """Record a new session for a station.

        Args:
            station_id: Station being relayed.
            handle: Transcoder handle owned by the relay.

        Returns:
            RelaySession: The new session.
        """
        session_id = uuid.uuid4().hex
        session = RelaySession(
            session_id=session_id,
            station_id=station_id,
            started_at=datetime.now(),
            _handle_ref=weakref.ref(handle, lambda _ref: self._discard(session_id)),
        )
        with self._lock:
            self._sessions[session_id] = session
            active = len(self._sessions)

        logger.debug(f"Registered session {session_id} for station {station_id} ({active} active)")
        return session

    def unregister(self, station_id: str, session_id: str) -> bool:
        """Remove a session.

        Unknown stations or sessions are ignored.

        Args:
            station_id: Station the session belongs to.
            session_id: Session to remove.

        Returns:
            bool: True if an entry was removed.
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None or session.station_id != station_id:
                return False
            del self._sessions[session_id]
            active = len(self._sessions)

        logger.debug(f"Unregistered session {session_id} for station {station_id} ({active} active)")
        return True

    def _discard(self, session_id: str) -> None:
        with self._lock:
            if self._sessions.pop(session_id, None) is not None:
                logger.debug(f"Dropped session {session_id} after its transcoder was released")

    def count(self) -> int:
        """Number of active sessions."""
        with self._lock:
            return len(self._sessions)

    def is_active(self, station_id: str) -> bool:
        """True if at least one listener is relaying the station."""
        with self._lock:
            return any(s.station_id == station_id for s in self._sessions.values())

    def get(self, session_id: str) -> Optional[RelaySession]:
        """Find a session by id."""
        with self._lock:
            return self._sessions.get(session_id)

    def sessions(self, station_id: Optional[str] = None) -> List[RelaySession]:
        """Snapshot of active sessions, optionally for one station."""
        with self._lock:
            sessions = list(self._sessions.values())
        if station_id is not None:
            sessions = [s for s in sessions if s.station_id == station_id]
        return sessions
