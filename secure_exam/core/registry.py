"""
Operational view of sessions that are currently connected or answering.

The registry is owned by one application instance: it is created by the app
factory, injected into request handlers and cleared when the app shuts down.
Nothing in the lifecycle decisions reads it; the database stays authoritative.
"""
import threading
from dataclasses import dataclass
from typing import Dict, List


@dataclass
class ActiveSession:
    session_id: str
    student_id: str
    status: str


class ActiveSessionRegistry:
    def __init__(self):
        self._lock = threading.Lock()
        self._sessions: Dict[str, ActiveSession] = {}

    def connected(self, session_id: str, student_id: str) -> None:
        with self._lock:
            self._sessions[session_id] = ActiveSession(session_id, student_id, "CONNECTED")

    def started(self, session_id: str) -> None:
        with self._lock:
            entry = self._sessions.get(session_id)
            if entry:
                entry.status = "STARTED_TEST"

    def closed(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)

    def count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def snapshot(self) -> List[ActiveSession]:
        with self._lock:
            return [ActiveSession(s.session_id, s.student_id, s.status) for s in self._sessions.values()]

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()
