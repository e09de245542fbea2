"""In-process session memory.

Each session id maps to a turn counter, the time of its last input and the
chat history sent to the model. Nothing is persisted and entries are never
evicted, so the map lives exactly as long as the process.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional


@dataclass
class SessionRecord:
    turn_count: int = 0
    last_input_time: Optional[datetime] = None
    history: List[Dict[str, str]] = field(default_factory=list)


@dataclass(frozen=True)
class SessionSnapshot:
    session_id: str
    turn_count: int
    last_input_time: datetime
    previous_input_time: Optional[datetime]


class SessionTracker:
    def __init__(self) -> None:
        self._sessions: Dict[str, SessionRecord] = {}
        self._lock = threading.Lock()

    def touch(self, session_id: str, now: datetime) -> SessionSnapshot:
        """Count one user turn for ``session_id`` and stamp it with ``now``."""
        with self._lock:
            record = self._sessions.setdefault(session_id, SessionRecord())
            previous = record.last_input_time
            record.turn_count += 1
            record.last_input_time = now
            return SessionSnapshot(
                session_id=session_id,
                turn_count=record.turn_count,
                last_input_time=now,
                previous_input_time=previous,
            )

    def get(self, session_id: str) -> Optional[SessionRecord]:
        return self._sessions.get(session_id)

    def history(self, session_id: str) -> List[Dict[str, str]]:
        record = self._sessions.get(session_id)
        return list(record.history) if record else []

    def append(self, session_id: str, message: Dict[str, str]) -> None:
        with self._lock:
            record = self._sessions.setdefault(session_id, SessionRecord())
            record.history.append({"role": message["role"], "content": message["content"]})

    def clear(self) -> None:
        with self._lock:
            self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions


def should_inject_news(snapshot: SessionSnapshot, every_n_turns: int, idle_seconds: int) -> bool:
    """Decide whether this turn's prompt carries the news block.

    News goes in on every ``every_n_turns``-th turn, and on the first turn
    after the user has been away for ``idle_seconds``. Zero disables a rule.
    """
    if every_n_turns > 0 and snapshot.turn_count % every_n_turns == 0:
        return True
    if idle_seconds > 0 and snapshot.previous_input_time is not None:
        gap = (snapshot.last_input_time - snapshot.previous_input_time).total_seconds()
        if gap >= idle_seconds:
            return True
    return False
