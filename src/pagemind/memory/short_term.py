"""Short-term memory: per-session bounded buffers of recent turns. Never persisted."""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Turn:
    role: str  # "user" | "assistant"
    text: str
    timestamp: str = field(default_factory=_now)


class TurnBuffer:
    """The last ``max_turns`` turns of one session, oldest first (FIFO eviction)."""

    def __init__(self, max_turns: int = 12) -> None:
        if max_turns < 1:
            raise ValueError("max_turns must be >= 1")
        self.max_turns = max_turns
        self._turns: deque[Turn] = deque(maxlen=max_turns)
        self._lock = threading.Lock()

    def append(self, turn: Turn) -> None:
        with self._lock:
            self._turns.append(turn)

    def turns(self) -> list[Turn]:
        with self._lock:
            return list(self._turns)

    def clear(self) -> None:
        with self._lock:
            self._turns.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._turns)


class SessionRegistry:
    """Maps session id → TurnBuffer; ending a session discards its buffer."""

    def __init__(self, max_turns: int = 12) -> None:
        self.max_turns = max_turns
        self._buffers: dict[str, TurnBuffer] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> TurnBuffer:
        """Return the session's buffer, creating it on first use."""
        with self._lock:
            buffer = self._buffers.get(session_id)
            if buffer is None:
                buffer = self._buffers[session_id] = TurnBuffer(self.max_turns)
            return buffer

    def end(self, session_id: str) -> bool:
        """Discard the session's buffer. Returns False if the session was unknown."""
        with self._lock:
            return self._buffers.pop(session_id, None) is not None

    def session_ids(self) -> list[str]:
        with self._lock:
            return list(self._buffers)
