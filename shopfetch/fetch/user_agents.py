"""Round-robin browser identity pool."""

import threading
from collections.abc import Sequence


class UserAgentPool:
    """Rotates through a fixed set of User-Agent strings.

    Thread-safe; concurrent fetches each draw the next identity.
    Best-effort blocking avoidance only.
    """

    def __init__(self, user_agents: Sequence[str]) -> None:
        """Initialize the pool.

        Args:
            user_agents: Non-empty sequence of User-Agent strings.

        Raises:
            ValueError: If the sequence is empty.
        """
        if not user_agents:
            msg = "UserAgentPool requires at least one user agent"
            raise ValueError(msg)
        self._agents = tuple(user_agents)
        self._index = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._agents)

    def next(self) -> str:
        """Return the next User-Agent in rotation."""
        with self._lock:
            agent = self._agents[self._index]
            self._index = (self._index + 1) % len(self._agents)
            return agent
