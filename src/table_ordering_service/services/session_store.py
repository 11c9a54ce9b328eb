"""In-memory customer sessions."""

import logging
import time
import uuid
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass

from table_ordering_service.services.conversation import ConversationFlow, ConversationStep
from table_ordering_service.services.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_IDLE_TTL_SECONDS = 2 * 60 * 60
DEFAULT_COMPLETED_TTL_SECONDS = 15 * 60
DEFAULT_MAX_SESSIONS = 5000


@dataclass
class _Entry:
    flow: ConversationFlow
    last_seen: float


class SessionStore:
    """Owns the ConversationFlow of every active customer session.

    Nothing here is persisted; dropping a session discards its cart.
    Sessions expire after idle_ttl_seconds without a lookup, or after
    completed_ttl_seconds once their order is placed. When max_sessions are
    open, creating another evicts the least recently used.

    Sessions live in this process only, so every request for a session must
    reach the same process.
    """

    def __init__(
        self,
        idle_ttl_seconds: float = DEFAULT_IDLE_TTL_SECONDS,
        completed_ttl_seconds: float = DEFAULT_COMPLETED_TTL_SECONDS,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the SessionStore.

        Args:
            idle_ttl_seconds: Lifetime of a session with no activity
            completed_ttl_seconds: Lifetime of a session after its order is placed
            max_sessions: Open sessions kept before the oldest is evicted
            clock: Monotonic time source in seconds

        Raises:
            ValueError: If a limit is not positive
        """
        if idle_ttl_seconds <= 0 or completed_ttl_seconds <= 0 or max_sessions < 1:
            raise ValueError("Session limits must be positive")
        self.idle_ttl_seconds = idle_ttl_seconds
        self.completed_ttl_seconds = completed_ttl_seconds
        self.max_sessions = max_sessions
        self._clock = clock
        self._sessions: OrderedDict[str, _Entry] = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def create(self, table_number: int) -> tuple[str, ConversationFlow]:
        """Start a new conversation for a table.

        Raises:
            ValidationError: If the table number is not positive
        """
        if table_number < 1:
            raise ValidationError(f"Invalid table number: {table_number}")

        self.evict_expired()
        while len(self._sessions) >= self.max_sessions:
            session_id, entry = self._sessions.popitem(last=False)
            logger.warning(
                f"Session limit {self.max_sessions} reached; evicted {session_id} "
                f"at step {entry.flow.step.value}"
            )

        session_id = str(uuid.uuid4())
        flow = ConversationFlow(table_number)
        self._sessions[session_id] = _Entry(flow=flow, last_seen=self._clock())
        logger.info(f"Session {session_id} started at table {table_number}")
        return session_id, flow

    def get(self, session_id: str) -> ConversationFlow:
        """Get a session's flow and mark it as recently used.

        Raises:
            NotFoundError: If the session does not exist or has expired
        """
        entry = self._sessions.get(session_id)
        if entry is None:
            raise NotFoundError(f"Session {session_id} not found")

        now = self._clock()
        if self._expired(entry, now):
            del self._sessions[session_id]
            logger.info(f"Session {session_id} expired at step {entry.flow.step.value}")
            raise NotFoundError(f"Session {session_id} not found")

        entry.last_seen = now
        self._sessions.move_to_end(session_id)
        return entry.flow

    def discard(self, session_id: str) -> bool:
        entry = self._sessions.pop(session_id, None)
        if entry is None:
            return False
        logger.info(f"Session {session_id} discarded at step {entry.flow.step.value}")
        return True

    def evict_expired(self) -> int:
        """Drop every expired session.

        Returns:
            int: Number of sessions dropped
        """
        now = self._clock()
        expired = [sid for sid, entry in self._sessions.items() if self._expired(entry, now)]
        for session_id in expired:
            del self._sessions[session_id]
        if expired:
            logger.info(f"Expired {len(expired)} idle session(s)")
        return len(expired)

    def close(self) -> None:
        count = len(self._sessions)
        self._sessions.clear()
        if count:
            logger.info(f"Discarded {count} open session(s)")

    def _expired(self, entry: _Entry, now: float) -> bool:
        ttl = (
            self.completed_ttl_seconds
            if entry.flow.step == ConversationStep.DONE
            else self.idle_ttl_seconds
        )
        return now - entry.last_seen >= ttl
