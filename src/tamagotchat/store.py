"""
In-memory session storage for point balances, pseudonyms and history.

This module provides:
- Session creation with generated pseudonyms
- Point balance reads and last-writer-wins updates, floor-clamped at 0
- Conversation history per session
- Per-category outcome counters for the metrics endpoint
- TTL-based expiry of idle sessions

The asyncio lock only keeps the dicts consistent; there is no transactional
guarantee across concurrent requests for the same session.
"""

import asyncio
import random
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple, Any
from loguru import logger

from .ledger import clamp_points
from .models import Message, PenaltyCategory, ScoreState
from .utils import get_config


class SessionError(Exception):
    """Raised when a session operation targets an unknown session."""
    pass


PSEUDO_ADJECTIVES = ("Green", "Smart", "Eco", "Fast")
PSEUDO_ANIMALS = ("Koala", "Tiger", "Falcon", "Otter")

MAX_HISTORY_MESSAGES = 50


def generate_pseudonym(rng: Optional[random.Random] = None) -> str:
    """<Adjective><Animal><0-999>, e.g. GreenOtter42."""
    rng = rng or random
    return (
        rng.choice(PSEUDO_ADJECTIVES)
        + rng.choice(PSEUDO_ANIMALS)
        + str(rng.randint(0, 999))
    )


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SessionState:
    """Everything kept for one session."""
    session_id: str
    pseudo: str
    points: int
    messages: List[Message] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    last_active: datetime = field(default_factory=utc_now)

    def score(self) -> ScoreState:
        return ScoreState(owner=self.session_id, points=self.points)


@dataclass
class StoreMetrics:
    """Metrics tracked by the session store."""
    total_sessions: int = 0
    active_sessions: int = 0
    total_messages: int = 0
    total_requests: int = 0
    category_counts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SessionStore:
    """Async-safe in-memory storage for sessions and outcome metrics."""

    def __init__(self, initial_points: int = 100, session_ttl_days: int = 7):
        """Initialize the session store.

        Args:
            initial_points: Balance given to new sessions and restored on reset
            session_ttl_days: How long to keep idle sessions
        """
        self._sessions: Dict[str, SessionState] = {}
        self._metrics = StoreMetrics()
        self._lock = asyncio.Lock()

        self.initial_points = initial_points
        self.session_ttl = timedelta(days=session_ttl_days)

    def _require(self, session_id: str) -> SessionState:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionError(f"Session {session_id} not found")
        session.last_active = utc_now()
        return session

    async def get_or_create(
        self,
        session_id: Optional[str] = None,
        pseudo: Optional[str] = None
    ) -> Tuple[SessionState, bool]:
        """Return the session for ``session_id``, creating it if unknown.

        Args:
            session_id: Existing identifier, a new one is generated if None
            pseudo: Pseudonym to use when creating, generated if None

        Returns:
            (session, created) tuple
        """
        async with self._lock:
            if session_id and session_id in self._sessions:
                session = self._sessions[session_id]
                session.last_active = utc_now()
                return session, False

            session = SessionState(
                session_id=session_id or f"session_{uuid.uuid4().hex[:16]}",
                pseudo=pseudo or generate_pseudonym(),
                points=self.initial_points
            )
            self._sessions[session.session_id] = session
            self._metrics.total_sessions += 1
            self._metrics.active_sessions = len(self._sessions)

        logger.info("Session created", session_id=session.session_id, pseudo=session.pseudo)
        return session, True

    async def get_session(self, session_id: str) -> Optional[SessionState]:
        async with self._lock:
            return self._sessions.get(session_id)

    async def get_points(self, session_id: str) -> int:
        async with self._lock:
            return self._require(session_id).points

    async def set_points(self, session_id: str, points: int) -> int:
        """Persist a new balance, clamped at 0. Last writer wins."""
        async with self._lock:
            session = self._require(session_id)
            session.points = clamp_points(points)
            return session.points

    async def apply_delta(self, session_id: str, delta: int) -> int:
        """Add ``delta`` to the balance with the floor clamp."""
        async with self._lock:
            session = self._require(session_id)
            session.points = clamp_points(session.points + delta)
            return session.points

    async def reset_points(self, session_id: str) -> int:
        async with self._lock:
            session = self._require(session_id)
            session.points = self.initial_points
            logger.info("Session points reset", session_id=session_id, points=session.points)
            return session.points

    async def append_messages(self, session_id: str, messages: List[Message]) -> int:
        """Append messages to the session history.

        Returns:
            History length after appending
        """
        async with self._lock:
            session = self._require(session_id)
            session.messages.extend(messages)
            if len(session.messages) > MAX_HISTORY_MESSAGES:
                session.messages = session.messages[-MAX_HISTORY_MESSAGES:]
            self._metrics.total_messages += len(messages)
            return len(session.messages)

    async def get_history(self, session_id: str) -> List[Message]:
        async with self._lock:
            return list(self._require(session_id).messages)

    async def cleanup_expired(self) -> int:
        """Remove sessions idle for longer than the TTL.

        Returns:
            Number of sessions removed
        """
        cutoff_time = utc_now() - self.session_ttl

        async with self._lock:
            expired = [
                session_id for session_id, session in self._sessions.items()
                if session.last_active < cutoff_time
            ]
            for session_id in expired:
                del self._sessions[session_id]
            self._metrics.active_sessions = len(self._sessions)

        if expired:
            logger.info("Expired sessions removed", count=len(expired))
        return len(expired)

    async def record_outcome(self, category: PenaltyCategory):
        async with self._lock:
            self._metrics.total_requests += 1
            key = PenaltyCategory(category).value
            self._metrics.category_counts[key] = self._metrics.category_counts.get(key, 0) + 1

    async def get_metrics(self) -> StoreMetrics:
        """Snapshot of the metrics, detached from the live counters."""
        async with self._lock:
            self._metrics.active_sessions = len(self._sessions)
            snapshot = self._metrics.to_dict()
        return StoreMetrics(**snapshot)


# Global store instance
_store_instance: Optional[SessionStore] = None


def get_session_store() -> SessionStore:
    """Get the global session store, creating it from configuration if needed."""
    global _store_instance
    if _store_instance is None:
        config = get_config()
        _store_instance = SessionStore(
            initial_points=config["INITIAL_POINTS"],
            session_ttl_days=config["SESSION_TTL_DAYS"]
        )
    return _store_instance


def reset_session_store():
    """Drop the global store so the next get_session_store() builds a fresh one."""
    global _store_instance
    _store_instance = None


__all__ = [
    "SessionStore",
    "SessionState",
    "SessionError",
    "StoreMetrics",
    "generate_pseudonym",
    "get_session_store",
    "reset_session_store",
]
