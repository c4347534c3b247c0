"""
Per-user result pagination.

One session is tracked per user. Starting a new search replaces the old
session, and callbacks carrying the old session id are reported as expired
instead of moving the new session.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Sequence, Tuple
import logging
import math
import secrets

from utils.clock import Clock, MINUTE, system_clock
from storage.state_store import InMemoryStateStore, UserStateStore

logger = logging.getLogger(__name__)

CALLBACK_PREFIX = "nav"


class Direction(str, Enum):
    NEXT = "next"
    PREV = "prev"


class NavigationOutcome(Enum):
    HANDLED = "handled"
    NOT_HANDLED = "not_handled"
    EXPIRED = "expired"


@dataclass
class PaginationSession:
    session_id: str
    results: Tuple[Any, ...]
    page_size: int
    created_at: float
    current_page: int = 0
    navigation_handle: Optional[Tuple[int, int]] = None

    @property
    def total_pages(self) -> int:
        return math.ceil(len(self.results) / self.page_size)

    @property
    def has_next(self) -> bool:
        return self.current_page < self.total_pages - 1

    @property
    def has_prev(self) -> bool:
        return self.current_page > 0


@dataclass(frozen=True)
class CallbackPayload:
    user_id: int
    session_id: str
    direction: Direction
    page: int


def encode_callback(user_id: int, session_id: str, direction: Direction, page: int) -> str:
    """Build button data. ``page`` is the page shown when the button was drawn."""
    return f"{CALLBACK_PREFIX}:{user_id}:{session_id}:{direction.value}:{page}"


def decode_callback(data: Optional[str]) -> Optional[CallbackPayload]:
    """Parse navigation callback data, returning None for anything else."""
    if not data:
        return None
    parts = data.split(":")
    if len(parts) != 5 or parts[0] != CALLBACK_PREFIX:
        return None
    try:
        return CallbackPayload(int(parts[1]), parts[2], Direction(parts[3]), int(parts[4]))
    except ValueError:
        return None


class Paginator:
    def __init__(
        self,
        page_size: int = 10,
        ttl_minutes: float = 0,
        clock: Clock = system_clock,
        store: Optional[UserStateStore[PaginationSession]] = None,
    ):
        if page_size < 1:
            raise ValueError("page_size must be positive")
        self.page_size = page_size
        self.ttl = ttl_minutes * MINUTE
        self._clock = clock
        self._sessions: UserStateStore[PaginationSession] = store if store is not None else InMemoryStateStore()

    def start(self, user_id: int, results: Sequence[Any], page_size: Optional[int] = None) -> PaginationSession:
        if not results:
            raise ValueError("Cannot paginate an empty result set")
        size = self.page_size if page_size is None else page_size
        if size < 1:
            raise ValueError("page_size must be positive")
        session = PaginationSession(
            session_id=secrets.token_hex(4),
            results=tuple(results),
            page_size=size,
            created_at=self._clock(),
        )
        if user_id in self._sessions:
            logger.info(f"Replacing pagination session for user {user_id}")
        self._sessions.set(user_id, session)
        return session

    def get(self, user_id: int, session_id: Optional[str] = None) -> Optional[PaginationSession]:
        """Return the live session, or None when it is missing, superseded or timed out."""
        session = self._sessions.get(user_id)
        if session is None:
            return None
        if self.ttl and self._clock() - session.created_at >= self.ttl:
            self._sessions.delete(user_id)
            return None
        if session_id is not None and session.session_id != session_id:
            return None
        return session

    def discard(self, user_id: int, session_id: str) -> None:
        """Drop the session unless a newer search has already replaced it."""
        session = self._sessions.get(user_id)
        if session is not None and session.session_id == session_id:
            self._sessions.delete(user_id)

    def advance(
        self,
        user_id: int,
        direction: Direction,
        session_id: Optional[str] = None,
        from_page: Optional[int] = None,
    ) -> NavigationOutcome:
        """Move one page from ``from_page``, or from the current page when it is None.

        Buttons pass the page they were drawn on, so a repeated tap lands on
        the same page instead of skipping one.
        """
        # No awaits between the bounds check and the page change
        session = self.get(user_id, session_id)
        if session is None:
            return NavigationOutcome.EXPIRED
        origin = session.current_page if from_page is None else from_page
        target = origin + 1 if direction is Direction.NEXT else origin - 1
        if not 0 <= origin < session.total_pages or not 0 <= target < session.total_pages:
            return NavigationOutcome.NOT_HANDLED
        session.current_page = target
        return NavigationOutcome.HANDLED

    @staticmethod
    def page_items(session: PaginationSession) -> Tuple[Any, ...]:
        start = session.current_page * session.page_size
        end = min(start + session.page_size, len(session.results))
        return session.results[start:end]

    @staticmethod
    def footer(session: PaginationSession) -> str:
        return f"📄 Page {session.current_page + 1}/{session.total_pages}"
