"""In-memory conversation history for the /ask command."""
from collections import deque
from dataclasses import dataclass
from typing import Deque, List, Optional
import logging

from utils.clock import Clock, MINUTE, system_clock
from storage.state_store import InMemoryStateStore, UserStateStore

logger = logging.getLogger(__name__)

USER = "user"
ASSISTANT = "assistant"

# Rough approximation used when budgeting message length
CHARS_PER_TOKEN = 4
TRUNCATION_MARKER = "…"


@dataclass(frozen=True)
class Turn:
    role: str
    content: str
    timestamp: float


@dataclass
class ConversationState:
    history: Deque[Turn]
    last_activity: float


def truncate_message(text: str, max_tokens: int) -> str:
    max_chars = max_tokens * CHARS_PER_TOKEN
    return text[:max_chars] + TRUNCATION_MARKER if len(text) > max_chars else text


class ConversationMemory:
    def __init__(
        self,
        max_history: int = 10,
        context_window_minutes: float = 30,
        max_tokens_per_message: int = 500,
        clock: Clock = system_clock,
        store: Optional[UserStateStore[ConversationState]] = None,
    ):
        self.max_history = max_history
        self.context_window = context_window_minutes * MINUTE
        self.max_tokens_per_message = max_tokens_per_message
        self._clock = clock
        self._conversations: UserStateStore[ConversationState] = store if store is not None else InMemoryStateStore()

    def _get_conversation(self, user_id: int) -> ConversationState:
        conversation = self._conversations.get_or_create(
            user_id,
            lambda: ConversationState(history=deque(maxlen=self.max_history), last_activity=self._clock()),
        )
        if self._clock() - conversation.last_activity > self.context_window and conversation.history:
            logger.info(f"Conversation for user {user_id} expired after inactivity")
            conversation.history.clear()
        return conversation

    def get_history(self, user_id: int) -> List[Turn]:
        return list(self._get_conversation(user_id).history)

    def append(self, user_id: int, role: str, content: str) -> None:
        if role not in (USER, ASSISTANT):
            raise ValueError(f"Unknown role: {role}")
        conversation = self._get_conversation(user_id)
        now = self._clock()
        conversation.last_activity = now
        # deque(maxlen) drops the oldest turn once the bound is reached
        conversation.history.append(Turn(role, truncate_message(content, self.max_tokens_per_message), now))

    def clear(self, user_id: int) -> None:
        conversation = self._conversations.get(user_id)
        if conversation is not None:
            conversation.history.clear()

    def history_length(self, user_id: int) -> int:
        conversation = self._conversations.get(user_id)
        return len(conversation.history) if conversation is not None else 0
